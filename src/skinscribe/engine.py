"""skinscribe compositing engine.

Runs one compositing pass: fetch the source PDF, hash it, draw every
field onto its page in order, serialize, hash again. Field-level
problems are absorbed and reported per field; document-level problems
(fetch, parse, persistence) abort the pass.

A pass owns its reader, writer, and page canvases exclusively. Fields
are processed strictly in list order because later fields may paint
over earlier ones.
"""

import asyncio
import hashlib
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional

import httpx
from pypdf import PdfReader, PdfWriter

from .compositor import FieldCompositor, PageCanvas
from .config import InscribeConfig
from .errors import MalformedDocument, RequestRejected
from .models import (
    AssemblyResult,
    CompositeRequest,
    CompositeResponse,
    DocumentField,
    FieldOutcome,
    SkipReason,
)
from .store import AuditStore
from .transport import fetch_source

logger = logging.getLogger("skinscribe.engine")


class DocumentAssembler:
    """Orchestrates compositing passes.

    Args:
        config: Limits, timeouts, and text settings.
        compositor: Field renderer (built from ``config`` if omitted).
        http_client: Shared client for remote sources.
    """

    def __init__(
        self,
        config: Optional[InscribeConfig] = None,
        compositor: Optional[FieldCompositor] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or InscribeConfig()
        self.compositor = compositor or FieldCompositor(self.config)
        self.http_client = http_client

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    @staticmethod
    def hash_file(path: Path) -> str:
        """Compute SHA-256 hash of a file.

        Args:
            path: Path to the file.

        Returns:
            Hex-encoded SHA-256 digest.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        h = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                h.update(chunk)
        return h.hexdigest()

    @staticmethod
    def hash_bytes(data: bytes) -> str:
        """Compute SHA-256 hash of raw bytes."""
        return hashlib.sha256(data).hexdigest()

    # ------------------------------------------------------------------
    # Compositing pass
    # ------------------------------------------------------------------

    async def run(
        self,
        document_ref: str,
        fields: list[DocumentField],
    ) -> AssemblyResult:
        """Composite ``fields`` into the document at ``document_ref``.

        Only the fetch runs on the event loop; parsing, drawing, and
        serialization happen in a worker thread.

        Args:
            document_ref: URL or source-root-relative path.
            fields: Fields to draw, in painting order.

        Returns:
            Output bytes, both digests, and one outcome per field.

        Raises:
            RequestRejected: Too many fields.
            SourceUnavailable: The source could not be retrieved.
            MalformedDocument: The source is not a readable PDF.
        """
        self._check_limits(fields)
        source = await fetch_source(document_ref, self.config, client=self.http_client)
        result = await asyncio.to_thread(self.assemble, source, fields)

        logger.info(
            "Composited %d/%d fields into %s (%s -> %s)",
            len(result.drawn_fields),
            len(fields),
            document_ref,
            result.original_digest[:12],
            result.signed_digest[:12],
        )
        return result

    def assemble(self, source: bytes, fields: list[DocumentField]) -> AssemblyResult:
        """Synchronous part of a pass: hash, open, composite in order, render."""
        original_digest = self.hash_bytes(source)
        reader = self.open_document(source)

        canvases = [PageCanvas.for_page(page) for page in reader.pages]
        outcomes = [self._composite_field(canvases, field) for field in fields]

        if any(o.drawn for o in outcomes):
            output = self.render(reader, canvases)
        else:
            output = source

        return AssemblyResult(
            output_bytes=output,
            original_digest=original_digest,
            signed_digest=self.hash_bytes(output),
            outcomes=outcomes,
        )

    async def process(
        self,
        request: CompositeRequest,
        store: AuditStore,
    ) -> CompositeResponse:
        """Run a pass, persist the output, and record the audit entry.

        Raises:
            PersistenceFailure: The artifact or record could not be saved,
                in addition to everything :meth:`run` raises.
        """
        result = await self.run(request.document_ref, request.fields)
        _, location = await asyncio.to_thread(store.save_output, result.output_bytes)
        record_id = await asyncio.to_thread(
            store.record,
            document_ref=request.document_ref,
            original_digest=result.original_digest,
            signed_digest=result.signed_digest,
            output_location=location,
            fields=request.fields,
            drawn_fields=result.drawn_fields,
            skipped_fields=result.skipped_fields,
        )
        return CompositeResponse(
            output_location=location,
            original_digest=result.original_digest,
            signed_digest=result.signed_digest,
            audit_record_id=record_id,
            outcomes=result.outcomes,
        )

    # ------------------------------------------------------------------
    # Document model
    # ------------------------------------------------------------------

    @staticmethod
    def open_document(data: bytes) -> PdfReader:
        """Parse PDF bytes.

        Raises:
            MalformedDocument: If the bytes are not a readable PDF or the
                document has no pages.
        """
        try:
            reader = PdfReader(BytesIO(data))
            if reader.is_encrypted and not reader.decrypt(""):
                raise MalformedDocument("Document is encrypted")
            page_count = len(reader.pages)
        except MalformedDocument:
            raise
        except Exception as exc:
            raise MalformedDocument(f"Cannot parse PDF: {exc}") from exc

        if page_count == 0:
            raise MalformedDocument("Document has no pages")
        return reader

    @staticmethod
    def render(reader: PdfReader, canvases: list[PageCanvas]) -> bytes:
        """Merge finished overlays onto their pages and serialize."""
        writer = PdfWriter(clone_from=reader)
        for index, page_canvas in enumerate(canvases):
            overlay = page_canvas.finish()
            if overlay is not None:
                writer.pages[index].merge_page(overlay)

        buf = BytesIO()
        writer.write(buf)
        return buf.getvalue()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_limits(self, fields: list[DocumentField]) -> None:
        if len(fields) > self.config.max_fields:
            raise RequestRejected(
                f"{len(fields)} fields exceed the limit of {self.config.max_fields}"
            )

    def _composite_field(
        self,
        canvases: list[PageCanvas],
        field: DocumentField,
    ) -> FieldOutcome:
        """Composite one field, skipping it if its page does not exist."""
        if field.page > len(canvases):
            logger.warning(
                "Skipping field %s: page %d of %d does not exist",
                field.field_id,
                field.page,
                len(canvases),
            )
            return FieldOutcome(
                field_id=field.field_id,
                drawn=False,
                reason=SkipReason.MISSING_PAGE,
            )
        return self.compositor.composite(canvases[field.page - 1], field)
