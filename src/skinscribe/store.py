"""Filesystem-backed artifact and audit record store for skinscribe.

Everything lives on disk under ``~/.skinscribe/``. Records are written
once and never updated or deleted; retention is left to whoever owns the
directory.

Directory layout::

    ~/.skinscribe/
    ├── outputs/            # Composited PDFs (signed_<epoch-ms>_<hex>.pdf)
    ├── audit/              # One JSON file per audit record
    └── sources/            # Default root for local document references
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Iterable, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from .config import InscribeConfig
from .errors import CorruptRecord, PersistenceFailure, RecordNotFound
from .models import AuditRecord, DocumentField

logger = logging.getLogger("skinscribe.store")

_RECORD_ID = re.compile(r"^[0-9a-f]{32}$")
_OUTPUT_NAME = re.compile(r"^signed_\d+_[0-9a-f]{8}\.pdf$")


class AuditStore:
    """Append-only storage for output artifacts and audit records.

    Args:
        config: Data directory and public URL settings.
    """

    def __init__(self, config: Optional[InscribeConfig] = None) -> None:
        self.config = config or InscribeConfig()
        self.base = self.config.data_dir
        self._outputs_dir = self.base / "outputs"
        self._audit_dir = self.base / "audit"

        for d in (self._outputs_dir, self._audit_dir):
            d.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Output artifacts
    # ------------------------------------------------------------------

    def save_output(self, data: bytes) -> tuple[Path, str]:
        """Write a composited PDF under a fresh timestamped name.

        Args:
            data: PDF bytes to persist.

        Returns:
            ``(path, output_location)`` where the location is a URL if a
            public base URL is configured, otherwise the path.

        Raises:
            PersistenceFailure: If the file cannot be written.
        """
        filename = f"signed_{int(time.time() * 1000)}_{uuid4().hex[:8]}.pdf"
        path = self._outputs_dir / filename
        try:
            with open(path, "xb") as f:
                f.write(data)
        except OSError as exc:
            raise PersistenceFailure(f"Cannot write output {filename}: {exc}") from exc

        logger.info("Saved output %s (%d bytes)", filename, len(data))
        return path, self.output_location(filename)

    def output_location(self, filename: str) -> str:
        """Where clients retrieve an output artifact."""
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/api/outputs/{filename}"
        return str(self._outputs_dir / filename)

    def output_file(self, output_location: str) -> Path:
        """Local path of an artifact given its output location."""
        return self._outputs_dir / output_location.rsplit("/", 1)[-1]

    def get_output(self, filename: str) -> Optional[bytes]:
        """Read an output artifact by filename.

        Args:
            filename: Name returned by :meth:`save_output`.

        Returns:
            PDF bytes or None if no such artifact exists.
        """
        if not _OUTPUT_NAME.match(filename):
            return None
        path = self._outputs_dir / filename
        if path.exists():
            return path.read_bytes()
        return None

    # ------------------------------------------------------------------
    # Audit records
    # ------------------------------------------------------------------

    def record(
        self,
        document_ref: str,
        original_digest: str,
        signed_digest: str,
        output_location: str,
        fields: list[DocumentField],
        drawn_fields: Iterable[Union[str, int]] = (),
        skipped_fields: Iterable[Union[str, int]] = (),
    ) -> str:
        """Persist an audit record for a completed pass.

        The field list is deep-copied so later changes by the caller do
        not leak into the record.

        Returns:
            The new record's identifier.

        Raises:
            PersistenceFailure: If the record cannot be written.
        """
        entry = AuditRecord(
            document_ref=document_ref,
            original_digest=original_digest,
            signed_digest=signed_digest,
            output_location=output_location,
            fields=[f.model_copy(deep=True) for f in fields],
            drawn_fields=list(drawn_fields),
            skipped_fields=list(skipped_fields),
        )
        path = self._audit_dir / f"{entry.record_id}.json"
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(entry.model_dump_json(indent=2, by_alias=True))
        except OSError as exc:
            raise PersistenceFailure(
                f"Cannot write audit record {entry.record_id}: {exc}"
            ) from exc

        logger.info(
            "Recorded pass %s for %s (%s -> %s)",
            entry.record_id[:8],
            document_ref,
            original_digest[:12],
            signed_digest[:12],
        )
        return entry.record_id

    def lookup(self, record_id: str) -> AuditRecord:
        """Load an audit record by ID.

        Raises:
            RecordNotFound: If no record has this ID.
            CorruptRecord: If the record file cannot be parsed.
        """
        path = self._audit_dir / f"{record_id}.json"
        if not _RECORD_ID.match(record_id) or not path.exists():
            raise RecordNotFound(f"Audit record not found: {record_id}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return AuditRecord.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.error("Audit record %s is unreadable: %s", record_id, exc)
            raise CorruptRecord(f"Audit record {record_id} is corrupt") from exc

    def list_records(self) -> list[AuditRecord]:
        """List all audit records, newest first."""
        records = []
        for f in self._audit_dir.glob("*.json"):
            try:
                data = json.loads(f.read_text(encoding="utf-8"))
                records.append(AuditRecord.model_validate(data))
            except Exception as exc:
                logger.warning("Skipping invalid audit record %s: %s", f.name, exc)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records
