"""skinscribe REST API — FastAPI server for field compositing.

The sign endpoint keeps the request shape of the web editor
backend (``pdfUrl`` is accepted as an alias of ``document_ref``) so an
existing front end can post to it unchanged.
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from . import __version__
from .config import InscribeConfig
from .engine import DocumentAssembler
from .errors import (
    CorruptRecord,
    InscribeError,
    MalformedDocument,
    PersistenceFailure,
    RecordNotFound,
    RequestRejected,
    SourceUnavailable,
)
from .models import AuditRecord, CompositeRequest, CompositeResponse
from .store import AuditStore

logger = logging.getLogger("skinscribe.api")

_STATUS_CODES: dict[type, int] = {
    RequestRejected: 400,
    MalformedDocument: 422,
    SourceUnavailable: 502,
    PersistenceFailure: 500,
}


def _http_error(exc: InscribeError) -> HTTPException:
    """Map a fatal pass error to a structured HTTP error."""
    status = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    return HTTPException(status_code=status, detail=exc.to_dict())


def create_app(config: Optional[InscribeConfig] = None) -> FastAPI:
    """Build the API application around one store and one assembler."""
    config = config or InscribeConfig.from_env()
    store = AuditStore(config)
    assembler = DocumentAssembler(config)

    app = FastAPI(
        title="skinscribe",
        description="Bake annotation fields into PDF pages with an auditable digest.",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Compositing
    # -----------------------------------------------------------------------

    @app.post("/api/sign-pdf", response_model=CompositeResponse)
    async def sign_pdf(req: CompositeRequest) -> CompositeResponse:
        """Composite the request's fields into its document.

        Individual fields that cannot be drawn are skipped and listed in
        ``outcomes``; only document-level failures produce an error.
        """
        try:
            return await assembler.process(req, store)
        except InscribeError as exc:
            logger.error("Compositing %s failed at %s: %s", req.document_ref, exc.stage, exc)
            raise _http_error(exc)

    # -----------------------------------------------------------------------
    # Audit records
    # -----------------------------------------------------------------------

    @app.get("/api/audit-trail", response_model=list[AuditRecord])
    async def list_audit_records() -> list[AuditRecord]:
        """List all audit records, newest first."""
        return store.list_records()

    @app.get("/api/audit-trail/{record_id}", response_model=AuditRecord)
    async def get_audit_record(record_id: str) -> AuditRecord:
        """Get an audit record by ID."""
        try:
            return store.lookup(record_id)
        except RecordNotFound:
            raise HTTPException(status_code=404, detail="Audit trail not found")
        except CorruptRecord as exc:
            raise _http_error(exc)

    # -----------------------------------------------------------------------
    # Output artifacts
    # -----------------------------------------------------------------------

    @app.get("/api/outputs/{filename}")
    async def download_output(filename: str) -> Response:
        """Download a composited PDF."""
        data = store.get_output(filename)
        if data is None:
            raise HTTPException(status_code=404, detail="Output not found")
        return Response(content=data, media_type="application/pdf")

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------

    @app.get("/api/health")
    async def health() -> dict:
        """Health check."""
        return {
            "status": "ok",
            "service": "skinscribe",
            "version": __version__,
        }

    return app
