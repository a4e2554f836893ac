"""Error taxonomy for compositing passes.

Every error carries the pass stage it came from so callers can report
``{"error", "stage", "message"}`` without inspecting exception types.
"""

from typing import Optional


class InscribeError(Exception):
    """Base class for all skinscribe errors.

    Attributes:
        stage: Pass stage that failed (fetch, open, composite, ...).
        message: Human-readable description of the failure.
    """

    stage = "unknown"

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage

    def to_dict(self) -> dict[str, str]:
        """Structured error body for API and MCP responses."""
        return {
            "error": type(self).__name__,
            "stage": self.stage,
            "message": self.message,
        }


class SourceUnavailable(InscribeError):
    """Source bytes could not be retrieved (network, status, missing file)."""

    stage = "fetch"


class MalformedDocument(InscribeError):
    """Source bytes are not a readable PDF."""

    stage = "open"


class InvalidGeometry(InscribeError, ValueError):
    """Degenerate geometry input (zero height, non-positive zoom)."""

    stage = "geometry"


class FieldRenderFailure(InscribeError):
    """A single field could not be drawn. Never fatal to the pass."""

    stage = "composite"


class PersistenceFailure(InscribeError):
    """Writing the output artifact or the audit record failed."""

    stage = "persist"


class RecordNotFound(InscribeError):
    """No audit record exists for the requested identifier."""

    stage = "lookup"


class RequestRejected(InscribeError):
    """The request exceeds a configured resource ceiling."""

    stage = "validate"


class CorruptRecord(InscribeError):
    """An audit record exists on disk but cannot be parsed."""

    stage = "lookup"
