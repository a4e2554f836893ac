"""Core data models for skinscribe.

Fields arrive from the page editor already converted to PDF points but
still anchored at their top-left corner (y measured down from the top of
the page). The compositor flips them into PDF's bottom-left space against
the real page height.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FieldType(str, Enum):
    """Closed set of annotation types the compositor knows how to draw."""

    TEXT = "text"
    SIGNATURE = "signature"
    IMAGE = "image"
    DATE = "date"
    RADIO = "radio"


class SkipReason(str, Enum):
    """Why a field produced no mark on the page."""

    EMPTY_VALUE = "empty_value"
    MISSING_PAGE = "missing_page"
    INVALID_GEOMETRY = "invalid_geometry"
    RENDER_FAILURE = "render_failure"


# ---------------------------------------------------------------------------
# Field payloads (tagged variant over the field value)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextPayload:
    """Literal text for ``text`` and ``date`` fields."""

    text: str


@dataclass(frozen=True)
class ImagePayload:
    """Base64 raster (optionally a ``data:`` URI) for image-like fields."""

    data: str


@dataclass(frozen=True)
class MarkPayload:
    """A selected ``radio`` field."""


Payload = Union[TextPayload, ImagePayload, MarkPayload]


# ---------------------------------------------------------------------------
# Field
# ---------------------------------------------------------------------------

class DocumentField(BaseModel):
    """One user-placed annotation.

    Attributes:
        field_id: Opaque identifier, stable across editor updates.
        field_type: What kind of mark to draw.
        x: Left edge of the box, in points from the page's left edge.
        y: Top edge of the box, in points from the page's top edge.
        width: Box width in points.
        height: Box height in points.
        page: 1-indexed page number.
        value: Text, base64 image data, or a boolean, depending on type.
            Empty means "not yet filled".
    """

    field_id: Union[str, int] = Field(
        default_factory=lambda: str(uuid4()), alias="id"
    )
    field_type: FieldType = Field(alias="type")
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    page: int = Field(1, ge=1)
    value: Union[bool, str, None] = None

    model_config = {"populate_by_name": True, "allow_inf_nan": False}

    def payload(self) -> Optional[Payload]:
        """Typed payload for this field, or None if it is empty.

        A value whose shape does not match the field type (a boolean on
        a text field, a string on a radio field) counts as empty.
        """
        value = self.value
        if self.field_type in (FieldType.TEXT, FieldType.DATE):
            if isinstance(value, str) and value:
                return TextPayload(value)
            return None
        if self.field_type in (FieldType.SIGNATURE, FieldType.IMAGE):
            if isinstance(value, str) and value:
                return ImagePayload(value)
            return None
        if value is True:
            return MarkPayload()
        return None


# ---------------------------------------------------------------------------
# Compositing results
# ---------------------------------------------------------------------------

class FieldOutcome(BaseModel):
    """Result of compositing a single field.

    Attributes:
        field_id: The field this outcome belongs to.
        drawn: Whether anything was added to the page.
        reason: Why the field was skipped (None when drawn).
        detail: Error text for failed fields.
    """

    field_id: Union[str, int]
    drawn: bool
    reason: Optional[SkipReason] = None
    detail: str = ""


@dataclass
class AssemblyResult:
    """Output of one compositing pass, before persistence."""

    output_bytes: bytes
    original_digest: str
    signed_digest: str
    outcomes: list[FieldOutcome] = field(default_factory=list)

    @property
    def drawn_fields(self) -> list[Union[str, int]]:
        return [o.field_id for o in self.outcomes if o.drawn]

    @property
    def skipped_fields(self) -> list[Union[str, int]]:
        return [o.field_id for o in self.outcomes if not o.drawn]


# ---------------------------------------------------------------------------
# Audit record
# ---------------------------------------------------------------------------

class AuditRecord(BaseModel):
    """Immutable record of a completed compositing pass.

    Attributes:
        record_id: Unique identifier.
        document_ref: Source URL or path the pass read from.
        original_digest: SHA-256 of the source bytes.
        signed_digest: SHA-256 of the output bytes.
        output_location: Where the composited PDF can be retrieved.
        fields: Snapshot of the fields used to produce the output.
        drawn_fields: Ids of fields that produced a mark.
        skipped_fields: Ids of fields that were skipped.
        created_at: When the record was created.
    """

    record_id: str = Field(default_factory=lambda: uuid4().hex)
    document_ref: str
    original_digest: str
    signed_digest: str
    output_location: str
    fields: list[DocumentField] = Field(default_factory=list)
    drawn_fields: list[Union[str, int]] = Field(default_factory=list)
    skipped_fields: list[Union[str, int]] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def modified(self) -> bool:
        """The pass changed the document content."""
        return self.original_digest != self.signed_digest


# ---------------------------------------------------------------------------
# Request / response boundary
# ---------------------------------------------------------------------------

class CompositeRequest(BaseModel):
    """A document reference and the ordered fields to bake into it."""

    document_ref: str = Field(
        validation_alias=AliasChoices("document_ref", "documentRef", "pdfUrl")
    )
    fields: list[DocumentField] = Field(default_factory=list)


class CompositeResponse(BaseModel):
    """Successful result of a compositing pass."""

    success: bool = True
    output_location: str
    original_digest: str
    signed_digest: str
    audit_record_id: str
    outcomes: list[FieldOutcome] = Field(default_factory=list)
