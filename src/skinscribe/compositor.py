"""Per-field rendering onto a PDF page overlay.

Each page of a pass gets a :class:`PageCanvas`: a reportlab canvas the
size of the page that collects drawing operations in field order. The
assembler merges the finished overlay on top of the original page, so
later fields paint over earlier ones and everything paints over the
existing page content.
"""

import base64
import binascii
import logging
import re
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pypdf import PageObject, PdfReader
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas

from .config import InscribeConfig
from .errors import FieldRenderFailure, InvalidGeometry
from .geometry import Rect, fit, flip_box_y
from .models import (
    DocumentField,
    FieldOutcome,
    ImagePayload,
    MarkPayload,
    SkipReason,
    TextPayload,
)

logger = logging.getLogger("skinscribe.compositor")

_DATA_URI = re.compile(r"^data:image/(?P<subtype>[\w.+-]+);base64,", re.IGNORECASE)

_SUPPORTED_FORMATS = ("PNG", "JPEG")

# The standard PDF fonts are drawn with WinAnsiEncoding.
_STANDARD_FONT_ENCODING = "cp1252"


class PageCanvas:
    """Overlay builder for one page, owned by a single compositing pass.

    Coordinates passed to the drawing helpers are relative to the page's
    media box; the origin offset of boxes that do not start at (0, 0) is
    applied once when the canvas is created.

    Args:
        width: Media box width in points.
        height: Media box height in points.
        origin_x: Left edge of the media box.
        origin_y: Bottom edge of the media box.
    """

    def __init__(
        self,
        width: float,
        height: float,
        origin_x: float = 0.0,
        origin_y: float = 0.0,
    ) -> None:
        self.width = width
        self.height = height
        self.origin_x = origin_x
        self.origin_y = origin_y
        self.marks = 0
        self._buffer: Optional[BytesIO] = None
        self._canvas: Optional[canvas.Canvas] = None

    @classmethod
    def for_page(cls, page: PageObject) -> "PageCanvas":
        """Create a canvas matching a pypdf page's media box."""
        box = page.mediabox
        return cls(
            width=float(box.width),
            height=float(box.height),
            origin_x=float(box.left),
            origin_y=float(box.bottom),
        )

    @property
    def canvas(self) -> canvas.Canvas:
        if self._canvas is None:
            self._buffer = BytesIO()
            self._canvas = canvas.Canvas(
                self._buffer,
                pagesize=(self.origin_x + self.width, self.origin_y + self.height),
            )
            self._canvas.translate(self.origin_x, self.origin_y)
        return self._canvas

    def finish(self) -> Optional[PageObject]:
        """Close the overlay and return it as a page, or None if untouched."""
        if self._canvas is None or self.marks == 0:
            return None
        self._canvas.showPage()
        self._canvas.save()
        return PdfReader(BytesIO(self._buffer.getvalue())).pages[0]


def decode_image(data: str, max_bytes: Optional[int] = None) -> Image.Image:
    """Decode a base64 raster payload into a Pillow image.

    A ``data:image/png`` prefix declares PNG, any other ``data:image/``
    prefix declares JPEG, and the decoded bytes must match the declared
    format. Bare base64 is accepted as either PNG or JPEG.

    Raises:
        FieldRenderFailure: Malformed base64, oversized payload, or an
            undecodable or unsupported raster format.
    """
    match = _DATA_URI.match(data)
    declared = None
    if match:
        declared = "PNG" if match.group("subtype").lower() == "png" else "JPEG"
        data = data[match.end():]

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FieldRenderFailure(f"Invalid base64 image payload: {exc}") from exc

    if max_bytes is not None and len(raw) > max_bytes:
        raise FieldRenderFailure(
            f"Image payload is {len(raw)} bytes, limit is {max_bytes}"
        )

    try:
        image = Image.open(BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as exc:
        raise FieldRenderFailure(f"Cannot decode image payload: {exc}") from exc

    if image.format not in _SUPPORTED_FORMATS:
        raise FieldRenderFailure(f"Unsupported image format: {image.format}")
    if declared is not None and image.format != declared:
        raise FieldRenderFailure(
            f"Payload declared {declared} but contains {image.format}"
        )

    if image.mode not in ("RGB", "RGBA", "L"):
        image = image.convert("RGBA")
    return image


class FieldCompositor:
    """Draws fields onto page canvases according to their type.

    Stateless apart from configuration and the loaded TrueType font; the
    same compositor can serve any number of passes.
    """

    def __init__(self, config: Optional[InscribeConfig] = None) -> None:
        self.config = config or InscribeConfig()
        self._font: Optional[TTFont] = None

    def composite(self, page: PageCanvas, field: DocumentField) -> FieldOutcome:
        """Draw one field onto its page.

        Empty fields, degenerate geometry, and render failures are
        reported in the outcome instead of raised.

        Args:
            page: Canvas of the page the field belongs to.
            field: Field to draw.

        Returns:
            Outcome saying whether a mark was added and, if not, why.
        """
        payload = field.payload()
        if payload is None:
            return FieldOutcome(
                field_id=field.field_id, drawn=False, reason=SkipReason.EMPTY_VALUE
            )

        box = Rect(
            field.x,
            flip_box_y(field.y, field.height, page.height),
            field.width,
            field.height,
        )

        try:
            if isinstance(payload, TextPayload):
                self._draw_text(page, box, payload)
            elif isinstance(payload, ImagePayload):
                self._draw_image(page, box, payload)
            elif isinstance(payload, MarkPayload):
                self._draw_mark(page, box)
        except InvalidGeometry as exc:
            logger.warning("Skipping field %s: %s", field.field_id, exc)
            return FieldOutcome(
                field_id=field.field_id,
                drawn=False,
                reason=SkipReason.INVALID_GEOMETRY,
                detail=str(exc),
            )
        except FieldRenderFailure as exc:
            logger.warning("Failed to render field %s: %s", field.field_id, exc)
            return FieldOutcome(
                field_id=field.field_id,
                drawn=False,
                reason=SkipReason.RENDER_FAILURE,
                detail=str(exc),
            )

        page.marks += 1
        return FieldOutcome(field_id=field.field_id, drawn=True)

    # ------------------------------------------------------------------
    # Drawing rules
    # ------------------------------------------------------------------

    def _draw_text(self, page: PageCanvas, box: Rect, payload: TextPayload) -> None:
        """Text and date: one line, baseline a fixed offset below the box top."""
        self._check_encodable(payload.text)
        c = page.canvas
        c.saveState()
        try:
            c.setFillColorRGB(0, 0, 0)
            c.setFont(self.config.text_font, self.config.text_font_size)
            c.drawString(
                box.x,
                box.y + box.height - self.config.baseline_offset,
                payload.text,
            )
        except Exception as exc:
            raise FieldRenderFailure(f"Cannot draw text: {exc}") from exc
        finally:
            c.restoreState()

    def _draw_image(self, page: PageCanvas, box: Rect, payload: ImagePayload) -> None:
        """Signature and image: aspect-fit and center inside the box."""
        image = decode_image(payload.data, self.config.max_image_bytes)
        target = fit(image.width, image.height, box.x, box.y, box.width, box.height)

        c = page.canvas
        try:
            c.drawImage(
                ImageReader(image),
                target.x,
                target.y,
                width=target.width,
                height=target.height,
                mask="auto",
            )
        except Exception as exc:
            raise FieldRenderFailure(f"Cannot embed image: {exc}") from exc

    @staticmethod
    def _draw_mark(page: PageCanvas, box: Rect) -> None:
        """Radio: filled circle at the box center."""
        cx, cy = box.center
        c = page.canvas
        c.saveState()
        try:
            c.setFillColorRGB(0, 0, 0)
            c.circle(cx, cy, min(box.width, box.height) / 3, stroke=0, fill=1)
        except Exception as exc:
            raise FieldRenderFailure(f"Cannot draw mark: {exc}") from exc
        finally:
            c.restoreState()

    # ------------------------------------------------------------------
    # Fonts
    # ------------------------------------------------------------------

    def _text_font(self) -> Optional[TTFont]:
        """TrueType font from ``text_font_path``, registered on first use.

        Returns None when text is drawn with a standard PDF font.
        """
        path = self.config.text_font_path
        if path is None:
            return None
        if self._font is None:
            try:
                font = TTFont(self.config.text_font, str(path))
            except (TTFError, OSError) as exc:
                raise FieldRenderFailure(f"Cannot load font {path}: {exc}") from exc
            pdfmetrics.registerFont(font)
            self._font = font
        return self._font

    def _check_encodable(self, text: str) -> None:
        """Refuse text the configured font would draw as blank boxes."""
        font = self._text_font()
        if font is None:
            try:
                text.encode(_STANDARD_FONT_ENCODING)
            except UnicodeEncodeError as exc:
                raise FieldRenderFailure(
                    f"{self.config.text_font} cannot encode "
                    f"{exc.object[exc.start:exc.end]!r}"
                ) from exc
            return

        glyphs = font.face.charToGlyph
        missing = sorted({ch for ch in text if not ch.isspace() and ord(ch) not in glyphs})
        if missing:
            raise FieldRenderFailure(
                f"{self.config.text_font} has no glyph for {''.join(missing)!r}"
            )
