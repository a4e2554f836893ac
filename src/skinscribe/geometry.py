"""Coordinate conversion and aspect-ratio fitting.

Two coordinate systems meet here:

* editor space: CSS pixels at 96 DPI, origin at the top-left of the page,
  y growing downward, multiplied by the viewer's zoom scale;
* document space: PDF points at 72 DPI, origin at the bottom-left of the
  page, y growing upward.

All functions are pure and apply no rounding.
"""

from dataclasses import dataclass

from .errors import InvalidGeometry

EDITOR_DPI = 96
DOCUMENT_DPI = 72
POINTS_PER_PIXEL = DOCUMENT_DPI / EDITOR_DPI


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle anchored at its bottom-left corner (points)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


def _check_zoom(zoom_scale: float) -> None:
    if zoom_scale <= 0:
        raise InvalidGeometry(f"Zoom scale must be positive, got {zoom_scale}")


# ---------------------------------------------------------------------------
# Scalar conversion
# ---------------------------------------------------------------------------

def pixels_to_points(pixels: float, zoom_scale: float = 1.0) -> float:
    """Convert an editor pixel length at ``zoom_scale`` to PDF points."""
    _check_zoom(zoom_scale)
    return pixels / zoom_scale * POINTS_PER_PIXEL


def points_to_pixels(points: float, zoom_scale: float = 1.0) -> float:
    """Convert a PDF point length to editor pixels at ``zoom_scale``."""
    _check_zoom(zoom_scale)
    return points / POINTS_PER_PIXEL * zoom_scale


# ---------------------------------------------------------------------------
# Point conversion
# ---------------------------------------------------------------------------

def flip_box_y(top: float, height: float, page_height: float) -> float:
    """Bottom edge of a box given its distance from the page top.

    Converts a top-left anchored box into the bottom-left anchored box
    covering the same visual region.
    """
    return page_height - top - height


def to_document_space(
    pixel_x: float,
    pixel_y: float,
    zoom_scale: float,
    page_height_points: float,
    field_height_points: float = 0.0,
) -> tuple[float, float]:
    """Map an editor pixel position to document points.

    Args:
        pixel_x: Horizontal offset from the page's left edge, in pixels.
        pixel_y: Vertical offset from the page's top edge, in pixels.
        zoom_scale: Active viewer zoom (1.0 = 100%).
        page_height_points: Page height in points.
        field_height_points: Height of the box anchored at the position;
            pass it to get the box's bottom-left corner.

    Returns:
        ``(point_x, point_y)`` with a bottom-left origin.

    Raises:
        InvalidGeometry: If ``zoom_scale`` is not positive.
    """
    point_x = pixels_to_points(pixel_x, zoom_scale)
    pixel_y_in_points = pixels_to_points(pixel_y, zoom_scale)
    return point_x, flip_box_y(pixel_y_in_points, field_height_points, page_height_points)


def to_editor_space(
    point_x: float,
    point_y: float,
    zoom_scale: float,
    page_height_points: float,
    field_height_points: float = 0.0,
) -> tuple[float, float]:
    """Inverse of :func:`to_document_space`."""
    pixel_x = points_to_pixels(point_x, zoom_scale)
    top_in_points = page_height_points - point_y - field_height_points
    return pixel_x, points_to_pixels(top_in_points, zoom_scale)


def editor_box_to_field_geometry(
    x: float,
    y: float,
    width: float,
    height: float,
    zoom_scale: float = 1.0,
) -> dict[str, float]:
    """Convert an editor pixel box into the point-space box a Field carries.

    The result keeps the top-left anchor; the vertical flip happens in the
    compositor against the real page height.
    """
    return {
        "x": pixels_to_points(x, zoom_scale),
        "y": pixels_to_points(y, zoom_scale),
        "width": pixels_to_points(width, zoom_scale),
        "height": pixels_to_points(height, zoom_scale),
    }


# ---------------------------------------------------------------------------
# Aspect fitting
# ---------------------------------------------------------------------------

def fit(
    image_width: float,
    image_height: float,
    box_x: float,
    box_y: float,
    box_width: float,
    box_height: float,
) -> Rect:
    """Largest rectangle with the image's aspect ratio centered in a box.

    The fitted axis spans the whole box; the unused margin on the other
    axis is split evenly on both sides.

    Raises:
        InvalidGeometry: If any image or box dimension is not positive.
    """
    if image_width <= 0 or image_height <= 0:
        raise InvalidGeometry(
            f"Image dimensions must be positive, got {image_width}x{image_height}"
        )
    if box_width <= 0 or box_height <= 0:
        raise InvalidGeometry(
            f"Box dimensions must be positive, got {box_width}x{box_height}"
        )

    image_aspect = image_width / image_height
    box_aspect = box_width / box_height

    if image_aspect > box_aspect:
        draw_width = box_width
        draw_height = box_width / image_aspect
        return Rect(box_x, box_y + (box_height - draw_height) / 2, draw_width, draw_height)

    draw_height = box_height
    draw_width = box_height * image_aspect
    return Rect(box_x + (box_width - draw_width) / 2, box_y, draw_width, draw_height)
