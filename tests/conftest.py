"""Shared fixtures for skinscribe tests."""

import base64
from io import BytesIO

import pytest
from PIL import Image
from pypdf import PdfWriter

from skinscribe.config import InscribeConfig


def make_pdf(pages: int = 1, width: float = 612, height: float = 792) -> bytes:
    """Blank PDF with ``pages`` pages of the given size."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buf = BytesIO()
    writer.write(buf)
    return buf.getvalue()


def make_image_uri(width: int, height: int, fmt: str = "PNG", prefix: bool = True) -> str:
    """Solid-color raster encoded as a base64 (data URI) string."""
    mode = "RGBA" if fmt == "PNG" else "RGB"
    color = (200, 30, 30, 255) if mode == "RGBA" else (200, 30, 30)
    buf = BytesIO()
    Image.new(mode, (width, height), color).save(buf, format=fmt)
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    if not prefix:
        return encoded
    subtype = "png" if fmt == "PNG" else "jpeg"
    return f"data:image/{subtype};base64,{encoded}"


@pytest.fixture
def sample_pdf() -> bytes:
    """One US Letter page (612x792 points)."""
    return make_pdf()


@pytest.fixture
def tmp_config(tmp_path) -> InscribeConfig:
    """Config rooted in a temporary directory."""
    return InscribeConfig(
        data_dir=tmp_path / "data",
        source_root=tmp_path / "sources",
    )


@pytest.fixture
def source_dir(tmp_config, sample_pdf):
    """Source root holding ``doc.pdf`` (one page) and ``two.pdf`` (two pages)."""
    root = tmp_config.resolved_source_root
    root.mkdir(parents=True, exist_ok=True)
    (root / "doc.pdf").write_bytes(sample_pdf)
    (root / "two.pdf").write_bytes(make_pdf(pages=2))
    return root


@pytest.fixture
def tmp_store(tmp_config):
    """Create a temporary AuditStore."""
    from skinscribe.store import AuditStore

    return AuditStore(tmp_config)


@pytest.fixture
def png_uri() -> str:
    """400x200 PNG data URI."""
    return make_image_uri(400, 200, "PNG")


@pytest.fixture
def jpeg_uri() -> str:
    """100x300 JPEG data URI."""
    return make_image_uri(100, 300, "JPEG")


@pytest.fixture
def pdf_factory():
    """Build blank PDFs: ``pdf_factory(pages=2, width=..., height=...)``."""
    return make_pdf


@pytest.fixture
def image_uri_factory():
    """Build raster payloads: ``image_uri_factory(w, h, "JPEG", prefix=False)``."""
    return make_image_uri
