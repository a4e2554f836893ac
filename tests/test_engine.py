"""Tests for the compositing pass."""

import asyncio
import time
from io import BytesIO

import pytest
from pypdf import PdfReader, PdfWriter
from pypdf.generic import RectangleObject

from skinscribe.compositor import FieldCompositor
from skinscribe.engine import DocumentAssembler
from skinscribe.errors import MalformedDocument, RequestRejected, SourceUnavailable
from skinscribe.models import CompositeRequest, DocumentField, FieldType, SkipReason


def _field(**kwargs) -> DocumentField:
    base = {"x": 100, "y": 100, "width": 200, "height": 40, "page": 1}
    base.update(kwargs)
    return DocumentField.model_validate(base)


def _drawn_text(pdf_bytes: bytes, page_index: int = 0) -> list[tuple[str, float, float]]:
    """Strings in drawing order with their page-space (x, y) position."""
    found: list[tuple[str, float, float]] = []

    def visitor(text, cm, tm, font_dict, font_size):
        if text.strip():
            x = tm[4] * cm[0] + tm[5] * cm[2] + cm[4]
            y = tm[4] * cm[1] + tm[5] * cm[3] + cm[5]
            found.append((text.strip(), x, y))

    PdfReader(BytesIO(pdf_bytes)).pages[page_index].extract_text(visitor_text=visitor)
    return found


def _text_positions(pdf_bytes: bytes, page_index: int = 0) -> dict[str, tuple[float, float]]:
    return {text: (x, y) for text, x, y in _drawn_text(pdf_bytes, page_index)}


def _page_content(pdf_bytes: bytes, page_index: int = 0) -> bytes:
    return PdfReader(BytesIO(pdf_bytes)).pages[page_index].get_contents().get_data()


class TestHashing:
    """SHA-256 hashing of documents."""

    def test_hash_bytes(self, sample_pdf):
        h = DocumentAssembler.hash_bytes(sample_pdf)
        assert len(h) == 64
        assert h == DocumentAssembler.hash_bytes(sample_pdf)  # deterministic

    def test_hash_file(self, sample_pdf, tmp_path):
        pdf_path = tmp_path / "test.pdf"
        pdf_path.write_bytes(sample_pdf)
        assert DocumentAssembler.hash_file(pdf_path) == DocumentAssembler.hash_bytes(sample_pdf)

    def test_different_content_different_hash(self, sample_pdf):
        h1 = DocumentAssembler.hash_bytes(sample_pdf)
        h2 = DocumentAssembler.hash_bytes(sample_pdf + b"modified")
        assert h1 != h2


class TestRun:
    """One compositing pass from source bytes to digests."""

    def test_text_field_changes_digest(self, tmp_config, source_dir, sample_pdf):
        assembler = DocumentAssembler(tmp_config)
        result = asyncio.run(
            assembler.run("doc.pdf", [_field(type="text", value="Alice")])
        )

        assert result.original_digest == DocumentAssembler.hash_bytes(sample_pdf)
        assert result.signed_digest == DocumentAssembler.hash_bytes(result.output_bytes)
        assert result.signed_digest != result.original_digest
        assert result.drawn_fields == [result.outcomes[0].field_id]

        x, y = _text_positions(result.output_bytes)["Alice"]
        assert x == pytest.approx(100, abs=0.5)
        assert y == pytest.approx(682, abs=0.5)

    def test_no_fields_keeps_digest(self, tmp_config, source_dir, sample_pdf):
        result = asyncio.run(DocumentAssembler(tmp_config).run("doc.pdf", []))
        assert result.output_bytes == sample_pdf
        assert result.signed_digest == result.original_digest

    def test_empty_field_same_as_omitting_it(self, tmp_config, source_dir):
        assembler = DocumentAssembler(tmp_config)
        drawn = _field(field_id="a", type="text", value="Alice")
        empty = _field(field_id="b", type="text", value="")

        with_empty = asyncio.run(assembler.run("doc.pdf", [drawn, empty]))
        without = asyncio.run(assembler.run("doc.pdf", [drawn]))
        only_empty = asyncio.run(assembler.run("doc.pdf", [empty]))

        assert _page_content(with_empty.output_bytes) == _page_content(without.output_bytes)
        assert only_empty.signed_digest == only_empty.original_digest
        assert with_empty.outcomes[1].reason == SkipReason.EMPTY_VALUE

    def test_missing_page_skipped(self, tmp_config, source_dir):
        fields = [
            _field(field_id="far", type="text", value="Nowhere", page=5),
            _field(field_id="here", type="text", value="Alice"),
        ]
        result = asyncio.run(DocumentAssembler(tmp_config).run("doc.pdf", fields))

        assert result.outcomes[0].reason == SkipReason.MISSING_PAGE
        assert result.outcomes[1].drawn is True
        assert result.skipped_fields == ["far"]
        positions = _text_positions(result.output_bytes)
        assert "Alice" in positions
        assert "Nowhere" not in positions

    def test_fields_land_on_their_page(self, tmp_config, source_dir):
        fields = [
            _field(type="text", value="First", page=1),
            _field(type="text", value="Second", page=2),
        ]
        result = asyncio.run(DocumentAssembler(tmp_config).run("two.pdf", fields))

        assert "First" in _text_positions(result.output_bytes, 0)
        assert "Second" in _text_positions(result.output_bytes, 1)
        assert "Second" not in _text_positions(result.output_bytes, 0)

    def test_bad_field_does_not_abort_pass(self, tmp_config, source_dir, png_uri):
        fields = [
            _field(type="signature", value="data:image/png;base64,###"),
            _field(type="image", value=png_uri, width=150, height=150),
            _field(type="radio", value=True, width=30, height=30),
        ]
        result = asyncio.run(DocumentAssembler(tmp_config).run("doc.pdf", fields))

        assert [o.drawn for o in result.outcomes] == [False, True, True]
        assert result.outcomes[0].reason == SkipReason.RENDER_FAILURE
        assert result.signed_digest != result.original_digest
        assert PdfReader(BytesIO(result.output_bytes)).pages[0] is not None

    def test_output_keeps_page_count(self, tmp_config, source_dir):
        result = asyncio.run(
            DocumentAssembler(tmp_config).run("two.pdf", [_field(type="text", value="x")])
        )
        assert len(PdfReader(BytesIO(result.output_bytes)).pages) == 2

    def test_later_fields_paint_over_earlier_ones(self, tmp_config, source_dir):
        assembler = DocumentAssembler(tmp_config)
        first = _field(field_id="a", type="text", value="A")
        second = _field(field_id="b", type="text", value="B")

        forward = asyncio.run(assembler.run("doc.pdf", [first, second]))
        backward = asyncio.run(assembler.run("doc.pdf", [second, first]))

        assert [t for t, _, _ in _drawn_text(forward.output_bytes)] == ["A", "B"]
        assert [t for t, _, _ in _drawn_text(backward.output_bytes)] == ["B", "A"]

    def test_offset_mediabox(self, tmp_config, source_dir):
        writer = PdfWriter()
        page = writer.add_blank_page(width=612, height=792)
        page.mediabox = RectangleObject([50, 100, 662, 892])
        buf = BytesIO()
        writer.write(buf)
        (source_dir / "offset.pdf").write_bytes(buf.getvalue())

        result = asyncio.run(
            DocumentAssembler(tmp_config).run("offset.pdf", [_field(type="text", value="Alice")])
        )

        x, y = _text_positions(result.output_bytes)["Alice"]
        assert x == pytest.approx(150, abs=0.5)
        assert y == pytest.approx(782, abs=0.5)

    def test_non_finite_radio_does_not_abort_pass(self, tmp_config, source_dir):
        unvalidated = DocumentField.model_construct(
            field_id="choice",
            field_type=FieldType.RADIO,
            x=float("nan"),
            y=0.0,
            width=30.0,
            height=30.0,
            page=1,
            value=True,
        )
        fields = [_field(field_id="name", type="text", value="Alice"), unvalidated]

        result = asyncio.run(DocumentAssembler(tmp_config).run("doc.pdf", fields))

        assert result.drawn_fields == ["name"]
        assert result.outcomes[1].reason == SkipReason.RENDER_FAILURE

    def test_pass_runs_off_the_event_loop(self, tmp_config, source_dir):
        class SlowCompositor(FieldCompositor):
            def composite(self, page, field):
                time.sleep(0.3)
                return super().composite(page, field)

        assembler = DocumentAssembler(tmp_config, compositor=SlowCompositor(tmp_config))

        async def scenario() -> int:
            ticks = 0
            task = asyncio.create_task(
                assembler.run("doc.pdf", [_field(type="text", value="Alice")])
            )
            while not task.done():
                await asyncio.sleep(0.01)
                ticks += 1
            await task
            return ticks

        assert asyncio.run(scenario()) >= 10

    def test_malformed_document(self, tmp_config, source_dir):
        (source_dir / "broken.pdf").write_bytes(b"this is not a pdf")
        with pytest.raises(MalformedDocument):
            asyncio.run(DocumentAssembler(tmp_config).run("broken.pdf", []))

    def test_missing_source(self, tmp_config, source_dir):
        with pytest.raises(SourceUnavailable):
            asyncio.run(DocumentAssembler(tmp_config).run("absent.pdf", []))

    def test_field_limit(self, tmp_config, source_dir):
        config = tmp_config.model_copy(update={"max_fields": 2})
        fields = [_field(type="text", value=str(i)) for i in range(3)]
        with pytest.raises(RequestRejected):
            asyncio.run(DocumentAssembler(config).run("doc.pdf", fields))


class TestProcess:
    """Pass plus persistence and audit record."""

    def test_records_pass(self, tmp_config, source_dir, tmp_store):
        request = CompositeRequest(
            document_ref="doc.pdf",
            fields=[_field(field_id="sig", type="text", value="Alice")],
        )
        response = asyncio.run(DocumentAssembler(tmp_config).process(request, tmp_store))

        assert response.success is True
        record = tmp_store.lookup(response.audit_record_id)
        assert record.document_ref == "doc.pdf"
        assert record.original_digest == response.original_digest
        assert record.signed_digest == response.signed_digest
        assert record.output_location == response.output_location
        assert record.drawn_fields == ["sig"]

        output = tmp_store.output_file(response.output_location).read_bytes()
        assert DocumentAssembler.hash_bytes(output) == response.signed_digest

    def test_failed_pass_records_nothing(self, tmp_config, source_dir, tmp_store):
        request = CompositeRequest(document_ref="absent.pdf", fields=[])
        with pytest.raises(SourceUnavailable):
            asyncio.run(DocumentAssembler(tmp_config).process(request, tmp_store))
        assert tmp_store.list_records() == []
