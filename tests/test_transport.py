"""Tests for source retrieval."""

import asyncio

import httpx
import pytest

from skinscribe.errors import SourceUnavailable
from skinscribe.transport import fetch_source, is_remote, read_local


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _fetch_with(handler, url, config):
    async with _client(handler) as client:
        return await fetch_source(url, config, client=client)


class TestRemote:
    """http(s) references are downloaded."""

    def test_is_remote(self):
        assert is_remote("https://example.test/a.pdf")
        assert is_remote("http://example.test/a.pdf")
        assert not is_remote("a.pdf")
        assert not is_remote("ftp://example.test/a.pdf")

    def test_fetch(self, tmp_config, sample_pdf):
        def handler(request):
            assert request.url.path == "/doc.pdf"
            return httpx.Response(200, content=sample_pdf)

        data = asyncio.run(_fetch_with(handler, "https://example.test/doc.pdf", tmp_config))
        assert data == sample_pdf

    def test_error_status(self, tmp_config):
        def handler(request):
            return httpx.Response(404)

        with pytest.raises(SourceUnavailable, match="404"):
            asyncio.run(_fetch_with(handler, "https://example.test/doc.pdf", tmp_config))

    def test_network_error(self, tmp_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceUnavailable, match="connection refused"):
            asyncio.run(_fetch_with(handler, "http://example.test/doc.pdf", tmp_config))

    def test_timeout(self, tmp_config):
        config = tmp_config.model_copy(update={"fetch_timeout_seconds": 0.05})

        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, content=b"late")

        with pytest.raises(SourceUnavailable, match="Timed out"):
            asyncio.run(_fetch_with(handler, "https://example.test/slow.pdf", config))


class TestLocal:
    """Other references are paths under the source root."""

    def test_read(self, tmp_config, source_dir, sample_pdf):
        assert asyncio.run(fetch_source("doc.pdf", tmp_config)) == sample_pdf

    def test_leading_slash(self, source_dir, sample_pdf):
        assert read_local("/doc.pdf", source_dir) == sample_pdf

    def test_missing(self, source_dir):
        with pytest.raises(SourceUnavailable):
            read_local("absent.pdf", source_dir)

    def test_escape_rejected(self, tmp_path, source_dir):
        (tmp_path / "secret.pdf").write_bytes(b"%PDF-secret")
        with pytest.raises(SourceUnavailable, match="escapes"):
            read_local("../secret.pdf", source_dir)
