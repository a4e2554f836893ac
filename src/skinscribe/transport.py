"""Source retrieval for compositing passes.

``http://`` and ``https://`` references are downloaded with httpx; any
other reference is a path under the configured source root. Retrieval is
a coroutine bounded by ``fetch_timeout_seconds``, so a caller can cancel
it or let the deadline expire instead of stalling the pass. Local reads
run in a worker thread.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from .config import InscribeConfig
from .errors import SourceUnavailable

logger = logging.getLogger("skinscribe.transport")


def is_remote(document_ref: str) -> bool:
    """True for references fetched over the network."""
    return document_ref.startswith(("http://", "https://"))


async def fetch_source(
    document_ref: str,
    config: Optional[InscribeConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """Retrieve the bytes a document reference points at.

    Args:
        document_ref: URL or path relative to the source root.
        config: Timeout and source root settings.
        client: Optional shared HTTP client (a fresh one is opened and
            closed per call otherwise).

    Returns:
        Raw document bytes.

    Raises:
        SourceUnavailable: Network error, non-success status, timeout,
            missing file, or a path outside the source root.
    """
    config = config or InscribeConfig()
    if not is_remote(document_ref):
        return await asyncio.to_thread(
            read_local, document_ref, config.resolved_source_root
        )

    try:
        return await asyncio.wait_for(
            _fetch_remote(document_ref, config, client),
            timeout=config.fetch_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise SourceUnavailable(
            f"Timed out after {config.fetch_timeout_seconds}s fetching {document_ref}"
        ) from exc


async def _fetch_remote(
    url: str,
    config: InscribeConfig,
    client: Optional[httpx.AsyncClient],
) -> bytes:
    timeout = httpx.Timeout(config.fetch_timeout_seconds)
    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
            return await _get(owned, url, timeout)
    return await _get(client, url, timeout)


async def _get(client: httpx.AsyncClient, url: str, timeout: httpx.Timeout) -> bytes:
    try:
        response = await client.get(url, timeout=timeout)
    except httpx.HTTPError as exc:
        logger.error("Fetching %s failed: %s", url, exc)
        raise SourceUnavailable(f"Failed to fetch {url}: {exc}") from exc

    if not response.is_success:
        raise SourceUnavailable(
            f"Failed to fetch {url}: HTTP {response.status_code}"
        )
    logger.debug("Fetched %d bytes from %s", len(response.content), url)
    return response.content


def read_local(document_ref: str, root: Path) -> bytes:
    """Read a document stored under ``root``.

    Leading slashes are ignored so ``/contract.pdf`` and ``contract.pdf``
    name the same file.

    Raises:
        SourceUnavailable: If the file is missing, unreadable, or resolves
            outside ``root``.
    """
    base = root.resolve()
    path = (base / document_ref.lstrip("/")).resolve()
    if not path.is_relative_to(base):
        raise SourceUnavailable(f"Path escapes the source root: {document_ref}")
    try:
        return path.read_bytes()
    except OSError as exc:
        raise SourceUnavailable(f"Cannot read {document_ref}: {exc}") from exc
