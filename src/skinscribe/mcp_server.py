"""skinscribe MCP Server — field compositing tools for AI agents.

Exposes compositing passes and audit record lookup as MCP tools so an
agent can fill and bake a PDF form through tool calls.

Tools:
    composite_document  — Bake fields into a PDF and record the pass
    get_audit_record    — Fetch one audit record by ID
    list_audit_records  — Summarize all audit records

Invocation:
    python -m skinscribe.mcp_server
    skinscribe-mcp
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import ValidationError

from .config import InscribeConfig
from .engine import DocumentAssembler
from .errors import CorruptRecord, InscribeError, RecordNotFound
from .models import CompositeRequest, FieldType
from .store import AuditStore

logger = logging.getLogger("skinscribe.mcp")

# Module-level singletons — no HTTP needed, same process.
_config = InscribeConfig.from_env()
_assembler = DocumentAssembler(_config)
_store = AuditStore(_config)

server = Server("skinscribe")


# ─────────────────────────────────────────────────────────────
# Response helpers
# ─────────────────────────────────────────────────────────────


def _json(data: Any) -> list[TextContent]:
    """Wrap data as a JSON TextContent response."""
    return [TextContent(type="text", text=json.dumps(data, indent=2, default=str))]


def _error(message: str, **extra: Any) -> list[TextContent]:
    """Return an error payload as a JSON TextContent response.

    Args:
        message: Human-readable error description.
        extra: Additional keys (stage, error type) merged into the body.

    Returns:
        Single-item list containing {"error": message, ...}.
    """
    return [TextContent(type="text", text=json.dumps({"error": message, **extra}))]


# ─────────────────────────────────────────────────────────────
# Tool Definitions
# ─────────────────────────────────────────────────────────────

_FIELD_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": ["string", "integer"], "description": "Field identifier."},
        "type": {
            "type": "string",
            "enum": [t.value for t in FieldType],
            "description": "Field type.",
        },
        "x": {"type": "number", "description": "Left edge in points."},
        "y": {"type": "number", "description": "Top edge in points, from the page top."},
        "width": {"type": "number", "description": "Box width in points (> 0)."},
        "height": {"type": "number", "description": "Box height in points (> 0)."},
        "page": {"type": "integer", "description": "1-indexed page number."},
        "value": {
            "type": ["string", "boolean", "null"],
            "description": (
                "Text for text/date, a data:image/png or data:image/jpeg "
                "base64 URI for signature/image, true for radio."
            ),
        },
    },
    "required": ["type", "x", "y", "width", "height"],
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """Register all skinscribe tools with the MCP server."""
    return [
        Tool(
            name="composite_document",
            description=(
                "Bake annotation fields (text, date, signature, image, radio) "
                "into a PDF. Returns the output location, before/after SHA-256 "
                "digests, the audit record ID, and per-field outcomes."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "document_ref": {
                        "type": "string",
                        "description": "http(s) URL or path under the source root.",
                    },
                    "fields": {
                        "type": "array",
                        "description": "Fields to draw, in painting order.",
                        "items": _FIELD_SCHEMA,
                    },
                },
                "required": ["document_ref", "fields"],
            },
        ),
        Tool(
            name="get_audit_record",
            description="Fetch the audit record of a completed compositing pass.",
            inputSchema={
                "type": "object",
                "properties": {
                    "record_id": {
                        "type": "string",
                        "description": "Audit record ID returned by composite_document.",
                    },
                },
                "required": ["record_id"],
            },
        ),
        Tool(
            name="list_audit_records",
            description="List all audit records, newest first.",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Dispatch incoming tool calls to the appropriate handler.

    Args:
        name: Tool name as registered in list_tools.
        arguments: Tool input arguments from the MCP client.

    Returns:
        List of TextContent responses.
    """
    handlers = {
        "composite_document": _handle_composite_document,
        "get_audit_record": _handle_get_audit_record,
        "list_audit_records": _handle_list_audit_records,
    }
    handler = handlers.get(name)
    if handler is None:
        return _error(f"Unknown tool: {name}")
    try:
        return await handler(arguments)
    except Exception as exc:
        logger.exception("Tool '%s' failed", name)
        return _error(f"{name} failed: {exc}")


# ─────────────────────────────────────────────────────────────
# Tool Handlers
# ─────────────────────────────────────────────────────────────


async def _handle_composite_document(args: dict) -> list[TextContent]:
    """Run a compositing pass and record it.

    Args:
        args: Expects document_ref (str) and fields (list of field objects).

    Returns:
        JSON CompositeResponse, or a structured error.
    """
    try:
        request = CompositeRequest.model_validate(args)
    except ValidationError as exc:
        return _error(f"Invalid request: {exc}", stage="validate")

    try:
        response = await _assembler.process(request, _store)
    except InscribeError as exc:
        return _error(exc.message, error_type=type(exc).__name__, stage=exc.stage)

    return _json(response.model_dump(mode="json"))


async def _handle_get_audit_record(args: dict) -> list[TextContent]:
    """Return one audit record.

    Args:
        args: Expects record_id (str).

    Returns:
        JSON AuditRecord.
    """
    record_id: str = args.get("record_id", "")
    if not record_id:
        return _error("record_id is required")
    try:
        record = _store.lookup(record_id)
    except RecordNotFound:
        return _error(f"Audit record not found: {record_id}")
    except CorruptRecord as exc:
        return _error(exc.message, error_type="CorruptRecord", stage=exc.stage)
    return _json(record.model_dump(mode="json", by_alias=True))


async def _handle_list_audit_records(_args: dict) -> list[TextContent]:
    """Return a summary list of all audit records.

    Args:
        _args: Unused (no parameters required).

    Returns:
        JSON list of {record_id, document_ref, signed_digest, ...}.
    """
    return _json([
        {
            "record_id": r.record_id,
            "document_ref": r.document_ref,
            "original_digest": r.original_digest,
            "signed_digest": r.signed_digest,
            "output_location": r.output_location,
            "field_count": len(r.fields),
            "drawn_count": len(r.drawn_fields),
            "created_at": r.created_at.isoformat(),
        }
        for r in _store.list_records()
    ])


# ─────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────


def main() -> None:
    """Run the skinscribe MCP server on stdio transport."""
    logging.basicConfig(level=logging.WARNING, format="%(name)s: %(message)s")
    asyncio.run(_run_server())


async def _run_server() -> None:
    """Async entry point for the stdio MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream, write_stream, server.create_initialization_options()
        )


if __name__ == "__main__":
    main()
