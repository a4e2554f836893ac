"""skinscribe CLI — composite annotation fields from the command line.

Usage:
    skinscribe sign <document-ref> --fields fields.json [--output out.pdf]
    skinscribe show <record-id>
    skinscribe list
    skinscribe verify <record-id> <pdf>
    skinscribe convert <x> <y> --page-height 792 [--zoom 1.5]
    skinscribe serve [--port 8401]
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import InscribeConfig
from .engine import DocumentAssembler
from .errors import CorruptRecord, InscribeError, InvalidGeometry, RecordNotFound
from .geometry import pixels_to_points, to_document_space
from .models import CompositeRequest
from .store import AuditStore

console = Console()


@click.group()
@click.option(
    "--data-dir",
    type=click.Path(),
    default=None,
    help="skinscribe data directory (default: ~/.skinscribe)",
)
@click.option(
    "--source-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory local document references resolve against (default: <data-dir>/sources)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log pass details to stderr")
@click.pass_context
def main(
    ctx: click.Context,
    data_dir: Optional[str],
    source_root: Optional[str],
    verbose: bool,
) -> None:
    """skinscribe — bake annotation fields into PDF pages."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    ctx.ensure_object(dict)
    config = InscribeConfig.from_env(
        data_dir=Path(data_dir) if data_dir else None,
        source_root=Path(source_root) if source_root else None,
    )
    ctx.obj["config"] = config
    ctx.obj["store"] = AuditStore(config)


# ---------------------------------------------------------------------------
# Sign
# ---------------------------------------------------------------------------

@main.command()
@click.argument("document_ref")
@click.option(
    "--fields",
    "fields_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with a list of fields",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write the composited PDF here",
)
@click.pass_context
def sign(
    ctx: click.Context,
    document_ref: str,
    fields_path: str,
    output: Optional[str],
) -> None:
    """Composite fields into a PDF and record the pass.

    DOCUMENT_REF is an http(s) URL or a path under the source root.
    """
    config: InscribeConfig = ctx.obj["config"]
    store: AuditStore = ctx.obj["store"]

    try:
        raw_fields = json.loads(Path(fields_path).read_text(encoding="utf-8"))
        request = CompositeRequest(document_ref=document_ref, fields=raw_fields)
    except (json.JSONDecodeError, ValidationError) as exc:
        console.print(f"[red]Invalid fields file: {exc}[/]")
        sys.exit(1)

    assembler = DocumentAssembler(config)
    with console.status(f"[bold]Compositing {len(request.fields)} fields...[/]"):
        try:
            result = asyncio.run(assembler.process(request, store))
        except InscribeError as exc:
            console.print(f"[red]Failed at {exc.stage}: {exc.message}[/]")
            sys.exit(1)

    if output:
        Path(output).write_bytes(store.output_file(result.output_location).read_bytes())

    drawn = sum(1 for o in result.outcomes if o.drawn)
    console.print(
        Panel(
            f"[bold green]Document composited![/]\n\n"
            f"  Source:   {document_ref}\n"
            f"  Fields:   {drawn}/{len(result.outcomes)} drawn\n"
            f"  Original: {result.original_digest[:16]}...\n"
            f"  Signed:   {result.signed_digest[:16]}...\n"
            f"  Output:   {result.output_location}\n"
            f"  Record:   {result.audit_record_id}",
            title="skinscribe",
            border_style="green",
        )
    )

    skipped = [o for o in result.outcomes if not o.drawn]
    if skipped:
        table = Table(title="Skipped fields")
        table.add_column("Field", style="cyan")
        table.add_column("Reason")
        table.add_column("Detail", style="dim")
        for o in skipped:
            table.add_row(str(o.field_id), o.reason.value if o.reason else "", o.detail)
        console.print(table)


# ---------------------------------------------------------------------------
# Show / list
# ---------------------------------------------------------------------------

@main.command()
@click.argument("record_id")
@click.pass_context
def show(ctx: click.Context, record_id: str) -> None:
    """Show an audit record."""
    store: AuditStore = ctx.obj["store"]
    try:
        record = store.lookup(record_id)
    except RecordNotFound:
        console.print(f"[red]Audit record not found: {record_id}[/]")
        sys.exit(1)
    except CorruptRecord as exc:
        console.print(f"[red]{exc.message}[/]")
        sys.exit(1)

    console.print(
        Panel(
            f"  Source:   {record.document_ref}\n"
            f"  Original: {record.original_digest}\n"
            f"  Signed:   {record.signed_digest}\n"
            f"  Output:   {record.output_location}\n"
            f"  Created:  {record.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
            title=f"Audit record {record.record_id[:12]}",
        )
    )

    table = Table(title="Fields")
    table.add_column("ID", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Page", justify="right")
    table.add_column("Box")
    table.add_column("Drawn", justify="center")

    drawn = set(map(str, record.drawn_fields))
    for f in record.fields:
        table.add_row(
            str(f.field_id),
            f.field_type.value,
            str(f.page),
            f"{f.x:.1f},{f.y:.1f} {f.width:.1f}x{f.height:.1f}",
            "[green]yes[/]" if str(f.field_id) in drawn else "[dim]no[/]",
        )
    console.print(table)


@main.command("list")
@click.pass_context
def list_records(ctx: click.Context) -> None:
    """List all audit records."""
    store: AuditStore = ctx.obj["store"]
    records = store.list_records()

    if not records:
        console.print("[dim]No audit records found.[/]")
        return

    table = Table(title="skinscribe Audit Records")
    table.add_column("ID", style="dim", max_width=12)
    table.add_column("Source", style="cyan")
    table.add_column("Fields", justify="right")
    table.add_column("Modified", justify="center")
    table.add_column("Created")

    for r in records:
        table.add_row(
            r.record_id[:12],
            r.document_ref,
            f"{len(r.drawn_fields)}/{len(r.fields)}",
            "[green]yes[/]" if r.modified else "[dim]no[/]",
            r.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------

@main.command()
@click.argument("record_id")
@click.argument("pdf", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def verify(ctx: click.Context, record_id: str, pdf: str) -> None:
    """Check a PDF against the signed digest of an audit record."""
    store: AuditStore = ctx.obj["store"]
    try:
        record = store.lookup(record_id)
    except RecordNotFound:
        console.print(f"[red]Audit record not found: {record_id}[/]")
        sys.exit(1)
    except CorruptRecord as exc:
        console.print(f"[red]{exc.message}[/]")
        sys.exit(1)

    digest = DocumentAssembler.hash_file(Path(pdf))
    if digest == record.signed_digest:
        console.print(f"[bold green]MATCH[/] {pdf} is the output of {record_id[:12]}")
        return
    if digest == record.original_digest:
        console.print(f"[yellow]ORIGINAL[/] {pdf} is the unmodified source of {record_id[:12]}")
    else:
        console.print(f"[bold red]MISMATCH[/] {pdf} does not match {record_id[:12]}")
    sys.exit(1)


# ---------------------------------------------------------------------------
# Convert
# ---------------------------------------------------------------------------

@main.command()
@click.argument("x", type=float)
@click.argument("y", type=float)
@click.option("--page-height", required=True, type=float, help="Page height in points")
@click.option("--zoom", default=1.0, type=float, help="Editor zoom scale")
@click.option("--box-height", default=0.0, type=float, help="Box height in editor pixels")
def convert(x: float, y: float, page_height: float, zoom: float, box_height: float) -> None:
    """Convert an editor pixel position to PDF points."""
    try:
        box_height_points = pixels_to_points(box_height, zoom)
        px, py = to_document_space(x, y, zoom, page_height, box_height_points)
    except InvalidGeometry as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(1)
    console.print(f"{px:.4f} {py:.4f}")


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------

@main.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8401, help="Port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Start the skinscribe API server."""
    import uvicorn

    config: InscribeConfig = ctx.obj["config"]
    os.environ["SKINSCRIBE_DATA_DIR"] = str(config.data_dir)
    os.environ["SKINSCRIBE_SOURCE_ROOT"] = str(config.resolved_source_root)

    console.print(
        f"[bold]skinscribe API[/] listening on [cyan]http://{host}:{port}[/]"
    )
    uvicorn.run(
        "skinscribe.api:create_app",
        factory=True,
        host=host,
        port=port,
        log_level="info",
    )
