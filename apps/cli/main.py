"""Typer CLI entrypoint for packet-builder."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from apps.cli.format_human import (
    render_mapping_summary,
    render_message_summary,
    render_preview_summary,
)
from apps.cli.io import dumps, load_field_names, load_mapping, read_csv_text, write_json_atomic
from core.config.settings import AppSettings, load_settings
from core.export.zip_writer import zip_folder
from core.messages.models import MessageTemplate
from core.orchestrator.pipeline import run_export
from core.orchestrator.reports import preview_csv, render_messages, suggest_mapping
from core.pdf.engine import PdfEngine
from core.pdf.registry import load_engine
from core.recipients.csv_parser import build_snapshot, parse_headers, parse_recipients
from core.state.store import JsonStateStore
from core.utils.errors import ExportError, PacketGenerationError

app = typer.Typer(help="PDF packet builder CLI", rich_markup_mode=None)


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("preview-csv")
def preview_csv_command(
    csv: Annotated[Path, typer.Option("--csv", help="CSV file to preview.")],
    max_rows: Annotated[int | None, typer.Option("--max-rows")] = None,
    settings: Annotated[Path | None, typer.Option("--settings")] = None,
    out: Annotated[Path | None, typer.Option("--out", help="Write JSON report here.")] = None,
) -> None:
    """Preview a CSV: headers with hints, sample rows, detected columns."""

    app_settings = _load_settings_or_exit(settings)
    text = _read_csv_or_exit(csv)
    if max_rows is not None and max_rows < 0:
        typer.echo("ERROR: --max-rows must be zero or greater.")
        raise typer.Exit(code=1)

    report = preview_csv(
        text, max_rows=app_settings.csv_preview_max_rows if max_rows is None else max_rows
    )
    payload = report.model_dump(mode="json")

    if out is None:
        typer.echo(dumps(payload))
        return

    _write_json_or_exit(out, payload)
    typer.echo(render_preview_summary(report))
    typer.echo(f"INFO: wrote preview to {out}")


@app.command("automap")
def automap_command(
    csv: Annotated[Path, typer.Option("--csv", help="CSV whose headers are mapping candidates.")],
    fields: Annotated[
        Path, typer.Option("--fields", help="PDF field names: JSON list or one per line.")
    ],
    mapping: Annotated[
        Path | None, typer.Option("--mapping", help="Existing mapping JSON to extend.")
    ] = None,
    out: Annotated[Path | None, typer.Option("--out")] = None,
) -> None:
    """Suggest PDF field mappings without overwriting existing ones."""

    text = _read_csv_or_exit(csv)
    try:
        field_names = load_field_names(fields)
        existing = load_mapping(mapping) if mapping is not None else {}
    except (OSError, ValueError) as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    suggestion = suggest_mapping(
        parse_headers(text),
        field_names,
        existing,
        original_file_name=csv.name,
        local_path=str(csv),
    )
    payload = suggestion.model_dump(mode="json")

    if out is None:
        typer.echo(dumps(payload))
        return

    _write_json_or_exit(out, payload)
    typer.echo(render_mapping_summary(suggestion))
    typer.echo(f"INFO: wrote mapping to {out}")


@app.command("render-message")
def render_message_command(
    csv: Annotated[Path, typer.Option("--csv", help="Recipient CSV.")],
    subject: Annotated[str, typer.Option("--subject")],
    body: Annotated[str, typer.Option("--body")],
    packet_title: Annotated[str, typer.Option("--packet-title")] = "",
    settings: Annotated[Path | None, typer.Option("--settings")] = None,
    out: Annotated[Path | None, typer.Option("--out")] = None,
) -> None:
    """Render the message template for every recipient in a CSV."""

    app_settings = _load_settings_or_exit(settings)
    text = _read_csv_or_exit(csv)

    messages = render_messages(
        text,
        MessageTemplate(subject=subject, body=body, is_enabled=True),
        app_settings,
        packet_title=packet_title,
    )
    payload = [message.model_dump(mode="json") for message in messages]

    if out is None:
        typer.echo(dumps(payload))
        return

    _write_json_or_exit(out, payload)
    typer.echo(render_message_summary(messages))
    typer.echo(f"INFO: wrote messages to {out}")


@app.command("zip")
def zip_command(
    source: Annotated[Path, typer.Option("--source", help="Directory to archive.")],
    out: Annotated[Path, typer.Option("--out", help="Archive path to write.")],
    settings: Annotated[Path | None, typer.Option("--settings")] = None,
) -> None:
    """Archive a directory (for example an export bundle) as a stored ZIP."""

    app_settings = _load_settings_or_exit(settings)
    if not source.is_dir():
        typer.echo(f"ERROR: source is not a directory: {source}")
        raise typer.Exit(code=1)

    try:
        entries = zip_folder(source, out, chunk_size=app_settings.zip_chunk_size)
    except ExportError as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=2) from exc

    typer.echo(f"INFO: wrote {len(entries)} entries to {out}")


@app.command("export")
def export_command(
    state: Annotated[
        Path, typer.Option("--state", help="Application state JSON with the packet template.")
    ],
    engine: Annotated[
        str, typer.Option("--engine", help="PDF engine as module:attribute.")
    ],
    out_dir: Annotated[Path, typer.Option("--out-dir")] = Path("."),
    pdf: Annotated[
        Path | None, typer.Option("--pdf", help="Template PDF; defaults to the stored path.")
    ] = None,
    csv: Annotated[
        Path | None, typer.Option("--csv", help="Replace the stored recipients with this CSV.")
    ] = None,
    archive: Annotated[bool, typer.Option("--zip", help="Also write the bundle as a ZIP.")] = False,
    settings: Annotated[Path | None, typer.Option("--settings")] = None,
) -> None:
    """Generate one packet per recipient, export the bundle, and log the sends."""

    app_settings = _load_settings_or_exit(settings)
    store = JsonStateStore(state)
    try:
        app_state = store.load()
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    template = app_state.packet_template
    if template is None:
        typer.echo(f"ERROR: state has no packet template: {state}")
        raise typer.Exit(code=1)

    if csv is not None:
        text = _read_csv_or_exit(csv)
        app_state = app_state.model_copy(
            update={
                "recipients": parse_recipients(text),
                "csv_import": build_snapshot(
                    parse_headers(text), original_file_name=csv.name, local_path=str(csv)
                ),
            }
        )
    if not app_state.recipients:
        typer.echo("ERROR: no recipients to export.")
        raise typer.Exit(code=1)

    pdf_path = pdf or (Path(template.pdf_file_path) if template.pdf_file_path else None)
    if pdf_path is None:
        typer.echo("ERROR: no template PDF; pass --pdf.")
        raise typer.Exit(code=1)
    try:
        pdf_bytes = pdf_path.read_bytes()
    except OSError as exc:
        typer.echo(f"ERROR: unable to read PDF: {pdf_path}")
        raise typer.Exit(code=1) from exc

    pdf_engine = _load_engine_or_exit(engine)

    try:
        result = run_export(
            app_state, pdf_bytes, pdf_engine, app_settings, out_dir, archive=archive
        )
    except (PacketGenerationError, ExportError) as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=2) from exc

    try:
        store.save(result.state)
    except OSError as exc:
        typer.echo(f"ERROR: write state failed: {exc}")
        raise typer.Exit(code=2) from exc

    typer.echo(f"INFO: exported {result.item_count} packets to {result.bundle_dir}")
    if result.archive_path is not None:
        typer.echo(f"INFO: wrote archive {result.archive_path}")


def _load_settings_or_exit(path: Path | None) -> AppSettings:
    try:
        return load_settings(path)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc


def _load_engine_or_exit(reference: str) -> PdfEngine:
    try:
        return load_engine(reference)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc


def _read_csv_or_exit(path: Path) -> str:
    try:
        return read_csv_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        typer.echo(f"ERROR: unable to read CSV: {path}")
        raise typer.Exit(code=1) from exc


def _write_json_or_exit(path: Path, payload: dict | list) -> None:
    try:
        write_json_atomic(path, payload)
    except OSError as exc:
        typer.echo(f"ERROR: write output failed: {exc}")
        raise typer.Exit(code=2) from exc


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
