"""Human-readable summaries for CLI output."""

from __future__ import annotations

from collections import Counter

from core.orchestrator.reports import CsvPreviewReport, MappingSuggestion, RecipientMessage


def render_preview_summary(report: CsvPreviewReport) -> str:
    """Render a one-screen summary of a CSV preview."""

    lines: list[str] = ["csv_preview:"]
    lines.append(f"rows={report.row_count} recipients={report.recipient_count}")

    hints = ", ".join(
        f"{item.header}={item.hint}" for item in report.headers if item.header.strip()
    )
    lines.append(f"headers: {hints or 'none'}")
    lines.append(f"email_column: {report.email_column or 'ambiguous'}")
    lines.append(f"display_name_column: {report.display_name_column or 'ambiguous'}")

    skipped = report.row_count - report.recipient_count
    if skipped > 0:
        lines.append(f"skipped_rows: {skipped} (no email)")
    return "\n".join(lines)


def render_mapping_summary(suggestion: MappingSuggestion) -> str:
    lines: list[str] = ["mapping_summary:"]
    lines.append(
        f"mapped={len(suggestion.mapping)} new={len(suggestion.newly_mapped)} "
        f"unmapped={len(suggestion.unmapped)}"
    )
    for field_name in suggestion.newly_mapped:
        lines.append(f"  {field_name} -> {suggestion.mapping[field_name]}")
    if suggestion.unmapped:
        lines.append(f"unmapped: {', '.join(suggestion.unmapped)}")
    return "\n".join(lines)


def render_message_summary(messages: list[RecipientMessage]) -> str:
    """Summarize validation results across rendered messages."""

    unknown: Counter[str] = Counter()
    unresolved: Counter[str] = Counter()
    for message in messages:
        unknown.update(message.validation.unknown_tokens)
        unresolved.update(message.validation.unresolved_tokens)

    lines: list[str] = ["message_summary:"]
    clean = sum(1 for message in messages if message.validation.is_clean)
    lines.append(f"messages={len(messages)} clean={clean}")
    lines.append(f"unknown_tokens: {_counter_text(unknown)}")
    lines.append(f"unresolved_tokens: {_counter_text(unresolved)}")
    return "\n".join(lines)


def _counter_text(counter: Counter[str]) -> str:
    if not counter:
        return "none"
    items = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return ", ".join(f"{token}={count}" for token, count in items)
