from __future__ import annotations
"""Rendering of listed records for ``ls`` and ``find`` output."""
import json
import posixpath

from .models import ObjectRecord

SIZE_SUFFIXES = ("B", "KB", "MB", "GB", "TB", "PB")
PRINT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
TEMPLATE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def human_size(size: int | None) -> str:
    """Render a byte count using 1024-based units, e.g. ``2048 -> "2.00 KB"``."""

    if size is None:
        return "-"
    value = float(max(size, 0))
    if value < 1024:
        return f"{int(value)} B"
    for suffix in SIZE_SUFFIXES[1:]:
        value /= 1024
        if value < 1024 or suffix == SIZE_SUFFIXES[-1]:
            return f"{value:.2f} {suffix}"
    return f"{size} B"


def base_name(key: str) -> str:
    return posixpath.basename(key.rstrip("/"))


def dir_name(key: str) -> str:
    return posixpath.dirname(key.rstrip("/"))


def _quoted(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def render(template: str, record: ObjectRecord) -> str:
    """Substitute ``{}``, ``{base}``, ``{dir}``, ``{size}``, ``{time}`` and
    ``{version}`` (plus their ``{"..."}`` quoted forms) in ``template``.

    Substitution is literal and applied in a fixed order; anything else in
    braces is left as is.
    """

    base = base_name(record.key)
    parent = dir_name(record.key)
    size = human_size(record.size)
    time = record.last_modified.strftime(TEMPLATE_TIME_FORMAT)
    version = record.version_id or ""

    text = template
    for placeholder, quoted, value in (
        ("{}", '{""}', record.key),
        ("{base}", '{"base"}', base),
        ("{dir}", '{"dir"}', parent),
        ("{size}", '{"size"}', size),
        ("{time}", '{"time"}', time),
        ("{version}", '{"version"}', version),
    ):
        text = text.replace(placeholder, value)
        text = text.replace(quoted, _quoted(value))
    return text


def format_listing_line(record: ObjectRecord) -> str:
    stamp = record.last_modified.strftime(PRINT_DATE_FORMAT).strip()
    line = f"[{stamp}] {human_size(record.size):>10}"
    if record.storage_class:
        line += f" {record.storage_class}"
    if record.version_id is not None:
        kind = "DEL" if record.is_delete_marker else "PUT"
        line += f" {record.version_id} v{record.version_ordinal or 0} {kind}"
    return f"{line} {record.key}"


def format_json_line(record: ObjectRecord) -> str:
    return json.dumps(record.to_dict(), ensure_ascii=False, separators=(",", ":"))
