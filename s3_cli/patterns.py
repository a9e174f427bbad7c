from __future__ import annotations
"""Compile user supplied patterns, durations and sizes once per invocation."""
from dataclasses import dataclass
from datetime import timedelta
import fnmatch
import re
from typing import Iterable, Optional, Pattern

from .errors import PatternCompileError

DURATION_UNITS = {
    "w": timedelta(weeks=1),
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
    "ms": timedelta(milliseconds=1),
}
_DURATION_TOKEN = re.compile(r"(\d+)(ms|w|d|h|m|s)")

SIZE_UNIT_FACTORS = {
    "": 1,
    "B": 1,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "TB": 1000**4,
    "KIB": 1024,
    "MIB": 1024**2,
    "GIB": 1024**3,
    "TIB": 1024**4,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
}
_SIZE_VALUE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*$")


@dataclass(frozen=True)
class GlobPattern:
    """Shell style wildcard pattern (``*``, ``?``, ``[...]``)."""

    pattern: str
    regex: Pattern[str]

    def matches(self, text: str) -> bool:
        return self.regex.match(text) is not None

    def __str__(self) -> str:
        return self.pattern


def compile_glob(pattern: str) -> GlobPattern:
    if not pattern:
        raise PatternCompileError("Wildcard pattern cannot be empty")
    _check_brackets(pattern)
    try:
        regex = re.compile(fnmatch.translate(pattern))
    except re.error as exc:
        raise PatternCompileError(f"Invalid wildcard pattern '{pattern}': {exc}") from exc
    return GlobPattern(pattern=pattern, regex=regex)


def _check_brackets(pattern: str) -> None:
    idx = 0
    while idx < len(pattern):
        if pattern[idx] == "[":
            end = idx + 1
            if end < len(pattern) and pattern[end] == "!":
                end += 1
            if end < len(pattern) and pattern[end] == "]":
                end += 1
            while end < len(pattern) and pattern[end] != "]":
                end += 1
            if end >= len(pattern):
                raise PatternCompileError(f"Invalid wildcard pattern '{pattern}': unclosed '['")
            idx = end
        idx += 1


def compile_regex(pattern: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise PatternCompileError(f"Invalid regular expression '{pattern}': {exc}") from exc


def parse_duration(value: str) -> timedelta:
    """Parse ``7d10h31s`` style durations; a bare integer means seconds."""

    text = (value or "").strip().lower()
    if not text:
        raise PatternCompileError("Duration cannot be empty")
    if text.isdigit():
        return timedelta(seconds=int(text))
    total = timedelta()
    position = 0
    for match in _DURATION_TOKEN.finditer(text):
        if match.start() != position:
            break
        total += int(match.group(1)) * DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise PatternCompileError(f"Invalid duration '{value}' (expected e.g. 7d10h31s)")
    return total


def parse_size(value: str) -> int:
    """Parse sizes such as ``512``, ``10KB`` or ``16MiB`` into bytes."""

    match = _SIZE_VALUE.match(value or "")
    if not match:
        raise PatternCompileError(f"Invalid size '{value}'")
    factor = SIZE_UNIT_FACTORS.get(match.group(2).upper())
    if factor is None:
        raise PatternCompileError(f"Invalid size unit in '{value}'")
    return int(float(match.group(1)) * factor)


def parse_regex_map(entries: Iterable[str]) -> dict[str, Optional[Pattern[str]]]:
    """Compile ``key=regex`` entries; an empty regex means "value must be empty"."""

    compiled: dict[str, Optional[Pattern[str]]] = {}
    for entry in entries:
        key, sep, expression = entry.partition("=")
        key = key.strip()
        if not sep or not key:
            raise PatternCompileError(f"Invalid key=regex entry '{entry}'")
        compiled[key] = compile_regex(expression) if expression else None
    return compiled
