from __future__ import annotations
"""Predicate engine narrowing a stream of listed objects."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import posixpath
from typing import Iterable, Iterator, Mapping, Optional, Pattern
import unicodedata

from .models import ObjectRecord, canonical_header_key, utc_now
from .patterns import (
    GlobPattern,
    compile_glob,
    compile_regex,
    parse_duration,
    parse_regex_map,
    parse_size,
)

LOGGER = logging.getLogger(__name__)

METADATA_HEADER_PREFIX = "X-Amz-Meta-"


@dataclass(frozen=True)
class FilterCriteria:
    """Compiled predicates of one ``find`` invocation.

    Immutable and free of per-call state, so a single instance may be shared
    by any number of concurrent evaluations.
    """

    target_prefix: str = ""
    ignore: Optional[GlobPattern] = None
    name: Optional[GlobPattern] = None
    path: Optional[GlobPattern] = None
    regex: Optional[Pattern[str]] = None
    older_than: Optional[timedelta] = None
    newer_than: Optional[timedelta] = None
    larger: int = 0
    smaller: int = 0
    match_meta: Mapping[str, Optional[Pattern[str]]] = field(default_factory=dict)
    match_tags: Mapping[str, Optional[Pattern[str]]] = field(default_factory=dict)

    @classmethod
    def compile(
        cls,
        *,
        target_prefix: str = "",
        ignore: str | None = None,
        name: str | None = None,
        path: str | None = None,
        regex: str | None = None,
        older_than: str | None = None,
        newer_than: str | None = None,
        larger: str | None = None,
        smaller: str | None = None,
        metadata: Iterable[str] = (),
        tags: Iterable[str] = (),
    ) -> "FilterCriteria":
        """Build criteria from raw command-line values.

        Raises:
            PatternCompileError: when any pattern, duration or size is invalid.
        """

        return cls(
            target_prefix=target_prefix,
            ignore=compile_glob(ignore) if ignore else None,
            name=compile_glob(name) if name else None,
            path=compile_glob(path) if path else None,
            regex=compile_regex(regex) if regex else None,
            older_than=parse_duration(older_than) if older_than else None,
            newer_than=parse_duration(newer_than) if newer_than else None,
            larger=parse_size(larger) if larger else 0,
            smaller=parse_size(smaller) if smaller else 0,
            match_meta=parse_regex_map(metadata),
            match_tags=parse_regex_map(tags),
        )

    @property
    def needs_metadata(self) -> bool:
        return bool(self.match_meta) or bool(self.match_tags)


def trim_target_prefix(prefix: str, key: str) -> str:
    path = key[len(prefix):] if prefix and key.startswith(prefix) else key
    return path.lstrip("/")


def _as_glob(pattern: GlobPattern | str) -> GlobPattern:
    return pattern if isinstance(pattern, GlobPattern) else compile_glob(pattern)


def name_match(pattern: GlobPattern | str, path: str) -> bool:
    """True when the base name matches, or a path component equals the pattern."""

    glob = _as_glob(pattern)
    base = posixpath.basename(path.rstrip("/"))
    if glob.matches(base):
        return True
    return any(component == glob.pattern for component in path.split("/"))


def path_match(pattern: GlobPattern | str, path: str) -> bool:
    return _as_glob(pattern).matches(path)


def object_age(last_modified: datetime, now: datetime) -> timedelta:
    age = now - last_modified
    return age if age > timedelta(0) else timedelta(0)


def is_older(last_modified: datetime, bound: timedelta, now: datetime) -> bool:
    """Objects at least ``bound`` old."""

    return object_age(last_modified, now) >= bound


def is_newer(last_modified: datetime, bound: timedelta, now: datetime) -> bool:
    """Objects younger than ``bound``."""

    return object_age(last_modified, now) < bound


def lookup_metadata(metadata: Mapping[str, str], key: str) -> Optional[str]:
    """Find ``key`` as given, as a header name, then as user metadata."""

    header = canonical_header_key(key)
    for candidate in (key, header, f"{METADATA_HEADER_PREFIX}{header}"):
        value = metadata.get(candidate)
        if value is not None:
            return value
    return None


def match_metadata_maps(
    expected: Mapping[str, Optional[Pattern[str]]],
    metadata: Mapping[str, str],
) -> bool:
    for key, regex in expected.items():
        value = lookup_metadata(metadata, key)
        if regex is None:
            if value:
                return False
            continue
        if value is None or not regex.search(value):
            return False
    return True


def match_tag_maps(
    expected: Mapping[str, Optional[Pattern[str]]],
    tags: Mapping[str, str],
) -> bool:
    for key, regex in expected.items():
        if regex is None:
            if tags.get(key):
                return False
            continue
        value = tags.get(key)
        if value is None:
            return False
        if not regex.search(unicodedata.normalize("NFC", value)):
            return False
    return True


def matches(criteria: FilterCriteria, record: ObjectRecord, now: datetime | None = None) -> bool:
    """Evaluate every active predicate in order, stopping at the first failure."""

    path = trim_target_prefix(criteria.target_prefix, record.key)

    if criteria.ignore is not None and path_match(criteria.ignore, path):
        return False
    if criteria.name is not None and not name_match(criteria.name, path):
        return False
    if criteria.path is not None and not path_match(criteria.path, path):
        return False
    if criteria.regex is not None and not criteria.regex.search(path):
        return False

    if criteria.older_than is not None or criteria.newer_than is not None:
        now = now or utc_now()
        if criteria.older_than is not None and not is_older(record.last_modified, criteria.older_than, now):
            return False
        if criteria.newer_than is not None and not is_newer(record.last_modified, criteria.newer_than, now):
            return False

    if criteria.larger > 0 and not record.size > criteria.larger:
        return False
    if criteria.smaller > 0 and not record.size < criteria.smaller:
        return False

    if criteria.match_meta and not match_metadata_maps(criteria.match_meta, record.metadata):
        return False
    if criteria.match_tags and not match_tag_maps(criteria.match_tags, record.tags):
        return False
    return True


def filter_records(
    criteria: FilterCriteria,
    records: Iterable[ObjectRecord],
    now: datetime | None = None,
) -> Iterator[ObjectRecord]:
    """Yield the records satisfying ``criteria``; the error record passes through."""

    evaluated = 0
    matched = 0
    for record in records:
        if record.is_error:
            yield record
            continue
        evaluated += 1
        if matches(criteria, record, now):
            matched += 1
            yield record
    LOGGER.debug("Filter matched %d of %d record(s)", matched, evaluated)
