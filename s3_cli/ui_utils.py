from __future__ import annotations
"""Helpers for command paths and package metadata."""
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, metadata, version
import os

from .errors import EmptyInputError, InvalidPathError

DIST_NAME = "pys3c"


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str


def load_package_info(dist_name: str = DIST_NAME) -> PackageInfo:
    try:
        distribution_metadata = metadata(dist_name)
        package_version = version(dist_name)
    except PackageNotFoundError:
        return PackageInfo(name=dist_name, version="0.0.0")
    return PackageInfo(name=distribution_metadata.get("Name") or dist_name, version=package_version)


@dataclass(frozen=True)
class RemotePath:
    """A parsed ``alias[/bucket[/prefix]]`` argument."""

    alias: str
    bucket: str = ""
    prefix: str = ""

    def __str__(self) -> str:
        return "/".join(part for part in (self.alias, self.bucket, self.prefix) if part)


def split_first_part(value: str) -> tuple[str, str]:
    first, _, rest = value.partition("/")
    return first, rest


def parse_remote_path(value: str, *, require_bucket: bool = False) -> RemotePath:
    if not value or not value.strip():
        raise EmptyInputError("Path is empty")
    alias, rest = split_first_part(value.strip())
    if not alias:
        raise InvalidPathError(f"Path '{value}' does not start with an alias")
    bucket, prefix = split_first_part(rest)
    if require_bucket and not bucket:
        raise InvalidPathError(f"Path '{value}' does not name a bucket (expected alias/bucket)")
    return RemotePath(alias=alias, bucket=bucket, prefix=prefix)


def generate_object_key(source: str, target: str) -> RemotePath:
    """Resolve the destination of uploading ``source`` to ``target``.

    The source file name is appended when the target names only a bucket or
    ends with ``/``.
    """

    if not source:
        raise EmptyInputError("Source path is empty")
    if not target:
        raise EmptyInputError("Target path should have at least two components: alias and bucket")
    alias, rest = split_first_part(target)
    bucket, key = split_first_part(rest)
    if not alias or not bucket:
        raise InvalidPathError("Alias or bucket cannot be empty")
    if not key or target.endswith("/"):
        file_name = os.path.basename(source)
        if not file_name:
            raise InvalidPathError("Source path should have a file name")
        key = f"{key}{file_name}"
    return RemotePath(alias=alias, bucket=bucket, prefix=key)
