from __future__ import annotations
"""Per-part checksums sent alongside multipart uploads."""
import base64
import hashlib
import zlib

from .errors import PatternCompileError

SUPPORTED_ALGORITHMS = ("MD5", "CRC32", "SHA1", "SHA256")


def normalize_algorithm(name: str | None) -> str | None:
    if not name:
        return None
    algorithm = name.strip().upper()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise PatternCompileError(
            f"Unsupported checksum '{name}' (choose from {', '.join(SUPPORTED_ALGORITHMS)})"
        )
    return algorithm


def compute_checksum(algorithm: str, data: bytes) -> str:
    """Base64 encoded digest in the form S3 expects for ``algorithm``."""

    if algorithm == "CRC32":
        digest = (zlib.crc32(data) & 0xFFFFFFFF).to_bytes(4, "big")
    elif algorithm == "MD5":
        digest = hashlib.md5(data).digest()
    elif algorithm == "SHA1":
        digest = hashlib.sha1(data).digest()
    elif algorithm == "SHA256":
        digest = hashlib.sha256(data).digest()
    else:
        raise ValueError(f"unknown checksum algorithm {algorithm!r}")
    return base64.b64encode(digest).decode("ascii")
