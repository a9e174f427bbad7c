from __future__ import annotations
"""Error kinds raised by the object store client."""


class S3CliError(Exception):
    """Base class for errors reported to the user."""


class ConfigurationError(S3CliError):
    """Raised when alias configuration is missing, unreadable or invalid."""


class AliasNotFoundError(ConfigurationError):
    def __init__(self, alias: str):
        super().__init__(f"Alias '{alias}' not found")
        self.alias = alias


class PatternCompileError(S3CliError):
    """Raised when a glob, regex, duration or size argument cannot be compiled."""


class TransportError(S3CliError):
    """Raised when a call to the object store fails.

    ``code`` carries the store's error code (``NoSuchKey``, ``404``...) when
    one was returned.
    """

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.code = code


class InvalidPathError(S3CliError):
    """Raised when an ``alias/bucket/prefix`` path is malformed."""


class EmptyInputError(S3CliError):
    """Raised when a source or target is empty."""


class UploadCancelledError(S3CliError):
    """Raised when an upload is cancelled by the caller."""


class PartialUploadFailure(S3CliError):
    """Raised after a multipart session was aborted because a step failed."""

    def __init__(self, message: str, *, upload_id: str | None = None, cause: BaseException | None = None):
        super().__init__(message)
        self.upload_id = upload_id
        self.cause = cause
