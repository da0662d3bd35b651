"""Exception hierarchy for the importer."""
from pathlib import Path
from typing import Optional, Union


class ImporterError(Exception):
    """Base class for every error that aborts an import run."""


class ConfigError(ImporterError):
    """Invalid or incomplete configuration."""


class FileAccessError(ImporterError):
    """An input file is missing or cannot be read."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot read {self.path}: {reason}")


class UnsupportedFormatError(ImporterError):
    """The input file extension does not map to a known format."""

    def __init__(self, path: Union[str, Path]):
        self.path = str(path)
        super().__init__(
            f"Unsupported file format for {self.path} "
            f"(expected .csv, .ndjson, .jsonl or .json)"
        )


class FormatError(ImporterError):
    """Malformed input content, with file and line context."""

    def __init__(self, path: Union[str, Path], message: str, line: Optional[int] = None):
        self.path = str(path)
        self.line = line
        self.message = message
        location = f"{self.path}:{line}" if line is not None else self.path
        super().__init__(f"{location}: {message}")


class HeaderError(FormatError):
    """The CSV header row is empty or malformed."""


class UploadError(ImporterError):
    """A batch could not be delivered to the remote index."""

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 0):
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class TransientUploadError(UploadError):
    """Retryable failure: network error, 429, 5xx or a service-side enqueue failure."""


class FatalUploadError(UploadError):
    """Non-retryable failure, e.g. bad request, auth failure or malformed payload."""


class TooManyErrors(UploadError):
    """The retry budget is exhausted."""
