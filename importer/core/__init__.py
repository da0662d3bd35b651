"""
Importer Core
=============

Enums and exceptions shared by every stage of the pipeline.
"""

from importer.core.enums import DataFormat, RetryState, RunState, UploadOperation
from importer.core.exceptions import (
    ConfigError,
    FatalUploadError,
    FileAccessError,
    FormatError,
    HeaderError,
    ImporterError,
    TooManyErrors,
    TransientUploadError,
    UnsupportedFormatError,
    UploadError,
)

__all__ = [
    # Enums
    "DataFormat",
    "UploadOperation",
    "RunState",
    "RetryState",
    # Exceptions
    "ImporterError",
    "ConfigError",
    "FileAccessError",
    "UnsupportedFormatError",
    "FormatError",
    "HeaderError",
    "UploadError",
    "TransientUploadError",
    "FatalUploadError",
    "TooManyErrors",
]
