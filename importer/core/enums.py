"""
Enums for the Import Pipeline
=============================

Type-safe enumerations for file formats, upload operations and run states.
Eliminates hardcoded strings throughout the codebase.
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Union


class DataFormat(str, Enum):
    """
    Input file formats understood by the readers.

    Detection is by file extension only; content is never sniffed.
    """
    CSV = "csv"
    NDJSON = "ndjson"
    JSON = "json"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> Optional["DataFormat"]:
        """Map a file extension to a format, or None if unknown."""
        suffix = Path(path).suffix.lower().lstrip(".")
        return _EXTENSIONS.get(suffix)

    @property
    def mime_type(self) -> str:
        return {
            DataFormat.CSV: "text/csv",
            DataFormat.NDJSON: "application/x-ndjson",
            DataFormat.JSON: "application/json",
        }[self]


_EXTENSIONS = {
    "csv": DataFormat.CSV,
    "ndjson": DataFormat.NDJSON,
    "jsonl": DataFormat.NDJSON,
    "json": DataFormat.JSON,
}


class UploadOperation(str, Enum):
    """
    How the remote index merges incoming documents.

    - ADD_OR_REPLACE: documents with an existing primary key are replaced (POST)
    - ADD_OR_UPDATE: documents with an existing primary key are merged (PUT)
    """
    ADD_OR_REPLACE = "add-or-replace"
    ADD_OR_UPDATE = "add-or-update"

    def __str__(self) -> str:
        return self.value

    @property
    def http_method(self) -> str:
        return "POST" if self is UploadOperation.ADD_OR_REPLACE else "PUT"


class RunState(str, Enum):
    """Lifecycle of one import run."""
    INIT = "init"
    READING = "reading"
    BATCHING = "batching"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ABORTED = "aborted"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.ABORTED)


class RetryState(str, Enum):
    """
    States of a single upload task.

    PENDING -> (SUCCEEDED | WAITING | FAILED), WAITING -> PENDING
    """
    PENDING = "pending"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value
