"""Abstract base reader interface."""
import io
import sys
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TextIO, Union
import logging

from importer.core.exceptions import FileAccessError

logger = logging.getLogger(__name__)

STDIN_PATH = "-"

Document = dict[str, Any]


def reject_constant(name: str):
    """json parse_constant hook: NaN and Infinity are not JSON."""
    raise ValueError(f"non-standard JSON constant {name}")


class BaseReader(ABC):
    """
    Abstract base class for all document readers.

    Readers are responsible for:
    - Opening a file (or stdin for "-")
    - Yielding documents lazily, one mapping per record
    - Raising FormatError on the first malformed record (no partial recovery)
    """

    def __init__(self):
        """Initialize reader."""
        self.stats = {
            "records_read": 0,
            "files_processed": 0,
        }

    @abstractmethod
    def read(self, source: Union[Path, str]) -> Iterator[Document]:
        """
        Read documents from source.

        Args:
            source: Path to the file, or "-" for standard input

        Yields:
            Documents as dictionaries, in file order
        """
        pass

    @contextmanager
    def open_text(self, source: Union[Path, str], newline: Union[str, None] = None) -> Iterator[TextIO]:
        """
        Open source as UTF-8 text, mapping OS errors to FileAccessError.

        A leading byte order mark is dropped.
        """
        if str(source) == STDIN_PATH:
            stream = io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8-sig", newline=newline)
            try:
                yield stream
            finally:
                stream.detach()
            return

        path = Path(source)
        if not path.exists():
            raise FileAccessError(path, "file does not exist")
        if not path.is_file():
            raise FileAccessError(path, "not a regular file")

        try:
            f = open(path, "r", encoding="utf-8-sig", newline=newline)
        except OSError as e:
            raise FileAccessError(path, e.strerror or str(e)) from e

        with f:
            yield f

    def get_stats(self) -> dict:
        """Get reader statistics."""
        return self.stats.copy()

    def reset_stats(self):
        """Reset statistics counters."""
        self.stats = {
            "records_read": 0,
            "files_processed": 0,
        }
