"""CSV reader turning each row into a document keyed by the header."""
import csv
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union
import logging

from importer.core.exceptions import FileAccessError, FormatError, HeaderError
from .base_reader import BaseReader, Document

logger = logging.getLogger(__name__)


def _to_string(raw: str) -> str:
    return raw


def _to_number(raw: str) -> Optional[Union[int, float]]:
    raw = raw.strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    number = float(raw)
    if number != number or number in (float("inf"), float("-inf")):
        raise ValueError(f"{raw!r} is not a finite number")
    return number


def _to_boolean(raw: str) -> Optional[bool]:
    raw = raw.strip().lower()
    if not raw:
        return None
    if raw == "true":
        return True
    if raw == "false":
        return False
    raise ValueError(f"{raw!r} is not a boolean")


def _lift_field_size_limit():
    """Allow fields of any length; the default caps a cell at 128 KiB."""
    limit = sys.maxsize
    while True:
        try:
            csv.field_size_limit(limit)
            return
        except OverflowError:
            # C long is 32 bits on some platforms
            limit //= 2


# Column type annotations, e.g. "price:number"
COLUMN_TYPES: dict[str, Callable[[str], Any]] = {
    "string": _to_string,
    "number": _to_number,
    "boolean": _to_boolean,
}


@dataclass(frozen=True)
class Column:
    """A header column: document field name plus value converter."""
    name: str
    type_name: str
    convert: Callable[[str], Any]

    @classmethod
    def parse(cls, raw: str) -> "Column":
        name, sep, annotation = raw.rpartition(":")
        if sep and annotation.strip().lower() in COLUMN_TYPES:
            type_name = annotation.strip().lower()
        else:
            name, type_name = raw, "string"
        return cls(name=name, type_name=type_name, convert=COLUMN_TYPES[type_name])


class CSVReader(BaseReader):
    """
    Read CSV files with a header row.

    Columns are strings unless annotated (``count:number``,
    ``active:boolean``). Rows shorter than the header get null for the
    missing trailing fields; longer rows are a FormatError.
    """

    def __init__(self, delimiter: str = ","):
        """
        Initialize CSV reader.

        Args:
            delimiter: Single-character field separator
        """
        super().__init__()
        if len(delimiter) != 1:
            raise ValueError(f"delimiter must be a single character, got {delimiter!r}")
        self.delimiter = delimiter
        _lift_field_size_limit()

    def read(self, source: Union[Path, str]) -> Iterator[Document]:
        self.stats["files_processed"] += 1
        records = 0

        with self.open_text(source, newline="") as f:
            reader = csv.reader(f, delimiter=self.delimiter, strict=True)
            try:
                columns = self._read_header(source, reader)

                for row in reader:
                    if not row:
                        continue
                    yield self._to_document(source, reader.line_num, columns, row)
                    records += 1
                    self.stats["records_read"] += 1
            except csv.Error as e:
                raise FormatError(source, f"malformed CSV: {e}", line=reader.line_num) from e
            except UnicodeDecodeError as e:
                raise FormatError(source, f"invalid UTF-8: {e.reason}", line=reader.line_num + 1) from e
            except OSError as e:
                raise FileAccessError(source, e.strerror or str(e)) from e

        logger.info(f"[CSVReader] Read {records} records from {Path(str(source)).name}")

    def _read_header(self, source: Union[Path, str], reader) -> list[Column]:
        try:
            header = next(reader)
        except StopIteration:
            raise HeaderError(source, "missing header row", line=1) from None

        if not header or all(not cell.strip() for cell in header):
            raise HeaderError(source, "header row is empty", line=reader.line_num)

        columns = [Column.parse(cell) for cell in header]
        seen = set()
        for position, column in enumerate(columns, start=1):
            if not column.name.strip():
                raise HeaderError(
                    source, f"header column {position} has no name", line=reader.line_num
                )
            if column.name in seen:
                raise HeaderError(
                    source, f"duplicate header column {column.name!r}", line=reader.line_num
                )
            seen.add(column.name)
        return columns

    @staticmethod
    def _to_document(
        source: Union[Path, str], line_num: int, columns: list[Column], row: list[str]
    ) -> Document:
        if len(row) > len(columns):
            raise FormatError(
                source,
                f"row has {len(row)} fields but the header has {len(columns)}",
                line=line_num,
            )

        document: Document = {}
        for position, column in enumerate(columns):
            if position >= len(row):
                document[column.name] = None
                continue
            try:
                document[column.name] = column.convert(row[position])
            except ValueError as e:
                raise FormatError(
                    source, f"column {column.name!r}: {e}", line=line_num
                ) from e
        return document
