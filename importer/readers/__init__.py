"""Document readers for the supported input formats."""
from pathlib import Path
from typing import Optional, Union

from importer.core.enums import DataFormat
from importer.core.exceptions import UnsupportedFormatError
from .base_reader import STDIN_PATH, BaseReader, Document
from .csv_reader import CSVReader
from .json_reader import JSONArrayReader
from .ndjson_reader import NDJSONReader


def detect_format(
    source: Union[Path, str],
    override: Optional[DataFormat] = None,
) -> DataFormat:
    """
    Resolve the format of source.

    Args:
        source: File path, or "-" for stdin
        override: Explicit format; skips extension detection

    Raises:
        UnsupportedFormatError: If the extension is unknown and no override is given
    """
    if override is not None:
        return DataFormat(override)
    data_format = None if str(source) == STDIN_PATH else DataFormat.from_path(source)
    if data_format is None:
        raise UnsupportedFormatError(source)
    return data_format


def get_reader(data_format: DataFormat, csv_delimiter: str = ",") -> BaseReader:
    """Create the reader for a format."""
    if data_format is DataFormat.CSV:
        return CSVReader(delimiter=csv_delimiter)
    if data_format is DataFormat.NDJSON:
        return NDJSONReader()
    return JSONArrayReader()


def open_reader(
    source: Union[Path, str],
    file_format: Optional[DataFormat] = None,
    csv_delimiter: str = ",",
) -> BaseReader:
    """Detect the format of source and create its reader."""
    return get_reader(detect_format(source, file_format), csv_delimiter)


__all__ = [
    "STDIN_PATH",
    "BaseReader",
    "CSVReader",
    "Document",
    "JSONArrayReader",
    "NDJSONReader",
    "detect_format",
    "get_reader",
    "open_reader",
]
