"""NDJSON reader for newline-delimited document files."""
import json
from pathlib import Path
from typing import Iterator, Union
import logging

from importer.core.exceptions import FileAccessError, FormatError
from .base_reader import BaseReader, Document, reject_constant

logger = logging.getLogger(__name__)


class NDJSONReader(BaseReader):
    """
    Read NDJSON (newline-delimited JSON) files.

    Every non-empty line must hold exactly one JSON object. The first bad
    line aborts the whole file; nothing after it is yielded.
    """

    def read(self, source: Union[Path, str]) -> Iterator[Document]:
        """
        Read NDJSON file line by line.

        Args:
            source: Path to NDJSON file, or "-" for stdin

        Yields:
            Documents as dictionaries

        Raises:
            FileAccessError: If the file cannot be opened or read
            FormatError: On the first line that is not a JSON object
        """
        self.stats["files_processed"] += 1
        line_num = 0
        records = 0

        with self.open_text(source) as f:
            try:
                for line in f:
                    line_num += 1

                    # Skip empty lines
                    if not line.strip():
                        continue

                    try:
                        record = json.loads(line, parse_constant=reject_constant)
                    except json.JSONDecodeError as e:
                        raise FormatError(
                            source, f"invalid JSON at column {e.colno}: {e.msg}", line=line_num
                        ) from e
                    except ValueError as e:
                        raise FormatError(source, str(e), line=line_num) from e

                    if not isinstance(record, dict):
                        raise FormatError(
                            source,
                            f"expected a JSON object, got {type(record).__name__}",
                            line=line_num,
                        )

                    records += 1
                    self.stats["records_read"] += 1
                    yield record
            except UnicodeDecodeError as e:
                raise FormatError(source, f"invalid UTF-8: {e.reason}", line=line_num + 1) from e
            except OSError as e:
                raise FileAccessError(source, e.strerror or str(e)) from e

        logger.info(f"[NDJSONReader] Read {records} records from {Path(str(source)).name}")
