"""Reader for files holding a single JSON array of documents."""
import json
from pathlib import Path
from typing import Iterator, Union
import logging

from importer.core.exceptions import FileAccessError, FormatError
from .base_reader import BaseReader, Document, reject_constant

logger = logging.getLogger(__name__)


class JSONArrayReader(BaseReader):
    """
    Read a JSON file whose top-level value is an array of objects.

    The array is parsed in one go (the JSON grammar gives no record
    boundaries to stream on); documents are then handed out one by one.
    """

    def read(self, source: Union[Path, str]) -> Iterator[Document]:
        self.stats["files_processed"] += 1

        with self.open_text(source) as f:
            try:
                data = json.load(f, parse_constant=reject_constant)
            except json.JSONDecodeError as e:
                raise FormatError(
                    source, f"invalid JSON at column {e.colno}: {e.msg}", line=e.lineno
                ) from e
            except UnicodeDecodeError as e:
                raise FormatError(source, f"invalid UTF-8: {e.reason}") from e
            except ValueError as e:
                raise FormatError(source, str(e)) from e
            except OSError as e:
                raise FileAccessError(source, e.strerror or str(e)) from e

        if not isinstance(data, list):
            raise FormatError(
                source, f"expected a top-level JSON array, got {type(data).__name__}"
            )

        # Validate the whole array before yielding anything
        for position, record in enumerate(data):
            if not isinstance(record, dict):
                raise FormatError(
                    source,
                    f"array element {position} is {type(record).__name__}, expected an object",
                )

        for record in data:
            self.stats["records_read"] += 1
            yield record

        logger.info(f"[JSONArrayReader] Read {len(data)} records from {Path(str(source)).name}")
