"""
Byte-bounded document batching.

Documents are serialized once, as compact UTF-8 JSON, and accumulated into
batches whose payload is a JSON array ``[doc,doc,...]``. Sizes are exact
byte counts of that payload:

    size = 2 + sum(len(doc) for doc in batch) + (len(batch) - 1)

A batch is closed when the next document would push it over the limit.
A document that alone exceeds the limit becomes a batch of its own.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

logger = logging.getLogger(__name__)

# "[" + "]"
_ARRAY_OVERHEAD = 2
# ","
_SEPARATOR_SIZE = 1


def serialize_document(document: dict[str, Any]) -> bytes:
    """
    Compact JSON encoding of one document, keeping field order.

    Raises:
        ValueError: If the document holds NaN or an infinity
    """
    return json.dumps(
        document, ensure_ascii=False, separators=(",", ":"), allow_nan=False
    ).encode("utf-8")


@dataclass
class Batch:
    """
    An ordered group of encoded documents.

    Only the serialized form is kept, so a batch costs about its payload size
    in memory.

    Attributes:
        number: Position of the batch in the stream it came from (0-based)
        encoded: Serialized documents, in input order
        size: Exact byte length of ``payload()``
    """
    number: int = 0
    encoded: list[bytes] = field(default_factory=list)
    size: int = _ARRAY_OVERHEAD

    def __len__(self) -> int:
        return len(self.encoded)

    @property
    def documents(self) -> list[dict[str, Any]]:
        """Decoded copies of the documents, in input order."""
        return [json.loads(encoded) for encoded in self.encoded]

    def size_with(self, encoded_document: bytes) -> int:
        """Payload size if encoded_document were appended."""
        separator = _SEPARATOR_SIZE if self.encoded else 0
        return self.size + separator + len(encoded_document)

    def append(self, encoded_document: bytes):
        self.size = self.size_with(encoded_document)
        self.encoded.append(encoded_document)

    def payload(self) -> bytes:
        """The JSON array sent to the server, built from the encoded documents."""
        return b"[" + b",".join(self.encoded) + b"]"


class Batcher:
    """
    Groups a document stream into batches of at most ``max_batch_size`` bytes.

    Example:
        batcher = Batcher(max_batch_size=20 * 1024 * 1024)
        for batch in batcher.batches(reader.read("movies.ndjson")):
            uploader.upload(batch)
    """

    def __init__(self, max_batch_size: int):
        if max_batch_size <= 0:
            raise ValueError(f"max_batch_size must be positive, got {max_batch_size}")
        self.max_batch_size = max_batch_size
        self.stats = {
            "batches": 0,
            "documents": 0,
            "oversized_documents": 0,
        }

    def batches(self, documents: Iterable[dict[str, Any]]) -> Iterator[Batch]:
        """
        Lazily batch documents.

        The input iterator is only advanced while a batch is being filled, so
        errors raised by the reader surface before the current partial batch
        is emitted.

        Yields:
            Non-empty batches, in input order
        """
        current = Batch(number=0)
        emitted = 0

        for document in documents:
            encoded = serialize_document(document)
            self.stats["documents"] += 1

            if current.encoded and current.size_with(encoded) > self.max_batch_size:
                yield self._close(current)
                emitted += 1
                current = Batch(number=emitted)

            current.append(encoded)

            if len(current) == 1 and current.size > self.max_batch_size:
                self.stats["oversized_documents"] += 1
                logger.warning(
                    f"[Batcher] Document of {current.size:,} bytes exceeds the "
                    f"{self.max_batch_size:,} byte batch limit, sending it alone"
                )

        if current.encoded:
            yield self._close(current)

    def _close(self, batch: Batch) -> Batch:
        self.stats["batches"] += 1
        logger.debug(
            f"[Batcher] Batch {batch.number} ready: {len(batch)} documents, {batch.size:,} bytes"
        )
        return batch

    def get_stats(self) -> dict:
        """Get batcher statistics."""
        return self.stats.copy()
