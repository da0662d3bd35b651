"""Byte-bounded batching of documents."""
from .batcher import Batch, Batcher, serialize_document

__all__ = ["Batch", "Batcher", "serialize_document"]
