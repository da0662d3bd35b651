"""
Unit Tests for Byte-Bounded Batching
====================================
"""
import dataclasses
import json
import random

import pytest

from importer.batching import Batch, Batcher, serialize_document


def _documents(count, seed=7):
    rng = random.Random(seed)
    return [
        {"id": i, "text": "x" * rng.randint(0, 200), "tags": ["a"] * rng.randint(0, 5)}
        for i in range(count)
    ]


class TestSerialization:
    """Tests for document encoding."""

    def test_compact_and_ordered(self):
        encoded = serialize_document({"b": 1, "a": [1, 2], "c": None})

        assert encoded == b'{"b":1,"a":[1,2],"c":null}'

    def test_non_ascii_is_utf8(self):
        encoded = serialize_document({"title": "Amélie"})

        assert encoded == '{"title":"Amélie"}'.encode("utf-8")

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_numbers_are_rejected(self, value):
        with pytest.raises(ValueError):
            serialize_document({"id": 1, "score": value})


class TestBatch:
    """Tests for the Batch accumulator."""

    def test_empty_batch_size_is_array_overhead(self):
        assert Batch().size == len(b"[]")

    def test_size_matches_payload(self):
        documents = _documents(10)
        batch = Batch()
        for document in documents:
            batch.append(serialize_document(document))

        assert batch.size == len(batch.payload())
        assert json.loads(batch.payload()) == documents
        assert batch.documents == documents

    def test_only_encoded_form_is_kept(self):
        batch = next(iter(Batcher(1_000).batches([{"id": 1}, {"id": 2}])))

        assert batch.encoded == [b'{"id":1}', b'{"id":2}']
        assert [f.name for f in dataclasses.fields(batch)] == ["number", "encoded", "size"]


class TestBatcher:
    """Tests for the batching algorithm."""

    @pytest.mark.parametrize("limit", [50, 120, 300, 1000, 10_000])
    def test_batches_respect_limit(self, limit):
        batches = list(Batcher(limit).batches(_documents(200)))

        for batch in batches:
            assert batch.size == len(batch.payload())
            if len(batch) > 1:
                assert batch.size <= limit
            else:
                # a lone document may only exceed the limit by itself
                assert batch.size <= limit or len(batch) == 1

    @pytest.mark.parametrize("limit", [50, 300, 10_000])
    def test_concatenation_reproduces_input(self, limit):
        documents = _documents(150)

        batches = list(Batcher(limit).batches(documents))

        flattened = [doc for batch in batches for doc in batch.documents]
        assert flattened == documents

    def test_batches_are_maximal(self):
        """A batch is only closed when the next document would not fit."""
        documents = _documents(100)
        limit = 500

        batches = list(Batcher(limit).batches(documents))

        for current, following in zip(batches, batches[1:]):
            first_next = serialize_document(following.documents[0])
            assert current.size_with(first_next) > limit

    def test_exact_fit_stays_in_batch(self):
        documents = [{"id": 1}, {"id": 2}]
        # [{"id":1},{"id":2}] is 19 bytes
        batches = list(Batcher(19).batches(documents))

        assert len(batches) == 1
        assert batches[0].size == 19

    def test_one_byte_short_splits(self):
        documents = [{"id": 1}, {"id": 2}]

        batches = list(Batcher(18).batches(documents))

        assert [len(b) for b in batches] == [1, 1]

    def test_oversized_document_forms_own_batch(self):
        limit = 100
        big = {"id": "big", "blob": "x" * (2 * limit)}
        assert len(serialize_document(big)) > 2 * limit - 20

        batches = list(Batcher(limit).batches([big]))

        assert len(batches) == 1
        assert batches[0].documents == [big]
        assert batches[0].size > limit

    def test_oversized_document_between_small_ones(self):
        limit = 100
        documents = [{"id": 1}, {"id": 2, "blob": "x" * 300}, {"id": 3}]

        batches = list(Batcher(limit).batches(documents))

        assert [[d["id"] for d in b.documents] for b in batches] == [[1], [2], [3]]

    def test_boundaries_depend_on_size_not_count(self):
        small = [{"i": i} for i in range(50)]

        batches = list(Batcher(10_000).batches(small))

        assert len(batches) == 1
        assert len(batches[0]) == 50

    def test_numbers_are_sequential(self):
        batches = list(Batcher(60).batches(_documents(40)))

        assert [b.number for b in batches] == list(range(len(batches)))

    def test_empty_input_yields_nothing(self):
        assert list(Batcher(100).batches([])) == []

    def test_is_lazy(self):
        consumed = []

        def documents():
            for i in range(1000):
                consumed.append(i)
                yield {"id": i}

        first = next(iter(Batcher(30).batches(documents())))

        assert len(first) >= 1
        assert len(consumed) < 10

    def test_reader_error_surfaces_before_partial_batch(self):
        def documents():
            yield {"id": 1}
            yield {"id": 2}
            raise ValueError("line 3 is broken")

        emitted = []
        with pytest.raises(ValueError):
            for batch in Batcher(1_000_000).batches(documents()):
                emitted.append(batch)

        assert emitted == []

    def test_stats(self):
        batcher = Batcher(100)
        batches = list(batcher.batches([{"id": 1}, {"blob": "x" * 500}]))

        stats = batcher.get_stats()
        assert stats["batches"] == len(batches) == 2
        assert stats["documents"] == 2
        assert stats["oversized_documents"] == 1

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            Batcher(0)
