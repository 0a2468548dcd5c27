"""Tests for loader key coverage."""
from dataclasses import dataclass

from protoc_gen_synapse.runtime.batching import group_by_key, in_filter, index_by_key


@dataclass
class Row:
    id: int
    author_id: int


def test_index_by_key_leaves_missing_keys_out():
    rows = [Row(1, 10), Row(2, 10), Row(9, 20)]
    found = index_by_key([1, 2, 3], rows, key=lambda r: r.id)
    assert set(found) == {1, 2}
    assert found[2] is rows[1]


def test_group_by_key_answers_every_key():
    rows = [Row(1, 10), Row(2, 10), Row(3, 20), Row(4, 99)]
    grouped = group_by_key([10, 20, 30], rows, key=lambda r: r.author_id)
    assert [r.id for r in grouped[10]] == [1, 2]
    assert [r.id for r in grouped[20]] == [3]
    assert grouped[30] == []
    assert 99 not in grouped


def test_in_filter_deduplicates_keys_in_order():
    assert in_filter("author_id", [3, 1, 3, 2]) == {"author_id": {"in": [3, 1, 2]}}
