"""Tests for the column model: canonicalization, lookups and the column arena."""

import random

import pytest

from columnconsensus.columns import (
    ColumnSet,
    Entry,
    MalformedColumnError,
    canonicalize,
    entry_for,
    entry_position,
)


def test_canonicalize_sorts_by_sequence_index():
    """Entries come back in ascending sequence index order."""
    column = canonicalize({(2, 5), (0, 1), (1, 3)})

    assert column == (Entry(0, 1), Entry(1, 3), Entry(2, 5))


def test_canonicalize_is_idempotent():
    """Canonicalizing a canonical column leaves the entry order unchanged."""
    column = canonicalize([(3, 0), (1, 7), (2, 2)])

    assert canonicalize(column) == column


def test_canonicalize_rejects_duplicate_sequence():
    """Two entries for one sequence are a malformed column, never resolved silently."""
    with pytest.raises(MalformedColumnError) as excinfo:
        canonicalize([(0, 1), (1, 4), (1, 5)])

    assert "sequence 1" in str(excinfo.value)


def test_canonicalize_rejects_empty_column():
    with pytest.raises(MalformedColumnError):
        canonicalize([])


def test_entry_lookup():
    """entry_for and entry_position return None for gapped sequences."""
    column = canonicalize([(0, 4), (2, 9)])

    assert entry_for(column, 2) == Entry(2, 9)
    assert entry_position(column, 0) == 4
    assert entry_for(column, 1) is None
    assert entry_position(column, 1) is None


class TestColumnSet:
    """Tests for ColumnSet.from_columns."""

    def test_arena_order_independent_of_input_order(self):
        """Shuffled input yields the same arena."""
        columns = [{(0, i), (1, i)} for i in range(10)] + [{(0, 10)}]
        shuffled = list(columns)
        random.Random(7).shuffle(shuffled)

        a = ColumnSet.from_columns(columns, [11, 10])
        b = ColumnSet.from_columns(shuffled, [11, 10])

        assert a.columns == b.columns
        assert len(a) == 11
        assert a.num_sequences == 2

    def test_coverage(self):
        column_set = ColumnSet.from_columns([{(0, 0), (1, 0), (2, 0)}, {(1, 1)}], [1, 2, 1])

        assert column_set.column_coverage(0) == 3
        assert column_set.column_coverage(1) == 1

    def test_rejects_unknown_sequence(self):
        with pytest.raises(MalformedColumnError) as excinfo:
            ColumnSet.from_columns([{(0, 0), (3, 0)}], [1, 1])

        assert "sequence 3" in str(excinfo.value)

    def test_rejects_position_out_of_range(self):
        with pytest.raises(MalformedColumnError):
            ColumnSet.from_columns([{(0, 0)}, {(0, 4)}], [2])

    def test_rejects_position_in_two_columns(self):
        """A sequence position can belong to only one column."""
        with pytest.raises(MalformedColumnError) as excinfo:
            ColumnSet.from_columns([{(0, 0), (1, 0)}, {(0, 0), (1, 1)}], [1, 2])

        assert "position 0" in str(excinfo.value)

    def test_duplicate_entry_in_input_column(self):
        """Lists may carry two entries for one sequence; sets cannot."""
        with pytest.raises(MalformedColumnError):
            ColumnSet.from_columns([[(0, 0), (0, 1)]], [2])
