"""Tests for adjacency construction, topological sorting and order validation."""

import random

import pytest

from columnconsensus.columns import ColumnSet, entry_position
from columnconsensus.engine import columns_from_msa
from columnconsensus.ordering import (
    CycleError,
    OrderingError,
    build_adjacency,
    order_columns,
    topological_sort,
    validate_order,
)


def make_column_set(columns, sequence_lengths):
    """Build a ColumnSet from dicts of {seq_index: position}."""
    return ColumnSet.from_columns([set(c.items()) for c in columns], sequence_lengths)


def assert_monotone(column_set, order):
    """Positions of every sequence strictly increase along the order."""
    for seq_index in range(column_set.num_sequences):
        positions = [entry_position(column_set[i], seq_index) for i in order]
        positions = [p for p in positions if p is not None]
        assert positions == sorted(positions)
        assert positions == list(range(column_set.sequence_lengths[seq_index]))


# ==============================================================================
# build_adjacency()
# ==============================================================================

def test_adjacency_keeps_edges_per_sequence():
    """A column whose sequences lead to different columns keeps every edge."""
    column_set = make_column_set([
        {0: 0, 1: 0},  # split column
        {0: 1},
        {1: 1},
        {0: 2, 1: 2},
    ], [3, 3])
    split = column_set.columns.index(((0, 0), (1, 0)))

    graph = build_adjacency(column_set)

    targets = set(graph.successors[split].values())
    assert len(graph.successors[split]) == 2
    assert column_set.columns.index(((0, 1),)) in targets
    assert column_set.columns.index(((1, 1),)) in targets
    assert graph.starts == [split]


def test_adjacency_independent_chains_are_all_starts():
    column_set = make_column_set([{0: 0}, {0: 1}, {1: 0}, {1: 1}], [2, 2])

    graph = build_adjacency(column_set)

    assert graph.starts == [column_set.columns.index(((0, 0),)),
                            column_set.columns.index(((1, 0),))]


def test_adjacency_start_needs_no_predecessor_in_any_sequence():
    """The first column of one sequence is not a start if another sequence precedes it."""
    column_set = make_column_set([{0: 0}, {0: 1, 1: 0}], [2, 1])

    graph = build_adjacency(column_set)

    assert graph.starts == [column_set.columns.index(((0, 0),))]


# ==============================================================================
# topological_sort() / order_columns()
# ==============================================================================

def test_example_three_identical_layouts():
    """Three length-4 sequences with one column per offset sort in position order."""
    columns = [{0: i, 1: i, 2: i} for i in range(4)]
    random.Random(1).shuffle(columns)
    column_set = make_column_set(columns, [4, 4, 4])

    order = order_columns(column_set)

    assert [column_set[i][0].position for i in order] == [0, 1, 2, 3]


def test_later_start_feeding_earlier_chain():
    """A chain reached from a later start column still precedes the columns it feeds."""
    column_set = make_column_set([
        {0: 0},
        {0: 1, 1: 1},
        {1: 0},
    ], [2, 2])

    order = order_columns(column_set)

    assert_monotone(column_set, order)
    assert order.index(column_set.columns.index(((1, 0),))) < \
        order.index(column_set.columns.index(((0, 1), (1, 1))))


def test_gapped_alignment_ordering_is_monotone_and_complete():
    rows = [
        "AC-GT-A-C",
        "A-TGTCA-C",
        "-CTG--AGC",
        "ACT-TCAG-",
    ]
    lengths = [len(r.replace('-', '')) for r in rows]
    columns = list(columns_from_msa(rows))
    random.Random(3).shuffle(columns)
    column_set = ColumnSet.from_columns(columns, lengths)

    order = order_columns(column_set)

    assert sorted(order) == list(range(len(column_set)))
    assert_monotone(column_set, order)


def test_ordering_is_deterministic_across_input_orders():
    rows = ["ACGT-ACG", "A-GTTAC-", "ACG-TA-G"]
    lengths = [len(r.replace('-', '')) for r in rows]
    base = sorted(columns_from_msa(rows), key=sorted)

    results = []
    for seed in range(5):
        columns = list(base)
        random.Random(seed).shuffle(columns)
        column_set = ColumnSet.from_columns(columns, lengths)
        results.append([column_set[i] for i in order_columns(column_set)])

    assert all(r == results[0] for r in results)


def test_long_chain_does_not_recurse():
    """Traversal is iterative, so chains far beyond the recursion limit are fine."""
    length = 5000
    column_set = make_column_set([{0: i} for i in range(length)], [length])

    order = order_columns(column_set)

    assert order == list(range(length))


def test_cycle_reachable_from_start_is_detected():
    column_set = make_column_set([
        {0: 0},
        {0: 1, 1: 1},
        {0: 2, 1: 0},
    ], [3, 2])

    with pytest.raises(CycleError):
        order_columns(column_set)


def test_cycle_without_start_is_detected():
    """Columns forming a closed cycle have no start column at all."""
    column_set = make_column_set([
        {0: 0, 1: 1},
        {0: 1, 1: 0},
    ], [2, 2])

    graph = build_adjacency(column_set)
    assert graph.starts == []

    with pytest.raises(CycleError) as excinfo:
        topological_sort(graph)

    assert "cycle" in str(excinfo.value)


def test_cycle_error_is_an_ordering_error():
    assert issubclass(CycleError, OrderingError)


# ==============================================================================
# validate_order()
# ==============================================================================

def test_validate_rejects_backwards_order():
    column_set = make_column_set([{0: 0, 1: 0}, {0: 1}, {0: 2, 1: 1}], [3, 2])
    order = order_columns(column_set)

    with pytest.raises(OrderingError) as excinfo:
        validate_order(column_set, list(reversed(order)))

    assert "goes backwards" in str(excinfo.value)


def test_validate_rejects_incomplete_order():
    column_set = make_column_set([{0: 0}, {0: 1}], [2])

    with pytest.raises(OrderingError):
        validate_order(column_set, [0])


def test_validate_rejects_repeated_column():
    column_set = make_column_set([{0: 0}, {0: 1}], [2])

    with pytest.raises(OrderingError):
        validate_order(column_set, [0, 0])


def test_validate_state_is_per_call():
    """A failed validation does not leak running maxima into the next call."""
    column_set = make_column_set([{0: 0}, {0: 1}], [2])

    with pytest.raises(OrderingError):
        validate_order(column_set, [1, 0])

    validate_order(column_set, [0, 1])
