"""Linear ordering of alignment columns.

Every input sequence implies a left-to-right chain through the columns that
contain it. The chains are merged into one directed graph over columns, which
is topologically sorted with an iterative depth-first postorder traversal and
then independently re-checked before anything downstream uses it.
"""

import logging
from typing import Dict, List, NamedTuple, Sequence, Tuple

from tqdm import tqdm

from columnconsensus.columns import ColumnSet


class OrderingError(RuntimeError):
    """Raised when a column order is not consistent with every sequence."""


class CycleError(OrderingError):
    """Raised when the per-sequence chains imply a cyclic column order."""


class AdjacencyGraph(NamedTuple):
    """Successor relation between columns.

    successors[c] maps a sequence index to the column holding that sequence's
    next position after column c. Edges are kept per (column, sequence), so two
    sequences leaving the same column never overwrite each other.
    """
    successors: List[Dict[int, int]]
    starts: List[int]  # columns without a predecessor in any sequence


def build_adjacency(column_set: ColumnSet, show_progress: bool = False) -> AdjacencyGraph:
    """Derive column-to-column successor edges from each sequence's position order."""
    num_columns = len(column_set)

    # Columns lacking a sequence are simply absent from its chain
    chains: List[List[Tuple[int, int]]] = [[] for _ in range(column_set.num_sequences)]
    for idx, column in enumerate(column_set):
        for entry in column:
            chains[entry.seq_index].append((entry.position, idx))

    successors: List[Dict[int, int]] = [{} for _ in range(num_columns)]
    has_predecessor = [False] * num_columns
    start_candidates = set()

    for seq_index in tqdm(range(column_set.num_sequences), desc="Building column adjacency",
                          disable=not show_progress):
        chain = sorted(chains[seq_index])
        if not chain:
            logging.debug(f"Sequence {seq_index} has no entries in any column")
            continue
        start_candidates.add(chain[0][1])
        for (_, left), (_, right) in zip(chain, chain[1:]):
            successors[left][seq_index] = right
            has_predecessor[right] = True

    starts = sorted(c for c in start_candidates if not has_predecessor[c])
    edge_count = sum(len(s) for s in successors)
    logging.debug(f"Adjacency graph: {num_columns} columns, {edge_count} edges, "
                  f"{len(starts)} start columns")
    return AdjacencyGraph(successors=successors, starts=starts)


def topological_sort(graph: AdjacencyGraph) -> List[int]:
    """Order columns by reversed depth-first postorder from every start column.

    The traversal keeps an explicit stack, so long sequences do not run into
    the recursion limit. A column is pushed twice: once to expand its
    successors (pre-visit) and once more to be emitted after all of them
    have finished.

    Returns:
        List of column indices in topological order

    Raises:
        CycleError: if a back edge is found or some columns are unreachable
    """
    num_columns = len(graph.successors)
    pre_visited = [False] * num_columns
    visited = [False] * num_columns
    postorder: List[int] = []

    for start in graph.starts:
        if visited[start]:
            continue
        stack = [start]
        while stack:
            node = stack.pop()
            if not pre_visited[node]:
                pre_visited[node] = True
                stack.append(node)
                pushed = set()
                for seq_index in sorted(graph.successors[node]):
                    succ = graph.successors[node][seq_index]
                    if visited[succ] or succ in pushed:
                        continue
                    if pre_visited[succ]:
                        raise CycleError(
                            f"Column {succ} is reachable from itself "
                            f"(back edge from column {node} via sequence {seq_index})")
                    pushed.add(succ)
                    stack.append(succ)
            elif not visited[node]:
                visited[node] = True
                postorder.append(node)

    if len(postorder) != num_columns:
        # Every column on a cycle with no way in has a predecessor, so none is a start
        raise CycleError(
            f"{num_columns - len(postorder)} of {num_columns} columns are not reachable "
            f"from any start column; the implied column order contains a cycle")

    # Reverse once over all starts: later starts precede the columns they feed
    postorder.reverse()
    return postorder


def validate_order(column_set: ColumnSet, order: Sequence[int]) -> None:
    """Check that order is complete and monotone in position for every sequence.

    Raises:
        OrderingError: describing the first violation found
    """
    num_columns = len(column_set)
    if len(order) != num_columns or set(order) != set(range(num_columns)):
        raise OrderingError(
            f"Column order has {len(order)} entries ({len(set(order))} distinct) "
            f"but there are {num_columns} columns")

    running_max = [-1] * column_set.num_sequences
    for rank, idx in enumerate(order):
        for entry in column_set[idx]:
            if entry.position < running_max[entry.seq_index]:
                raise OrderingError(
                    f"Sequence {entry.seq_index} goes backwards at ordered column {rank} "
                    f"(column {idx}): position {entry.position} follows "
                    f"position {running_max[entry.seq_index]}")
            running_max[entry.seq_index] = entry.position


def order_columns(column_set: ColumnSet, show_progress: bool = False) -> List[int]:
    """Build, sort and validate a linear order over all columns."""
    graph = build_adjacency(column_set, show_progress=show_progress)
    logging.info(f"Ordering {len(column_set)} columns from {len(graph.starts)} start columns")
    order = topological_sort(graph)
    validate_order(column_set, order)
    logging.debug("Column order validated against all sequences")
    return order
