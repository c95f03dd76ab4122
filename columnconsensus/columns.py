"""Column model for merged alignment columns.

An alignment engine reports its result as an unordered collection of columns,
each an unordered bag of (sequence index, position) entries. This module turns
that collection into canonical columns stored in an index-addressed arena.
"""

import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple


class MalformedColumnError(ValueError):
    """Raised when a column violates the engine's output contract."""


class Entry(NamedTuple):
    """A single (sequence, position) correspondence inside a column."""
    seq_index: int
    position: int


# Canonical column: entries in ascending seq_index order
Column = Tuple[Entry, ...]


def canonicalize(entries: Iterable[Tuple[int, int]]) -> Column:
    """Sort a column's entries by ascending sequence index.

    Raises:
        MalformedColumnError: if the column is empty or two entries share a
            sequence index
    """
    column = tuple(sorted((Entry(int(s), int(p)) for s, p in entries),
                          key=lambda e: e.seq_index))
    if not column:
        raise MalformedColumnError("Column contains no entries")
    for prev, cur in zip(column, column[1:]):
        if prev.seq_index == cur.seq_index:
            raise MalformedColumnError(
                f"Column has two entries for sequence {cur.seq_index} "
                f"(positions {prev.position} and {cur.position})")
    return column


def entry_for(column: Column, seq_index: int) -> Optional[Entry]:
    """Return the entry for seq_index, or None if the sequence is gapped here."""
    for entry in column:
        if entry.seq_index == seq_index:
            return entry
    return None


def entry_position(column: Column, seq_index: int) -> Optional[int]:
    entry = entry_for(column, seq_index)
    return entry.position if entry is not None else None


class ColumnSet:
    """Arena of canonical columns addressed by stable integer index.

    Columns are stored sorted by their canonical entry tuple, so the index a
    column receives does not depend on the iteration order of the input.
    """

    def __init__(self, columns: List[Column], sequence_lengths: Sequence[int]):
        self.columns = columns
        self.sequence_lengths = list(sequence_lengths)

    @classmethod
    def from_columns(cls, columns: Iterable[Iterable[Tuple[int, int]]],
                     sequence_lengths: Sequence[int]) -> 'ColumnSet':
        """Canonicalize and check a raw column collection.

        Args:
            columns: Iterable of columns, each an iterable of (seq_index, position)
            sequence_lengths: Length of every input sequence, by index

        Returns:
            ColumnSet with columns sorted by canonical key

        Raises:
            MalformedColumnError: on duplicate, out-of-range or doubly-claimed entries
        """
        num_sequences = len(sequence_lengths)
        canonical = [canonicalize(c) for c in columns]
        canonical.sort()

        claimed: Dict[Tuple[int, int], int] = {}
        for idx, column in enumerate(canonical):
            for entry in column:
                if not 0 <= entry.seq_index < num_sequences:
                    raise MalformedColumnError(
                        f"Column {idx} refers to sequence {entry.seq_index}, "
                        f"but only {num_sequences} sequences were given")
                if not 0 <= entry.position < sequence_lengths[entry.seq_index]:
                    raise MalformedColumnError(
                        f"Column {idx} has position {entry.position} for sequence "
                        f"{entry.seq_index} of length {sequence_lengths[entry.seq_index]}")
                if entry in claimed:
                    raise MalformedColumnError(
                        f"Sequence {entry.seq_index} position {entry.position} "
                        f"appears in columns {claimed[entry]} and {idx}")
                claimed[entry] = idx

        logging.debug(f"Canonicalized {len(canonical)} columns over {num_sequences} sequences")
        return cls(canonical, sequence_lengths)

    @property
    def num_sequences(self) -> int:
        return len(self.sequence_lengths)

    def __len__(self) -> int:
        return len(self.columns)

    def __getitem__(self, index: int) -> Column:
        return self.columns[index]

    def __iter__(self):
        return iter(self.columns)

    def column_coverage(self, index: int) -> int:
        """Number of sequences with an entry in the column."""
        return len(self.columns[index])
