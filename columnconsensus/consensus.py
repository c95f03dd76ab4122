"""Majority-vote consensus over ordered alignment columns."""

import logging
from typing import List, NamedTuple, Optional, Sequence

import numpy as np
from tqdm import tqdm

from columnconsensus.columns import ColumnSet, MalformedColumnError

# Fixed scan order; ties go to the earliest base
NUCLEOTIDES = "ACGT"
NUCLEOTIDE_INDEX = {base: i for i, base in enumerate(NUCLEOTIDES)}


class ConsensusResult(NamedTuple):
    """Consensus called from an ordered column sequence."""
    sequence: str
    coverage: np.ndarray  # entries per column, in column order
    calls: List[Optional[str]]  # called base per column, None when below threshold


def count_bases(column_set: ColumnSet, column_index: int,
                sequences: Sequence[str]) -> np.ndarray:
    """Tally A, C, G and T among a column's entries (case-insensitive).

    Raises:
        MalformedColumnError: if an entry points at any other symbol
    """
    counts = np.zeros(len(NUCLEOTIDES), dtype=np.int64)
    for entry in column_set[column_index]:
        base = sequences[entry.seq_index][entry.position].upper()
        idx = NUCLEOTIDE_INDEX.get(base)
        if idx is None:
            raise MalformedColumnError(
                f"Unexpected symbol {base!r} at sequence {entry.seq_index} "
                f"position {entry.position} (column {column_index})")
        counts[idx] += 1
    return counts


def majority_base(counts: np.ndarray) -> str:
    """Return the most frequent base, preferring A, C, G, T in that order on ties."""
    # argmax returns the first maximum
    return NUCLEOTIDES[int(np.argmax(counts))]


def call_consensus(column_set: ColumnSet, order: Sequence[int], sequences: Sequence[str],
                   min_coverage: int, show_progress: bool = False) -> ConsensusResult:
    """Walk ordered columns and emit the majority base of each well-covered column.

    Columns with fewer than min_coverage entries contribute nothing, not even
    a gap, so the consensus is shorter than the column count.

    Args:
        column_set: Canonical columns
        order: Validated column order (indices into column_set)
        sequences: Input sequences, indexed as in the column entries
        min_coverage: Minimum entries for a column to contribute a base
        show_progress: Show a progress bar over columns

    Returns:
        ConsensusResult with sequence, per-column coverage and per-column calls
    """
    consensus = []
    calls: List[Optional[str]] = []
    coverage = np.zeros(len(order), dtype=np.int64)

    for rank, idx in enumerate(tqdm(order, desc="Calling consensus", disable=not show_progress)):
        counts = count_bases(column_set, idx, sequences)
        total = int(counts.sum())
        coverage[rank] = total
        if total >= min_coverage:
            base = majority_base(counts)
            consensus.append(base)
            calls.append(base)
        else:
            logging.debug(f"Skipping column {idx}: coverage {total} < {min_coverage}")
            calls.append(None)

    sequence = ''.join(consensus)
    logging.info(f"Called {len(sequence)} consensus bases from {len(order)} columns "
                 f"(min coverage {min_coverage})")
    return ConsensusResult(sequence=sequence, coverage=coverage, calls=calls)


def coverage_histogram(coverage: np.ndarray, num_sequences: int) -> np.ndarray:
    """Number of columns at each coverage level 0..num_sequences."""
    return np.bincount(np.asarray(coverage, dtype=np.int64), minlength=num_sequences + 1)
