"""Adapters for the external alignment engine.

The core only needs an unordered collection of columns. These helpers obtain
one from a gapped multiple sequence alignment (computed by SPOA or read from
an aligned FASTA file) or from a JSON column dump.
"""

import json
import logging
import os
import subprocess
import tempfile
from collections import Counter
from io import StringIO
from typing import FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

RawColumn = FrozenSet[Tuple[int, int]]

GAP_CHARS = "-."


def columns_from_msa(aligned_rows: Sequence[str], gap_chars: str = GAP_CHARS) -> Set[RawColumn]:
    """Convert a gapped MSA into an unordered set of columns.

    Each alignment column with at least one residue becomes one column whose
    entries are the ungapped offsets of the rows that have a residue there.

    Args:
        aligned_rows: Aligned sequences, one per input sequence, all the same length
        gap_chars: Characters treated as gaps

    Returns:
        Set of columns, each a frozenset of (seq_index, position)
    """
    rows = [str(r) for r in aligned_rows]
    if not rows:
        return set()
    width = len(rows[0])
    for i, row in enumerate(rows):
        if len(row) != width:
            raise ValueError(f"Aligned row {i} has length {len(row)}, expected {width}")

    offsets = [0] * len(rows)
    columns: Set[RawColumn] = set()
    for col in range(width):
        entries = []
        for seq_index, row in enumerate(rows):
            if row[col] not in gap_chars:
                entries.append((seq_index, offsets[seq_index]))
                offsets[seq_index] += 1
        if entries:
            columns.add(frozenset(entries))
    return columns


def run_spoa_msa(sequences: List[str], spoa_path: str = "spoa") -> List[str]:
    """Run SPOA and return the aligned rows in input order.

    Args:
        sequences: List of DNA sequence strings
        spoa_path: SPOA executable

    Returns:
        Aligned sequence strings (with gaps), one per input sequence
    """
    with tempfile.NamedTemporaryFile(mode='w', suffix='.fasta', delete=False) as temp_input:
        cmd = [spoa_path, temp_input.name, '-r', '1', '-l', '1']
        try:
            records = [
                SeqRecord(Seq(seq), id=f"seq{i}", description="")
                for i, seq in enumerate(sequences)
            ]
            SeqIO.write(records, temp_input, "fasta")
            temp_input.flush()

            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True
            )

            aligned = {}
            for record in SeqIO.parse(StringIO(result.stdout), "fasta"):
                if record.id.startswith('Consensus'):
                    continue
                aligned[record.id] = str(record.seq)

            missing = [f"seq{i}" for i in range(len(sequences)) if f"seq{i}" not in aligned]
            if missing:
                raise RuntimeError(f"SPOA output is missing {len(missing)} aligned sequences")
            return [aligned[f"seq{i}"] for i in range(len(sequences))]

        except subprocess.CalledProcessError as e:
            logging.error(f"SPOA failed with return code {e.returncode}")
            logging.error(f"Command: {' '.join(cmd)}")
            logging.error(f"Stderr: {e.stderr}")
            raise

        finally:
            if os.path.exists(temp_input.name):
                os.unlink(temp_input.name)


class SpoaEngine:
    """Alignment engine backed by the SPOA partial-order aligner."""

    def __init__(self, spoa_path: str = "spoa"):
        self.spoa_path = spoa_path

    def align(self, sequences: List[str]) -> Set[RawColumn]:
        logging.info(f"Aligning {len(sequences)} sequences with SPOA...")
        if len(sequences) == 1:
            return columns_from_msa(sequences)
        rows = run_spoa_msa(sequences, spoa_path=self.spoa_path)
        columns = columns_from_msa(rows)
        logging.info(f"SPOA produced {len(columns)} columns")
        return columns


def load_msa_columns(msa_file: str, expected_ids: Optional[List[str]] = None) -> Set[RawColumn]:
    """Read an aligned FASTA file and convert it to columns.

    If expected_ids is given, rows are reordered to match it so that entry
    sequence indices refer to the unaligned input.
    """
    records = list(SeqIO.parse(msa_file, "fasta"))
    if expected_ids is not None:
        # Rows are matched by id, so ids must be unique on both sides
        for label, ids in (("MSA file", [r.id for r in records]), ("Input", expected_ids)):
            duplicates = sorted(seq_id for seq_id, n in Counter(ids).items() if n > 1)
            if duplicates:
                raise ValueError(f"{label} has duplicate sequence ids, cannot match "
                                 f"{msa_file} rows to sequences: {', '.join(duplicates)}")
        by_id = {r.id: str(r.seq) for r in records}
        missing = [seq_id for seq_id in expected_ids if seq_id not in by_id]
        if missing:
            raise ValueError(f"MSA file {msa_file} has no rows for: {', '.join(missing)}")
        rows = [by_id[seq_id] for seq_id in expected_ids]
    else:
        rows = [str(r.seq) for r in records]
    return columns_from_msa(rows)


def load_columns_json(path: str) -> Tuple[List[str], List[List[Tuple[int, int]]]]:
    """Load a column dump written by write_columns_json.

    Returns:
        Tuple of (sequence ids, columns as lists of (seq_index, position))
    """
    with open(path) as f:
        data = json.load(f)
    if 'columns' not in data:
        raise ValueError(f"Column file {path} has no 'columns' field")
    columns = [[(int(s), int(p)) for s, p in column] for column in data['columns']]
    return list(data.get('sequences', [])), columns


def write_columns_json(path: str, columns: Iterable[Iterable[Tuple[int, int]]],
                       sequence_ids: Sequence[str]) -> None:
    """Write columns (in the given order) as JSON for inspection or reuse."""
    data = {
        "sequences": list(sequence_ids),
        "columns": [[[s, p] for s, p in sorted(column)] for column in columns],
    }
    with open(path, 'w') as f:
        json.dump(data, f, indent=1)
    logging.debug(f"Wrote {len(data['columns'])} columns to {path}")
