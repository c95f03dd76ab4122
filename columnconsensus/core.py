#!/usr/bin/env python3

import argparse
import logging
import os
import subprocess
import sys
from typing import Iterable, List, NamedTuple, Optional

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

try:
    from columnconsensus import __version__
except ImportError:
    # Fallback for when running as a script directly (e.g., in tests)
    __version__ = "dev"

from columnconsensus.columns import Column, ColumnSet, MalformedColumnError
from columnconsensus.config import ConsensusConfig
from columnconsensus.consensus import ConsensusResult, call_consensus, coverage_histogram
from columnconsensus.engine import (
    SpoaEngine,
    load_columns_json,
    load_msa_columns,
    write_columns_json,
)
from columnconsensus.identity import IdentityStats, reference_identity
from columnconsensus.ordering import OrderingError, order_columns


class PipelineResult(NamedTuple):
    """Everything produced by one consensus run."""
    column_set: ColumnSet
    order: List[int]
    consensus: ConsensusResult

    def ordered_columns(self) -> List[Column]:
        return [self.column_set[i] for i in self.order]


class ColumnConsensusPipeline:
    """Orders engine columns and calls a majority consensus from them."""

    def __init__(self, config: Optional[ConsensusConfig] = None, engine=None):
        self.config = config if config is not None else ConsensusConfig()
        self.engine = engine if engine is not None else SpoaEngine()
        self.sequences: List[str] = []
        self.sequence_ids: List[str] = []

    def add_sequences(self, records: Iterable[SeqRecord]) -> None:
        """Add input sequences; their order defines the sequence indices."""
        seen = set(self.sequence_ids)
        for record in records:
            if record.id in seen:
                logging.warning(f"Duplicate sequence id {record.id}; keeping both copies")
            seen.add(record.id)
            self.sequence_ids.append(record.id)
            self.sequences.append(str(record.seq))

    def align(self):
        """Ask the alignment engine for the unordered column set."""
        return self.engine.align(self.sequences)

    def run(self, columns=None) -> PipelineResult:
        """Order columns and call the consensus.

        Args:
            columns: Unordered columns of (seq_index, position) entries; obtained
                from the alignment engine when omitted

        Raises:
            MalformedColumnError: if the columns break the engine contract
            OrderingError: if no valid order can be produced
        """
        if columns is None:
            columns = self.align()

        sequence_lengths = [len(s) for s in self.sequences]
        column_set = ColumnSet.from_columns(columns, sequence_lengths)
        logging.info(f"Got {len(column_set)} columns over {len(self.sequences)} sequences")

        order = order_columns(column_set, show_progress=self.config.show_progress)
        logging.info(f"Sorted the columns: {len(order)}")

        min_coverage = self.config.resolve_min_coverage(len(self.sequences))
        consensus = call_consensus(column_set, order, self.sequences, min_coverage,
                                   show_progress=self.config.show_progress)
        return PipelineResult(column_set=column_set, order=order, consensus=consensus)

    def compare_to_reference(self, consensus: str, reference: str,
                             reverse_complement_reference: bool = True) -> IdentityStats:
        stats = reference_identity(consensus, reference, reverse_complement_reference)
        logging.info(f"Aligned pairs {stats.aligned_pairs}, of which {stats.identical_pairs} "
                     f"are identical, giving an identity of {stats.identity:.6f}")
        return stats


def write_consensus_fasta(consensus: str, output_file: str, name: str = "consensus_seq") -> None:
    record = SeqRecord(Seq(consensus), id=name, description="")
    with open(output_file, 'w') as f:
        SeqIO.write([record], f, "fasta")
    logging.info(f"Wrote consensus of length {len(consensus)} to {output_file}")


def write_coverage_histogram(result: PipelineResult, output_file: str) -> None:
    """Write a tab-separated count of columns at each coverage level."""
    histogram = coverage_histogram(result.consensus.coverage, result.column_set.num_sequences)
    with open(output_file, 'w') as f:
        f.write("coverage\tcolumns\n")
        for coverage, count in enumerate(histogram):
            f.write(f"{coverage}\t{int(count)}\n")
    logging.debug(f"Wrote coverage histogram to {output_file}")


def read_sequences(input_file: str) -> List[SeqRecord]:
    format = "fastq" if input_file.endswith((".fastq", ".fq")) else "fasta"
    return list(SeqIO.parse(input_file, format))


def load_columns(args, pipeline: ColumnConsensusPipeline):
    """Resolve the column source from command-line arguments.

    Returns None when the alignment engine should be run.
    """
    if args.columns:
        logging.info(f"Reading columns from {args.columns}")
        sequence_ids, columns = load_columns_json(args.columns)
        if sequence_ids and sequence_ids != pipeline.sequence_ids:
            raise ValueError(f"Column file {args.columns} was written for different sequences "
                             f"than {args.input_file}")
        return columns
    if args.msa:
        logging.info(f"Reading alignment from {args.msa}")
        return load_msa_columns(args.msa, expected_ids=pipeline.sequence_ids)
    return None


def parse_arguments(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Order multiple-alignment columns and call a majority consensus"
    )
    parser.add_argument("input_file", help="Input FASTA file with the unaligned sequences")
    parser.add_argument("-o", "--output", default="consensus.fasta",
                        help="Output FASTA file for the consensus (default: consensus.fasta)")
    parser.add_argument("--columns",
                        help="JSON column file to use instead of running the alignment engine")
    parser.add_argument("--msa",
                        help="Aligned FASTA file to derive columns from instead of running the alignment engine")
    parser.add_argument("--spoa-path", default="spoa",
                        help="SPOA executable used as the alignment engine (default: spoa)")
    parser.add_argument("--reference",
                        help="FASTA file with a reference sequence to compare the consensus against")
    parser.add_argument("--disable-reference-revcomp", action="store_true",
                        help="Compare against the reference as given instead of its reverse complement")
    parser.add_argument("--min-coverage", type=int, default=None,
                        help="Minimum number of sequences covering a column for it to contribute a base "
                             "(default: all but two sequences)")
    parser.add_argument("--min-coverage-fraction", type=float, default=None,
                        help="Minimum fraction of sequences covering a column (alternative to --min-coverage)")
    parser.add_argument("--consensus-name", default="consensus_seq",
                        help="FASTA id of the consensus record (default: consensus_seq)")
    parser.add_argument("--write-columns",
                        help="Write the ordered columns to this JSON file")
    parser.add_argument("--coverage-histogram",
                        help="Write a per-column coverage histogram (TSV) to this file")
    parser.add_argument("--progress", action="store_true",
                        help="Show progress bars")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--log-file", help="Also write log messages to this file")
    parser.add_argument("--version", action="version",
                        version=f"Columnconsensus {__version__}",
                        help="Show program's version number and exit")

    args = parser.parse_args(argv)
    if args.columns and args.msa:
        parser.error("--columns and --msa are mutually exclusive")
    if args.min_coverage is not None and args.min_coverage_fraction is not None:
        parser.error("--min-coverage and --min-coverage-fraction are mutually exclusive")
    return args


def setup_logging(log_level: str, log_file: str = None):
    """Setup logging configuration with optional file output."""
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def main(argv: Optional[List[str]] = None):
    args = parse_arguments(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        config = ConsensusConfig.from_args(args)
    except ValueError as e:
        logging.error(str(e))
        sys.exit(1)

    if not os.path.exists(args.input_file):
        logging.error(f"Input file not found: {args.input_file}")
        sys.exit(1)

    for label, path in (("Column file", args.columns), ("MSA file", args.msa),
                        ("Reference file", args.reference)):
        if path and not os.path.exists(path):
            logging.error(f"{label} not found: {path}")
            sys.exit(1)

    logging.info(f"Reading sequences from {args.input_file}")
    records = read_sequences(args.input_file)
    logging.info(f"Loaded {len(records)} sequences")

    if len(records) == 0:
        logging.warning("No sequences found in input file. Nothing to align.")
        sys.exit(0)

    pipeline = ColumnConsensusPipeline(config=config, engine=SpoaEngine(args.spoa_path))
    pipeline.add_sequences(records)

    try:
        columns = load_columns(args, pipeline)
        result = pipeline.run(columns)
    except (MalformedColumnError, OrderingError) as e:
        logging.error(f"Column ordering failed: {e}")
        sys.exit(1)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        logging.error(f"Alignment engine failed: {e}")
        logging.error("You may need to install SPOA: https://github.com/rvaser/spoa")
        sys.exit(1)
    except (ValueError, RuntimeError) as e:
        logging.error(str(e))
        sys.exit(1)

    write_consensus_fasta(result.consensus.sequence, args.output, args.consensus_name)

    if args.write_columns:
        write_columns_json(args.write_columns, result.ordered_columns(), pipeline.sequence_ids)

    if args.coverage_histogram:
        write_coverage_histogram(result, args.coverage_histogram)

    if args.reference:
        reference_records = read_sequences(args.reference)
        if not reference_records:
            logging.error(f"No reference sequence found in {args.reference}")
            sys.exit(1)
        reference = str(reference_records[0].seq)
        logging.info(f"Loaded the reference comparison sequence, has length: {len(reference)}")
        pipeline.compare_to_reference(result.consensus.sequence, reference,
                                      not args.disable_reference_revcomp)


if __name__ == "__main__":
    main()
