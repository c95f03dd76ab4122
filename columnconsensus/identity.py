"""Identity of a consensus against a reference sequence."""

import logging
import re
from typing import NamedTuple

import edlib
from Bio.Seq import reverse_complement

CIGAR_PATTERN = re.compile(r'(\d+)([=XIDM])')


class IdentityStats(NamedTuple):
    """Pairwise comparison of consensus and reference."""
    aligned_pairs: int  # match and mismatch columns of the alignment
    identical_pairs: int
    identity: float  # identical pairs over mean sequence length


def reference_identity(consensus: str, reference: str,
                       reverse_complement_reference: bool = True) -> IdentityStats:
    """Align consensus to reference and measure identity.

    Identity is 2 * identical / (len(consensus) + len(reference)), which
    penalizes length differences as well as substitutions.

    Args:
        consensus: Consensus sequence
        reference: Reference sequence
        reverse_complement_reference: Compare against the reverse complement of reference

    Returns:
        IdentityStats
    """
    consensus = consensus.upper()
    reference = reference.upper()
    if reverse_complement_reference:
        reference = reverse_complement(reference)

    if not consensus or not reference:
        return IdentityStats(aligned_pairs=0, identical_pairs=0, identity=0.0)

    result = edlib.align(consensus, reference, task="path")
    aligned_pairs = 0
    identical_pairs = 0
    for length, op in CIGAR_PATTERN.findall(result["cigar"] or ""):
        length = int(length)
        if op == '=':
            aligned_pairs += length
            identical_pairs += length
        elif op in 'XM':
            aligned_pairs += length

    identity = identical_pairs * 2.0 / (len(consensus) + len(reference))
    logging.debug(f"Reference alignment edit distance: {result['editDistance']}")
    return IdentityStats(aligned_pairs=aligned_pairs, identical_pairs=identical_pairs,
                         identity=identity)
