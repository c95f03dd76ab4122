"""Configuration for consensus calling."""

import math
from dataclasses import dataclass
from typing import Optional


@dataclass
class ConsensusConfig:
    """Configuration for consensus calling.

    Attributes:
        min_coverage: Minimum number of entries a column needs to contribute a base
        min_coverage_fraction: Same threshold as a fraction of the input sequence count
        show_progress: Whether to show progress bars
    """
    min_coverage: Optional[int] = None
    min_coverage_fraction: Optional[float] = None
    show_progress: bool = False

    def __post_init__(self):
        if self.min_coverage is not None and self.min_coverage_fraction is not None:
            raise ValueError("Specify either min_coverage or min_coverage_fraction, not both")
        if self.min_coverage is not None and self.min_coverage < 0:
            raise ValueError(f"min_coverage must be non-negative, got {self.min_coverage}")
        if self.min_coverage_fraction is not None and not 0.0 < self.min_coverage_fraction <= 1.0:
            raise ValueError(f"min_coverage_fraction must be in (0, 1], got {self.min_coverage_fraction}")

    def resolve_min_coverage(self, num_sequences: int) -> int:
        """Absolute entry count a column needs for a run over num_sequences sequences.

        Without an explicit threshold a column must be covered by all but two
        sequences (at least one).
        """
        if self.min_coverage is not None:
            return self.min_coverage
        if self.min_coverage_fraction is not None:
            # Round away float noise such as 0.07 * 100 = 7.000000000000001
            return math.ceil(round(self.min_coverage_fraction * num_sequences, 9))
        return max(1, num_sequences - 2)

    @classmethod
    def from_args(cls, args) -> 'ConsensusConfig':
        """Create config from command-line arguments."""
        return cls(
            min_coverage=getattr(args, 'min_coverage', None),
            min_coverage_fraction=getattr(args, 'min_coverage_fraction', None),
            show_progress=getattr(args, 'progress', False),
        )
