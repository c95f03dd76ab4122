"""
Columnconsensus: linear ordering of multiple-alignment columns and majority consensus calling.

Merges the unordered column set reported by an alignment engine into one order
consistent with every input sequence, then calls a coverage-filtered majority
consensus from it.
"""

__version__ = "0.1.0"

from .columns import ColumnSet, Entry, MalformedColumnError, canonicalize, entry_for, entry_position
from .ordering import CycleError, OrderingError, order_columns
from .consensus import ConsensusResult, call_consensus
from .core import main as columnconsensus_main

__all__ = [
    "ColumnSet", "Entry", "MalformedColumnError", "canonicalize", "entry_for", "entry_position",
    "CycleError", "OrderingError", "order_columns",
    "ConsensusResult", "call_consensus",
    "columnconsensus_main", "__version__",
]
