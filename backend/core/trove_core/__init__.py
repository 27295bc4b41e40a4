"""Trove core.

Client-side adapter for the protocol's lending program: reads position
snapshots, keeps them ordered by health ratio, resolves neighbor proofs and
encodes every instruction with its ordered account list.

Run the console with ``python -m backend.core.trove_core.console``.
"""

from .accounts import ProtocolContext, assemble_accounts, prepare_instruction
from .config import ConfigError, TroveConfig, load_trove_config
from .fetcher import PositionSnapshotFetcher
from .models import FetchFailure, FetchResult, NeighborProof, Position, PreparedInstruction
from .neighbors import compute_health_ratio, find_neighbors, neighbor_accounts
from .operations import encode_operation
from .sorter import sort_positions
from .submitter import TransactionSubmitter
from .trove_core import TroveCore

__all__ = [
    "ConfigError",
    "FetchFailure",
    "FetchResult",
    "NeighborProof",
    "Position",
    "PositionSnapshotFetcher",
    "PreparedInstruction",
    "ProtocolContext",
    "TransactionSubmitter",
    "TroveConfig",
    "TroveCore",
    "assemble_accounts",
    "compute_health_ratio",
    "encode_operation",
    "find_neighbors",
    "load_trove_config",
    "neighbor_accounts",
    "prepare_instruction",
    "sort_positions",
]
