"""Neighbor resolution for ordering proofs.

The protocol program never stores the sorted position list. A
position-changing instruction instead carries the threshold records of the
target's predecessor and successor, which the program checks against its own
state at execution time.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from solders.pubkey import Pubkey

from backend.core.trove_core.constants import DEFAULT_DENOM, PROTOCOL_PROGRAM_ID
from backend.core.trove_core.models import HealthRatio, NeighborProof, Position
from backend.core.trove_core.pdas import position_addresses
from backend.core.trove_core.sorter import sort_key

# Zero-debt ratio; compares greater than any integer so it sorts last.
INFINITE_RATIO = math.inf


def compute_health_ratio(collateral_amount: int, debt_amount: int, price: int) -> HealthRatio:
    """Return ``collateral * price * 100 // debt``, or ``INFINITE_RATIO`` without debt.

    ``price`` must already be scaled so the result lands in micro-percent.
    """
    if debt_amount == 0:
        return INFINITE_RATIO
    return int(collateral_amount * price * 100 // debt_amount)


def hypothetical_position(
    owner: Pubkey,
    collateral_amount: int,
    debt_amount: int,
    price: int,
    denom: str = DEFAULT_DENOM,
    program_id: Pubkey = PROTOCOL_PROGRAM_ID,
) -> Position:
    debt_record, collateral_record, threshold_record = position_addresses(owner, denom, program_id)
    return Position(
        owner=owner,
        debt_amount=debt_amount,
        collateral_amount=collateral_amount,
        collateral_denom=denom,
        health_ratio=compute_health_ratio(collateral_amount, debt_amount, price),
        debt_record=debt_record,
        collateral_record=collateral_record,
        threshold_record=threshold_record,
    )


def find_insert_index(target: Position, ordered: Sequence[Position]) -> int:
    """Index of the first entry that sorts strictly after ``target``.

    Entries owned by ``target.owner`` are skipped: when modifying an existing
    position its old entry is not a neighbor of its new one.
    """
    key = sort_key(target)
    for idx, pos in enumerate(ordered):
        if pos.owner == target.owner:
            continue
        if sort_key(pos) > key:
            return idx
    return len(ordered)


def find_neighbors(target: Position, ordered: Sequence[Position]) -> NeighborProof:
    idx = find_insert_index(target, ordered)
    prev: Optional[Position] = None
    for pos in reversed(ordered[:idx]):
        if pos.owner != target.owner:
            prev = pos
            break
    nxt = ordered[idx] if idx < len(ordered) else None
    return NeighborProof(prev=prev, next=nxt, insert_index=idx)


def neighbor_accounts(proof: NeighborProof, skip_at_head: bool = False) -> List[Pubkey]:
    """Threshold-record addresses of the neighbors, predecessor first.

    With ``skip_at_head`` a target with no predecessor gets no hints at all.
    """
    if skip_at_head and proof.prev is None:
        return []
    accounts: List[Pubkey] = []
    if proof.prev is not None:
        accounts.append(proof.prev.threshold_record)
    if proof.next is not None:
        accounts.append(proof.next.threshold_record)
    return accounts


__all__ = [
    "INFINITE_RATIO",
    "compute_health_ratio",
    "hypothetical_position",
    "find_insert_index",
    "find_neighbors",
    "neighbor_accounts",
]
