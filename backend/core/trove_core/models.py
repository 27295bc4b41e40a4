from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

# Integer micro-percent, or ``INFINITE_RATIO`` for a position without debt.
HealthRatio = Union[int, float]


@dataclass(frozen=True)
class Position:
    owner: Pubkey
    debt_amount: int
    collateral_amount: int
    collateral_denom: str
    health_ratio: HealthRatio
    debt_record: Pubkey
    collateral_record: Pubkey
    threshold_record: Pubkey

    @property
    def is_live(self) -> bool:
        return self.debt_amount > 0


@dataclass(frozen=True)
class NeighborProof:
    """Predecessor/successor of a target position in one sorted snapshot."""

    prev: Optional[Position] = None
    next: Optional[Position] = None
    insert_index: int = 0


@dataclass(frozen=True)
class AccountRef:
    address: Pubkey
    is_signer: bool = False
    is_writable: bool = False

    def to_meta(self) -> AccountMeta:
        return AccountMeta(pubkey=self.address, is_signer=self.is_signer, is_writable=self.is_writable)

    def flags(self) -> str:
        return f"{'S' if self.is_signer else '-'}{'W' if self.is_writable else '-'}"


@dataclass(frozen=True)
class FetchFailure:
    address: Pubkey
    reason: str
    owner: Optional[Pubkey] = None


@dataclass
class FetchResult:
    """Positions read in one snapshot plus every per-position read failure."""

    denom: str
    positions: List[Position] = field(default_factory=list)
    failures: List[FetchFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class PreparedInstruction:
    """Encoded payload + ordered account list for one operation call."""

    operation: str
    program_id: Pubkey
    data: bytes
    accounts: Tuple[AccountRef, ...]

    def metas(self) -> List[AccountMeta]:
        return [ref.to_meta() for ref in self.accounts]

    def to_instruction(self) -> Instruction:
        return Instruction(self.program_id, self.data, self.metas())
