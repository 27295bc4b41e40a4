"""Typed operation payloads and their byte encodings.

One frozen dataclass per protocol instruction. ``SELECTOR`` is the Anchor
instruction discriminator (``sha256("global:<name>")[:8]``), reproduced as a
literal. Fields are encoded positionally in the program's argument order.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Optional, Tuple, Type, Union

from backend.core.trove_core.codec import (
    SELECTOR_SIZE,
    U64_SIZE,
    AddressLike,
    LengthCheckedBuffer,
    address_list_size,
    opt_address_size,
    string_size,
)
from backend.core.trove_core.constants import DEFAULT_DENOM


def anchor_sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


# ---------------------------------------------------------------------------
# Position lifecycle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OpenPosition:
    NAME: ClassVar[str] = "open_trove"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("cbe8406d23534a6d")

    loan_amount: int
    collateral_amount: int
    denom: str = DEFAULT_DENOM

    def expected_length(self) -> int:
        return SELECTOR_SIZE + U64_SIZE + string_size(self.denom) + U64_SIZE

    def encode(self) -> bytes:
        return (
            LengthCheckedBuffer(self.NAME, self.SELECTOR)
            .u64(self.loan_amount, "loan_amount")
            .string(self.denom, "denom")
            .u64(self.collateral_amount, "collateral_amount")
            .build(self.expected_length())
        )


@dataclass(frozen=True)
class _AdjustPosition:
    """Shared shape: u64 amount, string denom, optional prev/next hints."""

    NAME: ClassVar[str] = ""
    SELECTOR: ClassVar[bytes] = b""

    amount: int
    denom: str = DEFAULT_DENOM
    prev_node_id: Optional[AddressLike] = None
    next_node_id: Optional[AddressLike] = None

    def expected_length(self) -> int:
        return (
            SELECTOR_SIZE
            + U64_SIZE
            + string_size(self.denom)
            + opt_address_size(self.prev_node_id)
            + opt_address_size(self.next_node_id)
        )

    def encode(self) -> bytes:
        return (
            LengthCheckedBuffer(self.NAME, self.SELECTOR)
            .u64(self.amount, "amount")
            .string(self.denom, "denom")
            .opt_address(self.prev_node_id, "prev_node_id")
            .opt_address(self.next_node_id, "next_node_id")
            .build(self.expected_length())
        )


@dataclass(frozen=True)
class AddCollateral(_AdjustPosition):
    NAME: ClassVar[str] = "add_collateral"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("7f52792aa1b0f9ce")


@dataclass(frozen=True)
class RemoveCollateral(_AdjustPosition):
    NAME: ClassVar[str] = "remove_collateral"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("56de82565c144841")


@dataclass(frozen=True)
class BorrowLoan(_AdjustPosition):
    NAME: ClassVar[str] = "borrow_loan"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("6668a77fd1f5fbc2")


@dataclass(frozen=True)
class RepayLoan(_AdjustPosition):
    NAME: ClassVar[str] = "repay_loan"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("e05d904d3d118936")


# ---------------------------------------------------------------------------
# Stability pool
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Stake:
    NAME: ClassVar[str] = "stake"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("ceb0ca12c8d1b36c")

    amount: int

    def expected_length(self) -> int:
        return SELECTOR_SIZE + U64_SIZE

    def encode(self) -> bytes:
        return LengthCheckedBuffer(self.NAME, self.SELECTOR).u64(self.amount, "amount").build(self.expected_length())


@dataclass(frozen=True)
class Unstake:
    NAME: ClassVar[str] = "unstake"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("5a5f6b2acd7c32e1")

    amount: int

    def expected_length(self) -> int:
        return SELECTOR_SIZE + U64_SIZE

    def encode(self) -> bytes:
        return LengthCheckedBuffer(self.NAME, self.SELECTOR).u64(self.amount, "amount").build(self.expected_length())


@dataclass(frozen=True)
class WithdrawLiquidationGains:
    NAME: ClassVar[str] = "withdraw_liquidation_gains"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("1d742db68f073bda")

    denom: str = DEFAULT_DENOM

    def expected_length(self) -> int:
        return SELECTOR_SIZE + string_size(self.denom)

    def encode(self) -> bytes:
        return LengthCheckedBuffer(self.NAME, self.SELECTOR).string(self.denom, "denom").build(self.expected_length())


# ---------------------------------------------------------------------------
# Batch operations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LiquidateTroves:
    """Liquidate a batch of positions; ``owners`` order must match the appended account groups."""

    NAME: ClassVar[str] = "liquidate_troves"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("97cce6007fcb391c")

    owners: Tuple[AddressLike, ...] = field(default_factory=tuple)
    denom: str = DEFAULT_DENOM

    def __post_init__(self) -> None:
        object.__setattr__(self, "owners", tuple(self.owners))

    def expected_length(self) -> int:
        return SELECTOR_SIZE + address_list_size(len(self.owners)) + string_size(self.denom)

    def encode(self) -> bytes:
        return (
            LengthCheckedBuffer(self.NAME, self.SELECTOR)
            .address_list(self.owners, "owners")
            .string(self.denom, "denom")
            .build(self.expected_length())
        )


@dataclass(frozen=True)
class Redeem:
    """Redeem stablecoin against the riskiest positions.

    The targets travel as appended account groups, not in the payload.
    """

    NAME: ClassVar[str] = "redeem"
    SELECTOR: ClassVar[bytes] = bytes.fromhex("b80c569546c461e1")

    amount: int
    denom: str = DEFAULT_DENOM

    def expected_length(self) -> int:
        return SELECTOR_SIZE + U64_SIZE + string_size(self.denom)

    def encode(self) -> bytes:
        return (
            LengthCheckedBuffer(self.NAME, self.SELECTOR)
            .u64(self.amount, "amount")
            .string(self.denom, "denom")
            .build(self.expected_length())
        )


Operation = Union[
    OpenPosition,
    AddCollateral,
    RemoveCollateral,
    BorrowLoan,
    RepayLoan,
    Stake,
    Unstake,
    LiquidateTroves,
    Redeem,
    WithdrawLiquidationGains,
]

OPERATIONS: Dict[str, Type] = {
    cls.NAME: cls
    for cls in (
        OpenPosition,
        AddCollateral,
        RemoveCollateral,
        BorrowLoan,
        RepayLoan,
        Stake,
        Unstake,
        LiquidateTroves,
        Redeem,
        WithdrawLiquidationGains,
    )
}

SELECTORS: Dict[str, bytes] = {name: cls.SELECTOR for name, cls in OPERATIONS.items()}


def encode_operation(op: Operation) -> bytes:
    if OPERATIONS.get(getattr(type(op), "NAME", "")) is not type(op):
        raise TypeError(f"Unsupported operation: {type(op).__name__}")
    return op.encode()


__all__ = [
    "anchor_sighash",
    "OpenPosition",
    "AddCollateral",
    "RemoveCollateral",
    "BorrowLoan",
    "RepayLoan",
    "Stake",
    "Unstake",
    "LiquidateTroves",
    "Redeem",
    "WithdrawLiquidationGains",
    "Operation",
    "OPERATIONS",
    "SELECTORS",
    "encode_operation",
]
