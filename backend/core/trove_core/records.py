"""Decoders for the protocol program's per-user ledger records.

Every record starts with its 8-byte discriminator (``sha256("account:<Name>")[:8]``)
followed by the owner's 32-byte address.
"""

from __future__ import annotations

from dataclasses import dataclass

from borsh_construct import CStruct, String, U64
from construct import Bytes, ConstructError
from solders.pubkey import Pubkey

from backend.core.trove_core.constants import (
    LIQUIDITY_THRESHOLD_DISCRIMINATOR,
    USER_COLLATERAL_AMOUNT_DISCRIMINATOR,
    USER_DEBT_AMOUNT_DISCRIMINATOR,
)
from backend.core.trove_core.errors import RecordDecodeError

DEBT_RECORD_LAYOUT = CStruct(
    "discriminator" / Bytes(8),
    "owner" / Bytes(32),
    "amount" / U64,
)

COLLATERAL_RECORD_LAYOUT = CStruct(
    "discriminator" / Bytes(8),
    "owner" / Bytes(32),
    "denom" / String,
    "amount" / U64,
)

THRESHOLD_RECORD_LAYOUT = CStruct(
    "discriminator" / Bytes(8),
    "owner" / Bytes(32),
    "ratio" / U64,
)


@dataclass(frozen=True)
class DebtRecord:
    owner: Pubkey
    amount: int


@dataclass(frozen=True)
class CollateralRecord:
    owner: Pubkey
    denom: str
    amount: int


@dataclass(frozen=True)
class ThresholdRecord:
    owner: Pubkey
    ratio: int


def _parse(layout: CStruct, data: bytes, discriminator: bytes, kind: str):
    raw = bytes(data or b"")
    if raw[:8] != discriminator:
        raise RecordDecodeError(f"{kind}: unexpected discriminator {raw[:8].hex() or '<empty>'}")
    try:
        return layout.parse(raw)
    except (ConstructError, UnicodeDecodeError) as exc:
        raise RecordDecodeError(f"{kind}: cannot decode {len(raw)} bytes ({exc})") from exc


def decode_debt_record(data: bytes) -> DebtRecord:
    parsed = _parse(DEBT_RECORD_LAYOUT, data, USER_DEBT_AMOUNT_DISCRIMINATOR, "UserDebtAmount")
    return DebtRecord(owner=Pubkey.from_bytes(parsed.owner), amount=int(parsed.amount))


def decode_collateral_record(data: bytes) -> CollateralRecord:
    parsed = _parse(
        COLLATERAL_RECORD_LAYOUT, data, USER_COLLATERAL_AMOUNT_DISCRIMINATOR, "UserCollateralAmount"
    )
    return CollateralRecord(
        owner=Pubkey.from_bytes(parsed.owner),
        denom=str(parsed.denom),
        amount=int(parsed.amount),
    )


def decode_threshold_record(data: bytes) -> ThresholdRecord:
    """Decode a LiquidityThreshold record; ``ratio`` is micro-percent."""
    parsed = _parse(THRESHOLD_RECORD_LAYOUT, data, LIQUIDITY_THRESHOLD_DISCRIMINATOR, "LiquidityThreshold")
    return ThresholdRecord(owner=Pubkey.from_bytes(parsed.owner), ratio=int(parsed.ratio))


__all__ = [
    "DebtRecord",
    "CollateralRecord",
    "ThresholdRecord",
    "decode_debt_record",
    "decode_collateral_record",
    "decode_threshold_record",
]
