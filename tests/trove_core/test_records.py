import hashlib

import pytest

from backend.core.trove_core.constants import (
    LIQUIDITY_THRESHOLD_DISCRIMINATOR,
    USER_COLLATERAL_AMOUNT_DISCRIMINATOR,
    USER_DEBT_AMOUNT_DISCRIMINATOR,
    USER_DEBT_AMOUNT_SIZE,
)
from backend.core.trove_core.errors import RecordDecodeError
from backend.core.trove_core.records import (
    decode_collateral_record,
    decode_debt_record,
    decode_threshold_record,
)


def _account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:8]


def test_discriminators():
    assert USER_DEBT_AMOUNT_DISCRIMINATOR == _account_discriminator("UserDebtAmount")
    assert LIQUIDITY_THRESHOLD_DISCRIMINATOR == _account_discriminator("LiquidityThreshold")
    assert USER_COLLATERAL_AMOUNT_DISCRIMINATOR == _account_discriminator("UserCollateralAmount")


def test_decode_debt(key, records):
    raw = records.debt(key(3), 12345)
    assert len(raw) == USER_DEBT_AMOUNT_SIZE
    rec = decode_debt_record(raw)
    assert rec.owner == key(3)
    assert rec.amount == 12345


def test_decode_collateral(key, records):
    rec = decode_collateral_record(records.collateral(key(4), "SOL", 2_000_000))
    assert (rec.owner, rec.denom, rec.amount) == (key(4), "SOL", 2_000_000)


def test_decode_threshold(key, records):
    rec = decode_threshold_record(records.threshold(key(5), 150_000_000))
    assert rec.ratio == 150_000_000


def test_wrong_discriminator(key, records):
    with pytest.raises(RecordDecodeError):
        decode_threshold_record(records.debt(key(1), 1))


def test_truncated(key, records):
    with pytest.raises(RecordDecodeError):
        decode_collateral_record(records.collateral(key(1), "SOL", 1)[:-3])
    with pytest.raises(RecordDecodeError):
        decode_debt_record(b"")
