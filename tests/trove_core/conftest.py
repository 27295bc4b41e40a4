from types import SimpleNamespace

import pytest
from solders.pubkey import Pubkey

from backend.core.trove_core.accounts import ProtocolContext
from backend.core.trove_core.constants import (
    LIQUIDITY_THRESHOLD_DISCRIMINATOR,
    USER_COLLATERAL_AMOUNT_DISCRIMINATOR,
    USER_DEBT_AMOUNT_DISCRIMINATOR,
    USER_DEBT_AMOUNT_SIZE,
)
from backend.core.trove_core.models import Position
from backend.core.trove_core.pdas import position_addresses


def _key(n: int) -> Pubkey:
    return Pubkey(bytes([n]) * 32)


def _position(n: int, ratio, debt: int = 100, collateral: int = 1_000, denom: str = "SOL") -> Position:
    owner = _key(n)
    debt_rec, coll_rec, thr_rec = position_addresses(owner, denom)
    return Position(
        owner=owner,
        debt_amount=debt,
        collateral_amount=collateral,
        collateral_denom=denom,
        health_ratio=ratio,
        debt_record=debt_rec,
        collateral_record=coll_rec,
        threshold_record=thr_rec,
    )


def debt_record(owner: Pubkey, amount: int) -> bytes:
    return USER_DEBT_AMOUNT_DISCRIMINATOR + bytes(owner) + amount.to_bytes(8, "little") + b"\x00" * 8


def collateral_record(owner: Pubkey, denom: str, amount: int) -> bytes:
    raw = denom.encode()
    return (
        USER_COLLATERAL_AMOUNT_DISCRIMINATOR
        + bytes(owner)
        + len(raw).to_bytes(4, "little")
        + raw
        + amount.to_bytes(8, "little")
    )


def threshold_record(owner: Pubkey, ratio: int) -> bytes:
    return LIQUIDITY_THRESHOLD_DISCRIMINATOR + bytes(owner) + ratio.to_bytes(8, "little")


class FakeRpcClient:
    """In-memory stand-in for ``AsyncClient`` account reads."""

    def __init__(self, debts=(), collaterals=(), accounts=None, fail_scan=None, fail_multi=0):
        self.debts = list(debts)
        self.collaterals = list(collaterals)
        self.accounts = dict(accounts or {})
        self.fail_scan = fail_scan
        self.fail_multi = fail_multi
        self.scan_filters = []
        self.multi_calls = []

    @staticmethod
    def _keyed(items):
        return SimpleNamespace(
            value=[SimpleNamespace(pubkey=addr, account=SimpleNamespace(data=data)) for addr, data in items]
        )

    async def get_program_accounts(self, program_id, encoding="base64", filters=None):
        self.scan_filters.append(filters)
        if self.fail_scan:
            raise self.fail_scan
        if USER_DEBT_AMOUNT_SIZE in (filters or []):
            return self._keyed(self.debts)
        return self._keyed(self.collaterals)

    async def get_multiple_accounts(self, pubkeys, encoding="base64"):
        self.multi_calls.append(list(pubkeys))
        if self.fail_multi:
            self.fail_multi -= 1
            raise OSError("node unavailable")
        return SimpleNamespace(
            value=[SimpleNamespace(data=self.accounts[p]) if p in self.accounts else None for p in pubkeys]
        )


@pytest.fixture
def key():
    return _key


@pytest.fixture
def make_position():
    return _position


@pytest.fixture
def records():
    return SimpleNamespace(debt=debt_record, collateral=collateral_record, threshold=threshold_record)


@pytest.fixture
def fake_client_cls():
    return FakeRpcClient


@pytest.fixture
def ctx():
    return ProtocolContext(
        oracle_state=_key(201),
        fees_state=_key(202),
        stablecoin_mint=_key(203),
    )
