"""Snapshot reads of every live position for one collateral denom."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

import base58
from solana.rpc.types import MemcmpOpts
from solders.pubkey import Pubkey

from backend.core.logging import log
from backend.core.trove_core.constants import (
    COLLATERAL_DENOM_OFFSET,
    DEFAULT_DENOM,
    PROTOCOL_PROGRAM_ID,
    USER_COLLATERAL_AMOUNT_DISCRIMINATOR,
    USER_DEBT_AMOUNT_DISCRIMINATOR,
    USER_DEBT_AMOUNT_SIZE,
)
from backend.core.trove_core.errors import RecordDecodeError, SnapshotFetchFailure
from backend.core.trove_core.models import FetchFailure, FetchResult, Position
from backend.core.trove_core.pdas import derive_liquidity_threshold, position_addresses
from backend.core.trove_core.records import (
    decode_collateral_record,
    decode_debt_record,
    decode_threshold_record,
)
from backend.core.trove_core.rpc import call_with_backoff

SOURCE = "PositionSnapshotFetcher"


def _b58(raw: bytes) -> str:
    return base58.b58encode(raw).decode("ascii")


def denom_filter_bytes(denom: str) -> bytes:
    """The length-prefixed denom as it appears at ``COLLATERAL_DENOM_OFFSET``."""
    encoded = denom.encode("utf-8")
    return len(encoded).to_bytes(4, "little") + encoded


def _account_data(account: Any) -> Optional[bytes]:
    if account is None:
        return None
    data = getattr(account, "data", None)
    return bytes(data) if data is not None else None


class PositionSnapshotFetcher:
    """Best-effort reader of position records.

    ``fetch`` raises :class:`SnapshotFetchFailure` only when a program-wide
    scan fails; failures of individual positions are returned in
    ``FetchResult.failures`` and logged.
    """

    def __init__(
        self,
        client,
        program_id: Pubkey = PROTOCOL_PROGRAM_ID,
        *,
        batch_size: int = 10,
        batch_delay: float = 0.2,
        retry_attempts: int = 4,
        retry_sleep: float = 0.35,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.client = client
        self.program_id = program_id
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.retry_attempts = retry_attempts
        self.retry_sleep = retry_sleep

    @classmethod
    def from_config(cls, cfg, client) -> "PositionSnapshotFetcher":
        return cls(
            client,
            Pubkey.from_string(cfg.program_id),
            batch_size=cfg.fetch_batch_size,
            batch_delay=cfg.fetch_batch_delay,
        )

    async def _call(self, op, label: str):
        return await call_with_backoff(op, attempts=self.retry_attempts, sleep_base=self.retry_sleep, label=label)

    async def _scan(self, filters: list, label: str) -> list:
        try:
            resp = await self._call(
                lambda: self.client.get_program_accounts(self.program_id, encoding="base64", filters=filters),
                label,
            )
        except Exception as exc:
            log.error(f"{label} scan failed: {exc!r}", source=SOURCE)
            raise SnapshotFetchFailure(f"{label} scan failed: {exc}") from exc
        return list(getattr(resp, "value", None) or [])

    def _fail(self, failures: List[FetchFailure], address: Pubkey, reason: str, owner: Optional[Pubkey] = None) -> None:
        log.warning(f"skipping position: {reason}", source=SOURCE, payload={"address": str(address), "owner": str(owner)})
        failures.append(FetchFailure(address=address, reason=reason, owner=owner))

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------
    async def fetch(self, denom: str = DEFAULT_DENOM) -> FetchResult:
        log.start_timer("snapshot")
        result = FetchResult(denom=denom)

        debts = await self._read_debts(result.failures)
        collaterals = await self._read_collaterals(denom, result.failures)

        owners = [owner for owner in debts if owner in collaterals]
        log.debug(
            f"{len(debts)} open debts, {len(collaterals)} {denom} collateral records, {len(owners)} candidates",
            source=SOURCE,
        )
        thresholds = await self._read_thresholds(owners, result.failures)

        for owner in owners:
            if owner not in thresholds:
                continue
            debt_amount, debt_record = debts[owner]
            collateral_amount, collateral_record = collaterals[owner]
            ratio, threshold_record = thresholds[owner]
            result.positions.append(
                Position(
                    owner=owner,
                    debt_amount=debt_amount,
                    collateral_amount=collateral_amount,
                    collateral_denom=denom,
                    health_ratio=ratio,
                    debt_record=debt_record,
                    collateral_record=collateral_record,
                    threshold_record=threshold_record,
                )
            )

        log.info(
            f"snapshot {denom}: {len(result.positions)} positions, {len(result.failures)} failures",
            source=SOURCE,
        )
        log.end_timer("snapshot", source=SOURCE)
        return result

    async def _read_debts(self, failures: List[FetchFailure]) -> Dict[Pubkey, Tuple[int, Pubkey]]:
        filters = [USER_DEBT_AMOUNT_SIZE, MemcmpOpts(offset=0, bytes=_b58(USER_DEBT_AMOUNT_DISCRIMINATOR))]
        debts: Dict[Pubkey, Tuple[int, Pubkey]] = {}
        for keyed in await self._scan(filters, "debt records"):
            try:
                record = decode_debt_record(_account_data(keyed.account))
            except RecordDecodeError as exc:
                self._fail(failures, keyed.pubkey, f"debt record: {exc}")
                continue
            if record.amount == 0:
                continue  # closed
            debts[record.owner] = (record.amount, keyed.pubkey)
        return debts

    async def _read_collaterals(self, denom: str, failures: List[FetchFailure]) -> Dict[Pubkey, Tuple[int, Pubkey]]:
        filters = [
            MemcmpOpts(offset=0, bytes=_b58(USER_COLLATERAL_AMOUNT_DISCRIMINATOR)),
            MemcmpOpts(offset=COLLATERAL_DENOM_OFFSET, bytes=_b58(denom_filter_bytes(denom))),
        ]
        collaterals: Dict[Pubkey, Tuple[int, Pubkey]] = {}
        for keyed in await self._scan(filters, "collateral records"):
            try:
                record = decode_collateral_record(_account_data(keyed.account))
            except RecordDecodeError as exc:
                self._fail(failures, keyed.pubkey, f"collateral record: {exc}")
                continue
            if record.denom != denom or record.amount == 0:
                continue
            collaterals[record.owner] = (record.amount, keyed.pubkey)
        return collaterals

    async def _read_thresholds(
        self, owners: Sequence[Pubkey], failures: List[FetchFailure]
    ) -> Dict[Pubkey, Tuple[int, Pubkey]]:
        thresholds: Dict[Pubkey, Tuple[int, Pubkey]] = {}
        for start in range(0, len(owners), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_delay)
            batch = list(owners[start:start + self.batch_size])
            addresses = [derive_liquidity_threshold(o, self.program_id) for o in batch]
            try:
                resp = await self._call(
                    lambda: self.client.get_multiple_accounts(addresses, encoding="base64"),
                    "threshold records",
                )
                accounts = list(getattr(resp, "value", None) or [])
            except Exception as exc:
                for owner, address in zip(batch, addresses):
                    self._fail(failures, address, f"threshold read failed: {exc}", owner)
                continue
            for i, (owner, address) in enumerate(zip(batch, addresses)):
                data = _account_data(accounts[i]) if i < len(accounts) else None
                if data is None:
                    self._fail(failures, address, "threshold record missing", owner)
                    continue
                try:
                    record = decode_threshold_record(data)
                except RecordDecodeError as exc:
                    self._fail(failures, address, f"threshold record: {exc}", owner)
                    continue
                thresholds[owner] = (record.ratio, address)
        return thresholds

    # ------------------------------------------------------------------
    # Single position
    # ------------------------------------------------------------------
    async def fetch_position(self, owner: Pubkey, denom: str = DEFAULT_DENOM) -> Optional[Position]:
        """Read one owner's three records; ``None`` if any of them does not exist."""
        debt_record, collateral_record, threshold_record = position_addresses(owner, denom, self.program_id)
        addresses = [debt_record, collateral_record, threshold_record]
        try:
            resp = await self._call(
                lambda: self.client.get_multiple_accounts(addresses, encoding="base64"),
                "position records",
            )
        except Exception as exc:
            raise SnapshotFetchFailure(f"position read failed for {owner}: {exc}") from exc
        raw = [_account_data(a) for a in (getattr(resp, "value", None) or [])]
        if len(raw) < 3 or any(r is None for r in raw):
            return None
        debt = decode_debt_record(raw[0])
        collateral = decode_collateral_record(raw[1])
        threshold = decode_threshold_record(raw[2])
        return Position(
            owner=owner,
            debt_amount=debt.amount,
            collateral_amount=collateral.amount,
            collateral_denom=collateral.denom,
            health_ratio=threshold.ratio,
            debt_record=debt_record,
            collateral_record=collateral_record,
            threshold_record=threshold_record,
        )


__all__ = ["PositionSnapshotFetcher", "denom_filter_bytes"]
