"""Boundary submitter: simulate, classify, send and confirm prepared instructions."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.compute_budget import set_compute_unit_limit
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from backend.core.logging import log
from backend.core.trove_core.errors import ProgramRejection, StaleProofRejection, classify_rejection
from backend.core.trove_core.models import PreparedInstruction

SOURCE = "TransactionSubmitter"


def parse_error_code(logs: Sequence[str]) -> Tuple[Optional[str], Optional[str]]:
    """Best-effort scrape of Anchor error code + descriptive line from logs."""
    code = None
    msg = None
    for line in logs:
        if "Error Code:" in line:
            # "Program log: AnchorError ... Error Code: InvalidList. Error Number: 6012. Error Message: ..."
            parts = line.split("Error Code:", 1)[-1].strip()
            code = parts.split(".")[0].strip()
        if "Error Message:" in line:
            msg = line.split("Error Message:", 1)[-1].strip()
    return code, msg


def _preflight_logs(exc: RPCException) -> List[str]:
    payload = exc.args[0] if exc.args else None
    data = getattr(payload, "data", None)
    return list(getattr(data, "logs", None) or [])


class TransactionSubmitter:
    def __init__(
        self,
        client,
        payer: Keypair,
        *,
        compute_unit_limit: int = 0,
        simulate_first: bool = True,
    ) -> None:
        self.client = client
        self.payer = payer
        self.compute_unit_limit = compute_unit_limit
        self.simulate_first = simulate_first

    @classmethod
    def from_config(cls, cfg, client, payer: Keypair, *, simulate_first: bool = True) -> "TransactionSubmitter":
        return cls(client, payer, compute_unit_limit=cfg.compute_unit_limit, simulate_first=simulate_first)

    def instructions(self, prepared: PreparedInstruction) -> List[Instruction]:
        ixs: List[Instruction] = []
        if self.compute_unit_limit:
            ixs.append(set_compute_unit_limit(self.compute_unit_limit))
        ixs.append(prepared.to_instruction())
        return ixs

    def build_transaction(self, prepared: PreparedInstruction, blockhash: Hash) -> VersionedTransaction:
        msg = MessageV0.try_compile(
            payer=self.payer.pubkey(),
            instructions=self.instructions(prepared),
            address_lookup_table_accounts=[],
            recent_blockhash=blockhash,
        )
        return VersionedTransaction(msg, [self.payer])

    async def _fresh_transaction(self, prepared: PreparedInstruction) -> VersionedTransaction:
        bh = await self.client.get_latest_blockhash()
        return self.build_transaction(prepared, bh.value.blockhash)

    def _rejection(self, logs: Sequence[str], err: Any = None) -> ProgramRejection:
        code, msg = parse_error_code(logs)
        return classify_rejection(code, msg or (str(err) if err is not None else None), logs)

    async def simulate(self, prepared: PreparedInstruction) -> List[str]:
        """Dry-run ``prepared``; return the program logs or raise the classified rejection."""
        tx = await self._fresh_transaction(prepared)
        sim = await self.client.simulate_transaction(tx, sig_verify=False)
        val = getattr(sim, "value", None)
        logs = list(getattr(val, "logs", None) or [])
        err = getattr(val, "err", None)
        if err is not None:
            rejection = self._rejection(logs, err)
            log.warning(
                f"{prepared.operation} simulation rejected: {rejection}",
                source=SOURCE,
                payload={"code": rejection.code},
            )
            raise rejection
        log.debug(f"{prepared.operation} simulation ok ({len(logs)} log lines)", source=SOURCE)
        return logs

    async def submit(self, prepared: PreparedInstruction) -> str:
        """Simulate (optional), sign, send and confirm; returns the signature string."""
        if self.simulate_first:
            await self.simulate(prepared)
        tx = await self._fresh_transaction(prepared)
        try:
            resp = await self.client.send_raw_transaction(bytes(tx), opts=TxOpts(skip_preflight=False))
        except RPCException as exc:
            logs = _preflight_logs(exc)
            code, _ = parse_error_code(logs)
            if code is None:
                raise
            rejection = self._rejection(logs, exc)
            log.warning(f"{prepared.operation} rejected at send: {rejection}", source=SOURCE)
            raise rejection from exc
        sig = resp.value
        await self.client.confirm_transaction(sig)
        log.info(f"{prepared.operation} confirmed", source=SOURCE, payload=str(sig))
        return str(sig)

    async def submit_with_refresh(self, build: Callable[[], Awaitable[PreparedInstruction]]) -> str:
        """Build and submit; on a stale ordering proof rebuild once from a fresh snapshot.

        Business-rule rejections and encoding errors propagate unchanged.
        """
        prepared = await build()
        try:
            return await self.submit(prepared)
        except StaleProofRejection as exc:
            log.warning(f"{prepared.operation} neighbor proof stale ({exc.code}); rebuilding once", source=SOURCE)
        prepared = await build()
        return await self.submit(prepared)


__all__ = ["TransactionSubmitter", "parse_error_code"]
