from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from backend.core.logging import log
from backend.core.trove_core.accounts import ProtocolContext, prepare_instruction
from backend.core.trove_core.config import TroveConfig
from backend.core.trove_core.constants import (
    MAX_LIQUIDATION_BATCH_SIZE,
    MIN_COLLATERAL_AMOUNT,
    MIN_LOAN_AMOUNT,
    MINIMUM_COLLATERAL_RATIO,
)
from backend.core.trove_core.errors import BelowMinimum, RatioViolation
from backend.core.trove_core.fetcher import PositionSnapshotFetcher
from backend.core.trove_core.models import FetchResult, NeighborProof, Position, PreparedInstruction
from backend.core.trove_core.neighbors import (
    compute_health_ratio,
    find_neighbors,
    hypothetical_position,
    neighbor_accounts,
)
from backend.core.trove_core.operations import (
    AddCollateral,
    BorrowLoan,
    LiquidateTroves,
    OpenPosition,
    Redeem,
    RemoveCollateral,
    RepayLoan,
    Stake,
    Unstake,
    WithdrawLiquidationGains,
)
from backend.core.trove_core.rpc import connect as connect_rpc
from backend.core.trove_core.rpc import load_endpoints, new_client
from backend.core.trove_core.sorter import sort_positions
from backend.core.trove_core.targets import select_liquidatable, select_redemption_targets

SOURCE = "TroveCore"


def _check_loan(amount: int, what: str) -> None:
    if amount < MIN_LOAN_AMOUNT:
        raise BelowMinimum(
            "LoanAmountBelowMinimum",
            f"{what} {amount} is below the minimum loan of {MIN_LOAN_AMOUNT}",
        )


def _check_ratio(collateral_amount: int, debt_amount: int, price: int) -> None:
    ratio = compute_health_ratio(collateral_amount, debt_amount, price)
    if ratio < MINIMUM_COLLATERAL_RATIO:
        raise RatioViolation(
            "InvalidCollateralRatio",
            f"resulting ratio {ratio} is below the minimum of {MINIMUM_COLLATERAL_RATIO}",
        )


class TroveCore:
    """
    High-level entry point for preparing protocol instructions.

    Every ``prepare_*`` call that depends on the position ordering reads a
    fresh snapshot; nothing is cached between calls. Requests the program
    would reject for minimum amounts or ratio are refused before any
    instruction is built.
    """

    def __init__(
        self,
        fetcher: PositionSnapshotFetcher,
        context: ProtocolContext,
        config: Optional[TroveConfig] = None,
        *,
        skip_at_head: bool = False,
    ) -> None:
        self._fetcher = fetcher
        self._context = context
        self._config = config or TroveConfig()
        self._owned_client = None
        self.skip_at_head = skip_at_head

    @classmethod
    def from_config(cls, config: Optional[TroveConfig] = None, client=None) -> "TroveCore":
        """Wire a facade from configuration.

        Without ``client`` one is opened on the first configured endpoint and
        closed by :meth:`aclose`.
        """
        config = config or TroveConfig.from_env()
        owned = None
        if client is None:
            client = owned = new_client(load_endpoints(config)[0], config.commitment)
        core = cls(
            PositionSnapshotFetcher.from_config(config, client),
            ProtocolContext.from_config(config),
            config,
        )
        core._owned_client = owned
        return core

    @classmethod
    async def connect(cls, config: Optional[TroveConfig] = None) -> "TroveCore":
        """Like :meth:`from_config`, rotating through the endpoints until one answers."""
        config = config or TroveConfig.from_env()
        client = await connect_rpc(config)
        core = cls.from_config(config, client)
        core._owned_client = client
        return core

    async def aclose(self) -> None:
        if self._owned_client is not None:
            client, self._owned_client = self._owned_client, None
            await client.close()

    async def __aenter__(self) -> "TroveCore":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    @property
    def config(self) -> TroveConfig:
        return self._config

    @property
    def context(self) -> ProtocolContext:
        return self._context

    @property
    def fetcher(self) -> PositionSnapshotFetcher:
        return self._fetcher

    def _denom(self, denom: Optional[str]) -> str:
        return denom or self._config.denom

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    async def snapshot(self, denom: Optional[str] = None) -> Tuple[FetchResult, List[Position]]:
        result = await self._fetcher.fetch(self._denom(denom))
        if not result.complete:
            log.warning(
                f"snapshot incomplete: {len(result.failures)} positions unreadable",
                source=SOURCE,
            )
        return result, sort_positions(result.positions)

    async def neighbor_hints(
        self,
        owner: Pubkey,
        collateral_amount: int,
        debt_amount: int,
        price: int,
        denom: Optional[str] = None,
    ) -> Tuple[NeighborProof, List[Pubkey]]:
        denom = self._denom(denom)
        _, ordered = await self.snapshot(denom)
        target = hypothetical_position(
            owner, collateral_amount, debt_amount, price, denom, self._context.program_id
        )
        proof = find_neighbors(target, ordered)
        return proof, neighbor_accounts(proof, skip_at_head=self.skip_at_head)

    async def _current_position(self, owner: Pubkey, denom: str) -> Position:
        position = await self._fetcher.fetch_position(owner, denom)
        if position is None or not position.is_live:
            raise ValueError(f"No open {denom} position for {owner}")
        return position

    # ------------------------------------------------------------------
    # Position lifecycle
    # ------------------------------------------------------------------
    async def prepare_open(
        self,
        user: Pubkey,
        collateral_amount: int,
        loan_amount: int,
        price: int,
        denom: Optional[str] = None,
    ) -> PreparedInstruction:
        denom = self._denom(denom)
        _check_loan(loan_amount, "loan")
        if collateral_amount < MIN_COLLATERAL_AMOUNT:
            raise BelowMinimum(
                "CollateralBelowMinimum",
                f"collateral {collateral_amount} is below the minimum of {MIN_COLLATERAL_AMOUNT}",
            )
        _check_ratio(collateral_amount, loan_amount, price)
        _, hints = await self.neighbor_hints(user, collateral_amount, loan_amount, price, denom)
        op = OpenPosition(loan_amount=loan_amount, collateral_amount=collateral_amount, denom=denom)
        return prepare_instruction(op, self._context, user, neighbors=hints)

    async def _prepare_adjustment(
        self,
        op_cls,
        user: Pubkey,
        amount: int,
        price: int,
        denom: Optional[str],
        collateral_delta: int = 0,
        debt_delta: int = 0,
    ) -> PreparedInstruction:
        denom = self._denom(denom)
        current = await self._current_position(user, denom)
        collateral = current.collateral_amount + collateral_delta
        debt = current.debt_amount + debt_delta
        if collateral < 0 or debt < 0:
            raise BelowMinimum(
                "InvalidAmount",
                f"{op_cls.NAME} of {amount} exceeds the position "
                f"({current.collateral_amount} collateral, {current.debt_amount} debt)",
            )
        if debt_delta > 0:
            _check_loan(amount, "borrow")
        if debt == 0:
            # full repayment removes the position from the sorted list
            hints: List[Pubkey] = []
        else:
            if debt_delta < 0:
                _check_loan(debt, "remaining debt")
            if collateral_delta < 0 or debt_delta > 0:
                _check_ratio(collateral, debt, price)
            _, hints = await self.neighbor_hints(user, collateral, debt, price, denom)
        return prepare_instruction(op_cls(amount=amount, denom=denom), self._context, user, neighbors=hints)

    async def prepare_add_collateral(self, user: Pubkey, amount: int, price: int, denom: Optional[str] = None) -> PreparedInstruction:
        return await self._prepare_adjustment(AddCollateral, user, amount, price, denom, collateral_delta=amount)

    async def prepare_remove_collateral(self, user: Pubkey, amount: int, price: int, denom: Optional[str] = None) -> PreparedInstruction:
        return await self._prepare_adjustment(RemoveCollateral, user, amount, price, denom, collateral_delta=-amount)

    async def prepare_borrow(self, user: Pubkey, amount: int, price: int, denom: Optional[str] = None) -> PreparedInstruction:
        return await self._prepare_adjustment(BorrowLoan, user, amount, price, denom, debt_delta=amount)

    async def prepare_repay(self, user: Pubkey, amount: int, price: int, denom: Optional[str] = None) -> PreparedInstruction:
        return await self._prepare_adjustment(RepayLoan, user, amount, price, denom, debt_delta=-amount)

    # ------------------------------------------------------------------
    # Stability pool
    # ------------------------------------------------------------------
    async def prepare_stake(self, user: Pubkey, amount: int) -> PreparedInstruction:
        return prepare_instruction(Stake(amount=amount), self._context, user)

    async def prepare_unstake(self, user: Pubkey, amount: int) -> PreparedInstruction:
        return prepare_instruction(Unstake(amount=amount), self._context, user)

    async def prepare_withdraw_gains(self, user: Pubkey, denom: Optional[str] = None) -> PreparedInstruction:
        return prepare_instruction(WithdrawLiquidationGains(denom=self._denom(denom)), self._context, user)

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------
    async def prepare_liquidation(
        self,
        liquidator: Pubkey,
        denom: Optional[str] = None,
        owners: Optional[Sequence[Pubkey]] = None,
    ) -> PreparedInstruction:
        """Liquidate ``owners``, or every position below the threshold in a fresh snapshot."""
        denom = self._denom(denom)
        if owners is None:
            _, ordered = await self.snapshot(denom)
            owners = [p.owner for p in select_liquidatable(ordered)]
        owners = list(owners)
        if len(owners) > MAX_LIQUIDATION_BATCH_SIZE:
            raise ValueError(
                f"Liquidation batch of {len(owners)} exceeds the maximum of {MAX_LIQUIDATION_BATCH_SIZE}"
            )
        if not owners:
            raise ValueError(f"No liquidatable {denom} positions")
        log.info(f"liquidating {len(owners)} {denom} positions", source=SOURCE)
        return prepare_instruction(LiquidateTroves(owners=tuple(owners), denom=denom), self._context, liquidator)

    async def prepare_redeem(self, user: Pubkey, amount: int, denom: Optional[str] = None) -> PreparedInstruction:
        denom = self._denom(denom)
        _, ordered = await self.snapshot(denom)
        targets = select_redemption_targets(ordered, amount)
        return prepare_instruction(
            Redeem(amount=amount, denom=denom),
            self._context,
            user,
            targets=[t.owner for t in targets],
        )


__all__ = ["TroveCore"]
