"""Ordered account-reference lists for every protocol instruction.

The core account order of each builder mirrors the program's ``Accounts``
struct for that instruction; the program matches accounts by position, so the
order here is load-bearing. Variable accounts follow the core list:

* neighbor proofs (read-only) for position-changing instructions
* four writable accounts per target for ``liquidate_troves`` and ``redeem``:
  debt record, collateral record, threshold record, collateral token account
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from backend.core.trove_core.constants import (
    FEE_ADDRESS_1,
    FEE_ADDRESS_2,
    FEES_PROGRAM_ID,
    ORACLE_PROGRAM_ID,
    PROTOCOL_PROGRAM_ID,
    SOL_PYTH_PRICE_FEED,
    STABILITY_POOL_OWNER,
    SYSTEM_PROGRAM,
    SYSVAR_CLOCK,
    TOKEN_PROGRAM,
    WSOL_MINT,
)
from backend.core.trove_core.config import ConfigError
from backend.core.trove_core.models import AccountRef, PreparedInstruction
from backend.core.trove_core.operations import (
    AddCollateral,
    BorrowLoan,
    LiquidateTroves,
    OpenPosition,
    Operation,
    Redeem,
    RemoveCollateral,
    RepayLoan,
    Stake,
    Unstake,
    WithdrawLiquidationGains,
    encode_operation,
)
from backend.core.trove_core.pdas import (
    derive_ata,
    derive_liquidity_threshold,
    derive_protocol_collateral_vault,
    derive_protocol_stablecoin_vault,
    derive_stability_pool_snapshot,
    derive_state,
    derive_total_collateral_amount,
    derive_user_collateral_amount,
    derive_user_collateral_snapshot,
    derive_user_debt_amount,
    derive_user_stake_amount,
)

ACCOUNTS_PER_TARGET = 4


@dataclass(frozen=True)
class ProtocolContext:
    """Deployment addresses shared by every instruction of one protocol instance."""

    oracle_state: Pubkey
    fees_state: Pubkey
    stablecoin_mint: Pubkey
    collateral_mint: Pubkey = WSOL_MINT
    program_id: Pubkey = PROTOCOL_PROGRAM_ID
    oracle_program: Pubkey = ORACLE_PROGRAM_ID
    fees_program: Pubkey = FEES_PROGRAM_ID
    price_feed: Pubkey = SOL_PYTH_PRICE_FEED
    stability_pool_owner: Pubkey = STABILITY_POOL_OWNER
    fee_address_1: Pubkey = FEE_ADDRESS_1
    fee_address_2: Pubkey = FEE_ADDRESS_2

    @classmethod
    def from_config(cls, cfg) -> "ProtocolContext":
        """Build from a :class:`TroveConfig`; raises ``ConfigError`` when a deployment address is unset."""
        missing = [
            name
            for name in ("oracle_state", "fees_state", "stablecoin_mint")
            if not getattr(cfg, name, None)
        ]
        if missing:
            raise ConfigError(f"Missing protocol addresses: {', '.join(missing)}")
        return cls(
            oracle_state=Pubkey.from_string(cfg.oracle_state),
            fees_state=Pubkey.from_string(cfg.fees_state),
            stablecoin_mint=Pubkey.from_string(cfg.stablecoin_mint),
            collateral_mint=Pubkey.from_string(cfg.collateral_mint),
            program_id=Pubkey.from_string(cfg.program_id),
            oracle_program=Pubkey.from_string(cfg.oracle_program_id),
            fees_program=Pubkey.from_string(cfg.fees_program_id),
            price_feed=Pubkey.from_string(cfg.price_feed),
        )

    # Derived protocol addresses ------------------------------------------------
    def state(self) -> Pubkey:
        return derive_state(self.program_id)

    def stablecoin_vault(self) -> Pubkey:
        return derive_protocol_stablecoin_vault(self.program_id)

    def collateral_vault(self, denom: str) -> Pubkey:
        return derive_protocol_collateral_vault(denom, self.program_id)

    def total_collateral(self, denom: str) -> Pubkey:
        return derive_total_collateral_amount(denom, self.program_id)

    def fee_token_accounts(self) -> Tuple[Pubkey, Pubkey, Pubkey]:
        """Stablecoin token accounts of (stability pool, fee address 1, fee address 2)."""
        return (
            derive_ata(self.stability_pool_owner, self.stablecoin_mint),
            derive_ata(self.fee_address_1, self.stablecoin_mint),
            derive_ata(self.fee_address_2, self.stablecoin_mint),
        )


def _s(address: Pubkey) -> AccountRef:
    return AccountRef(address, is_signer=True, is_writable=True)


def _w(address: Pubkey) -> AccountRef:
    return AccountRef(address, is_signer=False, is_writable=True)


def _r(address: Pubkey) -> AccountRef:
    return AccountRef(address, is_signer=False, is_writable=False)


# ---------------------------------------------------------------------------
# Core account lists
# ---------------------------------------------------------------------------

def open_position_accounts(ctx: ProtocolContext, user: Pubkey, denom: str) -> List[AccountRef]:
    pool_ata, fee1_ata, fee2_ata = ctx.fee_token_accounts()
    return [
        _s(user),
        _w(derive_user_debt_amount(user, ctx.program_id)),
        _w(derive_liquidity_threshold(user, ctx.program_id)),
        _w(derive_user_collateral_amount(user, denom, ctx.program_id)),
        _w(derive_ata(user, ctx.collateral_mint)),
        _r(ctx.collateral_mint),
        _w(ctx.collateral_vault(denom)),
        _w(ctx.total_collateral(denom)),
        _w(ctx.state()),
        _w(derive_ata(user, ctx.stablecoin_mint)),
        _w(ctx.stablecoin_vault()),
        _w(ctx.stablecoin_mint),
        _r(ctx.oracle_program),
        _w(ctx.oracle_state),
        _r(ctx.price_feed),
        _r(SYSVAR_CLOCK),
        _r(ctx.fees_program),
        _w(ctx.fees_state),
        _w(pool_ata),
        _w(fee1_ata),
        _w(fee2_ata),
        _r(TOKEN_PROGRAM),
        _r(SYSTEM_PROGRAM),
    ]


def collateral_accounts(ctx: ProtocolContext, user: Pubkey, denom: str) -> List[AccountRef]:
    """add_collateral and remove_collateral share one layout."""
    return [
        _s(user),
        _w(derive_user_debt_amount(user, ctx.program_id)),
        _w(derive_user_collateral_amount(user, denom, ctx.program_id)),
        _w(derive_liquidity_threshold(user, ctx.program_id)),
        _w(ctx.state()),
        _w(derive_ata(user, ctx.collateral_mint)),
        _r(ctx.collateral_mint),
        _w(ctx.collateral_vault(denom)),
        _w(ctx.total_collateral(denom)),
        _r(ctx.oracle_program),
        _w(ctx.oracle_state),
        _r(ctx.price_feed),
        _r(SYSVAR_CLOCK),
        _r(TOKEN_PROGRAM),
        _r(SYSTEM_PROGRAM),
    ]


def borrow_accounts(ctx: ProtocolContext, user: Pubkey, denom: str) -> List[AccountRef]:
    pool_ata, fee1_ata, fee2_ata = ctx.fee_token_accounts()
    return [
        _s(user),
        _w(derive_user_debt_amount(user, ctx.program_id)),
        _w(derive_liquidity_threshold(user, ctx.program_id)),
        _w(ctx.state()),
        _w(derive_ata(user, ctx.stablecoin_mint)),
        _w(ctx.stablecoin_mint),
        _w(ctx.stablecoin_vault()),
        _w(derive_user_collateral_amount(user, denom, ctx.program_id)),
        _w(derive_ata(user, ctx.collateral_mint)),
        _r(ctx.collateral_mint),
        _w(ctx.collateral_vault(denom)),
        _w(ctx.total_collateral(denom)),
        _w(ctx.oracle_program),
        _w(ctx.oracle_state),
        _r(ctx.price_feed),
        _r(SYSVAR_CLOCK),
        _r(ctx.fees_program),
        _w(ctx.fees_state),
        _w(pool_ata),
        _w(fee1_ata),
        _w(fee2_ata),
        _r(TOKEN_PROGRAM),
        _r(SYSTEM_PROGRAM),
    ]


def repay_accounts(ctx: ProtocolContext, user: Pubkey, denom: str) -> List[AccountRef]:
    return [
        _s(user),
        _w(derive_user_debt_amount(user, ctx.program_id)),
        _w(derive_user_collateral_amount(user, denom, ctx.program_id)),
        _w(derive_liquidity_threshold(user, ctx.program_id)),
        _w(ctx.state()),
        _w(derive_ata(user, ctx.stablecoin_mint)),
        _w(derive_ata(user, ctx.collateral_mint)),
        _r(ctx.collateral_mint),
        _w(ctx.collateral_vault(denom)),
        _w(ctx.stablecoin_mint),
        _w(ctx.total_collateral(denom)),
        _r(ctx.oracle_program),
        _w(ctx.oracle_state),
        _r(ctx.price_feed),
        _r(SYSVAR_CLOCK),
        _r(TOKEN_PROGRAM),
        _r(SYSTEM_PROGRAM),
    ]


def stake_accounts(ctx: ProtocolContext, user: Pubkey) -> List[AccountRef]:
    return [
        _s(user),
        _w(derive_user_stake_amount(user, ctx.program_id)),
        _w(ctx.state()),
        _w(derive_ata(user, ctx.stablecoin_mint)),
        _w(ctx.stablecoin_vault()),
        _r(ctx.stablecoin_mint),
        _r(TOKEN_PROGRAM),
        _r(SYSTEM_PROGRAM),
    ]


def unstake_accounts(ctx: ProtocolContext, user: Pubkey) -> List[AccountRef]:
    # unstake takes no system program
    return stake_accounts(ctx, user)[:-1]


def liquidate_accounts(ctx: ProtocolContext, liquidator: Pubkey, denom: str) -> List[AccountRef]:
    return [
        _s(liquidator),
        _w(ctx.state()),
        _w(ctx.stablecoin_mint),
        _w(ctx.stablecoin_vault()),
        _w(ctx.collateral_vault(denom)),
        _w(ctx.total_collateral(denom)),
        _w(ctx.oracle_program),
        _w(ctx.oracle_state),
        _r(ctx.price_feed),
        _r(SYSVAR_CLOCK),
        _r(TOKEN_PROGRAM),
        _r(SYSTEM_PROGRAM),
    ]


def redeem_accounts(ctx: ProtocolContext, user: Pubkey, denom: str) -> List[AccountRef]:
    pool_ata, fee1_ata, fee2_ata = ctx.fee_token_accounts()
    return [
        _s(user),
        _w(ctx.state()),
        _w(derive_user_debt_amount(user, ctx.program_id)),
        _w(derive_liquidity_threshold(user, ctx.program_id)),
        _w(derive_ata(user, ctx.stablecoin_mint)),
        _w(derive_user_collateral_amount(user, denom, ctx.program_id)),
        _w(derive_ata(user, ctx.collateral_mint)),
        _w(ctx.stablecoin_vault()),
        _w(ctx.collateral_vault(denom)),
        _w(ctx.stablecoin_mint),
        _w(ctx.total_collateral(denom)),
        _w(ctx.oracle_program),
        _w(ctx.oracle_state),
        _r(ctx.fees_program),
        _w(ctx.fees_state),
        _w(pool_ata),
        _w(fee1_ata),
        _w(fee2_ata),
        _r(TOKEN_PROGRAM),
    ]


def withdraw_gains_accounts(ctx: ProtocolContext, user: Pubkey, denom: str) -> List[AccountRef]:
    return [
        _s(user),
        _w(derive_user_stake_amount(user, ctx.program_id)),
        _w(derive_user_collateral_snapshot(user, denom, ctx.program_id)),
        _w(derive_stability_pool_snapshot(denom, ctx.program_id)),
        _w(ctx.state()),
        _w(derive_ata(user, ctx.collateral_mint)),
        _w(ctx.collateral_vault(denom)),
        _w(ctx.total_collateral(denom)),
        _r(TOKEN_PROGRAM),
        _r(SYSTEM_PROGRAM),
    ]


# ---------------------------------------------------------------------------
# Variable accounts
# ---------------------------------------------------------------------------

def neighbor_refs(neighbors: Sequence[Pubkey]) -> List[AccountRef]:
    return [_r(addr) for addr in neighbors]


def target_refs(ctx: ProtocolContext, owners: Sequence[Pubkey], denom: str) -> List[AccountRef]:
    refs: List[AccountRef] = []
    for owner in owners:
        refs.extend(
            [
                _w(derive_user_debt_amount(owner, ctx.program_id)),
                _w(derive_user_collateral_amount(owner, denom, ctx.program_id)),
                _w(derive_liquidity_threshold(owner, ctx.program_id)),
                _w(derive_ata(owner, ctx.collateral_mint)),
            ]
        )
    return refs


_POSITION_BUILDERS: Dict[type, Callable[[ProtocolContext, Pubkey, str], List[AccountRef]]] = {
    OpenPosition: open_position_accounts,
    AddCollateral: collateral_accounts,
    RemoveCollateral: collateral_accounts,
    BorrowLoan: borrow_accounts,
    RepayLoan: repay_accounts,
}


def assemble_accounts(
    op: Operation,
    ctx: ProtocolContext,
    signer: Pubkey,
    neighbors: Sequence[Pubkey] = (),
    targets: Sequence[Pubkey] = (),
) -> Tuple[AccountRef, ...]:
    """Return the full ordered account list for ``op``.

    ``neighbors`` are accepted by position-changing operations only and
    ``targets`` by ``redeem`` only; liquidation targets come from the
    operation's own ``owners`` so payload and account groups stay aligned.
    """
    kind = type(op)
    neighbors = list(neighbors)
    targets = list(targets)

    if kind in _POSITION_BUILDERS:
        _reject_extra(op, targets=targets)
        refs = _POSITION_BUILDERS[kind](ctx, signer, op.denom) + neighbor_refs(neighbors)
    elif kind is Stake:
        _reject_extra(op, neighbors=neighbors, targets=targets)
        refs = stake_accounts(ctx, signer)
    elif kind is Unstake:
        _reject_extra(op, neighbors=neighbors, targets=targets)
        refs = unstake_accounts(ctx, signer)
    elif kind is LiquidateTroves:
        _reject_extra(op, neighbors=neighbors)
        if targets and [bytes(t) for t in targets] != [bytes(o) for o in op.owners]:
            raise ValueError("liquidate_troves targets must match the encoded owners")
        refs = liquidate_accounts(ctx, signer, op.denom) + target_refs(ctx, op.owners, op.denom)
    elif kind is Redeem:
        _reject_extra(op, neighbors=neighbors)
        refs = redeem_accounts(ctx, signer, op.denom) + target_refs(ctx, targets, op.denom)
    elif kind is WithdrawLiquidationGains:
        _reject_extra(op, neighbors=neighbors, targets=targets)
        refs = withdraw_gains_accounts(ctx, signer, op.denom)
    else:
        raise TypeError(f"Unsupported operation: {kind.__name__}")
    return tuple(refs)


def _reject_extra(op: Operation, neighbors: Optional[list] = None, targets: Optional[list] = None) -> None:
    if neighbors:
        raise ValueError(f"{op.NAME} does not take neighbor accounts")
    if targets:
        raise ValueError(f"{op.NAME} does not take target accounts")


def prepare_instruction(
    op: Operation,
    ctx: ProtocolContext,
    signer: Pubkey,
    neighbors: Sequence[Pubkey] = (),
    targets: Sequence[Pubkey] = (),
) -> PreparedInstruction:
    """Encode ``op`` and assemble its accounts into one inspectable value."""
    data = encode_operation(op)
    accounts = assemble_accounts(op, ctx, signer, neighbors=neighbors, targets=targets)
    return PreparedInstruction(operation=op.NAME, program_id=ctx.program_id, data=data, accounts=accounts)


__all__ = [
    "ACCOUNTS_PER_TARGET",
    "ProtocolContext",
    "open_position_accounts",
    "collateral_accounts",
    "borrow_accounts",
    "repay_accounts",
    "stake_accounts",
    "unstake_accounts",
    "liquidate_accounts",
    "redeem_accounts",
    "withdraw_gains_accounts",
    "neighbor_refs",
    "target_refs",
    "assemble_accounts",
    "prepare_instruction",
]
