from __future__ import annotations

from typing import List, Tuple

from solders.pubkey import Pubkey

from backend.core.trove_core.constants import (
    ASSOCIATED_TOKEN_PROGRAM,
    PROTOCOL_PROGRAM_ID,
    SEED_LIQUIDITY_THRESHOLD,
    SEED_PROTOCOL_COLLATERAL_VAULT,
    SEED_PROTOCOL_STABLECOIN_VAULT,
    SEED_STABILITY_POOL_SNAPSHOT,
    SEED_STATE,
    SEED_TOTAL_COLLATERAL_AMOUNT,
    SEED_USER_COLLATERAL_AMOUNT,
    SEED_USER_COLLATERAL_SNAPSHOT,
    SEED_USER_DEBT_AMOUNT,
    SEED_USER_STAKE_AMOUNT,
    TOKEN_PROGRAM,
)

__all__ = [
    "find_program_address",
    "derive_user_debt_amount",
    "derive_liquidity_threshold",
    "derive_user_collateral_amount",
    "derive_state",
    "derive_protocol_collateral_vault",
    "derive_total_collateral_amount",
    "derive_protocol_stablecoin_vault",
    "derive_user_stake_amount",
    "derive_user_collateral_snapshot",
    "derive_stability_pool_snapshot",
    "derive_ata",
    "position_addresses",
]

# ---------------------------------------------------------------------------
# Core helper
# ---------------------------------------------------------------------------

def find_program_address(seeds: List[bytes], program_id: Pubkey) -> Pubkey:
    pda, _ = Pubkey.find_program_address(seeds, program_id)
    return pda

# ---------------------------------------------------------------------------
# Per-user records
# ---------------------------------------------------------------------------

def derive_user_debt_amount(owner: Pubkey, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_USER_DEBT_AMOUNT, bytes(owner)], program_id)

def derive_liquidity_threshold(owner: Pubkey, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_LIQUIDITY_THRESHOLD, bytes(owner)], program_id)

def derive_user_collateral_amount(owner: Pubkey, denom: str, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address(
        [SEED_USER_COLLATERAL_AMOUNT, bytes(owner), denom.encode("utf-8")],
        program_id,
    )

def derive_user_stake_amount(owner: Pubkey, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_USER_STAKE_AMOUNT, bytes(owner)], program_id)

def derive_user_collateral_snapshot(owner: Pubkey, denom: str, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address(
        [SEED_USER_COLLATERAL_SNAPSHOT, bytes(owner), denom.encode("utf-8")],
        program_id,
    )

def position_addresses(
    owner: Pubkey,
    denom: str,
    program_id: Pubkey = PROTOCOL_PROGRAM_ID,
) -> Tuple[Pubkey, Pubkey, Pubkey]:
    """Return the (debt, collateral, threshold) record addresses of one position."""
    return (
        derive_user_debt_amount(owner, program_id),
        derive_user_collateral_amount(owner, denom, program_id),
        derive_liquidity_threshold(owner, program_id),
    )

# ---------------------------------------------------------------------------
# Protocol-level records
# ---------------------------------------------------------------------------

def derive_state(program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_STATE], program_id)

def derive_protocol_collateral_vault(denom: str, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_PROTOCOL_COLLATERAL_VAULT, denom.encode("utf-8")], program_id)

def derive_total_collateral_amount(denom: str, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_TOTAL_COLLATERAL_AMOUNT, denom.encode("utf-8")], program_id)

def derive_protocol_stablecoin_vault(program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_PROTOCOL_STABLECOIN_VAULT], program_id)

def derive_stability_pool_snapshot(denom: str, program_id: Pubkey = PROTOCOL_PROGRAM_ID) -> Pubkey:
    return find_program_address([SEED_STABILITY_POOL_SNAPSHOT, denom.encode("utf-8")], program_id)

# ---------------------------------------------------------------------------
# Token accounts
# ---------------------------------------------------------------------------

def derive_ata(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM,
    )
