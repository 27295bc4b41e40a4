from solders.pubkey import Pubkey

from backend.core.trove_core.constants import ASSOCIATED_TOKEN_PROGRAM, PROTOCOL_PROGRAM_ID, TOKEN_PROGRAM, WSOL_MINT
from backend.core.trove_core.pdas import (
    derive_ata,
    derive_user_collateral_amount,
    derive_user_debt_amount,
    position_addresses,
)


def test_debt_record_seeds(key):
    owner = key(1)
    expected, _ = Pubkey.find_program_address([b"user_debt_amount", bytes(owner)], PROTOCOL_PROGRAM_ID)
    assert derive_user_debt_amount(owner) == expected


def test_collateral_record_depends_on_denom(key):
    owner = key(1)
    assert derive_user_collateral_amount(owner, "SOL") != derive_user_collateral_amount(owner, "ETH")


def test_ata(key):
    owner = key(2)
    expected, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM), bytes(WSOL_MINT)], ASSOCIATED_TOKEN_PROGRAM
    )
    assert derive_ata(owner, WSOL_MINT) == expected


def test_position_addresses_distinct(key):
    debt, coll, thr = position_addresses(key(3), "SOL")
    assert len({debt, coll, thr}) == 3
