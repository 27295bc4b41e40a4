from solders.pubkey import Pubkey

# Program ids (devnet deployment)
PROTOCOL_PROGRAM_ID = Pubkey.from_string("HQbV7SKnWuWPHEci5eejsnJG7qwYuQkGzJHJ6nhLZhxk")
ORACLE_PROGRAM_ID   = Pubkey.from_string("8Fu4YnUkfmrGQ3PTVoPfsAGjQ6NistGsiKpBEkPhzA2K")
FEES_PROGRAM_ID     = Pubkey.from_string("FyBGDrxVAdTnwKeXFrhQR1UyyJhqbfQmZrXWqZuhYkAj")

TOKEN_PROGRAM            = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
SYSTEM_PROGRAM           = Pubkey.from_string("11111111111111111111111111111111")
ASSOCIATED_TOKEN_PROGRAM = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSVAR_CLOCK             = Pubkey.from_string("SysvarC1ock11111111111111111111111111111111")

WSOL_MINT           = Pubkey.from_string("So11111111111111111111111111111111111111112")
SOL_PYTH_PRICE_FEED = Pubkey.from_string("J83w4HKfqxwcq3BEMMkPFSppX3gqekLyLJBexebFVkix")

FEE_ADDRESS_1        = Pubkey.from_string("8Lv4UrYHTrzvg9jPVVGNmxWyMrMvrZnCQLWucBzfJyyR")
FEE_ADDRESS_2        = Pubkey.from_string("GcNwV1nA5bityjNYsWwPLHykpKuuhPzK1AQFBbrPopnX")
STABILITY_POOL_OWNER = Pubkey.from_string("5oMxbgjPWkBYRKbsh3yKrrEC5Ut8y3azHKc787YHY9Ar")

DEFAULT_RPC_URL = "https://api.devnet.solana.com"

# PDA seeds
SEED_USER_DEBT_AMOUNT          = b"user_debt_amount"
SEED_LIQUIDITY_THRESHOLD       = b"liquidity_threshold"
SEED_USER_COLLATERAL_AMOUNT    = b"user_collateral_amount"
SEED_STATE                     = b"state"
SEED_PROTOCOL_COLLATERAL_VAULT = b"protocol_collateral_vault"
SEED_TOTAL_COLLATERAL_AMOUNT   = b"total_collateral_amount"
SEED_PROTOCOL_STABLECOIN_VAULT = b"protocol_stablecoin_vault"
SEED_USER_STAKE_AMOUNT         = b"user_stake_amount"
SEED_USER_COLLATERAL_SNAPSHOT  = b"user_collateral_snapshot"
SEED_STABILITY_POOL_SNAPSHOT   = b"stability_pool_snapshot"

# Record discriminators = sha256("account:<Name>")[:8]
USER_DEBT_AMOUNT_DISCRIMINATOR       = bytes([102, 237, 238, 206, 72, 254, 116, 219])
LIQUIDITY_THRESHOLD_DISCRIMINATOR    = bytes([130, 0, 84, 160, 128, 62, 185, 75])
USER_COLLATERAL_AMOUNT_DISCRIMINATOR = bytes([26, 219, 87, 11, 62, 102, 67, 77])

# 8 discriminator + 32 owner + 8 amount + 8 padding
USER_DEBT_AMOUNT_SIZE = 56
# Offset of the length-prefixed denom inside a collateral record
COLLATERAL_DENOM_OFFSET = 8 + 32

# ICR values are micro-percent: 150% == 150_000_000
ICR_SCALE = 1_000_000
DEFAULT_LIQUIDATION_THRESHOLD = 110 * ICR_SCALE
MINIMUM_COLLATERAL_RATIO = 115 * ICR_SCALE

MAX_LIQUIDATION_BATCH_SIZE = 50
MAX_REDEMPTION_TARGETS = 3
DEFAULT_REDEMPTION_FEE_BPS = 500

MIN_LOAN_AMOUNT = 1_100_000_000_000_000
MIN_COLLATERAL_AMOUNT = 1_000_000
DEFAULT_DENOM = "SOL"

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
