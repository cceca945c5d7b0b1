"""
Ledger constants shared across the SDK.

These must match the deployed Counter contract.
"""

MAX_COUNT = 1_000_000
MIN_COUNT = 0

GAS_LIMIT = 300_000

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Well-known key for the persisted session descriptor
SESSION_STORAGE_KEY = "counter_wallet_session"
