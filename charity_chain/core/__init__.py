"""
Ledger Core Components

Balances, time and signed transactions: everything the charity program
needs from its host environment.
"""

from .accounts import Account, AccountRegistry, Transfer, derive_address, is_zero_pubkey, ZERO_PUBKEY
from .clock import SystemClock, ManualClock
from .transactions import (
    CharityTransaction,
    Instruction,
    TransactionReceipt,
    sign_transaction,
    generate_keypair,
)

__all__ = [
    'Account', 'AccountRegistry', 'Transfer', 'derive_address', 'is_zero_pubkey', 'ZERO_PUBKEY',
    'SystemClock', 'ManualClock',
    'CharityTransaction', 'Instruction', 'TransactionReceipt',
    'sign_transaction', 'generate_keypair',
]
