"""
Charity Chain

A donation-program ledger. Receivers open fundraising programs, donors
send lamports into escrow, and each program ends exactly once: completed
(escrow released to the receiver) or cancelled (every donor refunded).

Key Features:
- One active program per receiver, full history kept
- Escrow held by a program-owned account until resolution
- All-or-nothing refunds
- Signed transactions identify the caller
- projectCompleted / projectCanceled events
"""

__version__ = "1.0.0"

from .config import LedgerConfig
from .core import *
from .programs import *
from .programs import errors

__all__ = [
    'LedgerConfig',
    'AccountRegistry',
    'ManualClock',
    'SystemClock',
    'CharityTransaction',
    'generate_keypair',
    'CharityProgram',
    'CharityRuntime',
    'Program',
    'ProgramRequest',
    'ProgramStatus',
    'Donation',
    'ProgramError',
    'EventType',
    'ProgramEvent',
    'errors',
]
