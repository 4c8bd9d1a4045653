"""
Charity Program

The donation-program ledger and the runtime that feeds it signed calls:
- CharityProgram: programs, donations, escrow, completion and refunds
- CharityRuntime: signature checks, caller identity, receipts
- EventBus: projectCompleted / projectCanceled notifications
"""

from .charity import CharityProgram, Program, ProgramRequest, ProgramStatus, Donation, CHARITY_PROGRAM_ID
from .errors import ProgramError
from .events import EventBus, EventType, ProgramEvent
from .runtime import CharityRuntime, RuntimeStats

__all__ = [
    'CharityProgram',
    'Program',
    'ProgramRequest',
    'ProgramStatus',
    'Donation',
    'CHARITY_PROGRAM_ID',
    'ProgramError',
    'EventBus',
    'EventType',
    'ProgramEvent',
    'CharityRuntime',
    'RuntimeStats',
]
