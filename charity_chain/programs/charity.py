"""
Charity Program

A donation-program ledger. A receiver registers a fundraising program,
donors send lamports to it, and the receiver resolves it exactly once:

- complete_program: escrowed donations are released to the receiver
- cancel_program: every donation is refunded to its donor

Donations are held in a program-owned escrow account until resolution,
so a cancelled program can always pay its donors back. Every mutating
call is atomic: it either commits completely or raises a ProgramError
and leaves no trace.
"""

import hashlib
import logging
import math
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from ..config import LedgerConfig
from ..core.accounts import AccountRegistry, Transfer, derive_address, is_zero_pubkey
from ..core.clock import SystemClock
from .errors import (
    DeadlineExpired,
    DeadlineNotFuture,
    DonationTooSmall,
    InsufficientFunds,
    InvalidDonor,
    InvalidReceiver,
    MissingDescription,
    MissingTitle,
    ProgramError,
    ProgramInProgress,
    ProgramInvalid,
    ProgramNotFound,
    TransferFailed,
)
from .events import EventBus, EventType, ProgramEvent

logger = logging.getLogger(__name__)

CHARITY_PROGRAM_ID = hashlib.sha256(b"charity_program").hexdigest()


class ProgramStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Donation(NamedTuple):
    """One (donor, amount) entry. Compares equal to a plain tuple."""
    donor: str
    amount: int


@dataclass(frozen=True)
class ProgramRequest:
    """The five fields needed to open a program."""
    receiver: str
    title: str
    description: str
    image: str
    deadline: float


@dataclass
class Program:
    """
    One fundraising campaign.

    `active` is derived from `status`, and status only ever leaves ACTIVE,
    so a terminated program can never become active again.
    """
    index: int                 # Position in creation order
    receiver: str
    title: str
    description: str
    image: str
    deadline: float
    created_at: float
    status: ProgramStatus = ProgramStatus.ACTIVE
    collected_amount: int = 0
    escrow_balance: int = 0
    donations: List[Donation] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return self.status is ProgramStatus.ACTIVE

    def is_expired(self, now: float) -> bool:
        return now > self.deadline

    def snapshot(self) -> 'Program':
        """Detached copy safe to hand to callers."""
        return replace(self, donations=list(self.donations))

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "receiver": self.receiver,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "deadline": self.deadline,
            "created_at": self.created_at,
            "active": self.active,
            "status": self.status.value,
            "collected_amount": self.collected_amount,
            "escrow_balance": self.escrow_balance,
            "donations": [{"donor": d.donor, "amount": d.amount} for d in self.donations],
        }


class CharityProgram:
    """
    The program ledger.

    Programs are kept in creation order; a separate index maps each
    receiver to its most recent program. One re-entrant lock serialises
    every call, so concurrent callers always observe whole transactions.
    """

    def __init__(self, accounts: AccountRegistry = None, clock=None,
                 config: LedgerConfig = None, events: EventBus = None,
                 program_id: str = CHARITY_PROGRAM_ID):
        self.accounts = accounts if accounts is not None else AccountRegistry()
        self.clock = clock or SystemClock()
        self.config = config or LedgerConfig()
        self.events = events or EventBus()
        self.program_id = program_id

        self.escrow_address = derive_address(self.config.escrow_seed, program_id)
        self.accounts.ensure_account(self.escrow_address, owner=program_id)

        self._programs: List[Program] = []
        self._latest_by_receiver: Dict[str, int] = {}
        self._event_log: List[ProgramEvent] = []
        self._lock = threading.RLock()

    # Mutations

    def create_program(self, receiver: str, title: str, description: str,
                       image: str, deadline: float) -> str:
        """
        Open a new program for `receiver`.

        Checks run in a fixed order and the first failure wins.

        Returns:
            The receiver, which keys the program from now on
        """
        if not isinstance(receiver, str) or is_zero_pubkey(receiver) or receiver == self.escrow_address:
            raise self._rejected(InvalidReceiver(details={"receiver": receiver}))
        if not title:
            raise self._rejected(MissingTitle())
        if not description:
            raise self._rejected(MissingDescription())
        for name, value in (('title', title), ('description', description), ('image', image)):
            if value is not None and not isinstance(value, str):
                raise TypeError(f"{name} must be text, got {type(value).__name__}")
        if isinstance(deadline, bool) or not isinstance(deadline, (int, float)):
            raise TypeError(f"deadline must be a unix timestamp, got {type(deadline).__name__}")
        if not math.isfinite(deadline):
            raise ValueError(f"deadline must be a finite timestamp, got {deadline}")

        with self._lock:
            now = self.clock.now()
            if deadline <= now:
                raise self._rejected(DeadlineNotFuture(details={"deadline": deadline, "now": now}))

            current = self._latest(receiver)
            if current is not None and current.active:
                raise self._rejected(ProgramInProgress(details={"receiver": receiver}))

            program = Program(
                index=len(self._programs),
                receiver=receiver,
                title=title,
                description=description,
                image=image or "",
                deadline=deadline,
                created_at=now,
            )
            self._programs.append(program)
            self._latest_by_receiver[receiver] = program.index

        logger.info("Program %d created for %s... (deadline %s)",
                    program.index, receiver[:8], deadline)
        return receiver

    def create_program_from_request(self, request: ProgramRequest) -> str:
        return self.create_program(
            request.receiver,
            request.title,
            request.description,
            request.image,
            request.deadline,
        )

    def send_donation(self, receiver: str, amount: int, donor: str) -> Donation:
        """
        Donate `amount` lamports from `donor` to the receiver's program.

        The lamports move into escrow and the donation is recorded in the
        same step; neither happens without the other.
        """
        with self._lock:
            program = self._latest(receiver)
            if program is None or not program.active:
                raise self._rejected(ProgramInvalid(details={"receiver": receiver}))

            now = self.clock.now()
            if program.is_expired(now):
                raise self._rejected(DeadlineExpired(details={"deadline": program.deadline, "now": now}))

            if isinstance(amount, bool) or not isinstance(amount, int):
                raise TypeError(f"amount must be an integer number of lamports, got {type(amount).__name__}")
            if amount < self.config.min_donation:
                raise self._rejected(DonationTooSmall(details={"amount": amount}))

            if not isinstance(donor, str) or is_zero_pubkey(donor) or donor == self.escrow_address:
                raise self._rejected(InvalidDonor(details={"donor": donor}))
            balance = self.accounts.get_account_balance(donor)
            if balance < amount:
                raise self._rejected(InsufficientFunds(details={"balance": balance, "amount": amount}))

            if not self.accounts.transfer_lamports(donor, self.escrow_address, amount):
                raise self._rejected(TransferFailed("Donation transfer failed", {"donor": donor}))

            donation = Donation(donor, amount)
            program.donations.append(donation)
            program.collected_amount += amount
            program.escrow_balance += amount

        logger.info("Donation of %d lamports from %s... to program %d",
                    amount, donor[:8], program.index)
        return donation

    def complete_program(self, caller: str) -> Program:
        """
        Close the caller's program and release its escrow to the caller.
        """
        with self._lock:
            program = self._active_program_of(caller)

            if program.escrow_balance and not self.accounts.transfer_lamports(
                    self.escrow_address, program.receiver, program.escrow_balance):
                raise self._rejected(TransferFailed(
                    "Escrow release failed", {"amount": program.escrow_balance}))

            program.status = ProgramStatus.COMPLETED
            program.escrow_balance = 0
            event = self._record_event(EventType.PROGRAM_COMPLETED, program)
            result = program.snapshot()

        logger.info("Program %d completed, %d lamports released to %s...",
                    program.index, program.collected_amount, caller[:8])
        self.events.publish(event)
        return result

    def cancel_program(self, caller: str) -> Program:
        """
        Close the caller's program and refund every donation.

        Refunds are paid in the order donations were recorded, as one batch:
        if any leg cannot be paid, nothing is refunded and the program stays
        active.
        """
        with self._lock:
            program = self._active_program_of(caller)

            refunds = [
                Transfer(self.escrow_address, donation.donor, donation.amount)
                for donation in program.donations
            ]
            if refunds and not self.accounts.transfer_batch(refunds):
                raise self._rejected(TransferFailed(details={
                    "refunds": len(refunds),
                    "amount": program.escrow_balance,
                }))

            program.status = ProgramStatus.CANCELLED
            program.escrow_balance = 0
            event = self._record_event(EventType.PROGRAM_CANCELLED, program)
            result = program.snapshot()

        logger.info("Program %d cancelled, %d donations refunded",
                    program.index, len(refunds))
        self.events.publish(event)
        return result

    # Reads

    def get_all_programs(self) -> List[Program]:
        """Snapshots of every program ever created, in creation order."""
        with self._lock:
            return [program.snapshot() for program in self._programs]

    def get_program(self, receiver: str) -> Program:
        """Snapshot of the receiver's most recent program."""
        with self._lock:
            program = self._latest(receiver)
            if program is None:
                raise ProgramNotFound(details={"receiver": receiver})
            return program.snapshot()

    def get_donations(self, receiver: str) -> Tuple[Donation, ...]:
        """Donations recorded for the receiver's most recent program."""
        with self._lock:
            program = self._latest(receiver)
            if program is None:
                raise ProgramNotFound(details={"receiver": receiver})
            return tuple(program.donations)

    def has_active_program(self, receiver: str) -> bool:
        with self._lock:
            program = self._latest(receiver)
            return program is not None and program.active

    def escrow_balance(self, receiver: str = None) -> int:
        """
        Lamports held in escrow.

        With a receiver, the amount held for that receiver's latest program;
        without one, the whole escrow account.
        """
        with self._lock:
            if receiver is None:
                return self.accounts.get_account_balance(self.escrow_address)
            program = self._latest(receiver)
            if program is None:
                raise ProgramNotFound(details={"receiver": receiver})
            return program.escrow_balance

    def get_events(self) -> List[ProgramEvent]:
        with self._lock:
            return list(self._event_log)

    def __len__(self) -> int:
        with self._lock:
            return len(self._programs)

    # Private methods

    def _latest(self, receiver: str) -> Optional[Program]:
        index = self._latest_by_receiver.get(receiver)
        return self._programs[index] if index is not None else None

    def _active_program_of(self, caller: str) -> Program:
        program = self._latest(caller)
        if program is None:
            raise self._rejected(ProgramNotFound(details={"receiver": caller}))
        if not program.active:
            raise self._rejected(ProgramInvalid(details={
                "receiver": caller,
                "status": program.status.value,
            }))
        return program

    def _record_event(self, event_type: EventType, program: Program) -> ProgramEvent:
        event = ProgramEvent(
            event_type=event_type,
            receiver=program.receiver,
            program_index=program.index,
            timestamp=self.clock.now(),
        )
        self._event_log.append(event)
        return event

    @staticmethod
    def _rejected(error: ProgramError) -> ProgramError:
        logger.debug("Rejected: %s [%s]", error, error.kind)
        return error
