"""
Charity Runtime

The runtime ties the pieces together:
- Account registry holding every balance, including the escrow account
- The charity program ledger
- Signature verification, so the caller is whoever signed the transaction
- Replay protection and execution statistics

Transactions never raise to the submitter; every submission produces a
receipt saying whether it committed and, if not, why.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Set

from ..config import LedgerConfig
from ..core.accounts import AccountRegistry
from ..core.clock import SystemClock
from ..core.transactions import CharityTransaction, Instruction, TransactionReceipt, sign_transaction
from .charity import CharityProgram
from .errors import InvalidSignature, ProgramError, ReplayedTransaction, UnknownInstruction

logger = logging.getLogger(__name__)


@dataclass
class RuntimeStats:
    """Execution statistics."""
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    total_programs: int
    active_programs: int
    escrow_lamports: int
    total_accounts: int
    total_lamports: int
    uptime: float


class CharityRuntime:
    """
    Signed call surface for the charity program.

    Mutating calls arrive as signed transactions; reads go straight to
    `runtime.program`.
    """

    METHODS = ("create_program", "send_donation", "complete_program", "cancel_program")

    def __init__(self, config: LedgerConfig = None, clock=None, accounts: AccountRegistry = None):
        self.config = config or LedgerConfig()
        self.clock = clock or SystemClock()
        self.accounts = accounts if accounts is not None else AccountRegistry()
        self.program = CharityProgram(accounts=self.accounts, clock=self.clock, config=self.config)
        self.events = self.program.events

        self.receipts: List[TransactionReceipt] = []
        self._seen_nonces: Dict[str, Set[int]] = {}
        self._next_nonce: Dict[str, int] = {}
        self._stats = {
            'total_transactions_processed': 0,
            'successful_transactions': 0,
            'start_time': time.time(),
        }
        self._lock = threading.RLock()

    def submit(self, transaction: CharityTransaction) -> TransactionReceipt:
        """
        Verify and execute a signed transaction.

        Returns:
            A receipt; `success` is False when the call was rejected
        """
        with self._lock:
            receipt = self._execute(transaction)

            self._stats['total_transactions_processed'] += 1
            if receipt.success:
                self._stats['successful_transactions'] += 1
            else:
                logger.debug("Transaction %s... failed: %s",
                             transaction.hash()[:8], receipt.error_message)

            self.receipts.append(receipt)
        return receipt

    def build_transaction(self, signing_key, method: str, **args) -> CharityTransaction:
        """
        Helper to sign a call into the charity program.

        Nonces are assigned per signer in increasing order.
        """
        signer = signing_key.verifying_key.to_string().hex()
        with self._lock:
            nonce = self._next_nonce.get(signer, 0)
            self._next_nonce[signer] = nonce + 1

        instruction = Instruction(program_id=self.program.program_id, method=method, args=args)
        return sign_transaction(instruction, signing_key, nonce=nonce)

    def call(self, signing_key, method: str, **args) -> TransactionReceipt:
        """Build, sign and submit in one step."""
        return self.submit(self.build_transaction(signing_key, method, **args))

    def fund(self, pubkey: str, lamports: int) -> int:
        """Airdrop lamports to an account. Returns the new balance."""
        return self.accounts.airdrop(pubkey, lamports)

    def get_balance(self, pubkey: str) -> int:
        return self.accounts.get_account_balance(pubkey)

    def get_stats(self) -> RuntimeStats:
        programs = self.program.get_all_programs()
        total = self._stats['total_transactions_processed']
        successful = self._stats['successful_transactions']
        return RuntimeStats(
            total_transactions=total,
            successful_transactions=successful,
            failed_transactions=total - successful,
            total_programs=len(programs),
            active_programs=sum(1 for p in programs if p.active),
            escrow_lamports=self.program.escrow_balance(),
            total_accounts=len(self.accounts),
            total_lamports=self.accounts.total_lamports(),
            uptime=time.time() - self._stats['start_time'],
        )

    def display_status(self) -> None:
        """Print a summary of programs and transactions."""
        stats = self.get_stats()

        print(f"\n{'='*60}")
        print("CHARITY LEDGER STATUS")
        print(f"{'='*60}")

        print(f"Total transactions: {stats.total_transactions:,}")
        print(f"Successful transactions: {stats.successful_transactions:,}")
        print(f"Failed transactions: {stats.failed_transactions:,}")
        print(f"Programs: {stats.total_programs:,} ({stats.active_programs:,} active)")
        print(f"Escrow: {stats.escrow_lamports:,} lamports")
        print(f"Accounts: {stats.total_accounts:,} holding {stats.total_lamports:,} lamports")

        print(f"\nPrograms:")
        for program in self.program.get_all_programs():
            print(f"  #{program.index} {program.title!r} -> {program.receiver[:8]}... "
                  f"[{program.status.value}] collected {program.collected_amount:,} "
                  f"from {len(program.donations)} donations")

    # Private methods

    def _execute(self, transaction: CharityTransaction) -> TransactionReceipt:
        try:
            self._check_transaction(transaction)
            result = self._dispatch(transaction)
        except ProgramError as e:
            return TransactionReceipt(
                transaction=transaction,
                success=False,
                error_kind=e.kind,
                error_message=e.message,
                logs=[str(e)],
            )
        except (TypeError, ValueError) as e:
            return TransactionReceipt(
                transaction=transaction,
                success=False,
                error_kind="InvalidArguments",
                error_message=str(e),
            )

        return TransactionReceipt(transaction=transaction, success=True, result=result)

    def _check_transaction(self, transaction: CharityTransaction) -> None:
        if not transaction.verify_signature():
            raise InvalidSignature(details={"signer": transaction.signer[:16]})
        if transaction.nonce in self._seen_nonces.get(transaction.signer, ()):
            raise ReplayedTransaction(details={"nonce": transaction.nonce})
        self._seen_nonces.setdefault(transaction.signer, set()).add(transaction.nonce)

        instruction = transaction.instruction
        if instruction.program_id != self.program.program_id or instruction.method not in self.METHODS:
            raise UnknownInstruction(details={"method": instruction.method})

    def _dispatch(self, transaction: CharityTransaction) -> Any:
        caller = transaction.signer
        method = transaction.instruction.method
        args = dict(transaction.instruction.args)

        if method == "create_program":
            args.setdefault("receiver", caller)
            return self.program.create_program(**args)

        if method == "send_donation":
            donation = self.program.send_donation(donor=caller, **args)
            return donation._asdict()

        if args:
            raise TypeError(f"{method} takes no arguments, got {sorted(args)}")

        if method == "complete_program":
            return self.program.complete_program(caller).to_dict()

        return self.program.cancel_program(caller).to_dict()
