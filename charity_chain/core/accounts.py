"""
Account Model

Every balance in the ledger lives in an account:
- Accounts hold lamports (the smallest indivisible unit of value)
- Each account has an owner; program-owned accounts (like the charity
  escrow) can only be debited by the owning program
- Transfers are copy-on-write so a failed batch leaves no trace

Account identifiers are hex strings. The all-zero identifier is reserved
and never names a real account.
"""

from dataclasses import dataclass
from typing import Iterable, Optional
import hashlib
import threading


SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
ZERO_PUBKEY = "0" * 64


def is_zero_pubkey(pubkey: Optional[str]) -> bool:
    """True for None, empty, or an all-zero identifier (with or without 0x)."""
    if not pubkey:
        return True
    digits = pubkey[2:] if pubkey.lower().startswith("0x") else pubkey
    return digits.strip("0") == ""


def derive_address(seed: str, program_id: str) -> str:
    """
    Derive a deterministic account address owned by a program.

    Nobody holds a private key for it, so only the program can move
    its lamports.
    """
    return hashlib.sha256(f"{seed}:{program_id}".encode()).hexdigest()


@dataclass
class Account:
    """A balance-holding account."""
    lamports: int          # Balance in lamports
    owner: str             # Program that controls debits

    def __post_init__(self):
        if self.lamports < 0:
            raise ValueError("Lamports cannot be negative")

    def copy(self) -> 'Account':
        return Account(lamports=self.lamports, owner=self.owner)


@dataclass(frozen=True)
class Transfer:
    """One leg of a batched transfer."""
    from_pubkey: str
    to_pubkey: str
    amount: int


class AccountRegistry:
    """
    Registry for all accounts known to the ledger.

    A single source of truth for balances. Donations, releases and
    refunds all go through transfer_lamports / transfer_batch. Every write
    holds the registry lock, so an airdrop cannot be lost under a batch
    that commits at the same moment.
    """

    def __init__(self):
        self._accounts: dict[str, Account] = {}
        self._lock = threading.RLock()

    def create_account(self, pubkey: str, lamports: int = 0,
                       owner: str = None) -> Account:
        """Create a new account with proper validation."""
        if is_zero_pubkey(pubkey):
            raise ValueError("Cannot create the zero account")

        with self._lock:
            if pubkey in self._accounts:
                raise ValueError(f"Account {pubkey} already exists")
            account = Account(lamports=lamports, owner=owner or SYSTEM_PROGRAM_ID)
            self._accounts[pubkey] = account
        return account

    def ensure_account(self, pubkey: str, owner: str = None) -> Account:
        """Return the account, creating an empty one if it does not exist."""
        with self._lock:
            account = self.get_account(pubkey)
            if account is None:
                account = self.create_account(pubkey, owner=owner)
            return account

    def airdrop(self, pubkey: str, lamports: int) -> int:
        """Credit lamports out of thin air (demo and test funding). Returns the new balance."""
        if lamports < 0:
            raise ValueError("Cannot airdrop a negative amount")
        with self._lock:
            account = self.ensure_account(pubkey)
            updated = account.copy()
            updated.lamports += lamports
            self._accounts[pubkey] = updated
            return updated.lamports

    def get_account(self, pubkey: str) -> Optional[Account]:
        """Get account by public key."""
        return self._accounts.get(pubkey)

    def account_exists(self, pubkey: str) -> bool:
        return pubkey in self._accounts

    def get_account_balance(self, pubkey: str) -> int:
        """Get account balance in lamports (0 for unknown accounts)."""
        account = self.get_account(pubkey)
        return account.lamports if account else 0

    def transfer_lamports(self, from_pubkey: str, to_pubkey: str, amount: int) -> bool:
        """Transfer lamports between accounts. The destination is created on demand."""
        return self.transfer_batch([Transfer(from_pubkey, to_pubkey, amount)])

    def transfer_batch(self, transfers: Iterable[Transfer]) -> bool:
        """
        Apply several transfers as one unit.

        Every leg is applied to working copies first; the registry is only
        updated when all legs succeed. Returns False (and changes nothing)
        if any leg has a missing source, a negative amount, or insufficient
        funds at the point it is applied.
        """
        working: dict[str, Account] = {}

        with self._lock:
            for transfer in transfers:
                if transfer.amount < 0:
                    return False

                source = working.get(transfer.from_pubkey) or self._copy_of(transfer.from_pubkey)
                if source is None or source.lamports < transfer.amount:
                    return False
                working[transfer.from_pubkey] = source

                destination = working.get(transfer.to_pubkey) or self._copy_of(transfer.to_pubkey)
                if destination is None:
                    if is_zero_pubkey(transfer.to_pubkey):
                        return False
                    destination = Account(lamports=0, owner=SYSTEM_PROGRAM_ID)
                working[transfer.to_pubkey] = destination

                source.lamports -= transfer.amount
                destination.lamports += transfer.amount

            # Commit
            self._accounts.update(working)
        return True

    def get_accounts_by_owner(self, owner: str) -> dict[str, Account]:
        """Get all accounts owned by a specific program."""
        with self._lock:
            return {
                pubkey: account
                for pubkey, account in self._accounts.items()
                if account.owner == owner
            }

    def total_lamports(self) -> int:
        """Get total lamports in all accounts."""
        with self._lock:
            return sum(account.lamports for account in self._accounts.values())

    def _copy_of(self, pubkey: str) -> Optional[Account]:
        account = self._accounts.get(pubkey)
        return account.copy() if account else None

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, pubkey: str) -> bool:
        return pubkey in self._accounts

    def __getitem__(self, pubkey: str) -> Account:
        account = self.get_account(pubkey)
        if account is None:
            raise KeyError(f"Account {pubkey} not found")
        return account
