"""
Signed Transactions

Callers never pass their own identity to the ledger directly. Instead they
sign an instruction; the runtime verifies the signature and uses the
signer's public key as the caller (the donor for donations, the receiver
for completion and cancellation).

Instruction layout:
- program_id: which program handles it
- method: create_program, send_donation, complete_program, cancel_program
- args: JSON-serializable keyword arguments
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from ecdsa import SigningKey, VerifyingKey, SECP256k1, BadSignatureError
from ecdsa.errors import MalformedPointError


@dataclass(frozen=True)
class Instruction:
    """A single call into a program."""
    program_id: str
    method: str
    args: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"Instruction({self.program_id[:8]}..., {self.method})"


@dataclass(frozen=True)
class CharityTransaction:
    """
    An instruction plus the signer's public key and signature.

    The signature covers the signer, a nonce and the instruction, so a
    transaction cannot be re-attributed to another caller.

    A nonce is spent as soon as the runtime has verified the signature,
    whether the instruction then succeeds or fails. A rejected transaction
    is never re-run later; resubmit the call under a fresh nonce instead.
    """
    signer: str                # Hex-encoded SECP256k1 public key
    instruction: Instruction
    nonce: int
    signature: str = ""        # Hex-encoded signature

    def serialize(self) -> bytes:
        """Canonical bytes covered by the signature."""
        payload = {
            "signer": self.signer,
            "nonce": self.nonce,
            "program_id": self.instruction.program_id,
            "method": self.instruction.method,
            "args": self.instruction.args,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()

    def hash(self) -> str:
        """Compute deterministic transaction hash."""
        return hashlib.sha256(self.serialize()).hexdigest()

    def verify_signature(self) -> bool:
        """Verify the signature against the declared signer."""
        if not self.signature:
            return False

        try:
            vk = VerifyingKey.from_string(bytes.fromhex(self.signer), curve=SECP256k1)
            return vk.verify(bytes.fromhex(self.signature), self.serialize())
        except (BadSignatureError, MalformedPointError, ValueError):
            return False


@dataclass
class TransactionReceipt:
    """
    Outcome of submitting a transaction.

    Tracks the transaction and whether it committed, including the
    failure kind when it did not.
    """
    transaction: CharityTransaction
    success: bool
    result: Any = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    @property
    def transaction_hash(self) -> str:
        return self.transaction.hash()


def sign_transaction(instruction: Instruction, signer: SigningKey, nonce: int = 0) -> CharityTransaction:
    """
    Sign an instruction with the provided private key.

    Returns:
        Signed transaction ready for submission
    """
    unsigned = CharityTransaction(
        signer=signer.verifying_key.to_string().hex(),
        instruction=instruction,
        nonce=nonce,
    )
    signature = signer.sign(unsigned.serialize())
    return CharityTransaction(
        signer=unsigned.signer,
        instruction=instruction,
        nonce=nonce,
        signature=signature.hex(),
    )


def generate_keypair() -> tuple[SigningKey, str]:
    """
    Generate a new SECP256k1 keypair.

    Returns:
        Tuple of (private_key, public_key_hex)
    """
    private_key = SigningKey.generate(curve=SECP256k1)
    public_key_hex = private_key.verifying_key.to_string().hex()
    return private_key, public_key_hex
