"""
Charity Program Errors

Every rejected call raises a ProgramError subclass. Each carries a stable
`kind` for programmatic handling and the human-readable message that
existing integrations match on. A rejected call never changes state.
"""


class ProgramError(Exception):
    """Base exception for all rejected program calls"""

    kind = "ProgramError"
    default_message = "Program call rejected"
    legacy_messages: tuple = ()

    def __init__(self, message: str = None, details: dict = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def matches(self, text: str) -> bool:
        """True if `text` is this error's message or one of its legacy spellings."""
        return text == self.message or text in self.legacy_messages

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidReceiver(ProgramError):
    kind = "InvalidReceiver"
    default_message = "Invalid receiver address"


class MissingTitle(ProgramError):
    kind = "MissingTitle"
    default_message = "Title is required"


class MissingDescription(ProgramError):
    kind = "MissingDescription"
    default_message = "Description is required"


class DeadlineNotFuture(ProgramError):
    kind = "DeadlineNotFuture"
    default_message = "Deadline should be in the future"


class ProgramInProgress(ProgramError):
    kind = "ProgramInProgress"
    default_message = "Program is in progress"


class ProgramInvalid(ProgramError):
    """Donation or termination aimed at a missing or already terminated program"""
    kind = "ProgramInvalid"
    default_message = "Program is invalid"


class DeadlineExpired(ProgramError):
    """
    Donation arrived after the program deadline.

    Older integrations distinguish "Deadline has passed" from "Program has
    finished"; both describe the same condition and both match.
    """
    kind = "DeadlineExpired"
    default_message = "Deadline has passed"
    legacy_messages = ("Deadline has passed", "Program has finished")


class DonationTooSmall(ProgramError):
    kind = "DonationTooSmall"
    default_message = "Donation amount should be greater than 1 wei"


class ProgramNotFound(ProgramError):
    kind = "NotFound"
    default_message = "Program not found"


class InvalidDonor(ProgramError):
    kind = "InvalidDonor"
    default_message = "Invalid donor address"


class InsufficientFunds(ProgramError):
    kind = "InsufficientFunds"
    default_message = "Insufficient funds"


class TransferFailed(ProgramError):
    """A fund movement could not be applied; nothing was committed"""
    kind = "TransferFailed"
    default_message = "Refund transfer failed"


class InvalidSignature(ProgramError):
    kind = "InvalidSignature"
    default_message = "Invalid transaction signature"


class UnknownInstruction(ProgramError):
    kind = "UnknownInstruction"
    default_message = "Unknown instruction"


class ReplayedTransaction(ProgramError):
    kind = "ReplayedTransaction"
    default_message = "Transaction already processed"
