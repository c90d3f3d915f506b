"""
Vote commit errors.

Construction errors (bad price) and submission errors (ledger failures) live
in separate branches so callers can tell "never attempted" from "attempted
and refused".
"""

from __future__ import annotations

from typing import Optional


class VoteCommitError(Exception):
    """Base class for all vote commit errors."""


class EligibilityError(VoteCommitError):
    """The current vote phase does not accept new commitments."""

    def __init__(self, round_id: int, phase: object):
        self.round_id = round_id
        self.phase = phase
        super().__init__(
            f"round {round_id} is in the {getattr(phase, 'name', phase)} phase; "
            "new votes can only be committed during the COMMIT phase"
        )


class InvalidPriceError(VoteCommitError, ValueError):
    """A price cannot be bound into a commitment."""

    def __init__(self, price: object, reason: str):
        self.price = price
        self.reason = reason
        super().__init__(f"invalid price {price!r}: {reason}")


class SubmissionError(VoteCommitError):
    """
    A batch could not be committed on chain.

    Attributes:
        batch_index: Zero-based index of the batch (None until the engine tags it).
        tx_hash: Hash of the last broadcast attempt, if one was made.
    """

    def __init__(self, message: str, *, batch_index: Optional[int] = None, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.batch_index = batch_index
        self.tx_hash = tx_hash


class TransientSubmissionError(SubmissionError):
    """Network error or receipt timeout; the batch may be retried."""


class RejectedSubmissionError(SubmissionError):
    """The ledger refused the batch (revert, invalid tx); never retried."""


class SubmissionCancelled(SubmissionError):
    """The run was cancelled before this batch started."""


__all__ = [
    "VoteCommitError",
    "EligibilityError",
    "InvalidPriceError",
    "SubmissionError",
    "TransientSubmissionError",
    "RejectedSubmissionError",
    "SubmissionCancelled",
]
