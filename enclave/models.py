"""
=============================================================================
Vote Data Model (models.py)
=============================================================================

Plain dataclasses shared by the filter, the commitment constructor and the
batch submission engine.  Enums mirror the Solidity Voting contract.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

from errors import EligibilityError

IDENTIFIER_BYTES = 32


# =============================================================================
# Enums (mirror Solidity)
# =============================================================================

class VotePhase(IntEnum):
    COMMIT = 0
    REVEAL = 1


class BatchState(str, Enum):
    PENDING = "pending"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# =============================================================================
# Requests
# =============================================================================

def identifier_from_symbol(symbol: str) -> bytes:
    """Encode a UTF-8 symbol (e.g. "BTCUSD") as a right-padded bytes32."""
    return pad_identifier(symbol.encode("utf-8"))


def pad_identifier(identifier: bytes) -> bytes:
    if isinstance(identifier, str):
        raise TypeError("identifier must be bytes; use identifier_from_symbol() for text")
    identifier = bytes(identifier)
    if len(identifier) > IDENTIFIER_BYTES:
        raise ValueError(f"identifier longer than {IDENTIFIER_BYTES} bytes: {identifier!r}")
    return identifier.ljust(IDENTIFIER_BYTES, b"\x00")


@dataclass(frozen=True, eq=False)
class PriceRequest:
    """A pending price request.  Identity is (identifier, timestamp)."""

    identifier: bytes
    timestamp: int
    round_id: int = 0

    def __post_init__(self):
        object.__setattr__(self, "identifier", pad_identifier(self.identifier))
        object.__setattr__(self, "timestamp", int(self.timestamp))
        object.__setattr__(self, "round_id", int(self.round_id))
        if self.timestamp < 0:
            raise ValueError("timestamp must be >= 0")

    @property
    def key(self) -> Tuple[bytes, int]:
        return (self.identifier, self.timestamp)

    @property
    def symbol(self) -> str:
        return self.identifier.rstrip(b"\x00").decode("utf-8", errors="replace")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PriceRequest):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"PriceRequest({self.symbol!r} @ {self.timestamp}, round={self.round_id})"


@dataclass(frozen=True)
class EligibilityResult:
    """Output of the round/phase filter."""

    requests: Tuple[PriceRequest, ...]
    round_id: int
    phase: VotePhase
    accepting_commits: bool

    def require_open(self) -> "EligibilityResult":
        if not self.accepting_commits:
            raise EligibilityError(self.round_id, self.phase)
        return self

    def __len__(self) -> int:
        return len(self.requests)

    def __iter__(self):
        return iter(self.requests)


# =============================================================================
# Commitments
# =============================================================================

@dataclass(frozen=True)
class Commitment:
    """
    A hash-committed vote.

    The salt is the only way to reveal this vote later.  It is never persisted
    here; callers must keep it (or rely on encrypted_vote).
    """

    request: PriceRequest
    round_id: int
    voter: str
    price: Decimal
    scaled_price: int
    salt: bytes
    hash: bytes
    encrypted_vote: bytes = b""

    @property
    def salt_int(self) -> int:
        """Salt as the int256 the contract sees."""
        return int.from_bytes(self.salt, "big", signed=True)

    @property
    def salt_hex(self) -> str:
        return "0x" + self.salt.hex()

    @property
    def hash_hex(self) -> str:
        return "0x" + self.hash.hex()

    def to_contract_struct(self) -> Tuple[bytes, int, bytes, bytes]:
        """(identifier, time, hash, encryptedVote) tuple for batchCommit."""
        return (self.request.identifier, self.request.timestamp, self.hash, self.encrypted_vote)


@dataclass(frozen=True)
class ConstructionFailure:
    request: PriceRequest
    price: Any
    error: Exception


# =============================================================================
# Submission results
# =============================================================================

@dataclass(frozen=True)
class SubmissionOutcome:
    commitment: Commitment
    batch_index: int
    transaction: Optional[str] = None
    error: Optional[Exception] = None

    def __post_init__(self):
        if (self.transaction is None) == (self.error is None):
            raise ValueError("exactly one of transaction or error must be set")

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def salt(self) -> bytes:
        return self.commitment.salt


@dataclass
class BatchRecord:
    index: int
    size: int
    state: BatchState = BatchState.PENDING
    attempts: int = 0
    transaction: Optional[str] = None
    error: Optional[Exception] = None


@dataclass
class BatchResult:
    successes: List[SubmissionOutcome] = field(default_factory=list)
    failures: List[SubmissionOutcome] = field(default_factory=list)
    batches_used: int = 0
    batches: List[BatchRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": [
                {
                    "identifier": o.commitment.request.symbol,
                    "time": o.commitment.request.timestamp,
                    "hash": o.commitment.hash_hex,
                    "salt": o.commitment.salt_hex,
                    "transaction": o.transaction,
                    "batch": o.batch_index,
                }
                for o in self.successes
            ],
            "failures": [
                {
                    "identifier": o.commitment.request.symbol,
                    "time": o.commitment.request.timestamp,
                    "hash": o.commitment.hash_hex,
                    "salt": o.commitment.salt_hex,
                    "error": str(o.error),
                    "error_type": type(o.error).__name__,
                    "batch": o.batch_index,
                }
                for o in self.failures
            ],
            "batches_used": self.batches_used,
        }


@dataclass(frozen=True)
class CommitVotesReport:
    """What the pipeline hands back to the UI layer."""

    round_id: int
    eligible: Tuple[PriceRequest, ...]
    construction_failures: Tuple[ConstructionFailure, ...]
    batch_result: BatchResult

    @property
    def successes(self) -> List[SubmissionOutcome]:
        return self.batch_result.successes

    @property
    def submission_failures(self) -> List[SubmissionOutcome]:
        return self.batch_result.failures

    @property
    def batches_used(self) -> int:
        return self.batch_result.batches_used
