import itertools
from typing import Dict, List, Optional, Sequence

import pytest
from eth_utils import to_checksum_address

from errors import RejectedSubmissionError, TransientSubmissionError
from models import Commitment, PriceRequest, VotePhase, identifier_from_symbol

VOTER = to_checksum_address("0x358081769cdfc309e95de8942e388f095cd1bc7c")
OTHER_VOTER = to_checksum_address("0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266")


def make_request(symbol: str = "BTCUSD", timestamp: int = 1_700_000_000, round_id: int = 7) -> PriceRequest:
    return PriceRequest(identifier=identifier_from_symbol(symbol), timestamp=timestamp, round_id=round_id)


class CountingSaltSource:
    """Deterministic salts: 0x00..01, 0x00..02, ..."""

    def __init__(self):
        self._counter = itertools.count(1)
        self.calls = 0

    def __call__(self, count: int) -> bytes:
        self.calls += 1
        return next(self._counter).to_bytes(count, "big")


class FakeOracle:
    def __init__(self, pending=None, round_id: int = 7, phase: VotePhase = VotePhase.COMMIT):
        self.pending: List[PriceRequest] = list(pending or [])
        self.round_id = round_id
        self.phase = phase
        self.committed = set()
        self.has_committed_calls = 0

    def get_current_round_id(self) -> int:
        return self.round_id

    def get_vote_phase(self) -> VotePhase:
        return self.phase

    def get_pending_requests(self, round_id: Optional[int] = None) -> List[PriceRequest]:
        return list(self.pending)

    def has_committed(self, voter: str, request: PriceRequest, round_id: int) -> bool:
        self.has_committed_calls += 1
        return (voter, request.key, round_id) in self.committed

    def mark_committed(self, voter: str, request: PriceRequest, round_id: int):
        self.committed.add((voter, request.key, round_id))


class FakeLedger:
    """
    Records every submit_batch call.

    ``script`` maps call number (1-based) to an exception to raise; other
    calls succeed with a fake transaction hash.
    """

    def __init__(self, max_batch_size: int = 25, script: Optional[Dict[int, Exception]] = None):
        self.max_batch_size = max_batch_size
        self.script = dict(script or {})
        self.calls: List[List[Commitment]] = []
        self.timeouts: List[Optional[float]] = []

    def submit_batch(self, commitments: Sequence[Commitment], voter: str, timeout: Optional[float]) -> str:
        self.calls.append(list(commitments))
        self.timeouts.append(timeout)
        error = self.script.get(len(self.calls))
        if error is not None:
            raise error
        return "0x" + f"{len(self.calls):064x}"


@pytest.fixture
def salt_source():
    return CountingSaltSource()


@pytest.fixture
def oracle():
    return FakeOracle(pending=[make_request("BTCUSD"), make_request("ETHUSD"), make_request("SOLUSD")])


@pytest.fixture
def transient():
    return TransientSubmissionError("connection reset")


@pytest.fixture
def rejected():
    return RejectedSubmissionError("batchCommit reverted")
