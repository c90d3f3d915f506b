"""
Round/phase filter: which pending requests can still take a new commitment.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from models import EligibilityResult, PriceRequest, VotePhase

logger = logging.getLogger("vote-commit.eligibility")


class CommitLedger(Protocol):
    def has_committed(self, voter: str, request: PriceRequest, round_id: int) -> bool:
        ...


def filter_requests(
    pending_requests: Iterable[PriceRequest],
    voter: str,
    round_id: int,
    phase: VotePhase,
    ledger: CommitLedger,
) -> EligibilityResult:
    """
    Drop requests the voter already committed to in ``round_id``.

    In the REVEAL phase nothing is eligible and the ledger is not queried;
    ``accepting_commits`` is False so the caller can tell "phase closed" from
    "nothing left to vote on".
    """
    phase = VotePhase(phase)
    if phase != VotePhase.COMMIT:
        logger.info(f"Round {round_id} is in the {phase.name} phase; not accepting commits")
        return EligibilityResult(requests=(), round_id=round_id, phase=phase, accepting_commits=False)

    eligible = []
    for request in pending_requests:
        if ledger.has_committed(voter, request, round_id):
            logger.debug(f"Skipping {request!r}: already committed in round {round_id}")
            continue
        eligible.append(request)

    logger.info(f"{len(eligible)} request(s) eligible for commit in round {round_id}")
    return EligibilityResult(requests=tuple(eligible), round_id=round_id, phase=phase, accepting_commits=True)
