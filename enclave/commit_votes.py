"""
=============================================================================
Commit Pipeline (commit_votes.py)
=============================================================================

Filter → construct → submit, with no prompting or rendering.  The caller
decides which requests to vote on by supplying a price for them; the
returned CommitVotesReport carries everything needed to display the result
(counts, transaction hashes, salts) and to retry failures.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Mapping, Optional, Protocol

import config
from batch_commit import CommitSubmitter, submit_commitments
from commitment import SaltSource, construct_commitment
from eligibility import filter_requests
from errors import InvalidPriceError
from models import (
    BatchResult,
    CommitVotesReport,
    Commitment,
    ConstructionFailure,
    EligibilityResult,
    PriceRequest,
    VotePhase,
)

logger = logging.getLogger("vote-commit.pipeline")


class OracleQueries(Protocol):
    def get_current_round_id(self) -> int: ...
    def get_vote_phase(self) -> VotePhase: ...
    def get_pending_requests(self, round_id: Optional[int] = None) -> List[PriceRequest]: ...
    def has_committed(self, voter: str, request: PriceRequest, round_id: int) -> bool: ...


def eligible_requests(oracle: OracleQueries, voter: str) -> EligibilityResult:
    """Read round state from the oracle and run the round/phase filter."""
    round_id = oracle.get_current_round_id()
    phase = oracle.get_vote_phase()
    if phase != VotePhase.COMMIT:
        return filter_requests((), voter, round_id, phase, oracle)
    pending = oracle.get_pending_requests(round_id)
    return filter_requests(pending, voter, round_id, phase, oracle)


def commit_votes(
    oracle: OracleQueries,
    ledger: CommitSubmitter,
    voter: str,
    prices: Mapping[PriceRequest, Any],
    *,
    salt_source: Optional[SaltSource] = None,
    price_decimals: int = config.PRICE_DECIMALS,
    encryption_key: Optional[bytes] = None,
    cancel_event: Optional[threading.Event] = None,
    **submit_options: Any,
) -> CommitVotesReport:
    """
    Commit a vote for every eligible request that has a price in ``prices``.

    Raises:
        EligibilityError: the round is not in the commit phase.
    """
    eligibility = eligible_requests(oracle, voter).require_open()
    round_id = eligibility.round_id

    commitments: List[Commitment] = []
    failures: List[ConstructionFailure] = []
    for request in eligibility.requests:
        if request not in prices:
            continue
        price = prices[request]
        try:
            commitments.append(
                construct_commitment(
                    request,
                    round_id,
                    price,
                    voter,
                    salt_source=salt_source,
                    price_decimals=price_decimals,
                    encryption_key=encryption_key,
                )
            )
        except InvalidPriceError as e:
            logger.warning(f"Skipping {request!r}: {e}")
            failures.append(ConstructionFailure(request=request, price=price, error=e))

    eligible_set = set(eligibility.requests)
    ignored = [r for r in prices if r not in eligible_set]
    if ignored:
        logger.info(f"Ignoring {len(ignored)} priced request(s) not eligible in round {round_id}")

    if commitments:
        batch_result = submit_commitments(
            commitments, ledger, voter, cancel_event=cancel_event, **submit_options
        )
    else:
        logger.info("No valid prices entered; nothing to commit")
        batch_result = BatchResult()

    return CommitVotesReport(
        round_id=round_id,
        eligible=eligibility.requests,
        construction_failures=tuple(failures),
        batch_result=batch_result,
    )
