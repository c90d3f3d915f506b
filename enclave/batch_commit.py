"""
=============================================================================
Batch Submission Engine (batch_commit.py)
=============================================================================

Submits commitments in size-bounded batches, one transaction at a time.

The voter's account nonce is a single-writer resource: the ledger only
accepts that account's transactions in sequence, so batches are strictly
serialized.  Each batch runs

    PENDING -> SUBMITTING -> CONFIRMED | FAILED

or PENDING -> CANCELLED when the run is cancelled before it starts.  A
confirmed batch is final even if a later batch fails.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional, Protocol, Sequence

import config
from errors import (
    RejectedSubmissionError,
    SubmissionCancelled,
    SubmissionError,
    TransientSubmissionError,
)
from models import BatchRecord, BatchResult, BatchState, Commitment, SubmissionOutcome

logger = logging.getLogger("vote-commit.batch")


class CommitSubmitter(Protocol):
    max_batch_size: int

    def submit_batch(self, commitments: Sequence[Commitment], voter: str, timeout: Optional[float]) -> str:
        """Commit one batch and return its transaction hash once finalized."""
        ...


def partition(commitments: Sequence[Commitment], max_batch_size: int) -> List[List[Commitment]]:
    """Split into consecutive batches of at most ``max_batch_size``, in order."""
    if max_batch_size <= 0:
        raise ValueError("max_batch_size must be > 0")
    return [list(commitments[i:i + max_batch_size]) for i in range(0, len(commitments), max_batch_size)]


def _submit_with_retry(
    ledger: CommitSubmitter,
    batch: List[Commitment],
    voter: str,
    record: BatchRecord,
    *,
    timeout: Optional[float],
    max_retries: int,
    retry_backoff: float,
    sleep: Callable[[float], None],
) -> str:
    while True:
        record.attempts += 1
        try:
            return ledger.submit_batch(batch, voter, timeout)
        except TransientSubmissionError as e:
            if record.attempts > max_retries:
                raise
            delay = retry_backoff * (2 ** (record.attempts - 1))
            logger.warning(
                f"Batch {record.index} attempt {record.attempts} failed ({e}); retrying in {delay:.1f}s"
            )
            sleep(delay)


def submit_commitments(
    commitments: Sequence[Commitment],
    ledger: CommitSubmitter,
    voter: str,
    *,
    max_batch_size: Optional[int] = None,
    batch_timeout: Optional[float] = config.BATCH_TIMEOUT_SECONDS,
    max_retries: int = config.MAX_SUBMIT_RETRIES,
    retry_backoff: float = config.RETRY_BACKOFF_SECONDS,
    cancel_event: Optional[threading.Event] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchResult:
    """
    Commit ``commitments`` on chain in ordered batches.

    Args:
        commitments: Votes to commit; each is attempted in exactly one batch.
        ledger: Submission client.  Its ``max_batch_size`` is used unless
            overridden here.
        voter: Account sending the transactions.
        batch_timeout: Seconds to wait for each batch to finalize.
        max_retries: Extra attempts after a transient failure.
        retry_backoff: Base delay; attempt n waits retry_backoff * 2**(n-1).
        cancel_event: When set, batches that have not started are cancelled.
        sleep: Injected for tests.

    Returns:
        BatchResult with one SubmissionOutcome per commitment.
    """
    size = max_batch_size or ledger.max_batch_size
    batches = partition(commitments, size)
    result = BatchResult(batches=[BatchRecord(index=i, size=len(b)) for i, b in enumerate(batches)])

    logger.info(f"Committing {len(commitments)} vote(s) in {len(batches)} batch(es) of up to {size}")

    for batch, record in zip(batches, result.batches):
        if cancel_event is not None and cancel_event.is_set():
            record.state = BatchState.CANCELLED
            record.error = SubmissionCancelled("run cancelled before batch started", batch_index=record.index)
            result.failures.extend(
                SubmissionOutcome(commitment=c, batch_index=record.index, error=record.error) for c in batch
            )
            continue

        record.state = BatchState.SUBMITTING
        result.batches_used += 1
        try:
            tx_hash = _submit_with_retry(
                ledger,
                batch,
                voter,
                record,
                timeout=batch_timeout,
                max_retries=max_retries,
                retry_backoff=retry_backoff,
                sleep=sleep,
            )
        except SubmissionError as e:
            e.batch_index = record.index
            record.state = BatchState.FAILED
            record.error = e
            logger.error(f"Batch {record.index} failed after {record.attempts} attempt(s): {e}")
        except Exception as e:
            logger.exception(f"Batch {record.index} failed with an unexpected error")
            err = RejectedSubmissionError(f"unexpected error: {e}", batch_index=record.index)
            err.__cause__ = e
            record.state = BatchState.FAILED
            record.error = err
        else:
            record.state = BatchState.CONFIRMED
            record.transaction = tx_hash
            logger.info(f"Batch {record.index} confirmed: {len(batch)} vote(s) in tx {tx_hash}")

        if record.state == BatchState.CONFIRMED:
            result.successes.extend(
                SubmissionOutcome(commitment=c, batch_index=record.index, transaction=record.transaction)
                for c in batch
            )
        else:
            result.failures.extend(
                SubmissionOutcome(commitment=c, batch_index=record.index, error=record.error) for c in batch
            )

    logger.info(
        f"Committed {len(result.successes)} vote(s) in {result.batches_used} batch(es) "
        f"(failures = {len(result.failures)})"
    )
    return result
