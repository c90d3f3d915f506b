import threading

import pytest

from batch_commit import partition, submit_commitments
from commitment import construct_commitment
from conftest import VOTER, FakeLedger, make_request
from errors import (
    RejectedSubmissionError,
    SubmissionCancelled,
    TransientSubmissionError,
)
from models import BatchState


def _commitments(n):
    return [construct_commitment(make_request(f"SYM{i}", 1_700_000_000 + i), 7, i, VOTER) for i in range(n)]


class Sleeps(list):
    def __call__(self, seconds):
        self.append(seconds)


def test_partition_sizes_in_input_order():
    items = _commitments(7)
    batches = partition(items, 3)
    assert [len(b) for b in batches] == [3, 3, 1]
    assert [c for b in batches for c in b] == items


def test_partition_rejects_non_positive_size():
    with pytest.raises(ValueError):
        partition(_commitments(1), 0)


def test_seven_commitments_in_batches_of_three():
    items = _commitments(7)
    ledger = FakeLedger(max_batch_size=3)

    result = submit_commitments(items, ledger, VOTER, sleep=Sleeps())

    assert [len(call) for call in ledger.calls] == [3, 3, 1]
    assert [c for call in ledger.calls for c in call] == items
    assert result.batches_used == 3
    assert [o.commitment for o in result.successes] == items
    assert result.failures == []
    assert [b.state for b in result.batches] == [BatchState.CONFIRMED] * 3


def test_success_outcomes_carry_tx_and_salt():
    items = _commitments(4)
    result = submit_commitments(items, FakeLedger(max_batch_size=3), VOTER, sleep=Sleeps())

    first, second = result.successes[0], result.successes[3]
    assert first.transaction == "0x" + f"{1:064x}"
    assert second.transaction == "0x" + f"{2:064x}"
    assert first.salt == items[0].salt
    assert first.succeeded and first.error is None
    assert second.batch_index == 1


def test_rejected_middle_batch_isolated(rejected):
    items = _commitments(7)
    ledger = FakeLedger(max_batch_size=3, script={2: rejected})
    sleeps = Sleeps()

    result = submit_commitments(items, ledger, VOTER, sleep=sleeps)

    assert [o.commitment for o in result.successes] == items[:3] + items[6:]
    assert all(o.salt for o in result.successes)
    assert [o.commitment for o in result.failures] == items[3:6]
    assert all(o.error is rejected for o in result.failures)
    assert rejected.batch_index == 1
    assert result.batches_used == 3
    # rejection is never retried
    assert len(ledger.calls) == 3
    assert sleeps == []
    assert [b.state for b in result.batches] == [BatchState.CONFIRMED, BatchState.FAILED, BatchState.CONFIRMED]


def test_transient_error_retried_with_backoff(transient):
    items = _commitments(2)
    ledger = FakeLedger(max_batch_size=5, script={1: transient, 2: transient})
    sleeps = Sleeps()

    result = submit_commitments(items, ledger, VOTER, max_retries=2, retry_backoff=1.5, sleep=sleeps)

    assert len(ledger.calls) == 3
    assert sleeps == [1.5, 3.0]
    assert len(result.successes) == 2
    assert result.batches_used == 1
    assert result.batches[0].attempts == 3


def test_transient_error_exhausts_retries():
    items = _commitments(4)
    errors = {i: TransientSubmissionError(f"timeout {i}") for i in (1, 2)}
    ledger = FakeLedger(max_batch_size=2, script=errors)
    sleeps = Sleeps()

    result = submit_commitments(items, ledger, VOTER, max_retries=1, retry_backoff=1, sleep=sleeps)

    assert [o.commitment for o in result.failures] == items[:2]
    assert all(o.error is errors[2] for o in result.failures)
    assert [o.commitment for o in result.successes] == items[2:]
    assert result.batches_used == 2
    assert sleeps == [1]


def test_unexpected_error_recorded_as_rejection():
    items = _commitments(3)
    ledger = FakeLedger(max_batch_size=1, script={1: KeyError("boom")})

    result = submit_commitments(items, ledger, VOTER, sleep=Sleeps())

    assert len(result.failures) == 1
    error = result.failures[0].error
    assert isinstance(error, RejectedSubmissionError)
    assert isinstance(error.__cause__, KeyError)
    assert len(result.successes) == 2
    assert len(ledger.calls) == 3


def test_batch_timeout_passed_to_ledger():
    ledger = FakeLedger(max_batch_size=1)
    submit_commitments(_commitments(2), ledger, VOTER, batch_timeout=12.5, sleep=Sleeps())
    assert ledger.timeouts == [12.5, 12.5]


def test_explicit_batch_size_overrides_ledger():
    ledger = FakeLedger(max_batch_size=25)
    result = submit_commitments(_commitments(5), ledger, VOTER, max_batch_size=2, sleep=Sleeps())
    assert result.batches_used == 3


def test_cancellation_stops_unstarted_batches():
    items = _commitments(6)
    cancel = threading.Event()

    class CancellingLedger(FakeLedger):
        def submit_batch(self, commitments, voter, timeout):
            tx = super().submit_batch(commitments, voter, timeout)
            cancel.set()
            return tx

    ledger = CancellingLedger(max_batch_size=2)
    result = submit_commitments(items, ledger, VOTER, cancel_event=cancel, sleep=Sleeps())

    assert len(ledger.calls) == 1
    assert result.batches_used == 1
    assert [o.commitment for o in result.successes] == items[:2]
    assert [o.commitment for o in result.failures] == items[2:]
    assert all(isinstance(o.error, SubmissionCancelled) for o in result.failures)
    assert [b.state for b in result.batches] == [BatchState.CONFIRMED, BatchState.CANCELLED, BatchState.CANCELLED]


def test_every_commitment_ends_in_exactly_one_outcome(rejected):
    items = _commitments(10)
    ledger = FakeLedger(max_batch_size=3, script={1: rejected, 3: rejected})

    result = submit_commitments(items, ledger, VOTER, sleep=Sleeps())

    seen = [o.commitment for o in result.successes + result.failures]
    assert sorted(c.hash for c in seen) == sorted(c.hash for c in items)
    assert len(seen) == len(items)


def test_empty_input_uses_no_batches():
    ledger = FakeLedger()
    result = submit_commitments([], ledger, VOTER, sleep=Sleeps())
    assert result.batches_used == 0
    assert ledger.calls == []


def test_result_to_dict_reports_counts(rejected):
    items = _commitments(2)
    result = submit_commitments(items, FakeLedger(max_batch_size=1, script={2: rejected}), VOTER, sleep=Sleeps())

    out = result.to_dict()

    assert out["batches_used"] == 2
    assert out["successes"][0]["salt"] == items[0].salt_hex
    assert out["failures"][0]["error_type"] == "RejectedSubmissionError"
