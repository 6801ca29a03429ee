"""Tests for optimistic concurrency on stored records."""

import threading
from datetime import timedelta

import pytest

from retryledger import ConcurrentUpdateError, Ledger, MemoryBackend, NullAuditSink, OperationStatus, RecordNotFoundError
from retryledger.models import OperationRecord

from conftest import T0


class TestCompareAndSwap:
    """Two workers holding the same record version."""

    def test_second_writer_loses(self, ledger):
        record = ledger.begin("sync", now=T0)
        worker_a = ledger.get(record.id)
        worker_b = ledger.get(record.id)

        assert ledger.schedule_retry(worker_a, now=T0) is True

        with pytest.raises(ConcurrentUpdateError) as excinfo:
            ledger.schedule_retry(worker_b, now=T0)

        assert excinfo.value.expected_version == 0
        stored = ledger.get(record.id)
        assert stored.retry_count == 1
        assert stored.version == 1

    def test_loser_record_left_untouched(self, ledger):
        record = ledger.begin("sync", now=T0)
        stale = ledger.get(record.id)
        ledger.record_success(record, {"ok": True}, now=T0)

        with pytest.raises(ConcurrentUpdateError):
            ledger.record_failure(stale, "timeout", now=T0)

        assert stale.status == OperationStatus.PENDING
        assert stale.version == 0
        assert stale.error_message is None

    def test_refresh_and_retry_after_conflict(self, ledger):
        record = ledger.begin("sync", now=T0)
        stale = ledger.get(record.id)
        ledger.schedule_retry(record, now=T0)

        with pytest.raises(ConcurrentUpdateError):
            ledger.schedule_retry(stale, now=T0)

        fresh = ledger.get(record.id)
        assert ledger.schedule_retry(fresh, now=T0 + timedelta(minutes=1)) is True
        assert ledger.get(record.id).retry_count == 2

    def test_update_of_unknown_record(self, ledger):
        ghost = OperationRecord(id="01GHOSTRECORD0000000000000", operation_type="sync", created_at=T0)

        with pytest.raises(RecordNotFoundError):
            ledger.schedule_retry(ghost, now=T0)


def test_racing_threads_apply_one_retry_each_version():
    """Many threads racing on one record never exceed the retry budget."""
    ledger = Ledger(MemoryBackend(), audit=NullAuditSink())
    record = ledger.begin("sync", max_retries=3, now=T0)
    barrier = threading.Barrier(8)
    outcomes = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        for _ in range(10):
            current = ledger.get(record.id)
            if current.is_terminal:
                return
            try:
                result = ledger.schedule_retry(current, now=T0)
            except ConcurrentUpdateError:
                continue
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stored = ledger.get(record.id)
    assert stored.retry_count == 3
    assert stored.status == OperationStatus.FAILED
    assert outcomes.count(True) == 3
    assert outcomes.count(False) == 1
