"""Tests for the pure record transitions."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from retryledger import OperationRecord, OperationStatus, TerminalStateError
from retryledger.models import MAX_RETRIES_LIMIT
from retryledger.transitions import (
    MAX_RETRIES_EXCEEDED,
    backoff_delay,
    can_retry,
    record_failure,
    record_success,
    schedule_retry,
)

from conftest import T0


def make_record(**overrides):
    fields = dict(id="01TESTRECORD0000000000000", operation_type="zoho.create_item", created_at=T0)
    fields.update(overrides)
    return OperationRecord(**fields)


class TestBackoff:
    """Test the exponential backoff delay."""

    def test_starts_at_one_minute(self):
        assert backoff_delay(0) == timedelta(minutes=1)

    def test_doubles_per_retry(self):
        assert [backoff_delay(n) for n in range(5)] == [
            timedelta(minutes=m) for m in (1, 2, 4, 8, 16)
        ]

    def test_rejects_negative_count(self):
        with pytest.raises(ValueError):
            backoff_delay(-1)


class TestScheduleRetry:
    """Test schedule_retry bookkeeping."""

    def test_first_retry_waits_one_minute(self):
        record = make_record()

        assert schedule_retry(record, T0) is True
        assert record.status == OperationStatus.RETRYING
        assert record.retry_count == 1
        assert record.next_retry_at == T0 + timedelta(minutes=1)
        assert record.completed_at is None

    def test_delay_uses_count_before_increment(self):
        record = make_record(retry_count=3, max_retries=5)

        schedule_retry(record, T0)

        assert record.retry_count == 4
        assert record.next_retry_at == T0 + timedelta(minutes=8)

    def test_override_delay(self):
        record = make_record()

        schedule_retry(record, T0, delay_minutes=30)

        assert record.next_retry_at == T0 + timedelta(minutes=30)
        assert record.retry_count == 1

    def test_negative_override_rejected(self):
        record = make_record()

        with pytest.raises(ValueError):
            schedule_retry(record, T0, delay_minutes=-1)
        assert record.status == OperationStatus.PENDING
        assert record.retry_count == 0

    def test_stores_error_message(self):
        record = make_record()

        schedule_retry(record, T0, error_message="HTTP 503")

        assert record.error_message == "HTTP 503"

    def test_three_retries_then_failure(self):
        """max_retries=3: delays 1, 2, 4 minutes, then terminal failure."""
        record = make_record(max_retries=3)
        delays = []

        for expected_count in (1, 2, 3):
            now = T0 + timedelta(hours=expected_count)
            assert schedule_retry(record, now) is True
            assert record.retry_count == expected_count
            assert record.status == OperationStatus.RETRYING
            delays.append(record.next_retry_at - now)

        assert delays == [timedelta(minutes=1), timedelta(minutes=2), timedelta(minutes=4)]

        end = T0 + timedelta(hours=5)
        assert schedule_retry(record, end) is False
        assert record.status == OperationStatus.FAILED
        assert record.error_message == MAX_RETRIES_EXCEEDED
        assert record.retry_count == 3
        assert record.next_retry_at is None
        assert record.completed_at == end

    @pytest.mark.parametrize("delay", [None, 0, 5, 120])
    def test_exhausted_ignores_delay_argument(self, delay):
        record = make_record(status=OperationStatus.RETRYING, retry_count=3, max_retries=3,
                             next_retry_at=T0)

        assert schedule_retry(record, T0, delay_minutes=delay) is False
        assert record.status == OperationStatus.FAILED
        assert record.retry_count == 3

    def test_exhausted_keeps_last_response(self):
        record = make_record(status=OperationStatus.RETRYING, retry_count=1, max_retries=1,
                             next_retry_at=T0, response_data={"code": 57})

        schedule_retry(record, T0)

        assert record.response_data == {"code": 57}

    def test_can_retry(self):
        assert can_retry(make_record(retry_count=2, max_retries=3))
        assert not can_retry(make_record(retry_count=3, max_retries=3))


class TestTerminalTransitions:
    """Test record_success and record_failure."""

    def test_success_on_pending(self):
        record = make_record()

        record_success(record, {"item_id": "4815"}, T0, response_code=201)

        assert record.status == OperationStatus.SUCCESS
        assert record.response_data == {"item_id": "4815"}
        assert record.response_code == 201
        assert record.completed_at == T0

    def test_success_clears_next_retry(self):
        record = make_record()
        schedule_retry(record, T0)

        record_success(record, None, T0 + timedelta(minutes=2))

        assert record.next_retry_at is None
        assert record.retry_count == 1

    def test_failure_is_terminal_with_budget_left(self):
        record = make_record(max_retries=5)
        schedule_retry(record, T0)

        record_failure(record, "timeout", T0 + timedelta(minutes=1))

        assert record.status == OperationStatus.FAILED
        assert record.error_message == "timeout"
        assert can_retry(record)
        assert record.next_retry_at is None
        assert record.completed_at == T0 + timedelta(minutes=1)

    def test_strict_rejects_second_success(self):
        record = make_record()
        record_success(record, {"n": 1}, T0)

        with pytest.raises(TerminalStateError) as excinfo:
            record_success(record, {"n": 2}, T0 + timedelta(minutes=1))

        assert excinfo.value.status == "success"
        assert record.response_data == {"n": 1}

    def test_strict_rejects_retry_after_failure(self):
        record = make_record()
        record_failure(record, "bad request", T0)

        with pytest.raises(TerminalStateError):
            schedule_retry(record, T0)

    def test_lenient_overwrites_but_keeps_completed_at(self):
        record = make_record()
        record_success(record, {"n": 1}, T0)

        record_failure(record, "late error", T0 + timedelta(minutes=3), strict=False)

        assert record.status == OperationStatus.FAILED
        assert record.error_message == "late error"
        assert record.completed_at == T0


class TestRecordInvariants:
    """Test invariants enforced when a record is built."""

    def test_retry_count_above_max_rejected(self):
        with pytest.raises(ValidationError):
            make_record(retry_count=4, max_retries=3)

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_record(max_retries=0)

    def test_terminal_requires_completed_at(self):
        with pytest.raises(ValidationError):
            make_record(status=OperationStatus.SUCCESS)

    def test_next_retry_only_while_retrying(self):
        with pytest.raises(ValidationError):
            make_record(next_retry_at=T0)

    def test_naive_timestamps_become_utc(self):
        record = make_record(created_at=T0.replace(tzinfo=None))
        assert record.created_at == T0

    def test_max_retries_upper_bound(self):
        assert make_record(max_retries=MAX_RETRIES_LIMIT).max_retries == MAX_RETRIES_LIMIT
        with pytest.raises(ValidationError):
            make_record(max_retries=MAX_RETRIES_LIMIT + 1)

    def test_list_payloads_accepted(self):
        record = make_record(request_data=[{"sku": "A"}, {"sku": "B"}])
        assert record.request_data == [{"sku": "A"}, {"sku": "B"}]


class TestDelayRange:
    """Test that long delays never leave a half-updated record."""

    def test_full_budget_at_upper_bound(self):
        record = make_record(max_retries=MAX_RETRIES_LIMIT)

        for _ in range(MAX_RETRIES_LIMIT):
            assert schedule_retry(record, T0) is True

        assert record.retry_count == MAX_RETRIES_LIMIT
        assert record.next_retry_at == T0 + timedelta(minutes=2 ** (MAX_RETRIES_LIMIT - 1))
        assert schedule_retry(record, T0) is False
        assert record.status == OperationStatus.FAILED

    def test_overflowing_delay_leaves_record_unchanged(self):
        record = make_record(max_retries=5)
        schedule_retry(record, T0)
        before = record.model_copy(deep=True)

        with pytest.raises(ValueError):
            schedule_retry(record, T0, delay_minutes=10 ** 12)

        assert record == before

    def test_backoff_past_datetime_max_leaves_record_unchanged(self):
        near_end = datetime(9999, 12, 31, 23, 0, tzinfo=timezone.utc)
        record = make_record(created_at=near_end, retry_count=10, max_retries=20)

        with pytest.raises(ValueError):
            schedule_retry(record, near_end)

        assert record.status == OperationStatus.PENDING
        assert record.retry_count == 10
        assert record.next_retry_at is None


class TestPayloadTransitions:
    """Test that response bodies may be any JSON value."""

    @pytest.mark.parametrize("body", [[{"item_id": 1}], "accepted", 42, None])
    def test_success_stores_any_json_value(self, body):
        record = make_record()

        record_success(record, body, T0)

        assert record.response_data == body

    def test_failure_stores_list_body(self):
        record = make_record()

        record_failure(record, "partial batch", T0, response_data=[{"sku": "A", "error": "dup"}])

        assert record.response_data == [{"sku": "A", "error": "dup"}]

    def test_non_json_body_rejected_before_mutation(self):
        record = make_record()

        with pytest.raises(ValidationError):
            record_success(record, {"at": object()}, T0)

        assert record.status == OperationStatus.PENDING
        assert record.completed_at is None
