"""State transitions for operation records.

These functions mutate an OperationRecord in place and never touch storage.
The current time is always passed in by the caller.

    pending  -> success | failed | retrying
    retrying -> success | failed | retrying
    success, failed: terminal
"""

from datetime import datetime, timedelta
from typing import Optional

from retryledger.errors import TerminalStateError
from retryledger.models import OperationRecord, OperationStatus, Payload, check_payload


MAX_RETRIES_EXCEEDED = "Maximum retries exceeded"


def can_retry(record: OperationRecord) -> bool:
    """Return True if another retry may be scheduled for the record."""
    return record.retry_count < record.max_retries


def backoff_delay(retry_count: int) -> timedelta:
    """Exponential backoff: 2 ** retry_count minutes (1, 2, 4, 8, ...)."""
    if retry_count < 0:
        raise ValueError("retry_count must be non-negative")
    return timedelta(minutes=2 ** retry_count)


def _guard(record: OperationRecord, attempted: str, strict: bool) -> None:
    if strict and record.is_terminal:
        raise TerminalStateError(record.id, record.status.value, attempted)


def _complete(record: OperationRecord, status: OperationStatus, now: datetime) -> None:
    record.status = status
    record.next_retry_at = None
    # completed_at is written once; lenient overwrites keep the first value
    if record.completed_at is None:
        record.completed_at = now


def record_success(
    record: OperationRecord,
    response_data: Payload,
    now: datetime,
    response_code: Optional[int] = None,
    strict: bool = True,
) -> OperationRecord:
    """Mark the operation as succeeded.

    Args:
        record: The record to update.
        response_data: Inbound response body, stored verbatim.
        now: Completion time.
        response_code: Optional response status code.
        strict: Reject the call if the record is already terminal.

    Returns:
        The same record, for chaining.

    Raises:
        TerminalStateError: If strict and the record is terminal.
        pydantic.ValidationError: If response_data is not a JSON value.
    """
    _guard(record, "record success on", strict)
    response_data = check_payload(response_data)
    record.response_data = response_data
    if response_code is not None:
        record.response_code = response_code
    _complete(record, OperationStatus.SUCCESS, now)
    return record


def record_failure(
    record: OperationRecord,
    error_message: str,
    now: datetime,
    response_data: Payload = None,
    response_code: Optional[int] = None,
    strict: bool = True,
) -> OperationRecord:
    """Mark the operation as permanently failed.

    Failure is terminal regardless of the remaining retry budget.

    Raises:
        TerminalStateError: If strict and the record is terminal.
    """
    _guard(record, "record failure on", strict)
    response_data = check_payload(response_data)
    record.error_message = error_message
    record.response_data = response_data
    if response_code is not None:
        record.response_code = response_code
    _complete(record, OperationStatus.FAILED, now)
    return record


def schedule_retry(
    record: OperationRecord,
    now: datetime,
    delay_minutes: Optional[float] = None,
    error_message: Optional[str] = None,
    strict: bool = True,
) -> bool:
    """Schedule another attempt, or fail the record once retries run out.

    Args:
        record: The record to update.
        now: Reference time for next_retry_at.
        delay_minutes: Override for the backoff delay.
        error_message: Error from the attempt that just failed, if any.
        strict: Reject the call if the record is already terminal.

    Returns:
        True if a retry was scheduled, False if the record is now failed.

    Raises:
        ValueError: If delay_minutes is negative, or the delay pushes
            next_retry_at out of range. The record is left unchanged.
        TerminalStateError: If strict and the record is terminal.
    """
    if delay_minutes is not None and delay_minutes < 0:
        raise ValueError("delay_minutes must be non-negative")
    _guard(record, "schedule retry for", strict)

    if not can_retry(record):
        record_failure(
            record,
            MAX_RETRIES_EXCEEDED,
            now,
            response_data=record.response_data,
            strict=strict,
        )
        return False

    try:
        if delay_minutes is None:
            delay = backoff_delay(record.retry_count)
        else:
            delay = timedelta(minutes=delay_minutes)
        next_retry_at = now + delay
    except OverflowError:
        raise ValueError(
            f"Retry delay for record {record.id} runs past the maximum datetime"
        ) from None

    record.status = OperationStatus.RETRYING
    record.retry_count += 1
    record.next_retry_at = next_retry_at
    if error_message is not None:
        record.error_message = error_message
    return True
