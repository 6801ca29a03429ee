"""Attempt context: report the outcome of one external call."""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, TYPE_CHECKING

from retryledger.errors import PermanentOperationError
from retryledger.models import OperationRecord, OperationStatus, Payload

if TYPE_CHECKING:
    from retryledger.ledger import Ledger


class AttemptContext:
    """Collects the response of an attempt while it runs."""

    def __init__(self, record: OperationRecord):
        """Initialize an attempt context.

        Args:
            record: The record being attempted.
        """
        self._record = record
        self._response_data: Payload = None
        self._response_code: Optional[int] = None
        self._retry_delay: Optional[float] = None
        self._scheduled: Optional[bool] = None

    @property
    def record(self) -> OperationRecord:
        """Get the record. Reflects the stored state once the block exits."""
        return self._record

    @property
    def response_data(self) -> Payload:
        return self._response_data

    @property
    def response_code(self) -> Optional[int]:
        return self._response_code

    @property
    def outcome(self) -> OperationStatus:
        """Status of the record after the attempt."""
        return self._record.status

    @property
    def scheduled(self) -> Optional[bool]:
        """Result of schedule_retry if the attempt raised, else None."""
        return self._scheduled

    def respond(self, data: Payload = None, code: Optional[int] = None) -> None:
        """Store the response of the external call.

        Args:
            data: Response body.
            code: Response status code.
        """
        self._response_data = data
        self._response_code = code

    def retry_after(self, minutes: float) -> None:
        """Override the backoff delay if this attempt ends up being retried."""
        self._retry_delay = minutes


@contextmanager
def attempt_context(
    ledger: "Ledger",
    record: OperationRecord,
    now: Optional[datetime] = None,
    actor_id: Optional[str] = None,
    suppress: bool = False,
) -> Iterator[AttemptContext]:
    """Run one attempt and record its outcome on the ledger.

    Args:
        ledger: Ledger that owns the record.
        record: The record being attempted.
        now: Time used for the resulting transition.
        actor_id: Who performed the attempt.
        suppress: Swallow the exception after recording it.

    Yields:
        The AttemptContext for this attempt.
    """
    ctx = AttemptContext(record)
    try:
        yield ctx
    except PermanentOperationError as exc:
        ledger.record_failure(
            record,
            str(exc),
            response_data=exc.response_data if exc.response_data is not None else ctx.response_data,
            response_code=exc.response_code if exc.response_code is not None else ctx.response_code,
            now=now,
            actor_id=actor_id,
        )
        if not suppress:
            raise
    except Exception as exc:
        ctx._scheduled = ledger.schedule_retry(
            record,
            delay_minutes=ctx._retry_delay,
            error_message=str(exc) or type(exc).__name__,
            now=now,
            actor_id=actor_id,
        )
        if not suppress:
            raise
    else:
        ledger.record_success(
            record,
            ctx.response_data,
            response_code=ctx.response_code,
            now=now,
            actor_id=actor_id,
        )
