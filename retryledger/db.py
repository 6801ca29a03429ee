"""Module-level operations on the global default ledger."""

from datetime import datetime
from typing import Any, List, Optional

from retryledger.backends import StatusFilter
from retryledger.config import get_ledger
from retryledger.models import OperationRecord, Payload


def get(record_id: str) -> OperationRecord:
    """Fetch a record by ID.

    Raises:
        RecordNotFoundError: If no such record exists.
        RuntimeError: If retryledger is not configured.
    """
    return get_ledger().get(record_id)


def query(
    status: Optional[StatusFilter] = None,
    operation_type: Optional[str] = None,
    operation_id: Optional[str] = None,
    after: Optional[datetime] = None,
    before: Optional[datetime] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[OperationRecord]:
    """Query stored records.

    Args:
        status: A status or list of statuses to match.
        operation_type: Filter by operation type.
        operation_id: Filter by external correlation key.
        after: Records created after this time.
        before: Records created before this time.
        limit: Maximum records to return.
        offset: Skip this many records (for pagination).

    Returns:
        List of matching records, most recent first.

    Raises:
        RuntimeError: If retryledger is not configured.
    """
    return get_ledger().query(
        status=status,
        operation_type=operation_type,
        operation_id=operation_id,
        after=after,
        before=before,
        limit=limit,
        offset=offset,
    )


def pending(limit: Optional[int] = None) -> List[OperationRecord]:
    """Records still in pending state."""
    return get_ledger().select_pending(limit=limit)


def failed(limit: Optional[int] = None) -> List[OperationRecord]:
    """Records that failed permanently."""
    return get_ledger().select_failed(limit=limit)


def ready_for_retry(now: Optional[datetime] = None, limit: Optional[int] = None) -> List[OperationRecord]:
    """Retrying records due at or before now."""
    return get_ledger().select_ready_for_retry(now, limit=limit)


def record_success(record: OperationRecord, response_data: Payload = None, **kwargs: Any) -> OperationRecord:
    """Mark a record as succeeded on the global ledger."""
    return get_ledger().record_success(record, response_data, **kwargs)


def record_failure(record: OperationRecord, error_message: str, **kwargs: Any) -> OperationRecord:
    """Mark a record as failed on the global ledger."""
    return get_ledger().record_failure(record, error_message, **kwargs)


def schedule_retry(record: OperationRecord, **kwargs: Any) -> bool:
    """Schedule a retry on the global ledger. Returns False once retries run out."""
    return get_ledger().schedule_retry(record, **kwargs)
