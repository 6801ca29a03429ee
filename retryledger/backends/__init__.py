"""Backend protocol and implementations for retryledger."""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Union, runtime_checkable

from retryledger.models import OperationRecord, OperationStatus


StatusFilter = Union[OperationStatus, str, Sequence[Union[OperationStatus, str]]]


@runtime_checkable
class Backend(Protocol):
    """Protocol defining the storage interface for operation records.

    Backends must make update() an atomic compare-and-swap on the record
    version: the write happens only if the stored version still equals
    expected_version, and the stored version is then incremented.
    """

    def save(self, record: OperationRecord) -> str:
        """Persist a new record. Returns the record ID."""
        ...

    def get(self, record_id: str) -> Optional[OperationRecord]:
        """Fetch a record by ID, or None."""
        ...

    def update(self, record: OperationRecord, expected_version: int) -> bool:
        """Write the record if the stored version matches. Returns success."""
        ...

    def query(
        self,
        status: Optional[StatusFilter] = None,
        operation_type: Optional[str] = None,
        operation_id: Optional[str] = None,
        ready_at: Optional[datetime] = None,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[OperationRecord]:
        """Query records with filters."""
        ...

    def init_schema(self) -> None:
        """Create tables if they don't exist."""
        ...


def normalize_statuses(status: Optional[StatusFilter]) -> Optional[List[str]]:
    """Turn a status filter into a list of raw status values."""
    if status is None:
        return None
    if isinstance(status, (OperationStatus, str)):
        status = [status]
    return [OperationStatus(s).value for s in status]
