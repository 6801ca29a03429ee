"""Exception types raised by retryledger."""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from retryledger.models import Payload


class LedgerError(Exception):
    """Base class for retryledger errors."""


class TerminalStateError(LedgerError):
    """A transition was attempted on a record that already succeeded or failed."""

    def __init__(self, record_id: str, status: str, attempted: str):
        self.record_id = record_id
        self.status = status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} record {record_id}: already in terminal state '{status}'"
        )


class RecordNotFoundError(LedgerError):
    """No record with the requested id exists in the backend."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Operation record not found: {record_id}")


class ConcurrentUpdateError(LedgerError):
    """The stored record changed between read and write."""

    def __init__(self, record_id: str, expected_version: int):
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(
            f"Operation record {record_id} was modified concurrently "
            f"(expected version {expected_version})"
        )


class PermanentOperationError(LedgerError):
    """Raised by callers to mark an external failure as not worth retrying."""

    def __init__(self, message: str, response_data: "Payload" = None, response_code: Optional[int] = None):
        self.response_data = response_data
        self.response_code = response_code
        super().__init__(message)
