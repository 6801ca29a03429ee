"""retryledger - ledger for retryable external operations.

Records attempts to call an external system, tracks their status and
decides whether and when to retry them with exponential backoff.

Example usage:

    from retryledger import Ledger, PermanentOperationError

    ledger = Ledger("sqlite:///ledger.db")

    # Record a new attempt
    record = (
        ledger.operation("zoho.create_item")
        .target("/inventory/v1/items", "POST")
        .correlate("SKU-1042")
        .request(name="Widget", rate=12.5)
        .begin()
    )

    # Report the outcome
    try:
        response = client.create_item(record.request_data)
    except TimeoutError as exc:
        ledger.schedule_retry(record, error_message=str(exc))
    else:
        ledger.record_success(record, response)

    # Or let a context manager do it
    with ledger.attempt(record) as attempt:
        attempt.respond(client.create_item(record.request_data), 201)

    # Poll for due retries
    for record in ledger.select_ready_for_retry():
        ...
"""

from retryledger.audit import AuditSink, LoggingAuditSink, NullAuditSink
from retryledger.backends import Backend
from retryledger.backends.memory import MemoryBackend
from retryledger.backends.sql import SQLBackend
from retryledger.config import LedgerSettings, configure, get_ledger, operation
from retryledger.errors import (
    ConcurrentUpdateError,
    LedgerError,
    PermanentOperationError,
    RecordNotFoundError,
    TerminalStateError,
)
from retryledger.ledger import Ledger
from retryledger.models import OperationRecord, OperationStatus
from retryledger.poller import process_ready
from retryledger import db
from retryledger import export

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "configure",
    "get_ledger",
    "LedgerSettings",
    "Ledger",
    "operation",
    # Models
    "OperationRecord",
    "OperationStatus",
    # Storage
    "Backend",
    "MemoryBackend",
    "SQLBackend",
    # Audit
    "AuditSink",
    "LoggingAuditSink",
    "NullAuditSink",
    # Errors
    "LedgerError",
    "TerminalStateError",
    "RecordNotFoundError",
    "ConcurrentUpdateError",
    "PermanentOperationError",
    # Polling
    "process_ready",
    # Submodules
    "db",
    "export",
]
