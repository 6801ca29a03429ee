"""Shared fixtures for retryledger tests."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from retryledger import Ledger, MemoryBackend, SQLBackend


T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class RecordingAuditSink:
    """Audit sink that keeps every event in a list."""

    def __init__(self):
        self.events = []

    def record(self, level, message, context):
        self.events.append((level, message, dict(context)))

    @property
    def messages(self):
        return [message for _, message, _ in self.events]


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture(params=["memory", "sql"])
def backend(request, temp_db):
    """Run the test against every backend."""
    if request.param == "memory":
        return MemoryBackend()
    return SQLBackend(temp_db)


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def ledger(backend, audit):
    return Ledger(backend, audit=audit)
