"""In-process backend keeping records in a dict."""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from retryledger.backends import StatusFilter, normalize_statuses
from retryledger.models import OperationRecord
from retryledger.utils import ensure_utc


class MemoryBackend:
    """Thread-safe dict-backed storage with the same semantics as SQLBackend.

    Records are copied on the way in and out, so callers never share state
    with the store.
    """

    def __init__(self):
        self._records: Dict[str, OperationRecord] = {}
        self._lock = threading.Lock()

    def init_schema(self) -> None:
        """Nothing to create."""

    def save(self, record: OperationRecord) -> str:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Duplicate record id: {record.id}")
            self._records[record.id] = record.model_copy(deep=True)
        return record.id

    def get(self, record_id: str) -> Optional[OperationRecord]:
        with self._lock:
            stored = self._records.get(record_id)
            return stored.model_copy(deep=True) if stored is not None else None

    def update(self, record: OperationRecord, expected_version: int) -> bool:
        with self._lock:
            stored = self._records.get(record.id)
            if stored is None or stored.version != expected_version:
                return False
            self._records[record.id] = record.model_copy(
                deep=True, update={"version": expected_version + 1}
            )
            return True

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
        statuses = normalize_statuses(status)
        ready_at = ensure_utc(ready_at)
        after = ensure_utc(after)
        before = ensure_utc(before)

        with self._lock:
            candidates = list(self._records.values())

        matched = []
        for rec in candidates:
            if statuses is not None and rec.status.value not in statuses:
                continue
            if operation_type is not None and rec.operation_type != operation_type:
                continue
            if operation_id is not None and rec.operation_id != operation_id:
                continue
            if ready_at is not None and (rec.next_retry_at is None or rec.next_retry_at > ready_at):
                continue
            if after is not None and rec.created_at <= after:
                continue
            if before is not None and rec.created_at >= before:
                continue
            matched.append(rec)

        if ready_at is not None:
            matched.sort(key=lambda r: (r.next_retry_at, r.id))
        else:
            matched.sort(key=lambda r: (r.created_at, r.id), reverse=True)

        start = offset or 0
        end = start + limit if limit is not None else None
        return [rec.model_copy(deep=True) for rec in matched[start:end]]
