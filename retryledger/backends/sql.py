"""SQLAlchemy-based backend implementation."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from retryledger.backends import StatusFilter, normalize_statuses
from retryledger.models import OperationRecord, OperationStatus
from retryledger.utils import ensure_utc

logger = logging.getLogger(__name__)


class SQLBackend:
    """SQLAlchemy Core backend supporting SQLite and PostgreSQL."""

    def __init__(
        self,
        connection_string: str,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        """Initialize the SQL backend.

        Args:
            connection_string: Database connection string (sqlite:/// or postgresql://)
            pool_size: Connection pool size (ignored for SQLite)
            max_overflow: Max overflow connections (ignored for SQLite)
        """
        self._connection_string = connection_string
        self._is_sqlite = connection_string.startswith("sqlite")

        if self._is_sqlite:
            db_path = connection_string.replace("sqlite:///", "")
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        if self._is_sqlite:
            self._engine: Engine = create_engine(
                connection_string,
                connect_args={"check_same_thread": False},
            )
        else:
            self._engine = create_engine(
                connection_string,
                pool_size=pool_size,
                max_overflow=max_overflow,
            )

        self._metadata = MetaData()
        self._records = Table(
            "operation_records",
            self._metadata,
            Column("id", String(26), primary_key=True),
            Column("operation_type", String(255), nullable=False),
            Column("operation_id", String(255), nullable=True),
            Column("endpoint", String(1024), nullable=True),
            Column("method", String(16), nullable=True),
            Column("request_data", JSON, nullable=True),
            Column("response_data", JSON, nullable=True),
            Column("response_code", Integer, nullable=True),
            Column("status", String(20), nullable=False),
            Column("retry_count", Integer, nullable=False, default=0),
            Column("max_retries", Integer, nullable=False),
            Column("next_retry_at", DateTime, nullable=True),
            Column("error_message", Text, nullable=True),
            Column("created_at", DateTime, nullable=False),
            Column("completed_at", DateTime, nullable=True),
            Column("metadata", JSON, nullable=True),
            Column("version", Integer, nullable=False, default=0),
        )

        self.init_schema()

    def init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        self._metadata.create_all(self._engine)

        indexes = [
            Index("idx_operation_records_status", self._records.c.status),
            Index("idx_operation_records_type", self._records.c.operation_type),
            Index("idx_operation_records_operation_id", self._records.c.operation_id),
            Index("idx_operation_records_next_retry", self._records.c.next_retry_at),
            Index("idx_operation_records_created", self._records.c.created_at),
        ]

        for idx in indexes:
            try:
                idx.create(self._engine, checkfirst=True)
            except SQLAlchemyError:
                logger.debug("Index %s already exists", idx.name)

        # Partial index for the retry poller (PostgreSQL only)
        if not self._is_sqlite:
            try:
                ready_idx = Index(
                    "idx_operation_records_retrying",
                    self._records.c.next_retry_at,
                    postgresql_where=self._records.c.status == OperationStatus.RETRYING.value,
                )
                ready_idx.create(self._engine, checkfirst=True)
            except SQLAlchemyError:
                logger.debug("Index idx_operation_records_retrying already exists")

    def save(self, record: OperationRecord) -> str:
        """Persist a new record. Returns the record ID."""
        data = self._record_to_row(record)

        with self._engine.begin() as conn:
            conn.execute(insert(self._records).values(**data))

        return record.id

    def get(self, record_id: str) -> Optional[OperationRecord]:
        """Fetch a record by ID, or None."""
        stmt = select(self._records).where(self._records.c.id == record_id)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            return None
        return self._row_to_record(row._mapping)

    def update(self, record: OperationRecord, expected_version: int) -> bool:
        """Compare-and-swap write on the version column.

        The stored version becomes expected_version + 1 on success.
        """
        data = self._record_to_row(record)
        data.pop("id")
        data["version"] = expected_version + 1

        stmt = (
            update(self._records)
            .where(self._records.c.id == record.id)
            .where(self._records.c.version == expected_version)
            .values(**data)
        )

        with self._engine.begin() as conn:
            result = conn.execute(stmt)
            return result.rowcount == 1

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
        """Query records with filters.

        When ready_at is given, only records with next_retry_at <= ready_at are
        returned, soonest first. Otherwise the most recent records come first.
        """
        stmt = select(self._records)
        cols = self._records.c

        statuses = normalize_statuses(status)
        if statuses is not None:
            stmt = stmt.where(cols.status.in_(statuses))
        if operation_type is not None:
            stmt = stmt.where(cols.operation_type == operation_type)
        if operation_id is not None:
            stmt = stmt.where(cols.operation_id == operation_id)
        if ready_at is not None:
            stmt = stmt.where(cols.next_retry_at.isnot(None))
            stmt = stmt.where(cols.next_retry_at <= self._to_db_time(ready_at))
        if after is not None:
            stmt = stmt.where(cols.created_at > self._to_db_time(after))
        if before is not None:
            stmt = stmt.where(cols.created_at < self._to_db_time(before))

        if ready_at is not None:
            stmt = stmt.order_by(cols.next_retry_at.asc(), cols.id.asc())
        else:
            stmt = stmt.order_by(cols.created_at.desc(), cols.id.desc())

        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)

        with self._engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()

        return [self._row_to_record(row._mapping) for row in rows]

    @staticmethod
    def _to_db_time(value: Optional[datetime]) -> Optional[datetime]:
        # Timestamps are stored as naive UTC
        value = ensure_utc(value)
        return value.replace(tzinfo=None) if value is not None else None

    def _record_to_row(self, record: OperationRecord) -> Dict[str, Any]:
        """Convert an OperationRecord to a database row dict."""
        return {
            "id": record.id,
            "operation_type": record.operation_type,
            "operation_id": record.operation_id,
            "endpoint": record.endpoint,
            "method": record.method,
            "request_data": record.request_data,
            "response_data": record.response_data,
            "response_code": record.response_code,
            "status": record.status.value,
            "retry_count": record.retry_count,
            "max_retries": record.max_retries,
            "next_retry_at": self._to_db_time(record.next_retry_at),
            "error_message": record.error_message,
            "created_at": self._to_db_time(record.created_at),
            "completed_at": self._to_db_time(record.completed_at),
            "metadata": record.metadata,
            "version": record.version,
        }

    def _row_to_record(self, row: Dict[str, Any]) -> OperationRecord:
        """Convert a database row to an OperationRecord."""
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return OperationRecord(
            id=row["id"],
            operation_type=row["operation_type"],
            operation_id=row["operation_id"],
            endpoint=row["endpoint"],
            method=row["method"],
            request_data=row["request_data"],
            response_data=row["response_data"],
            response_code=row["response_code"],
            status=row["status"],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            next_retry_at=row["next_retry_at"],
            error_message=row["error_message"],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
            metadata=metadata or {},
            version=row["version"],
        )
