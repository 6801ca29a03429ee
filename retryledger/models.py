"""Pydantic models for retryledger."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, JsonValue, TypeAdapter, field_validator, model_validator

from retryledger.utils import ensure_utc


DEFAULT_MAX_RETRIES = 3
# 2 ** 19 minutes is about a year; higher counts push next_retry_at out of range
MAX_RETRIES_LIMIT = 20

# Opaque request/response body: any JSON value, map or array alike
Payload = Optional[JsonValue]

_payload_adapter = TypeAdapter(Payload)


def check_payload(value: Payload) -> Payload:
    """Validate a request or response body as a JSON value.

    Raises:
        pydantic.ValidationError: If the value cannot be stored as JSON.
    """
    return _payload_adapter.validate_python(value)


class OperationStatus(str, Enum):
    """Lifecycle status of an operation record."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OperationStatus.SUCCESS, OperationStatus.FAILED})


class OperationRecord(BaseModel):
    """One attempt, and its retries, at an idempotent external operation."""

    # Identity
    id: str
    operation_type: str
    operation_id: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None

    # Payload
    request_data: Payload = None
    response_data: Payload = None
    response_code: Optional[int] = None

    # Lifecycle
    status: OperationStatus = OperationStatus.PENDING

    # Retry bookkeeping
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1, le=MAX_RETRIES_LIMIT)
    next_retry_at: Optional[datetime] = None

    error_message: Optional[str] = None

    # Timestamps
    created_at: datetime
    completed_at: Optional[datetime] = None

    metadata: Dict[str, JsonValue] = Field(default_factory=dict)

    # Optimistic concurrency token, bumped by the backend on every update
    version: int = Field(default=0, ge=0)

    @field_validator("created_at", "completed_at", "next_retry_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_invariants(self) -> "OperationRecord":
        if self.retry_count > self.max_retries:
            raise ValueError(
                f"retry_count ({self.retry_count}) exceeds max_retries ({self.max_retries})"
            )
        if self.status.is_terminal and self.completed_at is None:
            raise ValueError(f"{self.status.value} record must have completed_at")
        if self.next_retry_at is not None and self.status != OperationStatus.RETRYING:
            raise ValueError("next_retry_at is only valid while retrying")
        return self

    @property
    def is_terminal(self) -> bool:
        """True once the record reached success or failed."""
        return self.status.is_terminal

