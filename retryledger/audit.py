"""Audit sinks receiving one event per ledger transition."""

import logging
from typing import Any, Dict, Protocol, runtime_checkable


@runtime_checkable
class AuditSink(Protocol):
    """Destination for ledger audit events."""

    def record(self, level: int, message: str, context: Dict[str, Any]) -> None:
        """Record an event. level uses the stdlib logging levels."""
        ...


class LoggingAuditSink:
    """Forward audit events to a stdlib logger.

    The context dict is attached to the log record as ``ledger`` so handlers
    and formatters can pick fields out of it.
    """

    def __init__(self, logger: Any = None):
        if logger is None or isinstance(logger, str):
            logger = logging.getLogger(logger or "retryledger.audit")
        self._logger = logger

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def record(self, level: int, message: str, context: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        details = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
        self._logger.log(level, "%s %s", message, details, extra={"ledger": dict(context)})


class NullAuditSink:
    """Discard all audit events."""

    def record(self, level: int, message: str, context: Dict[str, Any]) -> None:
        return None
