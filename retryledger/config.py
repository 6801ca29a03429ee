"""Settings and the process-wide default ledger."""

import logging
from typing import Literal, Optional, Union

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from retryledger.audit import AuditSink
from retryledger.backends import Backend
from retryledger.builder import OpBuilder
from retryledger.ledger import Ledger
from retryledger.models import DEFAULT_MAX_RETRIES, MAX_RETRIES_LIMIT


class LedgerSettings(BaseSettings):
    """
    Ledger configuration.

    All settings can be overridden via RETRYLEDGER_* environment variables.
    """

    database_url: str = Field(default="sqlite:///retryledger.db")
    default_max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1, le=MAX_RETRIES_LIMIT)
    strict_transitions: bool = Field(default=True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )

    model_config = SettingsConfigDict(
        env_prefix="RETRYLEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global default ledger
_default_ledger: Optional[Ledger] = None


def configure(
    backend: Union[str, Backend, None] = None,
    audit: Optional[AuditSink] = None,
    settings: Optional[LedgerSettings] = None,
) -> Ledger:
    """Configure the global default ledger.

    Must be called before the module-level helpers in retryledger.db are used.

    Args:
        backend: Connection string or Backend instance. Defaults to
            settings.database_url.
        audit: Audit sink for the ledger. Defaults to a LoggingAuditSink.
        settings: Settings to use. Loaded from the environment if omitted.

    Returns:
        The configured Ledger instance.
    """
    global _default_ledger
    if settings is None:
        settings = LedgerSettings()

    logging.getLogger("retryledger").setLevel(settings.log_level)

    _default_ledger = Ledger(
        backend=backend if backend is not None else settings.database_url,
        audit=audit,
        default_max_retries=settings.default_max_retries,
        strict=settings.strict_transitions,
    )
    return _default_ledger


def get_ledger() -> Ledger:
    """Get the global default ledger.

    Raises:
        RuntimeError: If configure() has not been called.
    """
    if _default_ledger is None:
        raise RuntimeError(
            "retryledger not configured. Call configure() first."
        )
    return _default_ledger


def operation(operation_type: str) -> OpBuilder:
    """Start building an operation record on the global ledger.

    Raises:
        RuntimeError: If configure() has not been called.
    """
    return get_ledger().operation(operation_type)
