"""Fluent builder for new operation records."""

from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from retryledger.models import OperationRecord, Payload

if TYPE_CHECKING:
    from retryledger.ledger import Ledger


class OpBuilder:
    """Fluent builder for creating operation records.

    All methods return self for chaining (except begin()).
    """

    def __init__(self, ledger: "Ledger", operation_type: str):
        """Initialize an operation builder.

        Args:
            ledger: The ledger the record is stored in.
            operation_type: Tag describing the call (e.g. 'zoho.create_item').
        """
        self._ledger = ledger
        self._operation_type = operation_type
        self._operation_id: Optional[str] = None
        self._endpoint: Optional[str] = None
        self._method: Optional[str] = None
        self._request: Dict[str, Any] = {}
        self._body: Payload = None
        self._meta: Dict[str, Any] = {}
        self._max_retries: Optional[int] = None

    def target(self, endpoint: str, method: Optional[str] = None) -> "OpBuilder":
        """Set the endpoint and request method of the external call.

        Args:
            endpoint: Endpoint descriptor (path, URL or RPC name).
            method: Request method (e.g. 'POST').

        Returns:
            self for chaining.
        """
        self._endpoint = endpoint
        if method is not None:
            self._method = method
        return self

    def correlate(self, operation_id: str) -> "OpBuilder":
        """Set the external correlation key.

        Returns:
            self for chaining.
        """
        self._operation_id = operation_id
        return self

    def request(self, **kwargs: Any) -> "OpBuilder":
        """Add request body fields. Can be called multiple times; kwargs are merged.

        Args:
            **kwargs: Request key-value pairs (stored as JSON).

        Returns:
            self for chaining.
        """
        self._request.update(kwargs)
        return self

    def body(self, payload: Payload) -> "OpBuilder":
        """Set the whole request body, e.g. a list for bulk endpoints.

        Cannot be combined with request().

        Returns:
            self for chaining.
        """
        self._body = payload
        return self

    def meta(self, **kwargs: Any) -> "OpBuilder":
        """Add metadata. Can be called multiple times; kwargs are merged.

        Returns:
            self for chaining.
        """
        self._meta.update(kwargs)
        return self

    def max_retries(self, count: int) -> "OpBuilder":
        """Override the ledger's default retry ceiling.

        Returns:
            self for chaining.
        """
        self._max_retries = count
        return self

    def begin(
        self,
        now: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> OperationRecord:
        """Store the record in pending state and return it.

        Raises:
            ValueError: If both body() and request() were used.
        """
        if self._body is not None and self._request:
            raise ValueError("Use either body() or request(), not both")
        request_data = self._body if self._body is not None else (self._request or None)
        return self._ledger.begin(
            self._operation_type,
            operation_id=self._operation_id,
            endpoint=self._endpoint,
            method=self._method,
            request_data=request_data,
            max_retries=self._max_retries,
            metadata=self._meta,
            now=now,
            actor_id=actor_id,
        )
