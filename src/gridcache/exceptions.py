"""
Custom exception hierarchy for gridcache.

All exceptions inherit from GridCacheError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class GridCacheError(Exception):
    """Base exception for all gridcache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(GridCacheError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Collection name that is not a valid identifier
        - Cache constructed outside a running event loop
    """

    pass


class StoreError(GridCacheError):
    """Raised when the durable store rejects a read or write.

    Context should include:
        - operation: "get" or "put"
        - key: The durable-store key
        - path: The database path
    """

    pass


class ProtocolError(GridCacheError):
    """Raised when an envelope does not follow the wire protocol.

    Context should include:
        - procedure: The requested procedure, if any
        - id: The request id, if any
    """

    pass


class SerializationError(GridCacheError):
    """Raised when a working set cannot be encoded or a blob cannot be decoded.

    Context should include:
        - store_key: The durable-store key involved
    """

    pass


class TransportError(GridCacheError):
    """Raised when a response envelope carries an error.

    Context should include:
        - id: The request id
        - procedure: The procedure that failed
    """

    pass


class TransportTimeoutError(TransportError):
    """Raised when a request is evicted from the pending table unanswered."""

    pass


class TransportClosedError(TransportError):
    """Raised for requests still pending when the transport stops."""

    pass
