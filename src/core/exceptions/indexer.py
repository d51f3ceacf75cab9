"""
Error taxonomy for the event indexer and the client query layer.

Handler-level errors never abort stream processing; the query layer keeps
rate limiting distinct from generic network failures so cooldown logic can
react to it specifically.
"""

from typing import Any, Dict, Optional

from src.core.exceptions.handler import ServiceError, ServiceErrorCode


class UnrecognizedEventError(Exception):
    """A raw log matches no known event signature (or cannot be decoded)."""

    def __init__(self, message: str, address: Optional[str] = None, topic: Optional[str] = None):
        self.address = address
        self.topic = topic
        super().__init__(message)


class MissingReferencedEntityError(Exception):
    """A handler expected an entity to already exist."""

    def __init__(self, kind: str, entity_id: str, event_type: str):
        self.kind = kind
        self.entity_id = entity_id
        self.event_type = event_type
        super().__init__(f"{event_type}: {kind} {entity_id} not found")


class RateLimitedError(ServiceError):
    """Query endpoint signalled overload (HTTP 429) or the shared cooldown is active."""

    def __init__(self, message: str = "Query endpoint rate limited", retry_after: float = 0.0,
                 details: Optional[Dict[str, Any]] = None):
        self.retry_after = retry_after
        payload = {"retry_after": int(retry_after + 0.999)}
        payload.update(details or {})
        super().__init__(
            code=ServiceErrorCode.RATE_LIMIT_EXCEEDED,
            message=message,
            status_code=429,
            details=payload
        )


class TransientNetworkError(ServiceError):
    """Timeouts, connection resets and other retryable transport failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.NETWORK_ERROR,
            message=message,
            status_code=503,
            details=details
        )


class QueryError(ServiceError):
    """The query endpoint answered but reported an error or returned no data."""

    def __init__(self, message: str, status_code: int = 502, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.QUERY_ERROR,
            message=message,
            status_code=status_code,
            details=details
        )
