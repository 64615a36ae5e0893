"""
Durable delivery of scan events.

Validated events are appended to a JSON-backed queue and drained to the
HTTP collector by a single sender task with retry and circuit-breaker
discipline.
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitConfig,
    CircuitState,
)

from .http_client import (
    AiohttpDeliveryClient,
    DeliveryClient,
    DeliveryError,
)

from .queue_store import (
    DurableQueue,
    QueueEntry,
    QueueStoreError,
    QueueTransaction,
)

from .retry_policy import (
    RetryAttempt,
    RetryOutcome,
    RetryPolicy,
    RetryResult,
)

from .sender import (
    DeliverySender,
    SenderConfig,
)

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitConfig",
    "CircuitState",
    # HTTP
    "AiohttpDeliveryClient",
    "DeliveryClient",
    "DeliveryError",
    # Queue
    "DurableQueue",
    "QueueEntry",
    "QueueStoreError",
    "QueueTransaction",
    # Retry
    "RetryAttempt",
    "RetryOutcome",
    "RetryPolicy",
    "RetryResult",
    # Sender
    "DeliverySender",
    "SenderConfig",
]
