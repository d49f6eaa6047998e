"""Cross-process change notification helpers."""

from .relay import ChangeRelay  # noqa: F401
from .transport import (  # noqa: F401
    STORE_CHANGES_TOPIC,
    BrokerConfig,
    RedisTransport,
    Subscription,
    TransportUnavailableError,
)

__all__ = [
    "STORE_CHANGES_TOPIC",
    "BrokerConfig",
    "ChangeRelay",
    "RedisTransport",
    "Subscription",
    "TransportUnavailableError",
]
