"""Bitrix24 REST client package."""

from .api_client import Bitrix24Client
from .api_client_core import Bitrix24ClientCore
from .batch import BatchMultiplexer
from .field_codec import FieldNameCodec
from .pagination import PaginationCursor, PaginationStrategy
from .rate_limiter import AdaptiveRateLimiter
from .transport import Transport, WebhookTransport
from .tree_replicator import TreeReplicator

__all__ = [
    "AdaptiveRateLimiter",
    "BatchMultiplexer",
    "Bitrix24Client",
    "Bitrix24ClientCore",
    "FieldNameCodec",
    "PaginationCursor",
    "PaginationStrategy",
    "TreeReplicator",
    "Transport",
    "WebhookTransport",
]
