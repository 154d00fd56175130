"""Data models and exceptions for the Bitrix24 client."""

from . import crm_entity
from .errors import (
    AuthenticationError,
    BatchChunkFailure,
    Bitrix24Error,
    CursorStallError,
    IterationLimitExceeded,
    NetworkError,
    RateLimitError,
    RemoteCallFailure,
    TimeoutError,
    UsageConflictError,
    describe_envelope_error,
)
from .records import (
    APIConfiguration,
    Command,
    CreatedNode,
    Cursor,
    ListPage,
    ListResponse,
    Pagination,
    SortDirection,
    TreeNode,
)

__all__ = [
    "APIConfiguration",
    "AuthenticationError",
    "BatchChunkFailure",
    "Bitrix24Error",
    "Command",
    "CreatedNode",
    "Cursor",
    "CursorStallError",
    "IterationLimitExceeded",
    "ListPage",
    "ListResponse",
    "NetworkError",
    "Pagination",
    "RateLimitError",
    "RemoteCallFailure",
    "SortDirection",
    "TimeoutError",
    "TreeNode",
    "UsageConflictError",
    "crm_entity",
    "describe_envelope_error",
]
