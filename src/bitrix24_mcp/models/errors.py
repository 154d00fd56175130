"""Exception taxonomy for the Bitrix24 client.

Transport errors (network, auth, rate limit, timeout) come from the HTTP layer.
Everything else is raised by the client core: error envelopes, failed batch
chunks, stalled cursors, and local usage conflicts detected before any call.
"""

from typing import Any


class Bitrix24Error(Exception):
    """Base exception for all Bitrix24 client errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NetworkError(Bitrix24Error):
    """HTTP-level failure (connection error, 5xx, undecodable body)."""


class AuthenticationError(Bitrix24Error):
    """Webhook rejected (bad token, revoked access, wrong portal)."""

    def __init__(self, message: str = "Invalid webhook or unauthorized access"):
        super().__init__(message)


class RateLimitError(Bitrix24Error):
    """Portal asked us to slow down (HTTP 429 or QUERY_LIMIT_EXCEEDED)."""

    def __init__(self, retry_after: int | None = None, message: str | None = None):
        super().__init__(
            message or "Rate limit exceeded",
            {"retry_after": retry_after} if retry_after is not None else None,
        )
        self.retry_after = retry_after


class TimeoutError(Bitrix24Error):  # noqa: A001
    """A request did not complete within the configured timeout."""

    def __init__(self, operation: str, timeout: float | None = None):
        message = f"Operation '{operation}' timed out"
        if timeout is not None:
            message += f" after {timeout}s"
        super().__init__(message, {"operation": operation, "timeout": timeout})
        self.operation = operation
        self.timeout = timeout


class RemoteCallFailure(Bitrix24Error):
    """The portal answered with an error envelope.

    The raw envelope is kept on ``response`` for diagnostics.
    """

    def __init__(self, method: str, response: dict[str, Any], message: str | None = None):
        if message is None:
            message = describe_envelope_error(response) or "Bitrix24 call failed"
        super().__init__(message, {"method": method, "error": response.get("error")})
        self.method = method
        self.response = response
        self.error_code = response.get("error")


class BatchChunkFailure(RemoteCallFailure):
    """At least one sub-command of a batch chunk failed.

    The whole multi-command operation fails; results of chunks that already
    succeeded are not returned.
    """

    def __init__(
        self,
        response: dict[str, Any],
        chunk_index: int,
        failed_keys: list[str],
        method: str = "batch",
    ):
        super().__init__(
            method,
            response,
            message=(
                f"Batch command failed in chunk {chunk_index}: "
                f"{', '.join(failed_keys) or 'unknown command'}"
            ),
        )
        self.chunk_index = chunk_index
        self.failed_keys = failed_keys
        self.details.update({"chunk_index": chunk_index, "failed_keys": failed_keys})


class UsageConflictError(Bitrix24Error, ValueError):
    """Caller input collides with a field the client manages itself."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class CursorStallError(Bitrix24Error):
    """The pagination boundary did not move forward between two pages."""

    def __init__(
        self,
        method: str,
        previous: int | None,
        current: int | None,
        message: str | None = None,
    ):
        super().__init__(
            message
            or f"Cursor did not advance for '{method}' (previous={previous}, current={current})",
            {"method": method, "previous": previous, "current": current},
        )
        self.method = method
        self.previous = previous
        self.current = current


class IterationLimitExceeded(Bitrix24Error):
    """Fetch-all ran past its iteration ceiling."""

    def __init__(self, method: str, limit: int):
        super().__init__(
            f"Iteration limit reached while fetching all results for '{method}' ({limit})",
            {"method": method, "limit": limit},
        )
        self.method = method
        self.limit = limit


def describe_envelope_error(response: dict[str, Any]) -> str | None:
    """Pick the most descriptive error text from an envelope."""
    for key in ("error_description", "error_information", "error"):
        value = response.get(key)
        if value:
            return str(value)
    return None
