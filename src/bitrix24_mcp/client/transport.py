"""Transport layer: turns (method, params) into a webhook call.

The client core depends only on the ``Transport`` protocol, so tests and
alternative authentication schemes can substitute their own transport.
``WebhookTransport`` is the default implementation for incoming webhooks
(``https://portal.bitrix24.com/rest/<user>/<token>/``).
"""

import asyncio
import json
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlencode

import httpx

from ..models import (
    APIConfiguration,
    AuthenticationError,
    Command,
    NetworkError,
    RateLimitError,
    TimeoutError,
)
from .client_log import ClientLogger

RATE_LIMIT_ERROR_CODES = frozenset({"QUERY_LIMIT_EXCEEDED", "OPERATION_TIME_LIMIT"})


@runtime_checkable
class Transport(Protocol):
    async def call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        ...

    async def call_batch(self, commands: Sequence[Command], halt: int = 0) -> dict[str, Any]:
        ...

    async def close(self) -> None:
        ...


def _flatten_query(prefix: str, value: Any, pairs: list[tuple[str, str]]) -> None:
    if value is None:
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            _flatten_query(f"{prefix}[{key}]" if prefix else str(key), item, pairs)
        return
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _flatten_query(f"{prefix}[{index}]", item, pairs)
        return
    if isinstance(value, bool):
        pairs.append((prefix, "1" if value else "0"))
        return
    pairs.append((prefix, str(value)))


def encode_query(params: Mapping[str, Any]) -> str:
    """Bracketed query string as the batch method expects it.

    ``{"filter": {">ID": 5}, "select": ["ID"]}`` becomes
    ``filter%5B%3EID%5D=5&select%5B0%5D=ID``.
    """
    pairs: list[tuple[str, str]] = []
    _flatten_query("", params, pairs)
    return urlencode(pairs)


def batch_command_string(command: Command) -> str:
    query = encode_query(command.params)
    return f"{command.method}?{query}" if query else command.method


class WebhookTransport:
    """Incoming-webhook transport over ``httpx.AsyncClient``."""

    def __init__(self, config: APIConfiguration):
        self.config = config
        self.base_url = config.base_url
        self._client: httpx.AsyncClient | None = None
        self._logger = ClientLogger("TRANSPORT")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WebhookTransport":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Decode an envelope, raising for transport-level failures only.

        Error envelopes (``{"error": ..., "error_description": ...}``) are
        returned as they are; the client core decides what they mean.
        """
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            data = None

        error_code = data.get("error") if isinstance(data, dict) else None

        if response.status_code in (401, 403):
            message = "Invalid webhook or unauthorized access"
            if isinstance(data, dict) and data.get("error_description"):
                message = str(data["error_description"])
            raise AuthenticationError(message)

        if response.status_code == 429 or error_code in RATE_LIMIT_ERROR_CODES:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                message=str(data.get("error_description") or error_code) if error_code else None,
            )

        if isinstance(data, dict) and error_code:
            return data

        if response.status_code >= 500:
            raise NetworkError(f"Server error: {response.status_code}")

        if response.status_code >= 400:
            raise NetworkError(f"API error: {response.status_code}")

        if not isinstance(data, dict):
            raise NetworkError("Invalid response format from API")

        return data

    async def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST with exponential backoff on rate limits, network errors and timeouts."""
        max_retries = self.config.max_retries
        base_delay = self.config.rate_limit_delay
        retry_count = 0

        while True:
            try:
                response = await self.client.post(f"{method}.json", json=payload)
                return await self._handle_response(response)

            except RateLimitError as e:
                retry_count += 1
                retry_after = e.retry_after or (base_delay * (2 ** retry_count))
                self._logger.warning(
                    f"Rate limited on {method}. Retry after {retry_after}s. "
                    f"Attempt {retry_count}/{max_retries}"
                )
                if retry_count >= max_retries:
                    self._logger.exception(f"Giving up on {method} after {retry_count} attempt(s)", e)
                    raise
                await asyncio.sleep(retry_after)

            except NetworkError as e:
                retry_count += 1
                self._logger.warning(f"Network error on {method}: {e}. Retry {retry_count}/{max_retries}")
                if retry_count >= max_retries:
                    self._logger.exception(f"Giving up on {method} after {retry_count} attempt(s)", e)
                    raise
                await asyncio.sleep(base_delay * (2 ** retry_count))

            except httpx.TimeoutException as err:
                retry_count += 1
                self._logger.warning(f"Timeout on {method}: {err}. Retry {retry_count}/{max_retries}")
                if retry_count >= max_retries:
                    self._logger.exception(f"Giving up on {method} after {retry_count} attempt(s)", err)
                    raise TimeoutError(method, self.config.timeout) from err
                await asyncio.sleep(base_delay * (2 ** retry_count))

            except httpx.TransportError as err:
                retry_count += 1
                self._logger.warning(f"Transport error on {method}: {err}. Retry {retry_count}/{max_retries}")
                if retry_count >= max_retries:
                    self._logger.exception(f"Giving up on {method} after {retry_count} attempt(s)", err)
                    raise NetworkError(f"{method} failed: {err}") from err
                await asyncio.sleep(base_delay * (2 ** retry_count))

    async def call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        return await self._post(method, dict(params or {}))

    async def call_batch(self, commands: Sequence[Command], halt: int = 0) -> dict[str, Any]:
        payload = {
            "halt": 1 if halt else 0,
            "cmd": {command.key: batch_command_string(command) for command in commands},
        }
        return await self._post("batch", payload)
