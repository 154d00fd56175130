"""Shared fixtures: a scripted transport and a head-inserting destination."""

import copy
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from bitrix24_mcp.client import Bitrix24Client
from bitrix24_mcp.models import Command


def envelope(result: Any, **extra: Any) -> dict[str, Any]:
    return {"result": result, **extra}


def batch_envelope(results: dict[str, Any], errors: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"result": {"result": results, "result_error": errors or []}}


class ScriptedTransport:
    """Transport double that records every call.

    Single calls are answered by ``handler(method, params)`` when given,
    otherwise by popping ``responses`` in order. Batch calls go to
    ``batch_handler(commands)``; by default every command answers ``True``.
    """

    def __init__(
        self,
        responses: Sequence[dict[str, Any]] | None = None,
        handler: Callable[[str, dict[str, Any]], dict[str, Any]] | None = None,
        batch_handler: Callable[[list[Command]], dict[str, Any]] | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.handler = handler
        self.batch_handler = batch_handler
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.batch_calls: list[list[Command]] = []
        self.halts: list[int] = []
        self.closed = False

    async def call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((method, copy.deepcopy(params)))
        if self.handler is not None:
            return self.handler(method, params)
        if not self.responses:
            raise AssertionError(f"Unexpected call to {method}")
        return self.responses.pop(0)

    async def call_batch(self, commands: Sequence[Command], halt: int = 0) -> dict[str, Any]:
        commands = list(commands)
        self.batch_calls.append(commands)
        self.halts.append(halt)
        if self.batch_handler is not None:
            return self.batch_handler(commands)
        return batch_envelope({command.key: True for command in commands})

    async def close(self) -> None:
        self.closed = True

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]


class HeadInsertingDestination:
    """In-memory tree where every new child is placed above its siblings.

    Serves as the ``batch_handler`` of a ``ScriptedTransport``; each command
    must carry ``fields.TITLE`` and ``fields.PARENT_ID``.
    """

    def __init__(self, first_id: int = 1000) -> None:
        self.next_id = first_id
        self.titles: dict[int, str] = {}
        self.children: dict[int, list[int]] = {}
        self.fail_titles: set[str] = set()

    def __call__(self, commands: list[Command]) -> dict[str, Any]:
        results: dict[str, Any] = {}
        errors: dict[str, Any] = {}
        for command in commands:
            fields = command.params["fields"]
            title = fields["TITLE"]
            if title in self.fail_titles:
                errors[command.key] = {"error": "ERROR_CORE", "error_description": f"cannot add {title}"}
                continue
            node_id = self.next_id
            self.next_id += 1
            self.titles[node_id] = title
            self.children.setdefault(int(fields["PARENT_ID"]), []).insert(0, node_id)
            results[command.key] = node_id
        return batch_envelope(results, errors)

    def render(self, parent_id: int = 0) -> list[Any]:
        """Nested ``(title, children)`` pairs in display order."""
        return [
            (self.titles[node_id], self.render(node_id))
            for node_id in self.children.get(parent_id, [])
        ]


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def client(transport: ScriptedTransport) -> Bitrix24Client:
    return Bitrix24Client(transport)


@pytest.fixture
def destination() -> HeadInsertingDestination:
    return HeadInsertingDestination()
