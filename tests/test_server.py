"""Tests for the server's tool runner."""

import pytest

from bitrix24_mcp import server
from bitrix24_mcp.client import AdaptiveRateLimiter
from bitrix24_mcp.models import CreatedNode, RateLimitError, UsageConflictError

from conftest import envelope


@pytest.fixture
def running(monkeypatch, client):
    limiter = AdaptiveRateLimiter(initial_rate=10.0, min_rate=0.5, max_rate=10.0)
    monkeypatch.setattr(server, "_client", client)
    monkeypatch.setattr(server, "_rate_limiter", limiter)
    return limiter


def test_get_client_before_startup(monkeypatch):
    monkeypatch.setattr(server, "_client", None)
    with pytest.raises(RuntimeError, match="not initialized"):
        server.get_client()


async def test_success(running, transport):
    transport.responses = [envelope({"ID": 1})]
    result = await server.run_tool(lambda client: client.call("user.current"))
    assert result == {"success": True, "result": {"result": {"ID": 1}}}


async def test_created_nodes_are_serialized(running):
    async def operation(client):
        return {"checklist": [CreatedNode(source_id=1, created_id=10, parent_id=0, title="A")]}

    result = await server.run_tool(operation)

    assert result["result"]["checklist"] == [{"source_id": 1, "created_id": 10, "parent_id": 0, "title": "A"}]


async def test_remote_failure_is_reported(running, transport):
    transport.responses = [{"error": "NOT_FOUND", "error_description": "Not found"}]
    result = await server.run_tool(lambda client: client.call("crm.item.get", {"id": 1}))
    assert result["success"] is False
    assert result["error_type"] == "RemoteCallFailure"
    assert "Not found" in result["error"]


async def test_usage_conflict_is_reported(running, transport):
    result = await server.run_tool(lambda client: client.deals.all({"filter": {">ID": 1}}))
    assert result["success"] is False
    assert result["error_type"] == UsageConflictError.__name__
    assert transport.calls == []


async def test_value_error_is_reported(running):
    result = await server.run_tool(lambda client: client.deals.add_many(["not a mapping"]))
    assert result == {
        "success": False,
        "error": "Item at position 1 must be a mapping of fields.",
        "error_type": "ValueError",
    }


async def test_rate_limit_slows_the_limiter(running):
    async def operation(client):
        raise RateLimitError(message="QUERY_LIMIT_EXCEEDED")

    result = await server.run_tool(operation)

    assert result == {"success": False, "error": "QUERY_LIMIT_EXCEEDED", "error_type": "RateLimitError"}
    assert running.rate == 5.0


async def test_without_limiter(monkeypatch, client, transport):
    monkeypatch.setattr(server, "_client", client)
    monkeypatch.setattr(server, "_rate_limiter", None)
    transport.responses = [envelope(True)]
    assert (await server.run_tool(lambda client: client.call("user.current")))["success"] is True
