"""Tests for Bitrix24ClientCore and the Bitrix24Client facade."""

import pytest

from bitrix24_mcp.client import Bitrix24Client, WebhookTransport
from bitrix24_mcp.client.api_client_crm import DealService, SmartProcessItemService
from bitrix24_mcp.models import BatchChunkFailure, Command, RemoteCallFailure

from conftest import ScriptedTransport, batch_envelope, envelope


class TestCall:
    async def test_returns_envelope(self, client, transport):
        transport.responses = [envelope({"ID": 1})]
        assert await client.call("user.current") == {"result": {"ID": 1}}
        assert transport.calls == [("user.current", {})]

    async def test_error_envelope_raises(self, client, transport):
        transport.responses = [{"error": "ACCESS_DENIED", "error_description": "Access denied"}]
        with pytest.raises(RemoteCallFailure, match="Access denied"):
            await client.call("crm.item.get", {"id": 1})

    async def test_call_batch_commands(self, client, transport):
        result = await client.call_batch_commands([Command(key="a", method="user.current")])
        assert result == {"a": True}


class TestBulkWrite:
    async def test_keys_are_one_based_and_results_positional(self, client, transport):
        transport.batch_handler = lambda commands: batch_envelope(
            {command.key: {"item": {"id": 10 + index}} for index, command in enumerate(commands)}
        )

        results = await client.bulk_write("crm.item.add", [{"title": "a"}, {"title": "b"}], key_prefix="add")

        assert [command.key for command in transport.batch_calls[0]] == ["add_1", "add_2"]
        assert transport.batch_calls[0][0].params == {"fields": {"title": "a"}}
        assert results == [{"item": {"id": 10}}, {"item": {"id": 11}}]

    async def test_normalize_and_missing_positions(self, client, transport):
        transport.batch_handler = lambda commands: batch_envelope({"upd_2": True})

        results = await client.bulk_write(
            "crm.item.update",
            [{"a": 1}, {"b": 2}],
            key_prefix="upd",
            normalize=lambda value: "ok" if value else "no",
        )

        assert results == [None, "ok"]

    async def test_non_mapping_item_is_rejected_before_any_call(self, client, transport):
        with pytest.raises(ValueError, match="Item at position 2 must be a mapping of fields."):
            await client.bulk_write("crm.item.add", [{"a": 1}, "oops"], key_prefix="add")
        assert transport.batch_calls == []

    async def test_empty_items(self, client, transport):
        assert await client.bulk_write("crm.item.add", [], key_prefix="add") == []
        assert transport.batch_calls == []

    async def test_large_write_uses_configured_batch_size(self, transport):
        client = Bitrix24Client(transport, batch_size=10)
        results = await client.bulk_write("crm.item.add", [{"n": n} for n in range(25)], key_prefix="add")
        assert [len(chunk) for chunk in transport.batch_calls] == [10, 10, 5]
        assert results == [True] * 25

    async def test_chunk_failure_propagates(self, client, transport):
        transport.batch_handler = lambda commands: batch_envelope({}, {"add_1": {"error": "BAD"}})
        with pytest.raises(BatchChunkFailure):
            await client.bulk_write("crm.item.add", [{"a": 1}], key_prefix="add")


class TestPages:
    @pytest.mark.parametrize("page", [0, -1, True, 1.5])
    def test_ensure_positive_page(self, client, page):
        with pytest.raises(ValueError, match="Page must be greater than or equal to 1."):
            client.ensure_positive_page(page)

    def test_build_pagination(self, client):
        pagination = client.build_pagination(2, 50, 120, None)
        assert pagination.total_pages == 3
        assert pagination.has_next is True
        assert client.build_pagination(3, 50, 120, None).has_next is False
        assert client.build_pagination(1, 50, None, 50).has_next is True
        assert client.build_pagination(1, 50, None, None).total_pages is None

    async def test_list_page(self, client, transport):
        transport.responses = [envelope({"items": [{"id": 1}]}, total=51, next=100)]

        page = await client.list_page("crm.item.list", {"entityTypeId": 2}, page=3)

        assert transport.calls[0][1] == {"entityTypeId": 2, "start": 100}
        assert page.items == [{"id": 1}]
        assert page.pagination.page == 3
        assert page.pagination.page_size == 50
        assert page.pagination.total == 51
        assert page.pagination.has_next is True


def test_translate_field(client):
    assert client.translate_field("ASSIGNED_BY_ID", "request") == "assignedById"
    assert client.translate_field("UF_CRM_1_A", "request", True) == "UF_CRM_1_A"
    assert client.translate_field("ufCrmPhone", "response") == "UF_CRM_PHONE"


def test_batch_size_is_validated(transport):
    with pytest.raises(ValueError):
        Bitrix24Client(transport, batch_size=0)


async def test_context_manager_closes_transport(transport):
    async with Bitrix24Client(transport) as client:
        assert client.batch_size == 50
    assert transport.closed is True


class TestFacade:
    def test_from_webhook(self):
        client = Bitrix24Client.from_webhook("https://example.bitrix24.com/rest/1/abc", timeout=5)
        assert isinstance(client.transport, WebhookTransport)
        assert client.transport.base_url == "https://example.bitrix24.com/rest/1/abc/"
        assert client.transport.config.timeout == 5

    def test_services_are_cached(self, client):
        assert client.deals is client.deals
        assert isinstance(client.deals, DealService)
        assert client.tasks is client.tasks
        assert client.smart_items(1032) is client.smart_items(1032)
        assert client.smart_items(1032) is not client.smart_items(130)

    def test_crm_items_dispatch(self, client):
        assert client.crm_items(2) is client.deals
        assert client.crm_items(31) is client.smart_invoices
        assert isinstance(client.crm_items(150), SmartProcessItemService)
        with pytest.raises(ValueError):
            client.crm_items(999)

    def test_services_share_the_client(self):
        transport = ScriptedTransport()
        client = Bitrix24Client(transport)
        assert client.leads.client is client
        assert client.currencies.client is client
        assert client.departments.client is client
        assert client.measures.client is client
        assert client.price_types is client.price_types
