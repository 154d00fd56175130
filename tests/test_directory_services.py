"""Tests for currencies, departments, measures and price types."""

import pytest

from bitrix24_mcp.models import CursorStallError, UsageConflictError

from conftest import batch_envelope, envelope


class TestCurrencies:
    async def test_list_defaults_to_currency_order(self, client, transport):
        transport.responses = [envelope([{"CURRENCY": "EUR"}], total=1)]

        page = await client.currencies.list()

        assert transport.calls[0] == ("crm.currency.list", {"order": {"currency": "ASC"}, "start": 0})
        assert page.items == [{"CURRENCY": "EUR"}]

    async def test_list_keeps_caller_order(self, client, transport):
        transport.responses = [envelope([])]
        await client.currencies.list({"order": {"SORT": "desc"}}, page=2)
        assert transport.calls[0][1] == {"order": {"SORT": "DESC"}, "start": 50}

    async def test_all_walks_upwards(self, client, transport):
        records = [{"ID": str(n), "CURRENCY": f"C{n:02d}", "SORT": str(100 - n)} for n in range(1, 53)]

        def handler(method, params):
            rows = records
            if ">ID" in params["filter"]:
                rows = [record for record in rows if int(record["ID"]) > params["filter"][">ID"]]
            return envelope(rows[:50])

        transport.handler = handler

        currencies = await client.currencies.all({"order": {"SORT": "ASC"}, "select": ["CURRENCY"]})

        assert len(currencies) == 52
        assert [currency["SORT"] for currency in currencies[:2]] == ["48", "49"]
        first, second = (params for _, params in transport.calls)
        assert first == {"order": {"ID": "ASC"}, "filter": {}, "start": -1, "select": ["CURRENCY", "ID"]}
        assert second["filter"] == {">ID": 50}

    async def test_all_with_code_keyed_rows(self, client, transport):
        transport.responses = [envelope([{"CURRENCY": "RUB"}, {"CURRENCY": "USD"}])]
        currencies = await client.currencies.all()
        assert [currency["CURRENCY"] for currency in currencies] == ["RUB", "USD"]
        assert len(transport.calls) == 1

    async def test_get_by_id(self, client, transport):
        transport.responses = [envelope({"CURRENCY": "USD", "AMOUNT": "1"}), envelope(False)]
        assert await client.currencies.get_by_id("USD") == {"CURRENCY": "USD", "AMOUNT": "1"}
        assert await client.currencies.get_by_id("XXX") == {}
        assert transport.calls[0] == ("crm.currency.get", {"id": "USD"})

    async def test_add(self, client, transport):
        transport.responses = [envelope("GBP")]
        assert await client.currencies.add({"CURRENCY": "GBP", "AMOUNT": 1.2}) == {"id": "GBP"}

    async def test_add_many(self, client, transport):
        transport.batch_handler = lambda commands: batch_envelope({"currency_add_1": "GBP", "currency_add_2": False})

        result = await client.currencies.add_many([{"CURRENCY": "GBP"}, {"CURRENCY": "XXX"}])

        assert result == [{"id": "GBP"}, {}]
        assert [command.key for command in transport.batch_calls[0]] == ["currency_add_1", "currency_add_2"]
        assert transport.batch_calls[0][0].params == {"fields": {"CURRENCY": "GBP"}}

    async def test_update_and_update_many(self, client, transport):
        transport.responses = [envelope(True)]
        transport.batch_handler = lambda commands: batch_envelope({"currency_update_1": True})

        assert await client.currencies.update("EUR", {"AMOUNT": 90}) is True
        assert transport.calls[0][1] == {"ID": "EUR", "fields": {"AMOUNT": 90}}

        result = await client.currencies.update_many(
            [{"id": "EUR", "fields": {"SORT": 1}}, {"ID": "USD", "FIELDS": {"SORT": 2}}]
        )
        assert result == [True, False]
        assert transport.batch_calls[0][1].params == {"ID": "USD", "fields": {"SORT": 2}}

    @pytest.mark.parametrize("item", [{"fields": {}}, {"id": "  ", "fields": {}}, {"id": "EUR"}])
    async def test_update_many_validation(self, client, transport, item):
        with pytest.raises(ValueError, match="position 1"):
            await client.currencies.update_many([item])
        assert transport.batch_calls == []

    async def test_delete_and_base(self, client, transport):
        transport.responses = [envelope(True), envelope("RUB"), envelope(None), envelope(True)]
        assert await client.currencies.delete("XXX") is True
        assert await client.currencies.base_get() == "RUB"
        assert await client.currencies.base_get() == ""
        assert await client.currencies.base_set("USD") is True
        assert transport.methods() == [
            "crm.currency.delete",
            "crm.currency.base.get",
            "crm.currency.base.get",
            "crm.currency.base.set",
        ]


class TestDepartments:
    async def test_all_follows_next_offset(self, client, transport):
        transport.responses = [
            envelope([{"ID": "1"}, {"ID": "2"}], next=50, total=3),
            envelope([{"ID": "3"}], total=3),
        ]

        departments = await client.departments.all({"PARENT": 1, "order": {"NAME": "ASC"}, "start": 100})

        assert [department["ID"] for department in departments] == ["1", "2", "3"]
        assert transport.calls == [
            ("department.get", {"PARENT": 1, "order": {"ID": "ASC"}, "start": 0}),
            ("department.get", {"PARENT": 1, "order": {"ID": "ASC"}, "start": 50}),
        ]

    async def test_all_stalled_offset_raises(self, client, transport):
        transport.responses = [envelope([{"ID": "1"}], next=0)]
        with pytest.raises(CursorStallError):
            await client.departments.all()

    async def test_get_by_id(self, client, transport):
        transport.responses = [envelope([{"ID": "5", "NAME": "Sales"}]), envelope([])]
        assert await client.departments.get_by_id(5) == {"ID": "5", "NAME": "Sales"}
        assert await client.departments.get_by_id(6) == {}
        assert transport.calls[0] == ("department.get", {"ID": 5})

    async def test_add_and_update_send_top_level_fields(self, client, transport):
        transport.responses = [envelope(12), envelope(True), envelope(True)]

        assert await client.departments.add({"NAME": "Support", "PARENT": 1}) == {"id": "12"}
        assert await client.departments.update(12, {"NAME": "Customer care"}) is True
        assert await client.departments.delete(12) is True

        assert transport.calls[0] == ("department.add", {"NAME": "Support", "PARENT": 1})
        assert transport.calls[1] == ("department.update", {"NAME": "Customer care", "ID": 12})
        assert transport.calls[2] == ("department.delete", {"ID": 12})

    async def test_users(self, client, transport):
        transport.responses = [envelope([{"ID": "1"}], next=50), envelope([{"ID": "2"}])]

        users = await client.departments.users(5, {"FILTER": {"ACTIVE": True}})

        assert [user["ID"] for user in users] == ["1", "2"]
        assert transport.calls[0] == (
            "user.get",
            {"FILTER": {"ACTIVE": True, "UF_DEPARTMENT": 5}, "SORT": "ID", "ORDER": "ASC", "start": 0},
        )

    async def test_users_keep_caller_sort(self, client, transport):
        transport.responses = [envelope([])]
        await client.departments.users(5, {"sort": "LAST_NAME", "order": "desc"})
        params = transport.calls[0][1]
        assert params["sort"] == "LAST_NAME"
        assert "SORT" not in params and "ORDER" not in params


def catalog_portal(records, list_key):
    """Answer ``catalog.*.list`` honouring ``<id``/``>id`` and the cursor order."""

    def handler(method, params):
        filter_ = params.get("filter") or {}
        rows = sorted(records, key=lambda record: record["id"], reverse=params["order"]["id"] == "DESC")
        if ">id" in filter_:
            rows = [record for record in rows if record["id"] > filter_[">id"]]
        if "<id" in filter_:
            rows = [record for record in rows if record["id"] < filter_["<id"]]
        return envelope({list_key: rows[:50]})

    return handler


class TestMeasures:
    async def test_list_defaults_to_id_order(self, client, transport):
        transport.responses = [envelope({"measures": [{"id": 1, "code": 796}]}, total=1)]

        page = await client.measures.list()

        assert transport.calls[0] == ("catalog.measure.list", {"order": {"id": "ASC"}, "start": 0})
        assert page.items == [{"id": 1, "code": 796}]
        assert page.pagination.has_next is False

    async def test_all_walks_upwards_by_id(self, client, transport):
        records = [{"id": n, "symbol": f"u{n}"} for n in range(1, 53)]
        transport.handler = catalog_portal(records, "measures")

        measures = await client.measures.all({"order": {"ID": "DESC"}, "select": ["symbol"], "start": 10})

        assert [measure["id"] for measure in measures] == list(range(52, 0, -1))
        first, second = (params for _, params in transport.calls)
        assert first == {"order": {"id": "ASC"}, "filter": {}, "start": -1, "select": ["symbol", "id"]}
        assert second["filter"] == {">id": 50}

    async def test_get_add_and_delete(self, client, transport):
        transport.responses = [
            envelope({"measure": {"id": 5, "code": 796}}),
            envelope({"measure": {"id": 9}}),
            envelope(True),
        ]
        assert await client.measures.get_by_id(5) == {"id": 5, "code": 796}
        assert await client.measures.add({"code": 112, "measureTitle": "Litre"}) == {"id": "9"}
        assert await client.measures.delete(9) is True
        assert transport.calls[1] == ("catalog.measure.add", {"fields": {"code": 112, "measureTitle": "Litre"}})
        assert transport.calls[2] == ("catalog.measure.delete", {"id": 9})

    async def test_add_many(self, client, transport):
        transport.batch_handler = lambda commands: batch_envelope({"measure_add_1": {"measure": {"id": 11}}})

        result = await client.measures.add_many([{"code": 1}, {"code": 2}])

        assert result == [{"id": "11"}, {}]
        assert [command.key for command in transport.batch_calls[0]] == ["measure_add_1", "measure_add_2"]
        assert transport.batch_calls[0][1].params == {"fields": {"code": 2}}

    async def test_update_accepts_record_answers(self, client, transport):
        transport.responses = [envelope({"measure": {"id": 5}})]
        transport.batch_handler = lambda commands: batch_envelope({"measure_update_1": {"measure": {"id": 5}}})

        assert await client.measures.update(5, {"measureTitle": "Piece"}) is True
        assert transport.calls[0][1] == {"id": 5, "fields": {"measureTitle": "Piece"}}

        result = await client.measures.update_many([{"ID": 5, "FIELDS": {"code": 1}}, {"id": "6", "fields": {}}])
        assert result == [True, False]
        assert transport.batch_calls[0][1].params == {"id": "6", "fields": {}}

    async def test_update_many_validation(self, client, transport):
        with pytest.raises(ValueError, match="position 2"):
            await client.measures.update_many([{"id": 1, "fields": {}}, {"id": 2}])
        assert transport.batch_calls == []

    async def test_get_fields(self, client, transport):
        transport.responses = [envelope({"measure": {"code": {"type": "integer"}}})]
        assert await client.measures.get_fields() == {"measure": {"code": {"type": "integer"}}}
        assert transport.methods() == ["catalog.measure.getFields"]


class TestPriceTypes:
    async def test_list_defaults_to_newest_first(self, client, transport):
        transport.responses = [envelope({"priceTypes": []})]
        await client.price_types.list(page=3)
        assert transport.calls[0] == ("catalog.priceType.list", {"order": {"id": "DESC"}, "start": 100})

    async def test_all_walks_downwards_and_sorts_client_side(self, client, transport):
        records = [{"id": n, "name": f"Price {n % 7}"} for n in range(1, 61)]
        transport.handler = catalog_portal(records, "priceTypes")

        price_types = await client.price_types.all({"order": {"name": "asc"}})

        assert len(price_types) == 60
        assert [price_type["id"] for price_type in price_types[:3]] == [56, 49, 42]
        first, second = (params for _, params in transport.calls)
        assert first["order"] == {"id": "DESC"}
        assert second["filter"] == {"<id": 11}

    async def test_all_rejects_id_order_and_filter(self, client, transport):
        with pytest.raises(UsageConflictError):
            await client.price_types.all({"order": {"ID": "ASC"}})
        with pytest.raises(UsageConflictError):
            await client.price_types.all({"filter": {">=id": 3}})
        assert transport.calls == []

    async def test_crud(self, client, transport):
        transport.responses = [
            envelope({"priceType": {"id": 1, "base": "Y"}}),
            envelope({"priceType": {"id": 2}}),
            envelope({"priceType": {"id": 2, "name": "Retail"}}),
            envelope(True),
            envelope({"priceType": {"name": {"type": "string"}}}),
        ]
        assert await client.price_types.get_by_id(1) == {"id": 1, "base": "Y"}
        assert await client.price_types.add({"name": "Wholesale"}) == {"id": "2"}
        assert await client.price_types.update(2, {"name": "Retail"}) is True
        assert await client.price_types.delete(2) is True
        assert await client.price_types.get_fields() == {"priceType": {"name": {"type": "string"}}}
        assert transport.calls[2] == ("catalog.priceType.update", {"id": 2, "fields": {"name": "Retail"}})
