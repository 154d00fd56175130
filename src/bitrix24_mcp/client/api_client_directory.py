"""Bitrix24 API client - currencies, departments and catalog directories."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..models import ListPage, SortDirection
from .api_client_core import Bitrix24ClientCore
from .field_codec import ensure_select_contains, normalize_user_order
from .pagination import PaginationStrategy
from .response_extractor import extract_boolean, extract_created_id, extract_list

JsonDict = dict[str, Any]


def normalize_id_result(result: Any) -> JsonDict:
    created_id = extract_created_id(result)
    return {"id": created_id} if created_id else {}


def _entity_id(item: Mapping[str, Any], position: int) -> int | str:
    value = item.get("id", item.get("ID"))
    if isinstance(value, str):
        value = value.strip()
    if isinstance(value, bool) or not (isinstance(value, int) or (isinstance(value, str) and value)):
        raise ValueError(f"Item at position {position} must contain non-empty id/ID.")
    return value


class CurrencyService:
    """CRM currencies (``crm.currency.*``)."""

    METHOD_ADD = "crm.currency.add"
    METHOD_UPDATE = "crm.currency.update"
    METHOD_GET = "crm.currency.get"
    METHOD_LIST = "crm.currency.list"
    METHOD_DELETE = "crm.currency.delete"
    METHOD_BASE_GET = "crm.currency.base.get"
    METHOD_BASE_SET = "crm.currency.base.set"

    def __init__(self, client: Bitrix24ClientCore):
        self.client = client

    async def list(self, params: Mapping[str, Any] | None = None, page: int = 1) -> ListPage:
        request = dict(params or {})
        request["order"] = normalize_user_order(request.get("order")) or {"currency": "ASC"}
        return await self.client.list_page(self.METHOD_LIST, request, page)

    async def all(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Every currency, walked upwards by ``ID``; ``order`` is applied client-side."""
        request = dict(params or {})
        request.pop("START", None)
        output_order = normalize_user_order(request.pop("order", None) or request.pop("ORDER", None))
        if "select" in request:
            request["select"] = ensure_select_contains(list(request["select"] or []), "ID")

        return await self.client.fetch_all(
            self.METHOD_LIST,
            request,
            output_order=output_order or None,
            direction=SortDirection.ASC,
            stop_on_short_page=True,
            reject_cursor_order=False,
        )

    async def get_by_id(self, currency_id: int | str) -> JsonDict:
        result = (await self.client.call(self.METHOD_GET, {"id": currency_id})).get("result")
        return dict(result) if isinstance(result, Mapping) else {}

    async def add(self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> JsonDict:
        request = {**dict(params or {}), "fields": dict(fields)}
        return normalize_id_result((await self.client.call(self.METHOD_ADD, request)).get("result"))

    async def add_many(self, items: Iterable[Any], params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        results = await self.client.bulk_write(
            self.METHOD_ADD,
            items,
            key_prefix="currency_add",
            build_params=lambda fields, position: {**dict(params or {}), "fields": dict(fields)},
            normalize=normalize_id_result,
        )
        return [result or {} for result in results]

    async def update(
        self, currency_id: int | str, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), "ID": str(currency_id), "fields": dict(fields)}
        return extract_boolean((await self.client.call(self.METHOD_UPDATE, request)).get("result"))

    def _update_params(self, item: Mapping[str, Any], position: int, params: Mapping[str, Any] | None) -> JsonDict:
        currency_id = _entity_id(item, position)
        fields = item.get("fields", item.get("FIELDS"))
        if not isinstance(fields, Mapping):
            raise ValueError(f"Item at position {position} must contain fields/FIELDS mapping.")
        return {**dict(params or {}), "ID": str(currency_id), "fields": dict(fields)}

    async def update_many(self, items: Iterable[Any], params: Mapping[str, Any] | None = None) -> list[bool]:
        results = await self.client.bulk_write(
            self.METHOD_UPDATE,
            items,
            key_prefix="currency_update",
            build_params=lambda item, position: self._update_params(item, position, params),
            normalize=extract_boolean,
        )
        return [bool(result) for result in results]

    async def delete(self, currency_id: int | str) -> bool:
        response = await self.client.call(self.METHOD_DELETE, {"id": str(currency_id)})
        return extract_boolean(response.get("result"))

    async def base_get(self) -> str:
        """Code of the portal's base currency (empty when unset)."""
        result = (await self.client.call(self.METHOD_BASE_GET)).get("result")
        if result is None or isinstance(result, (Mapping, list)):
            return ""
        return str(result)

    async def base_set(self, currency_id: int | str) -> bool:
        response = await self.client.call(self.METHOD_BASE_SET, {"id": str(currency_id)})
        return extract_boolean(response.get("result"))


class DepartmentService:
    """Company structure (``department.*``) and department members."""

    METHOD_GET = "department.get"
    METHOD_ADD = "department.add"
    METHOD_UPDATE = "department.update"
    METHOD_DELETE = "department.delete"
    METHOD_USER_GET = "user.get"

    def __init__(self, client: Bitrix24ClientCore):
        self.client = client

    async def all(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        request = dict(params or {})
        for key in ("ID", "id", "start", "order", "ORDER"):
            request.pop(key, None)
        request["order"] = {"ID": "ASC"}
        return await self.client.fetch_all(
            self.METHOD_GET, request, strategy=PaginationStrategy.NEXT_OFFSET
        )

    async def get_by_id(self, department_id: int | str) -> JsonDict:
        items = extract_list(await self.client.call(self.METHOD_GET, {"ID": department_id}))
        return dict(items[0]) if items and isinstance(items[0], Mapping) else {}

    async def add(self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> JsonDict:
        # department.* take fields at the top level of the request
        request = {**dict(params or {}), **dict(fields)}
        return normalize_id_result((await self.client.call(self.METHOD_ADD, request)).get("result"))

    async def update(
        self, department_id: int | str, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), **dict(fields), "ID": department_id}
        return extract_boolean((await self.client.call(self.METHOD_UPDATE, request)).get("result"))

    async def delete(self, department_id: int | str) -> bool:
        response = await self.client.call(self.METHOD_DELETE, {"ID": department_id})
        return extract_boolean(response.get("result"))

    async def users(self, department_id: int | str, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Every user of a department, ``ID`` ascending unless ``SORT``/``ORDER`` say otherwise."""
        request = dict(params or {})
        request.pop("start", None)
        filter_ = dict(request.get("FILTER") or {})
        filter_["UF_DEPARTMENT"] = department_id
        request["FILTER"] = filter_
        if "SORT" not in request and "sort" not in request:
            request["SORT"] = "ID"
        if "ORDER" not in request and "order" not in request:
            request["ORDER"] = "ASC"
        return await self.client.fetch_all(
            self.METHOD_USER_GET, request, strategy=PaginationStrategy.NEXT_OFFSET
        )


def _catalog_record(result: Any, key: str) -> Any:
    """Unwrap ``{"measure": {...}}``-style catalog answers."""
    if isinstance(result, Mapping) and isinstance(result.get(key), Mapping):
        return result[key]
    return result


def normalize_catalog_update_result(result: Any) -> bool:
    """``catalog.*.update`` answers with the updated record rather than ``true``."""
    return isinstance(result, (Mapping, list)) or extract_boolean(result)


class MeasureService:
    """Units of measure (``catalog.measure.*``)."""

    METHOD_ADD = "catalog.measure.add"
    METHOD_UPDATE = "catalog.measure.update"
    METHOD_GET = "catalog.measure.get"
    METHOD_LIST = "catalog.measure.list"
    METHOD_DELETE = "catalog.measure.delete"
    METHOD_GET_FIELDS = "catalog.measure.getFields"
    LIST_KEYS = ("measures",)

    def __init__(self, client: Bitrix24ClientCore):
        self.client = client

    async def list(self, params: Mapping[str, Any] | None = None, page: int = 1) -> ListPage:
        request = dict(params or {})
        request["order"] = normalize_user_order(request.get("order")) or {"id": "ASC"}
        return await self.client.list_page(self.METHOD_LIST, request, page, self.LIST_KEYS)

    async def all(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Every measure, walked upwards by ``id``; ``order`` is applied client-side."""
        request = dict(params or {})
        request.pop("START", None)
        output_order = normalize_user_order(request.pop("order", None) or request.pop("ORDER", None))
        if "select" in request:
            request["select"] = ensure_select_contains(list(request["select"] or []), "id")

        return await self.client.fetch_all(
            self.METHOD_LIST,
            request,
            output_order=output_order or None,
            cursor_field="id",
            direction=SortDirection.ASC,
            list_keys=self.LIST_KEYS,
            stop_on_short_page=True,
            reject_cursor_order=False,
        )

    async def get_by_id(self, measure_id: int | str) -> JsonDict:
        response = await self.client.call(self.METHOD_GET, {"id": measure_id})
        result = _catalog_record(response.get("result"), "measure")
        return dict(result) if isinstance(result, Mapping) else {}

    async def add(self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> JsonDict:
        request = {**dict(params or {}), "fields": dict(fields)}
        result = (await self.client.call(self.METHOD_ADD, request)).get("result")
        return normalize_id_result(_catalog_record(result, "measure"))

    async def add_many(self, items: Iterable[Any], params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        results = await self.client.bulk_write(
            self.METHOD_ADD,
            items,
            key_prefix="measure_add",
            build_params=lambda fields, position: {**dict(params or {}), "fields": dict(fields)},
            normalize=lambda result: normalize_id_result(_catalog_record(result, "measure")),
        )
        return [result or {} for result in results]

    async def update(
        self, measure_id: int | str, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), "id": measure_id, "fields": dict(fields)}
        return normalize_catalog_update_result((await self.client.call(self.METHOD_UPDATE, request)).get("result"))

    def _update_params(self, item: Mapping[str, Any], position: int, params: Mapping[str, Any] | None) -> JsonDict:
        measure_id = _entity_id(item, position)
        fields = item.get("fields", item.get("FIELDS"))
        if not isinstance(fields, Mapping):
            raise ValueError(f"Item at position {position} must contain fields/FIELDS mapping.")
        return {**dict(params or {}), "id": measure_id, "fields": dict(fields)}

    async def update_many(self, items: Iterable[Any], params: Mapping[str, Any] | None = None) -> list[bool]:
        results = await self.client.bulk_write(
            self.METHOD_UPDATE,
            items,
            key_prefix="measure_update",
            build_params=lambda item, position: self._update_params(item, position, params),
            normalize=normalize_catalog_update_result,
        )
        return [bool(result) for result in results]

    async def delete(self, measure_id: int | str) -> bool:
        response = await self.client.call(self.METHOD_DELETE, {"id": measure_id})
        return extract_boolean(response.get("result"))

    async def get_fields(self) -> JsonDict:
        result = (await self.client.call(self.METHOD_GET_FIELDS)).get("result")
        return dict(result) if isinstance(result, Mapping) else {}


class PriceTypeService:
    """Catalog price types (``catalog.priceType.*``)."""

    METHOD_ADD = "catalog.priceType.add"
    METHOD_UPDATE = "catalog.priceType.update"
    METHOD_GET = "catalog.priceType.get"
    METHOD_LIST = "catalog.priceType.list"
    METHOD_DELETE = "catalog.priceType.delete"
    METHOD_GET_FIELDS = "catalog.priceType.getFields"
    LIST_KEYS = ("priceTypes",)

    def __init__(self, client: Bitrix24ClientCore):
        self.client = client

    async def list(self, params: Mapping[str, Any] | None = None, page: int = 1) -> ListPage:
        request = dict(params or {})
        request["order"] = normalize_user_order(request.get("order")) or {"id": "DESC"}
        return await self.client.list_page(self.METHOD_LIST, request, page, self.LIST_KEYS)

    async def all(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Every price type, newest first.

        ``order`` is applied client-side and may not name ``id``, which the
        cursor owns.
        """
        request = dict(params or {})
        request.pop("START", None)
        output_order = normalize_user_order(request.pop("order", None) or request.pop("ORDER", None))
        if "select" in request:
            request["select"] = ensure_select_contains(list(request["select"] or []), "id")

        return await self.client.fetch_all(
            self.METHOD_LIST,
            request,
            output_order=output_order or None,
            cursor_field="id",
            list_keys=self.LIST_KEYS,
            stop_on_short_page=True,
        )

    async def get_by_id(self, price_type_id: int | str) -> JsonDict:
        response = await self.client.call(self.METHOD_GET, {"id": price_type_id})
        result = _catalog_record(response.get("result"), "priceType")
        return dict(result) if isinstance(result, Mapping) else {}

    async def add(self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> JsonDict:
        request = {**dict(params or {}), "fields": dict(fields)}
        result = (await self.client.call(self.METHOD_ADD, request)).get("result")
        return normalize_id_result(_catalog_record(result, "priceType"))

    async def update(
        self, price_type_id: int | str, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), "id": price_type_id, "fields": dict(fields)}
        return normalize_catalog_update_result((await self.client.call(self.METHOD_UPDATE, request)).get("result"))

    async def delete(self, price_type_id: int | str) -> bool:
        response = await self.client.call(self.METHOD_DELETE, {"id": price_type_id})
        return extract_boolean(response.get("result"))

    async def get_fields(self) -> JsonDict:
        result = (await self.client.call(self.METHOD_GET_FIELDS)).get("result")
        return dict(result) if isinstance(result, Mapping) else {}
