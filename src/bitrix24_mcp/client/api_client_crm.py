"""Bitrix24 API client - CRM items (``crm.item.*``) and product rows."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..models import ListPage, ListResponse, UsageConflictError, crm_entity
from .api_client_core import Bitrix24ClientCore
from .field_codec import (
    ensure_select_contains,
    filter_mentions_fields,
    should_use_original_user_field_names,
)
from .response_extractor import (
    extract_boolean,
    extract_by_path,
    extract_created_id,
    extract_success,
    extract_total,
)

JsonDict = dict[str, Any]


class CrmItemService:
    """Universal CRM item methods for one entity type.

    Callers use upper-snake field names (``TITLE``, ``ASSIGNED_BY_ID``,
    ``UF_CRM_1_ABC``); requests are translated to the camelCase names
    ``crm.item.*`` expects and responses are translated back.
    """

    METHOD_LIST = "crm.item.list"
    METHOD_GET = "crm.item.get"
    METHOD_ADD = "crm.item.add"
    METHOD_UPDATE = "crm.item.update"
    METHOD_DELETE = "crm.item.delete"

    ENTITY_TYPE_ID: int | None = None

    def __init__(self, client: Bitrix24ClientCore, entity_type_id: int | None = None):
        if entity_type_id is None:
            entity_type_id = self.ENTITY_TYPE_ID
        if entity_type_id is None:
            raise ValueError(f"{type(self).__name__} needs an entity type id")
        self.client = client
        self.codec = client.codec
        self.entity_type_id = entity_type_id

    # ------------------------------------------------------------------
    # Request preparation
    # ------------------------------------------------------------------

    def with_entity_type_id(self, request: Mapping[str, Any] | None) -> JsonDict:
        request = dict(request or {})
        if "entityTypeId" in request:
            try:
                requested = int(request["entityTypeId"])
            except (TypeError, ValueError):
                requested = None
            if requested != self.entity_type_id:
                raise ValueError(
                    f"{type(self).__name__} supports only entityTypeId {self.entity_type_id}."
                )
        request["entityTypeId"] = self.entity_type_id
        return request

    def prepare_list_request(
        self, params: Mapping[str, Any] | None, use_original_user_field_names: bool | None = None
    ) -> JsonDict:
        request = self.with_entity_type_id(params)
        if use_original_user_field_names is None:
            use_original_user_field_names = should_use_original_user_field_names(request.get("select"))
        request["useOriginalUfNames"] = "Y" if use_original_user_field_names else "N"

        if "select" in request:
            request["select"] = self.codec.normalize_select(request["select"], use_original_user_field_names)
        if isinstance(request.get("order"), Mapping):
            request["order"] = self.codec.normalize_order(request["order"], use_original_user_field_names)
        if isinstance(request.get("filter"), Mapping):
            request["filter"] = self.codec.normalize_filter(request["filter"], use_original_user_field_names)

        return request

    def _write_request(self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> JsonDict:
        request = self.with_entity_type_id(params)
        request["useOriginalUfNames"] = "N"
        request["fields"] = self.codec.normalize_fields(fields)
        return request

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self, params: Mapping[str, Any] | None = None, page: int = 1) -> ListPage:
        """One page of items, newest first unless ``order`` says otherwise."""
        request = self.prepare_list_request(params)
        if not request.get("order"):
            request["order"] = {"id": "DESC"}
        return await self.client.list_page(
            self.METHOD_LIST, request, page, transform=self.codec.to_response_records
        )

    async def all(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Every item matching ``params['filter']``.

        Walks an ``id`` cursor downwards; ``params['order']`` is applied
        client-side and may not mention ``ID``, nor may the filter.
        """
        params = dict(params or {})
        output_order = self.codec.order_for_output(params.get("order"))

        request = self.prepare_list_request(params, use_original_user_field_names=False)
        request.pop("order", None)
        request["select"] = ensure_select_contains(list(request.get("select") or []), "id")

        return await self.client.fetch_all(
            self.METHOD_LIST,
            request,
            output_order=output_order,
            cursor_field="id",
            transform=self.codec.to_response_records,
        )

    async def get_by_id(self, item_id: int | str) -> JsonDict:
        request = self.with_entity_type_id({"id": item_id})
        request["useOriginalUfNames"] = "N"
        item = extract_by_path(await self.client.call(self.METHOD_GET, request), ("result", "item"))
        if not isinstance(item, Mapping):
            return {}
        return self.codec.to_response_record(item)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_add_result(value: Any) -> JsonDict:
        created_id = extract_created_id(value)
        return {"id": created_id} if created_id else {}

    async def add(self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> JsonDict:
        """Create an item; returns ``{"id": "<id>"}`` (empty when the portal echoes nothing)."""
        response = await self.client.call(self.METHOD_ADD, self._write_request(fields, params))
        return self.normalize_add_result(extract_by_path(response, ("result", "item")))

    async def add_many(
        self, items: Iterable[Any], params: Mapping[str, Any] | None = None
    ) -> list[JsonDict]:
        """Create many items through the batch method (keys ``add_N``)."""
        results = await self.client.bulk_write(
            self.METHOD_ADD,
            items,
            key_prefix="add",
            build_params=lambda fields, position: self._write_request(fields, params),
            normalize=self.normalize_add_result,
        )
        return [result or {} for result in results]

    async def update(
        self, item_id: int | str, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> bool:
        request = self._write_request(fields, params)
        request["id"] = item_id
        response = await self.client.call(self.METHOD_UPDATE, request)
        return extract_boolean(response.get("result"))

    def _update_params(
        self, item: Mapping[str, Any], position: int, params: Mapping[str, Any] | None
    ) -> JsonDict:
        item_id = item.get("id", item.get("ID"))
        if isinstance(item_id, bool) or not (
            isinstance(item_id, int) or (isinstance(item_id, str) and item_id != "")
        ):
            raise ValueError(f"Item at position {position} must contain non-empty id/ID.")

        fields = item.get("fields", item.get("FIELDS"))
        if not isinstance(fields, Mapping):
            raise ValueError(f"Item at position {position} must contain fields/FIELDS mapping.")

        request = self._write_request(fields, params)
        request["id"] = item_id
        return request

    async def update_many(
        self, items: Iterable[Any], params: Mapping[str, Any] | None = None
    ) -> list[bool]:
        """Update many items (``{"id": ..., "fields": {...}}``) via batch (keys ``update_N``)."""
        results = await self.client.bulk_write(
            self.METHOD_UPDATE,
            items,
            key_prefix="update",
            build_params=lambda item, position: self._update_params(item, position, params),
            normalize=extract_boolean,
        )
        return [bool(result) for result in results]

    async def delete(self, item_id: int | str) -> bool:
        response = await self.client.call(self.METHOD_DELETE, self.with_entity_type_id({"id": item_id}))
        return extract_success(response)


class CrmItemWithProductRowsService(CrmItemService):
    """CRM item service for entity types that carry product rows."""

    METHOD_PRODUCT_ROW_ADD = "crm.item.productrow.add"
    METHOD_PRODUCT_ROW_UPDATE = "crm.item.productrow.update"
    METHOD_PRODUCT_ROW_GET = "crm.item.productrow.get"
    METHOD_PRODUCT_ROW_LIST = "crm.item.productrow.list"
    METHOD_PRODUCT_ROW_DELETE = "crm.item.productrow.delete"

    OWNER_FIELDS = ("ownerType", "ownerId")

    @property
    def owner_type(self) -> str:
        return crm_entity.owner_type_abbreviation(self.entity_type_id)

    def _product_row(self, response: JsonDict) -> JsonDict:
        row = extract_by_path(response, ("result", "productRow"))
        if not isinstance(row, Mapping):
            return {}
        return self.codec.to_response_record(row)

    async def product_row_add(
        self,
        owner_id: int | str,
        fields: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> JsonDict:
        request = dict(params or {})
        request["fields"] = {
            **self.codec.normalize_fields(fields),
            "ownerId": owner_id,
            "ownerType": self.owner_type,
        }
        return self._product_row(await self.client.call(self.METHOD_PRODUCT_ROW_ADD, request))

    async def product_row_update(
        self, row_id: int | str, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> JsonDict:
        request = {**dict(params or {}), "id": row_id, "fields": self.codec.normalize_fields(fields)}
        return self._product_row(await self.client.call(self.METHOD_PRODUCT_ROW_UPDATE, request))

    async def product_row_get(self, row_id: int | str, params: Mapping[str, Any] | None = None) -> JsonDict:
        request = {**dict(params or {}), "id": row_id}
        return self._product_row(await self.client.call(self.METHOD_PRODUCT_ROW_GET, request))

    async def product_row_list(
        self, owner_id: int | str, params: Mapping[str, Any] | None = None
    ) -> ListResponse:
        """Product rows of one owner item.

        The owner condition is added here; a filter that already mentions
        ``ownerType``/``ownerId`` is rejected.
        """
        request = dict(params or {})
        filter_ = dict(request.get("filter") or {})
        if filter_mentions_fields(filter_, self.OWNER_FIELDS):
            raise UsageConflictError(
                "product_row_list() manages ownerType/ownerId itself; remove these conditions from filter",
                field="ownerType/ownerId",
            )
        filter_["=ownerType"] = self.owner_type
        filter_["=ownerId"] = owner_id
        request["filter"] = filter_

        response = await self.client.call(self.METHOD_PRODUCT_ROW_LIST, request)
        rows = extract_by_path(response, ("result", "productRows"), [])
        if not isinstance(rows, list):
            rows = []
        return ListResponse(items=self.codec.to_response_records(rows), total=extract_total(response))

    async def product_row_delete(self, row_id: int | str, params: Mapping[str, Any] | None = None) -> bool:
        request = {**dict(params or {}), "id": row_id}
        return extract_success(await self.client.call(self.METHOD_PRODUCT_ROW_DELETE, request))


class DealService(CrmItemWithProductRowsService):
    ENTITY_TYPE_ID = crm_entity.DEAL


class LeadService(CrmItemWithProductRowsService):
    ENTITY_TYPE_ID = crm_entity.LEAD


class QuoteService(CrmItemWithProductRowsService):
    ENTITY_TYPE_ID = crm_entity.QUOTE


class InvoiceService(CrmItemWithProductRowsService):
    """Smart invoices (the current CRM invoice entity)."""

    ENTITY_TYPE_ID = crm_entity.SMART_INVOICE


class ContactService(CrmItemService):
    ENTITY_TYPE_ID = crm_entity.CONTACT


class CompanyService(CrmItemService):
    ENTITY_TYPE_ID = crm_entity.COMPANY


class SmartProcessItemService(CrmItemWithProductRowsService):
    """Items of one smart process (dynamic entity type)."""

    def __init__(self, client: Bitrix24ClientCore, entity_type_id: int):
        if not crm_entity.is_dynamic_type_id(entity_type_id):
            raise ValueError(
                "Smart process entityTypeId must be a dynamic type id (128..191 or >= 1030 and even)."
            )
        super().__init__(client, entity_type_id)
