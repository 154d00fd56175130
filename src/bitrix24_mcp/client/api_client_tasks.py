"""Bitrix24 API client - tasks, checklists, templates and elapsed time."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from ..models import CreatedNode, ListPage, ListResponse, RemoteCallFailure
from .api_client_core import Bitrix24ClientCore
from .client_log import ClientLogger
from .field_codec import normalize_user_order, order_mentions_field
from .pagination import sort_items_by_order
from .response_extractor import (
    extract_by_path,
    extract_list,
    extract_list_response,
    extract_success,
    to_int_or_none,
    to_positive_int,
)

JsonDict = dict[str, Any]

TEMPLATE_FIELD_KEYS = (
    "TITLE",
    "DESCRIPTION",
    "DESCRIPTION_IN_BBCODE",
    "PRIORITY",
    "TIME_ESTIMATE",
    "ALLOW_CHANGE_DEADLINE",
    "ALLOW_TIME_TRACKING",
    "TASK_CONTROL",
    "ADD_IN_REPORT",
    "MATCH_WORK_TIME",
    "UF_CRM_TASK",
    "ACCOMPLICES",
    "AUDITORS",
)

CHECKLIST_PARENT_KEYS = ("checklistId", "checklist_id", "parentId", "parent_id", "PARENT_ID")

MISSING_FILE_MESSAGES = ("Could not find file", "Не удалось найти файл")

_DISK_FILE_TAG_RE = re.compile(r"\[disk\s+file\s+id=([^\]\s]+)([^\]]*)\]", re.IGNORECASE)


def normalize_created_result(result: Any) -> JsonDict:
    """``{"id": "<id>"}`` for bare ids or records carrying ``ID``/``id``."""
    if isinstance(result, Mapping):
        created_id = result.get("ID", result.get("id"))
        if created_id is not None and not isinstance(created_id, (Mapping, list)) and created_id != "":
            return {"id": str(created_id)}
        return dict(result)
    if result is not None and not isinstance(result, (bool, list)) and result != "":
        return {"id": str(result)}
    return {}


def normalize_disk_file_tags(description: str) -> str:
    """Rewrite ``[disk file id=n]`` tags to the upper-case form tasks accept."""
    return _DISK_FILE_TAG_RE.sub(
        lambda match: f"[DISK FILE ID={match.group(1).strip()}{match.group(2)}]", description
    )


def extract_disk_file_tokens(description: str) -> list[str]:
    tokens: list[str] = []
    for match in _DISK_FILE_TAG_RE.finditer(description):
        token = match.group(1).strip()
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def build_task_fields_from_template(template: Mapping[str, Any]) -> JsonDict:
    """``tasks.task.add`` fields for a task created from ``template``."""
    fields: JsonDict = {}
    for key in TEMPLATE_FIELD_KEYS:
        if key not in template:
            continue
        value = template[key]
        if value is None or value == "" or (isinstance(value, (list, Mapping)) and not value):
            continue
        fields[key] = value

    description = normalize_disk_file_tags(str(fields.get("DESCRIPTION") or ""))
    if description:
        fields["DESCRIPTION"] = description

    disk_tokens = extract_disk_file_tokens(description)
    if disk_tokens:
        fields["UF_TASK_WEBDAV_FILES"] = disk_tokens
        fields["DESCRIPTION_IN_BBCODE"] = "Y"
    elif isinstance(template.get("UF_TASK_WEBDAV_FILES"), list) and template["UF_TASK_WEBDAV_FILES"]:
        fields["UF_TASK_WEBDAV_FILES"] = template["UF_TASK_WEBDAV_FILES"]

    group_id = to_positive_int(template.get("GROUP_ID"))
    if group_id is not None:
        fields["GROUP_ID"] = group_id

    responsible_id = to_positive_int(template.get("RESPONSIBLE_ID")) or to_positive_int(template.get("CREATED_BY"))
    if responsible_id is not None:
        fields["RESPONSIBLE_ID"] = responsible_id

    return fields


def _merge_case_variants(params: JsonDict, key: str) -> JsonDict:
    """Pop ``key`` in both lower and upper case and merge the mappings (upper first)."""
    merged: JsonDict = {}
    for variant in (key.upper(), key.lower()):
        value = params.pop(variant, None)
        if isinstance(value, Mapping):
            merged.update(value)
    return merged


def _output_order(order: Mapping[str, Any] | None) -> dict[str, str] | None:
    """Caller's order for client-side sorting, with ``ID DESC`` as the final tie-breaker."""
    output_order = normalize_user_order(order)
    if not output_order:
        return None
    if not order_mentions_field(output_order, "ID"):
        output_order["ID"] = "DESC"
    return output_order


class TaskService:
    """Tasks (``tasks.task.*``) plus checklist and elapsed-time items."""

    METHOD_TASK_ADD = "tasks.task.add"
    METHOD_TASK_UPDATE = "tasks.task.update"
    METHOD_TASK_GET = "tasks.task.get"
    METHOD_TASK_LIST = "tasks.task.list"
    METHOD_TASK_FILES_ATTACH = "tasks.task.files.attach"
    METHOD_TASK_DELEGATE = "tasks.task.delegate"
    METHOD_TASK_COMPLETE = "tasks.task.complete"
    METHOD_TASK_DELETE = "tasks.task.delete"
    METHOD_TEMPLATE_LIST = "tasks.template.list"
    METHOD_TEMPLATE_GET = "tasks.template.get"
    METHOD_TEMPLATE_CHECKLIST_LIST = "tasks.template.checklist.list"

    METHOD_CHECKLIST_ADD = "task.checklistitem.add"
    METHOD_CHECKLIST_UPDATE = "task.checklistitem.update"
    METHOD_CHECKLIST_GET = "task.checklistitem.get"
    METHOD_CHECKLIST_GET_LIST = "task.checklistitem.getlist"
    METHOD_CHECKLIST_MOVE_AFTER_ITEM = "task.checklistitem.moveafteritem"
    METHOD_CHECKLIST_COMPLETE = "task.checklistitem.complete"
    METHOD_CHECKLIST_RENEW = "task.checklistitem.renew"
    METHOD_CHECKLIST_DELETE = "task.checklistitem.delete"

    METHOD_COMMENT_ADD = "task.commentitem.add"
    METHOD_ITEM_USER_FIELD_ADD = "task.item.userfield.add"

    METHOD_ELAPSED_ADD = "task.elapseditem.add"
    METHOD_ELAPSED_UPDATE = "task.elapseditem.update"
    METHOD_ELAPSED_GET = "task.elapseditem.get"
    METHOD_ELAPSED_DELETE = "task.elapseditem.delete"
    METHOD_ELAPSED_GET_LIST = "task.elapseditem.getlist"

    ELAPSED_LIST_KEYS = ("elapsedItems", "elapseditems", "elapsed")
    CHECKLIST_LIST_KEYS = ("checklist", "checkListItems", "checklistItems")

    def __init__(self, client: Bitrix24ClientCore):
        self.client = client
        self._logger = ClientLogger("TASKS")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def task_add(self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> JsonDict:
        request = {**dict(params or {}), "fields": dict(fields)}
        response = await self.client.call(self.METHOD_TASK_ADD, request)
        task = extract_by_path(response, ("result", "task"))
        if isinstance(task, Mapping):
            return dict(task)
        return normalize_created_result(response.get("result"))

    async def task_update(
        self, task_id: int | str, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), "taskId": task_id, "fields": dict(fields)}
        return extract_success(await self.client.call(self.METHOD_TASK_UPDATE, request))

    async def task_get(self, task_id: int | str, params: Mapping[str, Any] | None = None) -> JsonDict:
        response = await self.client.call(self.METHOD_TASK_GET, {**dict(params or {}), "taskId": task_id})
        task = extract_by_path(response, ("result", "task"))
        if isinstance(task, Mapping):
            return dict(task)
        items = extract_list(response, ("task",))
        return dict(items[0]) if items and isinstance(items[0], Mapping) else {}

    async def task_files_attach(
        self, task_id: int | str, file_id: int | str, params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), "taskId": task_id, "fileId": file_id}
        return extract_success(await self.client.call(self.METHOD_TASK_FILES_ATTACH, request))

    async def task_delegate(
        self, task_id: int | str, user_id: int | str, params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), "taskId": task_id, "userId": user_id}
        return extract_success(await self.client.call(self.METHOD_TASK_DELEGATE, request))

    async def task_complete(self, task_id: int | str, params: Mapping[str, Any] | None = None) -> bool:
        request = {**dict(params or {}), "taskId": task_id}
        return extract_success(await self.client.call(self.METHOD_TASK_COMPLETE, request))

    async def task_delete(self, task_id: int | str, params: Mapping[str, Any] | None = None) -> bool:
        request = {**dict(params or {}), "taskId": task_id}
        return extract_success(await self.client.call(self.METHOD_TASK_DELETE, request))

    async def task_list(self, params: Mapping[str, Any] | None = None, page: int = 1) -> ListPage:
        return await self.client.list_page(self.METHOD_TASK_LIST, params, page, list_keys=("tasks",))

    async def task_all(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Every task matching the filter (``filter`` or ``FILTER``).

        The caller's order (``order`` or ``ORDER``) is applied client-side,
        with ``ID DESC`` as the final tie-breaker.
        """
        request = dict(params or {})
        request.pop("START", None)
        filter_ = _merge_case_variants(request, "filter")
        output_order = _output_order(_merge_case_variants(request, "order"))
        request["filter"] = filter_

        return await self.client.fetch_all(
            self.METHOD_TASK_LIST,
            request,
            output_order=output_order,
            list_keys=("tasks",),
            stop_on_short_page=True,
            reject_cursor_order=False,
        )

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    async def template_list(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Task templates, newest first.

        ``tasks.template.list`` only answers reliably with ``start=-1``.
        """
        request = {**dict(params or {}), "start": -1}
        response = await self.client.call(self.METHOD_TEMPLATE_LIST, request)
        raw = extract_by_path(response, ("result", "task_templates"), [])
        if isinstance(raw, Mapping):
            raw = list(raw.values())
        items = [dict(item) for item in raw if isinstance(item, Mapping)] if isinstance(raw, list) else []
        return sort_items_by_order(items, {"ID": "DESC"})

    async def template_get(self, template_id: int | str) -> JsonDict:
        response = await self.client.call(self.METHOD_TEMPLATE_GET, {"templateId": template_id})
        result = response.get("result")
        return dict(result) if isinstance(result, Mapping) else {}

    async def template_checklist_list(self, template_id: int | str) -> list[JsonDict]:
        """Template checklist items, roots first, then by sort index and id."""
        response = await self.client.call(self.METHOD_TEMPLATE_CHECKLIST_LIST, {"templateId": template_id})
        raw = extract_by_path(response, ("result", "checkListItems"), [])
        items = [dict(item) for item in raw if isinstance(item, Mapping)] if isinstance(raw, list) else []

        def sort_key(item: JsonDict) -> tuple[int, int, int]:
            parent = to_int_or_none(item.get("parentId", item.get("PARENT_ID"))) or 0
            sort_index = to_int_or_none(item.get("sortIndex", item.get("SORT"))) or 0
            item_id = to_int_or_none(item.get("id", item.get("ID"))) or 0
            return (0 if parent == 0 else 1, sort_index, item_id)

        return sorted(items, key=sort_key)

    async def task_add_from_template(
        self,
        template_id: int | str,
        override_fields: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> JsonDict:
        """Create a task from a template and copy the template checklist into it.

        Returns ``{"task": {...}, "checklist": [CreatedNode, ...]}``; an
        unknown template yields ``{}``.
        """
        template = await self.template_get(template_id)
        if not template:
            return {}

        fields = build_task_fields_from_template(template)
        fields.update(override_fields or {})

        try:
            task = await self.task_add(fields, params)
        except RemoteCallFailure as e:
            if "UF_TASK_WEBDAV_FILES" not in fields or not any(
                marker in e.message for marker in MISSING_FILE_MESSAGES
            ):
                raise
            self._logger.warning(
                f"Template {template_id}: attached files are gone, creating the task without them"
            )
            fields.pop("UF_TASK_WEBDAV_FILES")
            task = await self.task_add(fields, params)

        task_id = next(
            (to_positive_int(task.get(key)) for key in ("id", "ID", "taskId") if to_positive_int(task.get(key))),
            None,
        )
        if task_id is None:
            return {"task": task, "checklist": []}

        template_items = await self.template_checklist_list(template_id)
        checklist = await self.copy_checklist_tree(task_id, template_items)
        return {"task": task, "checklist": checklist}

    async def copy_checklist_tree(self, task_id: int, items: Iterable[Mapping[str, Any]]) -> list[CreatedNode]:
        """Recreate a checklist tree (``id``/``parentId``/``title``/``sortIndex``) on a task."""

        def child_command(parent_id: int, title: str) -> tuple[str, JsonDict]:
            return self.METHOD_CHECKLIST_ADD, {
                "taskId": task_id,
                "fields": {"TITLE": title, "PARENT_ID": parent_id},
            }

        return await self.client.replicate_tree(items, child_command, root_id=0, key_prefix="checklist_add")

    # ------------------------------------------------------------------
    # Checklists
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_checklist_items(items: Iterable[Any]) -> list[JsonDict]:
        """Accept plain titles, field mappings, or ``{"fields": {...}}`` wrappers."""
        normalized: list[JsonDict] = []
        for item in items:
            if isinstance(item, str):
                if item.strip():
                    normalized.append({"TITLE": item.strip()})
            elif isinstance(item, Mapping):
                if isinstance(item.get("fields"), Mapping):
                    normalized.append(dict(item["fields"]))
                elif item:
                    normalized.append(dict(item))
        return normalized

    async def checklist_item_add(
        self,
        task_id: int | str,
        title: str,
        items: Iterable[Any],
        params: Mapping[str, Any] | None = None,
    ) -> list[JsonDict]:
        """Add checklist items through the batch method (keys ``checklist_add_N``).

        The parent is ``params['checklistId']`` (or ``parentId``...) when
        given; otherwise a non-empty ``title`` creates a new checklist root,
        and an empty one uses the task's first root.
        """
        fields_list = self.normalize_checklist_items(items)
        if not fields_list:
            return []

        params = dict(params or {})
        parent_id = await self._resolve_checklist_parent_id(task_id, title.strip(), params)
        for key in CHECKLIST_PARENT_KEYS:
            params.pop(key, None)

        def build_params(fields: Mapping[str, Any], position: int) -> JsonDict:
            fields = dict(fields)
            if parent_id is not None and not any(key in fields for key in ("PARENT_ID", "parentId", "parent_id")):
                fields["PARENT_ID"] = parent_id
            return {**params, "taskId": task_id, "fields": fields}

        results = await self.client.bulk_write(
            self.METHOD_CHECKLIST_ADD,
            fields_list,
            key_prefix="checklist_add",
            build_params=build_params,
        )
        return [
            dict(result) if isinstance(result, Mapping) else normalize_created_result(result)
            for result in results
        ]

    async def _resolve_checklist_parent_id(
        self, task_id: int | str, title: str, params: Mapping[str, Any]
    ) -> int | None:
        for key in CHECKLIST_PARENT_KEYS:
            if key in params:
                explicit = to_positive_int(params[key])
                if explicit is not None:
                    return explicit

        if title:
            response = await self.client.call(
                self.METHOD_CHECKLIST_ADD,
                {"taskId": task_id, "fields": {"TITLE": title, "PARENT_ID": 0}},
            )
            root_id = to_positive_int(normalize_created_result(response.get("result")).get("id"))
            if root_id is None:
                raise RemoteCallFailure(
                    self.METHOD_CHECKLIST_ADD,
                    response,
                    message="Unable to create checklist root item",
                )
            return root_id

        for item in (await self.checklist_item_get_list(task_id)).items:
            parent = to_int_or_none(item.get("PARENT_ID", item.get("parentId", item.get("parent_id"))))
            if parent != 0:
                continue
            item_id = to_positive_int(item.get("ID", item.get("id")))
            if item_id is not None:
                return item_id
        return None

    async def checklist_item_get_list(
        self, task_id: int | str, params: Mapping[str, Any] | None = None
    ) -> ListResponse:
        response = await self.client.call(self.METHOD_CHECKLIST_GET_LIST, {**dict(params or {}), "taskId": task_id})
        return extract_list_response(response, self.CHECKLIST_LIST_KEYS)

    async def checklist_item_update(
        self,
        task_id: int | str,
        item_id: int | str,
        fields: Mapping[str, Any],
        params: Mapping[str, Any] | None = None,
    ) -> bool:
        request = {**dict(params or {}), "taskId": task_id, "itemId": item_id, "fields": dict(fields)}
        return extract_success(await self.client.call(self.METHOD_CHECKLIST_UPDATE, request))

    async def _item_call(
        self, method: str, task_id: int | str, item_id: int | str, params: Mapping[str, Any] | None
    ) -> JsonDict:
        return await self.client.call(method, {**dict(params or {}), "taskId": task_id, "itemId": item_id})

    async def checklist_item_get(
        self, task_id: int | str, item_id: int | str, params: Mapping[str, Any] | None = None
    ) -> JsonDict:
        result = (await self._item_call(self.METHOD_CHECKLIST_GET, task_id, item_id, params)).get("result")
        return dict(result) if isinstance(result, Mapping) else {}

    async def checklist_item_move_after_item(
        self,
        task_id: int | str,
        item_id: int | str,
        after_item_id: int | str,
        params: Mapping[str, Any] | None = None,
    ) -> bool:
        request = {**dict(params or {}), "afterItemId": after_item_id}
        return extract_success(
            await self._item_call(self.METHOD_CHECKLIST_MOVE_AFTER_ITEM, task_id, item_id, request)
        )

    async def checklist_item_complete(
        self, task_id: int | str, item_id: int | str, params: Mapping[str, Any] | None = None
    ) -> bool:
        return extract_success(await self._item_call(self.METHOD_CHECKLIST_COMPLETE, task_id, item_id, params))

    async def checklist_item_renew(
        self, task_id: int | str, item_id: int | str, params: Mapping[str, Any] | None = None
    ) -> bool:
        return extract_success(await self._item_call(self.METHOD_CHECKLIST_RENEW, task_id, item_id, params))

    async def checklist_rename_by_title(self, task_id: int | str, old_title: str, new_title: str) -> bool:
        """Rename the root checklist whose title is ``old_title``.

        Only root items (``PARENT_ID`` 0) are checklists. Returns False when
        either title is blank or no checklist matches.
        """
        old_title, new_title = old_title.strip(), new_title.strip()
        if not old_title or not new_title:
            return False

        listing = await self.checklist_item_get_list(task_id)
        for item in listing.items:
            parent_id = to_int_or_none(item.get("PARENT_ID", item.get("parentId", item.get("parent_id"))))
            if parent_id != 0:
                continue
            if str(item.get("TITLE", item.get("title", ""))).strip() != old_title:
                continue
            item_id = to_positive_int(item.get("ID", item.get("id")))
            if item_id is None:
                continue
            return await self.checklist_item_update(task_id, item_id, {"TITLE": new_title})
        return False

    async def checklist_item_delete(
        self, task_id: int | str, item_id: int | str, params: Mapping[str, Any] | None = None
    ) -> bool:
        request = {**dict(params or {}), "taskId": task_id, "itemId": item_id}
        return extract_success(await self.client.call(self.METHOD_CHECKLIST_DELETE, request))

    # ------------------------------------------------------------------
    # Comments and user fields
    # ------------------------------------------------------------------

    async def comment_item_add(
        self, task_id: int | str, message: str, author_id: int | str | None = None
    ) -> JsonDict:
        fields: JsonDict = {"POST_MESSAGE": message}
        if author_id not in (None, ""):
            fields["AUTHOR_ID"] = author_id
        response = await self.client.call(self.METHOD_COMMENT_ADD, {"taskId": task_id, "fields": fields})
        return normalize_created_result(response.get("result"))

    async def item_user_field_add(
        self, fields: Mapping[str, Any], params: Mapping[str, Any] | None = None
    ) -> JsonDict:
        request = {**dict(params or {}), "fields": dict(fields)}
        response = await self.client.call(self.METHOD_ITEM_USER_FIELD_ADD, request)
        return normalize_created_result(response.get("result"))

    # ------------------------------------------------------------------
    # Elapsed time
    # ------------------------------------------------------------------

    async def elapsed_item_add(
        self,
        task_id: int | str,
        seconds: int,
        comment_text: str = "",
        author_id: int | str | None = None,
        created_date: str = "",
    ) -> JsonDict:
        fields: JsonDict = {"SECONDS": seconds}
        if comment_text:
            fields["COMMENT_TEXT"] = comment_text
        if author_id not in (None, ""):
            fields["USER_ID"] = author_id
        if created_date:
            fields["CREATED_DATE"] = created_date
        response = await self.client.call(self.METHOD_ELAPSED_ADD, {"taskId": task_id, "fields": fields})
        return normalize_created_result(response.get("result"))

    async def elapsed_item_get(
        self, task_id: int | str, item_id: int | str, params: Mapping[str, Any] | None = None
    ) -> JsonDict:
        result = (await self._item_call(self.METHOD_ELAPSED_GET, task_id, item_id, params)).get("result")
        return dict(result) if isinstance(result, Mapping) else {}

    async def elapsed_item_update(
        self,
        task_id: int | str,
        item_id: int | str,
        seconds: int,
        comment_text: str = "",
        created_date: str = "",
    ) -> bool:
        fields: JsonDict = {"SECONDS": seconds}
        if comment_text:
            fields["COMMENT_TEXT"] = comment_text
        if created_date:
            fields["CREATED_DATE"] = created_date
        request = {"taskId": task_id, "itemId": item_id, "fields": fields}
        return extract_success(await self.client.call(self.METHOD_ELAPSED_UPDATE, request))

    async def elapsed_item_delete(
        self, task_id: int | str, item_id: int | str, params: Mapping[str, Any] | None = None
    ) -> bool:
        return extract_success(await self._item_call(self.METHOD_ELAPSED_DELETE, task_id, item_id, params))

    @staticmethod
    def _elapsed_request(params: Mapping[str, Any] | None) -> tuple[JsonDict, JsonDict, JsonDict]:
        request = dict(params or {})
        filter_ = _merge_case_variants(request, "filter")
        order = _merge_case_variants(request, "order")
        return request, filter_, order

    async def elapsed_item_get_list(self, params: Mapping[str, Any] | None = None) -> ListResponse:
        """One ``task.elapseditem.getlist`` call.

        The method reads its arguments positionally, so ``ORDER`` always
        precedes ``FILTER`` and is defaulted when only a filter is given.
        """
        rest, filter_, order = self._elapsed_request(params)
        if filter_ and not order:
            order = {"ID": "DESC"}

        request: JsonDict = {}
        if order:
            request["ORDER"] = order
        if filter_:
            request["FILTER"] = filter_
        request.update(rest)

        response = await self.client.call(self.METHOD_ELAPSED_GET_LIST, request)
        return extract_list_response(response, self.ELAPSED_LIST_KEYS)

    async def elapsed_item_all(self, params: Mapping[str, Any] | None = None) -> list[JsonDict]:
        """Every elapsed-time record matching ``FILTER``.

        Records come newest first unless ``ORDER`` is given, in which case it
        is applied client-side with ``ID DESC`` as the final tie-breaker.
        """
        rest, filter_, order = self._elapsed_request(params)
        rest.pop("START", None)
        rest["FILTER"] = filter_
        return await self.client.fetch_all(
            self.METHOD_ELAPSED_GET_LIST,
            rest,
            filter_key="FILTER",
            order_key="ORDER",
            list_keys=self.ELAPSED_LIST_KEYS,
            output_order=_output_order(order),
            stop_on_short_page=True,
            reject_cursor_order=False,
        )

    async def elapsed_item_all_by_task_id(
        self, task_id: int | str, params: Mapping[str, Any] | None = None
    ) -> list[JsonDict]:
        rest, filter_, order = self._elapsed_request(params)
        filter_["TASK_ID"] = task_id
        return await self.elapsed_item_all({**rest, "ORDER": order, "FILTER": filter_})

    async def elapsed_item_all_by_group_id(
        self, group_id: int | str, params: Mapping[str, Any] | None = None
    ) -> list[JsonDict]:
        """Elapsed time of every task in a workgroup, newest record first unless ``ORDER`` is given."""
        tasks = await self.task_all({"filter": {"GROUP_ID": group_id}, "select": ["ID"]})
        task_ids: list[int] = []
        for task in tasks:
            task_id = to_positive_int(task.get("ID", task.get("id")))
            if task_id is not None and task_id not in task_ids:
                task_ids.append(task_id)
        if not task_ids:
            return []

        rest, filter_, order = self._elapsed_request(params)
        filter_.pop("GROUP_ID", None)

        page_size = self.client.PAGE_SIZE
        items: list[JsonDict] = []
        for start in range(0, len(task_ids), page_size):
            chunk_filter = {**filter_, "TASK_ID": task_ids[start:start + page_size]}
            items.extend(await self.elapsed_item_all({**rest, "FILTER": chunk_filter}))

        return sort_items_by_order(items, _output_order(order) or {"ID": "DESC"})
