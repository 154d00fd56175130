"""Exhaustive list retrieval ("fetch-all").

Offset pagination on Bitrix24 list methods is capped and shifts under
concurrent writes. ``PaginationCursor`` instead walks a monotonic ID cursor:
every request disables offsets (``start=-1``), orders by the cursor field and
adds a strict inequality past the last boundary seen. Methods without an ID
cursor are walked through the envelope's ``next`` offset instead.

Either walk fails loudly rather than stopping early:

- ``CursorStallError`` when the boundary does not move forward,
- ``IterationLimitExceeded`` when the iteration ceiling is reached.

Callers that asked for a particular output order get one stable client-side
sort over the materialized list (``sort_items_by_order``).
"""

from __future__ import annotations

import functools
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from enum import Enum
from typing import Any

from ..models import (
    Cursor,
    CursorStallError,
    IterationLimitExceeded,
    SortDirection,
    UsageConflictError,
)
from .client_log import ClientLogger
from .field_codec import (
    DEFAULT_CODEC,
    filter_mentions_fields,
    normalize_user_order,
    order_mentions_field,
)
from .response_extractor import extract_list, extract_next, to_positive_int

JsonDict = dict[str, Any]
CallFn = Callable[[str, JsonDict], Awaitable[JsonDict]]
ChunkTransform = Callable[[list[JsonDict]], list[JsonDict]]

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_ITERATIONS = 100_000

_NUMERIC_RE = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")


class PaginationStrategy(str, Enum):
    ID_CURSOR = "id_cursor"
    NEXT_OFFSET = "next_offset"


# ----------------------------------------------------------------------
# Client-side ordering
# ----------------------------------------------------------------------


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(_NUMERIC_RE.match(value))


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


def compare_sort_values(left: Any, right: Any) -> int:
    """Total order: null first, numbers numerically, everything else as text."""
    if left == right and type(left) is type(right):
        return 0
    if left is None:
        return 0 if right is None else -1
    if right is None:
        return 1

    if _is_numeric(left) and _is_numeric(right):
        left_number, right_number = float(left), float(right)
        return (left_number > right_number) - (left_number < right_number)

    left_text, right_text = _as_text(left), _as_text(right)
    return (left_text > right_text) - (left_text < right_text)


def _sort_value(item: JsonDict, field: str) -> Any:
    """Value of ``field``, also looked up under its camelCase spelling."""
    if field in item:
        return item[field]
    return item.get(DEFAULT_CODEC.to_request_name(field))


def sort_items_by_order(items: list[JsonDict], order: Mapping[str, Any] | None) -> list[JsonDict]:
    """Stable sort by ``{field: ASC|DESC}`` in the mapping's priority order."""
    normalized = normalize_user_order(order)
    if not normalized or len(items) < 2:
        return list(items)

    def compare(left: JsonDict, right: JsonDict) -> int:
        for field, direction in normalized.items():
            result = compare_sort_values(_sort_value(left, field), _sort_value(right, field))
            if result != 0:
                return -result if direction == "DESC" else result
        return 0

    return sorted(items, key=functools.cmp_to_key(compare))


# ----------------------------------------------------------------------
# Cursor
# ----------------------------------------------------------------------


class PaginationCursor:
    """Fetch every record of one list method.

    Args:
        call: Coroutine ``call(method, params) -> envelope`` that raises on
            error envelopes.
        method: List method name, e.g. ``crm.item.list``.
        strategy: ID cursor or ``next`` offset walk.
        cursor_field: Field the ID cursor filters and orders by.
        record_keys: Keys the cursor value is read from in returned records.
        direction: ``DESC`` walks down from the newest id, ``ASC`` up.
        filter_key / order_key: Parameter names (``FILTER``/``ORDER`` on tasks).
        list_keys: Extra candidate keys for locating the record list.
        transform: Applied to each chunk before it is accumulated.
        stop_on_short_page: Stop after a chunk smaller than ``page_size``
            instead of issuing one more request that comes back empty.
        reject_cursor_order: Reject caller orders on the cursor field.
    """

    def __init__(
        self,
        call: CallFn,
        method: str,
        *,
        strategy: PaginationStrategy = PaginationStrategy.ID_CURSOR,
        cursor_field: str = "ID",
        record_keys: Sequence[str] = ("ID", "id"),
        direction: SortDirection = SortDirection.DESC,
        filter_key: str = "filter",
        order_key: str = "order",
        list_keys: Iterable[str] = (),
        transform: ChunkTransform | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        stop_on_short_page: bool = False,
        reject_cursor_order: bool = True,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        logger: ClientLogger | None = None,
    ) -> None:
        if page_size < 1:
            raise ValueError("Page size must be positive")
        if max_iterations < 1:
            raise ValueError("Iteration ceiling must be positive")
        self._call = call
        self.method = method
        self.strategy = PaginationStrategy(strategy)
        self.cursor_field = cursor_field
        self.record_keys = tuple(record_keys)
        self.direction = SortDirection.parse(direction)
        self.filter_key = filter_key
        self.order_key = order_key
        self.list_keys = tuple(list_keys)
        self.transform = transform
        self.page_size = page_size
        self.stop_on_short_page = stop_on_short_page
        self.reject_cursor_order = reject_cursor_order
        self.max_iterations = max_iterations
        self._logger = logger or ClientLogger("CURSOR")

    def check_usage(
        self, filter_: Mapping[Any, Any] | None, output_order: Mapping[str, Any] | None = None
    ) -> None:
        """Reject inputs that constrain the field the cursor manages."""
        if self.strategy is not PaginationStrategy.ID_CURSOR:
            return
        if filter_mentions_fields(filter_, (self.cursor_field,)):
            raise UsageConflictError(
                f"Filter by {self.cursor_field} is not supported when fetching all "
                f"results of '{self.method}'; the cursor manages that field",
                field=self.cursor_field,
            )
        if self.reject_cursor_order and order_mentions_field(output_order, self.cursor_field):
            raise UsageConflictError(
                f"Order by {self.cursor_field} is not supported when fetching all "
                f"results of '{self.method}'",
                field=self.cursor_field,
            )

    async def fetch_all(
        self,
        base_params: Mapping[str, Any] | None = None,
        output_order: Mapping[str, Any] | None = None,
    ) -> list[JsonDict]:
        """Return every record matching ``base_params``.

        ``output_order`` is applied client-side after the walk finishes.
        Usage conflicts are raised before the first request.
        """
        params: JsonDict = dict(base_params or {})
        self.check_usage(params.get(self.filter_key), output_order)

        if self.strategy is PaginationStrategy.NEXT_OFFSET:
            items = await self._walk_next_offset(params)
        else:
            items = await self._walk_id_cursor(params)

        if output_order:
            items = sort_items_by_order(items, output_order)
        return items

    def _chunk_from(self, response: JsonDict) -> list[JsonDict]:
        chunk = [item for item in extract_list(response, self.list_keys) if isinstance(item, Mapping)]
        chunk = [dict(item) for item in chunk]
        if self.transform is not None and chunk:
            chunk = self.transform(chunk)
        return chunk

    def _boundary_of(self, chunk: list[JsonDict]) -> int | None:
        values: list[int] = []
        for record in chunk:
            for key in self.record_keys:
                value = to_positive_int(record.get(key))
                if value is not None:
                    values.append(value)
                    break
        if not values:
            return None
        return min(values) if self.direction is SortDirection.DESC else max(values)

    async def _walk_id_cursor(self, params: JsonDict) -> list[JsonDict]:
        user_filter = dict(params.pop(self.filter_key, None) or {})
        params.pop(self.order_key, None)
        params.pop("start", None)

        cursor = Cursor(direction=self.direction)
        items: list[JsonDict] = []

        for iteration in range(1, self.max_iterations + 1):
            request_filter = dict(user_filter)
            if cursor.last_key is not None:
                request_filter[cursor.operator + self.cursor_field] = cursor.last_key

            # Positional methods (task.elapseditem.getlist) read ORDER before FILTER.
            request = {
                self.order_key: {self.cursor_field: self.direction.value},
                self.filter_key: request_filter,
                "start": -1,
                **params,
            }
            chunk = self._chunk_from(await self._call(self.method, request))
            if not chunk:
                self._logger.debug(
                    f"{self.method}: finished after {iteration} request(s), {len(items)} record(s)"
                )
                return items

            items.extend(chunk)
            short_page = self.stop_on_short_page and len(chunk) < self.page_size

            boundary = self._boundary_of(chunk)
            if boundary is None and short_page:
                # Last page; rows keyed by code (crm.currency.list) carry no ID.
                return items
            if boundary is None:
                raise CursorStallError(
                    self.method,
                    cursor.last_key,
                    None,
                    message=f"Unable to extract {self.cursor_field} cursor from '{self.method}' response chunk",
                )
            if not cursor.advances_to(boundary):
                raise CursorStallError(self.method, cursor.last_key, boundary)
            cursor = Cursor(last_key=boundary, direction=self.direction)

            if short_page:
                return items

        raise IterationLimitExceeded(self.method, self.max_iterations)

    async def _walk_next_offset(self, params: JsonDict) -> list[JsonDict]:
        start = 0
        items: list[JsonDict] = []

        for _ in range(self.max_iterations):
            response = await self._call(self.method, {**params, "start": start})
            items.extend(self._chunk_from(response))

            next_start = extract_next(response)
            if next_start is None:
                return items
            if next_start <= start:
                raise CursorStallError(self.method, start, next_start)
            start = next_start

        raise IterationLimitExceeded(self.method, self.max_iterations)
