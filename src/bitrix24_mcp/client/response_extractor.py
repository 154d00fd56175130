"""Pull typed values out of loosely shaped Bitrix24 response envelopes.

The same logical value shows up under different keys and shapes depending
on the method: ``result`` may be the list itself, or an object holding the
list under ``items``/``tasks``/``checklist``..., an ``add`` may answer with a
bare id or with ``{"item": {"id": ...}}``, and an acknowledgement may be
``true``, ``1``, ``"Y"`` or an echoed object. ``classify_result`` names
these shapes; the ``extract_*`` helpers coerce permissively and never raise.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import Any

from ..models import ListResponse, RemoteCallFailure

JsonDict = dict[str, Any]

DEFAULT_LIST_KEYS: tuple[str, ...] = (
    "tasks",
    "checklist",
    "checkList",
    "checklistItems",
    "elapsedItems",
    "comments",
    "items",
    "list",
    "categories",
    "task_templates",
)

TRUTHY_STRINGS = frozenset({"1", "true", "y", "yes"})

_INTEGER_RE = re.compile(r"^-?\d+$")


class ResultShape(str, Enum):
    NULL = "null"
    LIST = "list"
    ITEM_WRAPPER = "item_wrapper"
    RECORD = "record"
    SCALAR = "scalar"


def classify_result(value: Any) -> ResultShape:
    """Name the shape of a ``result`` payload."""
    if value is None:
        return ResultShape.NULL
    if as_list(value) is not None:
        return ResultShape.LIST
    if isinstance(value, Mapping):
        if isinstance(value.get("item"), Mapping):
            return ResultShape.ITEM_WRAPPER
        return ResultShape.RECORD
    return ResultShape.SCALAR


def as_list(value: Any) -> list[Any] | None:
    """Return ``value`` as a list when it is positionally indexed.

    JSON objects whose keys are exactly ``"0".."n-1"`` (and empty objects)
    count as lists; the portal emits both spellings for the same payload.
    """
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        keys = list(value.keys())
        if all(str(key) == str(index) for index, key in enumerate(keys)):
            return list(value.values())
    return None


def extract_by_path(payload: Any, path: Sequence[str], default: Any = None) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, Mapping) or key not in current:
            return default
        current = current[key]
    return current


def extract_list(
    response: Mapping[str, Any] | None,
    candidate_keys: Iterable[str] = (),
    default_keys: Iterable[str] = DEFAULT_LIST_KEYS,
) -> list[Any]:
    """Find the record list inside an envelope.

    The ``result`` itself wins when it is list shaped; otherwise the caller's
    keys are tried first, then ``default_keys``. Returns ``[]`` when nothing
    list shaped is found.
    """
    result = (response or {}).get("result")

    direct = as_list(result)
    if direct is not None:
        return direct

    if not isinstance(result, Mapping):
        return []

    seen: set[str] = set()
    for key in (*candidate_keys, *default_keys):
        if key in seen:
            continue
        seen.add(key)
        found = as_list(result.get(key))
        if found is not None:
            return found

    return []


def to_int_or_none(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    return None


def to_positive_int(value: Any) -> int | None:
    number = to_int_or_none(value)
    if number is None or number <= 0:
        return None
    return number


def _to_non_negative_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def extract_next(response: Mapping[str, Any] | None) -> int | None:
    return _to_non_negative_int((response or {}).get("next"))


def extract_total(response: Mapping[str, Any] | None) -> int | None:
    return _to_non_negative_int((response or {}).get("total"))


def extract_scalar_id(value: Any) -> int | None:
    """Numeric id from a bare value, ``{"ID"/"id": ...}`` or ``{"item": {...}}``."""
    shape = classify_result(value)
    if shape is ResultShape.SCALAR:
        return to_int_or_none(value)
    if shape is ResultShape.ITEM_WRAPPER:
        return extract_scalar_id(value["item"])
    if shape is ResultShape.RECORD:
        for key in ("ID", "id"):
            if key in value:
                return to_int_or_none(value[key])
    return None


def extract_created_id(value: Any) -> str | None:
    """Created-record id as text (currency codes are not numeric)."""
    shape = classify_result(value)
    if shape is ResultShape.ITEM_WRAPPER:
        return extract_created_id(value["item"])
    if shape is ResultShape.RECORD:
        for key in ("ID", "id"):
            if value.get(key) is not None:
                return str(value[key])
        return None
    if shape is ResultShape.SCALAR and not isinstance(value, bool):
        return str(value)
    return None


def extract_boolean(value: Any) -> bool:
    """Coerce an acknowledgement to bool.

    ``true``/positive numbers/``"1"``/``"true"``/``"Y"``/``"yes"`` and any
    non-empty object or list are true; everything else is false.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    if isinstance(value, (Mapping, list)):
        return len(value) > 0
    return False


def extract_success(response: Mapping[str, Any] | None) -> bool:
    """Acknowledgement of an error-free envelope.

    A present ``result`` key holding ``null`` counts as success: several
    delete-style methods report success only through the missing error.
    So does any echoed object or list, even an empty one (``crm.item.delete``
    answers ``[]``).
    """
    response = response or {}
    if "result" not in response:
        return False
    result = response["result"]
    if result is None or isinstance(result, (Mapping, list)):
        return True
    return extract_boolean(result)


def extract_list_response(
    response: Mapping[str, Any] | None, candidate_keys: Iterable[str] = ()
) -> ListResponse:
    items = [item for item in extract_list(response, candidate_keys) if isinstance(item, Mapping)]
    return ListResponse(
        items=[dict(item) for item in items],
        next=extract_next(response),
        total=extract_total(response),
    )


def raise_for_error(method: str, response: Any) -> JsonDict:
    """Return the envelope, or raise ``RemoteCallFailure`` if it carries an error."""
    if not isinstance(response, Mapping):
        raise RemoteCallFailure(
            method,
            {"error": "invalid_response", "error_description": "Response is not a JSON object"},
        )
    if response.get("error"):
        raise RemoteCallFailure(method, dict(response))
    return dict(response)
