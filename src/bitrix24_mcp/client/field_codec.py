"""Field-name translation between request and response conventions.

Bitrix24 speaks three dialects for field identifiers:

- system fields in upper snake case (``ASSIGNED_BY_ID``),
- user fields with the ``UF_`` prefix (``UF_CRM_1_ABC``, ``UF_CRM_PHONE``),
- camelCase codes used by the newer ``crm.item.*`` methods
  (``assignedById``, ``ufCrm_1_ABC``, ``ufCrmPhone``).

``FieldNameCodec`` maps a name request-ward (what the method accepts) and
response-ward (what callers see). Anything it does not recognise passes
through unchanged. The filter/order/select builders apply the mapping to
whole request structures, keeping comparison-operator prefixes on filter
keys and never touching the ``LOGIC`` operator of nested filter groups.

The module is pure: no network access, no logging.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any, Literal

JsonDict = dict[str, Any]

WILDCARD_FIELDS = frozenset({"*", "UF_*"})
USER_FIELD_PREFIX = "UF_"
LOGIC_KEY = "logic"

_SYSTEM_FIELD_RE = re.compile(r"^[A-Z0-9_]+$")
_CAMEL_FIELD_RE = re.compile(r"^[a-z0-9]+(?:[A-Z][a-z0-9]*)*$")
_FILTER_KEY_RE = re.compile(r"^([!<>=@%~]*)(.+)$", re.DOTALL)
_UPPER_BOUNDARY_RE = re.compile(r"(?<!^)([A-Z])")


def _camelize(words: Iterable[str], capitalize_first: bool) -> str:
    parts = [word.capitalize() for word in words]
    joined = "".join(parts)
    if not joined or capitalize_first:
        return joined
    return joined[0].lower() + joined[1:]


def split_filter_key(key: str) -> tuple[str, str]:
    """Split ``'>=DATE_CREATE'`` (or ``'>= DATE_CREATE'``) into ``('>=', 'DATE_CREATE')``."""
    match = _FILTER_KEY_RE.match(key)
    if match is None:
        return "", key.strip()
    return match.group(1), match.group(2).strip()


def _is_group_position(key: Any) -> bool:
    if isinstance(key, bool):
        return False
    if isinstance(key, int):
        return True
    return isinstance(key, str) and key.isdigit()


def _is_logic_key(key: Any) -> bool:
    return isinstance(key, str) and key.upper() == "LOGIC"


class FieldNameCodec:
    """Bidirectional field-name mapping.

    Args:
        user_field_prefix: User-field prefix rewritten to dynamic codes.
        request_prefix: Prefix of camelCase dynamic codes in requests.
        response_prefix: Prefix of digit-bearing dynamic codes in responses.
    """

    def __init__(
        self,
        user_field_prefix: str = "UF_CRM_",
        request_prefix: str = "ufCrm",
        response_prefix: str = "ufCrm_",
    ) -> None:
        self.user_field_prefix = user_field_prefix
        self.request_prefix = request_prefix
        self.response_prefix = response_prefix

    # ------------------------------------------------------------------
    # Single names
    # ------------------------------------------------------------------

    def to_request_name(self, name: str, use_original_user_field_names: bool = False) -> str:
        """Translate a caller-facing field name to the request convention."""
        if name in WILDCARD_FIELDS or name.startswith(self.request_prefix):
            return name

        if name.startswith(USER_FIELD_PREFIX):
            if use_original_user_field_names:
                return name
            return self.user_field_to_dynamic(name)

        if _SYSTEM_FIELD_RE.match(name):
            return _camelize(name.lower().split("_"), capitalize_first=False)

        return name

    def to_response_name(self, name: str) -> str:
        """Translate a name found in a response back to the caller convention."""
        if name == "" or name in WILDCARD_FIELDS or name.startswith(USER_FIELD_PREFIX):
            return name

        if name.startswith(self.response_prefix):
            suffix = name[len(self.response_prefix):]
            return self.user_field_prefix + suffix.upper()

        if not _CAMEL_FIELD_RE.match(name):
            return name

        return _UPPER_BOUNDARY_RE.sub(r"_\1", name).upper()

    def translate(
        self,
        name: str,
        direction: Literal["request", "response"],
        use_original_user_field_names: bool = False,
    ) -> str:
        if direction == "request":
            return self.to_request_name(name, use_original_user_field_names)
        if direction == "response":
            return self.to_response_name(name)
        raise ValueError(f"Unknown translation direction: {direction!r}")

    def user_field_to_dynamic(self, name: str) -> str:
        """``UF_CRM_1_ABC`` -> ``ufCrm_1_ABC``; ``UF_CRM_PHONE`` -> ``ufCrmPhone``.

        Suffixes containing a digit keep their upper-case spelling behind an
        underscore; purely alphabetic suffixes are camelized. The portal
        accepts only these two spellings.
        """
        if not name.startswith(self.user_field_prefix):
            return name

        suffix = name[len(self.user_field_prefix):]
        if suffix == "":
            return name

        if any(char.isdigit() for char in suffix):
            return self.response_prefix + suffix.upper()

        return self.request_prefix + _camelize(suffix.lower().split("_"), capitalize_first=True)

    # ------------------------------------------------------------------
    # Request structures
    # ------------------------------------------------------------------

    def normalize_filter(
        self, filter_: Mapping[Any, Any] | None, use_original_user_field_names: bool = False
    ) -> JsonDict:
        """Translate filter keys, recursing into nested filter groups."""
        normalized: JsonDict = {}
        for key, value in (filter_ or {}).items():
            if _is_group_position(key):
                if isinstance(value, Mapping):
                    normalized[key] = self.normalize_filter(value, use_original_user_field_names)
                else:
                    normalized[key] = value
                continue

            if _is_logic_key(key):
                normalized[LOGIC_KEY] = value
                continue

            if not isinstance(key, str):
                normalized[key] = value
                continue

            operator, field = split_filter_key(key)
            request_key = operator + self.to_request_name(field, use_original_user_field_names)
            normalized[request_key] = self._normalize_filter_value(value, use_original_user_field_names)

        return normalized

    def _normalize_filter_value(self, value: Any, use_original_user_field_names: bool) -> Any:
        if isinstance(value, Mapping):
            return self.normalize_filter(value, use_original_user_field_names)
        if isinstance(value, list):
            return [
                self.normalize_filter(item, use_original_user_field_names)
                if isinstance(item, Mapping)
                else item
                for item in value
            ]
        return value

    def normalize_order(
        self, order: Mapping[str, Any] | None, use_original_user_field_names: bool = False
    ) -> dict[str, str]:
        normalized: dict[str, str] = {}
        for field, direction in normalize_user_order(order).items():
            normalized[self.to_request_name(field, use_original_user_field_names)] = direction
        return normalized

    def normalize_select(
        self, select: Iterable[Any] | None, use_original_user_field_names: bool = False
    ) -> list[str]:
        normalized: list[str] = []
        for field in select or []:
            if not isinstance(field, str):
                continue
            field = field.strip()
            if field:
                normalized.append(self.to_request_name(field, use_original_user_field_names))
        return normalized

    def normalize_fields(
        self, fields: Mapping[str, Any] | None, use_original_user_field_names: bool = False
    ) -> JsonDict:
        """Translate the keys of an add/update ``fields`` payload."""
        return {
            self.to_request_name(key, use_original_user_field_names) if isinstance(key, str) else key: value
            for key, value in (fields or {}).items()
        }

    # ------------------------------------------------------------------
    # Response structures
    # ------------------------------------------------------------------

    def to_response_record(self, record: Mapping[str, Any]) -> JsonDict:
        return {
            self.to_response_name(key) if isinstance(key, str) else key: value
            for key, value in record.items()
        }

    def to_response_records(self, records: Iterable[Any]) -> list[JsonDict]:
        return [self.to_response_record(record) for record in records if isinstance(record, Mapping)]

    def order_for_output(self, order: Mapping[str, Any] | None) -> dict[str, str]:
        """Caller order expressed in response names (for client-side sorting)."""
        return {
            self.to_response_name(field): direction
            for field, direction in normalize_user_order(order).items()
        }


DEFAULT_CODEC = FieldNameCodec()


# ----------------------------------------------------------------------
# Conflict detection and small request builders
# ----------------------------------------------------------------------


def normalize_user_order(order: Mapping[Any, Any] | None) -> dict[str, str]:
    """Drop blank fields and force directions to ``ASC``/``DESC``."""
    normalized: dict[str, str] = {}
    for field, direction in (order or {}).items():
        if not isinstance(field, str) or field.strip() == "":
            continue
        direction_text = str(direction).strip().upper() if direction is not None else ""
        normalized[field] = "DESC" if direction_text == "DESC" else "ASC"
    return normalized


def filter_mentions_fields(filter_: Mapping[Any, Any] | None, fields: Iterable[str]) -> bool:
    """True when any filter key (with or without operator prefix) targets ``fields``.

    Nested filter groups are searched too; ``LOGIC`` keys are ignored.
    Matching is case-insensitive.
    """
    wanted = {field.upper() for field in fields}
    for key, value in (filter_ or {}).items():
        if _is_group_position(key):
            if isinstance(value, Mapping) and filter_mentions_fields(value, wanted):
                return True
            continue

        if not isinstance(key, str) or _is_logic_key(key):
            continue

        _, field = split_filter_key(key)
        if field.upper() in wanted:
            return True

        if isinstance(value, Mapping) and filter_mentions_fields(value, wanted):
            return True

    return False


def order_mentions_field(order: Mapping[Any, Any] | None, field: str) -> bool:
    return any(
        isinstance(key, str) and key.upper() == field.upper()
        for key in (order or {})
    )


def ensure_select_contains(select: list[str], field: str) -> list[str]:
    """Make sure ``field`` is selected; an empty select means everything."""
    if not select:
        return ["*", "UF_*"]
    if "*" in select or any(item.upper() == field.upper() for item in select):
        return select
    return [*select, field]


def should_use_original_user_field_names(select: Iterable[Any] | None) -> bool:
    """List requests keep ``UF_`` names only when selecting wildcards or user fields."""
    fields = [field.strip() for field in select or [] if isinstance(field, str) and field.strip()]
    if not fields:
        return True
    return all(
        field in WILDCARD_FIELDS or field.startswith(USER_FIELD_PREFIX)
        for field in fields
    )
