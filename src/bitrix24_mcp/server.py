"""Bitrix24 MCP server implementation using FastMCP."""

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastmcp import FastMCP

from . import __version__
from .client import AdaptiveRateLimiter, Bitrix24Client, PaginationStrategy
from .config import ServerConfig, setup_logging
from .models import Bitrix24Error, CreatedNode, RateLimitError, SortDirection

logger = logging.getLogger(__name__)

# Global client instance
_client: Bitrix24Client | None = None
_rate_limiter: AdaptiveRateLimiter | None = None


def get_client() -> Bitrix24Client:
    """Get the global Bitrix24 client instance."""
    if _client is None:
        raise RuntimeError("Bitrix24 client not initialized. Server not started properly.")
    return _client


@asynccontextmanager
async def lifespan(_app: FastMCP):  # type: ignore[no-untyped-def]
    """Manage server lifecycle."""
    global _client, _rate_limiter

    config = ServerConfig()  # type: ignore[call-arg]
    setup_logging(config.log_level)
    logger.info("Starting Bitrix24 MCP server")

    # Cloud portals allow about two requests per second
    _rate_limiter = AdaptiveRateLimiter(
        initial_rate=2.0,
        min_rate=0.5,
        max_rate=10.0,
    )
    _client = Bitrix24Client.from_config(config.get_api_config(), batch_size=config.batch_size)
    logger.info(f"Bitrix24 client initialized (batch size {config.batch_size})")

    try:
        yield
    finally:
        logger.info("Shutting down Bitrix24 MCP server")
        if _client:
            await _client.close()
            _client = None
        _rate_limiter = None


# Initialize FastMCP server
mcp = FastMCP(
    "Bitrix24 MCP Server",
    version=__version__,
    instructions=(
        "MCP server for Bitrix24 REST: raw calls, exhaustive list retrieval, "
        "batched CRM writes and task templates"
    ),
    lifespan=lifespan,
)


def _jsonable(value: Any) -> Any:
    if isinstance(value, CreatedNode):
        return value.model_dump()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    return value


async def run_tool(operation: Callable[[Bitrix24Client], Awaitable[Any]]) -> dict:
    """Run one client operation behind the rate limiter.

    Client errors and rejected input come back as ``{"success": False, ...}``.
    """
    client = get_client()

    if _rate_limiter:
        await _rate_limiter.acquire()

    try:
        result = await operation(client)
    except RateLimitError as e:
        if _rate_limiter:
            _rate_limiter.on_rate_limit(e.retry_after)
        logger.warning(f"Rate limited: {e.message}")
        return {"success": False, "error": e.message, "error_type": type(e).__name__}
    except (Bitrix24Error, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return {"success": False, "error": str(e), "error_type": type(e).__name__}

    if _rate_limiter:
        _rate_limiter.on_success()
    return {"success": True, "result": _jsonable(result)}


# Tool: Raw method call
@mcp.tool(name="bitrix24_call", description="Call any Bitrix24 REST method and return its envelope")
async def call_method(method: str, params: dict[str, Any] | None = None) -> dict:
    """Call one REST method.

    Args:
        method: Method name, e.g. ``crm.item.get`` or ``user.current``
        params: Method parameters

    Returns:
        ``{"success": True, "result": <envelope>}`` or an error description
    """
    return await run_tool(lambda client: client.call(method, params))


# Tool: Fetch all
@mcp.tool(
    name="bitrix24_fetch_all",
    description="Retrieve every record of a Bitrix24 list method (ID cursor or next-offset walk)",
)
async def fetch_all(
    method: str,
    params: dict[str, Any] | None = None,
    strategy: Literal["id_cursor", "next_offset"] = "id_cursor",
    cursor_field: str = "ID",
    direction: Literal["ASC", "DESC"] = "DESC",
    filter_key: str = "filter",
    order_key: str = "order",
    output_order: dict[str, str] | None = None,
    list_keys: list[str] | None = None,
) -> dict:
    """Fetch every record of a list method.

    Args:
        method: List method, e.g. ``crm.item.list`` or ``department.get``
        params: Base parameters (filter, select...); ``start`` and the
            cursor's order are managed by the walk
        strategy: ``id_cursor`` (strict inequality on ``cursor_field``) or
            ``next_offset`` (follow the envelope's ``next``)
        cursor_field: Field the ID cursor filters and orders by
        direction: Cursor direction
        filter_key: Name of the filter parameter (``FILTER`` on older methods)
        order_key: Name of the order parameter
        output_order: Client-side order applied to the combined result
        list_keys: Keys under ``result`` that may hold the record list
    """
    return await run_tool(
        lambda client: client.fetch_all(
            method,
            params,
            output_order=output_order,
            strategy=PaginationStrategy(strategy),
            cursor_field=cursor_field,
            record_keys=(cursor_field, cursor_field.upper(), cursor_field.lower()),
            direction=SortDirection.parse(direction),
            filter_key=filter_key,
            order_key=order_key,
            list_keys=list_keys or (),
        )
    )


# Tool: CRM items - all
@mcp.tool(name="bitrix24_crm_items_all", description="Retrieve every CRM item of one entity type")
async def crm_items_all(
    entity_type_id: int,
    filter: dict[str, Any] | None = None,
    select: list[str] | None = None,
    order: dict[str, str] | None = None,
) -> dict:
    """Every CRM item matching ``filter``, with upper-snake field names.

    Args:
        entity_type_id: 2 deals, 1 leads, 3 contacts, 4 companies, 7 quotes,
            31 invoices, or a smart process id
        filter: Filter in upper-snake names (``{">OPPORTUNITY": 1000}``)
        select: Fields to return (all fields when empty)
        order: Client-side order; ``ID`` is not allowed
    """
    params: dict[str, Any] = {"filter": filter or {}, "select": select or []}
    if order:
        params["order"] = order
    return await run_tool(lambda client: client.crm_items(entity_type_id).all(params))


# Tool: CRM items - add many
@mcp.tool(name="bitrix24_crm_items_add_many", description="Create many CRM items through the batch method")
async def crm_items_add_many(entity_type_id: int, items: list[dict[str, Any]]) -> dict:
    """Create CRM items; the result lists ``{"id": ...}`` per input position."""
    return await run_tool(lambda client: client.crm_items(entity_type_id).add_many(items))


# Tool: CRM items - update many
@mcp.tool(name="bitrix24_crm_items_update_many", description="Update many CRM items through the batch method")
async def crm_items_update_many(entity_type_id: int, items: list[dict[str, Any]]) -> dict:
    """Update CRM items given as ``{"id": ..., "fields": {...}}``; one bool per position."""
    return await run_tool(lambda client: client.crm_items(entity_type_id).update_many(items))


# Tool: Tasks - all
@mcp.tool(name="bitrix24_task_all", description="Retrieve every task matching a filter")
async def task_all(
    filter: dict[str, Any] | None = None,
    select: list[str] | None = None,
    order: dict[str, str] | None = None,
) -> dict:
    params: dict[str, Any] = {"filter": filter or {}}
    if select:
        params["select"] = select
    if order:
        params["order"] = order
    return await run_tool(lambda client: client.tasks.task_all(params))


# Tool: Tasks - from template
@mcp.tool(
    name="bitrix24_task_from_template",
    description="Create a task from a template, copying its checklist tree",
)
async def task_from_template(template_id: int, override_fields: dict[str, Any] | None = None) -> dict:
    """Create a task from a template.

    Args:
        template_id: Task template id
        override_fields: Task fields that replace the template's values
            (``RESPONSIBLE_ID``, ``DEADLINE``...)

    Returns:
        The created task and the created checklist items in creation order
    """
    return await run_tool(lambda client: client.tasks.task_add_from_template(template_id, override_fields))


# Tool: Field name translation
@mcp.tool(
    name="bitrix24_translate_field",
    description="Translate a field name between request (camelCase) and response (UPPER_SNAKE) conventions",
)
async def translate_field(
    name: str,
    direction: Literal["request", "response"] = "request",
    use_original_user_field_names: bool = False,
) -> dict:
    client = get_client()
    return {
        "success": True,
        "name": name,
        "translated": client.translate_field(name, direction, use_original_user_field_names),
    }


def main() -> None:
    """Run the server over stdio."""
    setup_logging()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
