"""Bitrix24 API client - core calls, batching, fetch-all and tree cloning."""

import math
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Literal

from ..models import Command, CreatedNode, ListPage, Pagination, TreeNode
from .batch import DEFAULT_BATCH_SIZE, BatchMultiplexer
from .client_log import ClientLogger, log_event
from .field_codec import DEFAULT_CODEC, FieldNameCodec
from .pagination import DEFAULT_MAX_ITERATIONS, PaginationCursor
from .response_extractor import extract_list_response, raise_for_error
from .transport import Transport
from .tree_replicator import ChildCommandFactory, TreeReplicator

JsonDict = dict[str, Any]
ParamsBuilder = Callable[[Mapping[str, Any], int], JsonDict]
ResultNormalizer = Callable[[Any], Any]

__all__ = ["Bitrix24ClientCore", "ClientLogger", "log_event"]


def _fields_params(item: Mapping[str, Any], position: int) -> JsonDict:
    return {"fields": dict(item)}


class Bitrix24ClientCore:
    """Core Bitrix24 client.

    Holds the transport and batch size every operation runs against; there
    is no module-level default connection. Domain services receive a client
    instance and go through its ``call``/``bulk_write``/``fetch_all``.
    """

    PAGE_SIZE = 50
    MAX_ALL_ITERATIONS = DEFAULT_MAX_ITERATIONS

    def __init__(
        self,
        transport: Transport,
        batch_size: int = DEFAULT_BATCH_SIZE,
        codec: FieldNameCodec | None = None,
    ):
        """Initialize the client around an already configured transport."""
        self.transport = transport
        self.codec = codec or DEFAULT_CODEC
        self.batch = BatchMultiplexer(transport, batch_size)
        self._logger = ClientLogger("CLIENT")

    @property
    def batch_size(self) -> int:
        return self.batch.batch_size

    async def close(self) -> None:
        """Close the underlying transport."""
        await self.transport.close()

    async def __aenter__(self) -> "Bitrix24ClientCore":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    # ------------------------------------------------------------------
    # Single calls and batches
    # ------------------------------------------------------------------

    async def call(self, method: str, params: Mapping[str, Any] | None = None) -> JsonDict:
        """Call one REST method.

        Raises:
            RemoteCallFailure: The envelope carries a non-empty ``error``.
        """
        response = await self.transport.call(method, dict(params or {}))
        return raise_for_error(method, response)

    async def call_batch_commands(
        self, commands: Iterable[Command], halt_on_error: bool = False
    ) -> dict[str, Any]:
        return await self.batch.execute(list(commands), halt_on_error)

    async def bulk_write(
        self,
        method: str,
        items: Iterable[Any],
        *,
        key_prefix: str,
        build_params: ParamsBuilder = _fields_params,
        normalize: ResultNormalizer | None = None,
    ) -> list[Any]:
        """Run ``method`` once per item through the batch method.

        Results come back positionally; a position the portal did not answer
        for holds ``None``.

        Raises:
            ValueError: An item is not a mapping (checked before any call).
            BatchChunkFailure: Any chunk reported a per-command error.
        """
        commands: list[Command] = []
        for position, item in enumerate(items, start=1):
            if not isinstance(item, Mapping):
                raise ValueError(f"Item at position {position} must be a mapping of fields.")
            commands.append(
                Command(key=f"{key_prefix}_{position}", method=method, params=build_params(item, position))
            )

        if not commands:
            return []

        self._logger.info(f"{method}: {len(commands)} command(s) via batch")
        results = await self.batch.execute(commands)
        output: list[Any] = []
        for command in commands:
            if command.key not in results:
                output.append(None)
                continue
            value = results[command.key]
            output.append(normalize(value) if normalize else value)
        return output

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def cursor(self, method: str, **options: Any) -> PaginationCursor:
        """PaginationCursor bound to this client's ``call``."""
        options.setdefault("page_size", self.PAGE_SIZE)
        options.setdefault("max_iterations", self.MAX_ALL_ITERATIONS)
        return PaginationCursor(self.call, method, **options)

    async def fetch_all(
        self,
        method: str,
        base_params: Mapping[str, Any] | None = None,
        output_order: Mapping[str, Any] | None = None,
        **options: Any,
    ) -> list[JsonDict]:
        """Every record of ``method`` matching ``base_params``."""
        return await self.cursor(method, **options).fetch_all(base_params, output_order)

    @staticmethod
    def ensure_positive_page(page: int) -> None:
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ValueError("Page must be greater than or equal to 1.")

    @staticmethod
    def build_pagination(page: int, page_size: int, total: int | None, next_start: int | None) -> Pagination:
        total_pages = math.ceil(total / page_size) if total is not None else None
        has_next = next_start is not None or (total_pages is not None and page < total_pages)
        return Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages,
            has_next=has_next,
        )

    async def list_page(
        self,
        method: str,
        params: Mapping[str, Any] | None,
        page: int = 1,
        list_keys: Iterable[str] = (),
        transform: Callable[[list[JsonDict]], list[JsonDict]] | None = None,
    ) -> ListPage:
        """One page of an offset-paginated list (``start = (page - 1) * 50``)."""
        self.ensure_positive_page(page)
        request = {**dict(params or {}), "start": (page - 1) * self.PAGE_SIZE}
        listing = extract_list_response(await self.call(method, request), list_keys)
        items = transform(listing.items) if transform and listing.items else listing.items
        return ListPage(
            items=items,
            pagination=self.build_pagination(page, self.PAGE_SIZE, listing.total, listing.next),
        )

    # ------------------------------------------------------------------
    # Field names and trees
    # ------------------------------------------------------------------

    def translate_field(
        self,
        name: str,
        direction: Literal["request", "response"],
        use_original_user_field_names: bool = False,
    ) -> str:
        return self.codec.translate(name, direction, use_original_user_field_names)

    async def replicate_tree(
        self,
        source: Iterable[TreeNode | Mapping[str, Any]],
        child_command: ChildCommandFactory,
        root_id: int = 0,
        key_prefix: str = "node_add",
    ) -> list[CreatedNode]:
        """Clone ``source`` under ``root_id`` with batched head-inserts."""
        replicator = TreeReplicator(self.batch, key_prefix=key_prefix)
        return await replicator.replicate(source, child_command, root_id=root_id)
