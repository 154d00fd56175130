"""Batch command multiplexing.

The portal's ``batch`` method runs at most 50 sub-commands per call.
``BatchMultiplexer`` splits an ordered command list into chunks of at most
``batch_size`` entries, sends one batch call per chunk (strictly one after
another), and merges the per-command results back under their keys.

A chunk whose ``result_error`` is non-empty fails the whole operation with
``BatchChunkFailure``; results gathered from earlier chunks are discarded,
not returned as a partial success.
"""

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from ..models import BatchChunkFailure, Command
from .client_log import ClientLogger
from .response_extractor import as_list, extract_by_path, raise_for_error

if TYPE_CHECKING:
    from .transport import Transport

DEFAULT_BATCH_SIZE = 50


def _as_result_map(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return {str(key): item for key, item in value.items()}
    # An empty JSON array stands in for an empty map.
    listed = as_list(value)
    if listed:
        return {str(index): item for index, item in enumerate(listed)}
    return {}


class BatchMultiplexer:
    """Run many commands through the bounded ``batch`` method.

    Args:
        transport: Object exposing ``call_batch(commands, halt)``.
        batch_size: Maximum sub-commands per batch call (1..50).
    """

    def __init__(
        self,
        transport: "Transport",
        batch_size: int = DEFAULT_BATCH_SIZE,
        logger: ClientLogger | None = None,
    ) -> None:
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise ValueError(f"Batch size must be a positive integer, got {batch_size!r}")
        self.transport = transport
        self.batch_size = batch_size
        self._logger = logger or ClientLogger("BATCH")

    def chunk(self, commands: Sequence[Command]) -> list[list[Command]]:
        """Consecutive chunks of at most ``batch_size`` commands, order kept."""
        return [
            list(commands[start:start + self.batch_size])
            for start in range(0, len(commands), self.batch_size)
        ]

    async def execute(
        self, commands: Sequence[Command], halt_on_error: bool = False
    ) -> dict[str, Any]:
        """Execute ``commands`` and return ``key -> result`` in submission order.

        Keys the portal did not answer for (while reporting no error) are left
        out of the returned mapping.

        Raises:
            ValueError: Two commands share a key.
            RemoteCallFailure: A batch call returned an error envelope.
            BatchChunkFailure: A chunk reported per-command errors.
        """
        commands = list(commands)
        if not commands:
            return {}

        seen: set[str] = set()
        for command in commands:
            if command.key in seen:
                raise ValueError(f"Duplicate batch command key: {command.key}")
            seen.add(command.key)

        chunks = self.chunk(commands)
        if len(chunks) > 1:
            self._logger.info(
                f"Splitting {len(commands)} commands into {len(chunks)} batch calls "
                f"(batch_size={self.batch_size})"
            )

        merged: dict[str, Any] = {}
        for index, chunk in enumerate(chunks):
            response = raise_for_error(
                "batch", await self.transport.call_batch(chunk, 1 if halt_on_error else 0)
            )

            results = _as_result_map(extract_by_path(response, ("result", "result"), {}))
            errors = _as_result_map(extract_by_path(response, ("result", "result_error"), {}))

            if errors:
                failed_keys = [key for key in errors if key in seen] or list(errors)
                self._logger.error(
                    f"Batch chunk {index} failed for {len(failed_keys)} command(s): "
                    f"{', '.join(failed_keys)}"
                )
                raise BatchChunkFailure(response, chunk_index=index, failed_keys=failed_keys)

            missing: list[str] = []
            for command in chunk:
                if command.key in results:
                    merged[command.key] = results[command.key]
                else:
                    missing.append(command.key)

            if missing:
                self._logger.warning(
                    f"Batch chunk {index} returned no result for: {', '.join(missing)}"
                )

        return merged
