"""Clone a parent/child tree into a head-inserting destination.

Destinations such as task checklists only offer "add one child under a
parent", and every new child lands *above* its existing siblings. Each
sibling group is therefore submitted in reverse order, as one batch, so the
group reads in source order once all inserts are done. The walk then
descends into every child (in source order) with the child's freshly created
id as the new destination parent.

A failing sibling batch aborts the replication. Nodes created by earlier
batches stay where they are; removing them is up to the caller.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from ..models import Command, CreatedNode, TreeNode
from .batch import BatchMultiplexer
from .client_log import ClientLogger
from .response_extractor import extract_scalar_id, to_int_or_none, to_positive_int

# (destination parent id, title) -> (method, params)
ChildCommandFactory = Callable[[int, str], tuple[str, dict[str, Any]]]


def _first_present(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def build_tree_nodes(records: Iterable[Any]) -> list[TreeNode]:
    """Turn raw records (``ID``/``PARENT_ID``/``TITLE``/``SORT_INDEX`` in any
    of the spellings the API uses) into ``TreeNode`` objects.

    Records without a positive id or a non-blank title are skipped, as are
    repeated ids (first one wins).
    """
    nodes: list[TreeNode] = []
    seen: set[int] = set()
    for record in records:
        if isinstance(record, TreeNode):
            if record.source_id not in seen:
                seen.add(record.source_id)
                nodes.append(record)
            continue
        if not isinstance(record, Mapping):
            continue

        source_id = to_positive_int(_first_present(record, ("ID", "id")))
        title = _first_present(record, ("TITLE", "title"))
        title = title.strip() if isinstance(title, str) else ""
        if source_id is None or not title or source_id in seen:
            continue

        parent_id = to_int_or_none(_first_present(record, ("PARENT_ID", "parentId", "parent_id")))
        sort_index = to_int_or_none(_first_present(record, ("SORT_INDEX", "sortIndex", "sort_index", "SORT", "sort")))

        seen.add(source_id)
        nodes.append(
            TreeNode(
                source_id=source_id,
                parent_id=parent_id if parent_id and parent_id > 0 else 0,
                title=title,
                sort_index=sort_index or 0,
            )
        )
    return nodes


def _cycle_members(parents: dict[int, int]) -> set[int]:
    """Ids whose parent chain leads back to themselves (self-parents included)."""
    members: set[int] = set()
    for source_id in parents:
        current = parents[source_id]
        for _ in range(len(parents)):
            if current == 0 or current == source_id:
                break
            current = parents[current]
        if current == source_id:
            members.add(source_id)
    return members


def build_children_map(
    nodes: Iterable[TreeNode], logger: ClientLogger | None = None
) -> dict[int, list[TreeNode]]:
    """Parent id -> children ordered by (sort_index, source_id).

    Nodes whose parent is not part of the tree hang off the root (0), and
    so do nodes caught in a parent cycle, which the root could never reach.
    """
    nodes_by_id: dict[int, TreeNode] = {}
    for node in nodes:
        nodes_by_id.setdefault(node.source_id, node)

    parents = {
        source_id: node.parent_id if node.parent_id in nodes_by_id else 0
        for source_id, node in nodes_by_id.items()
    }
    for source_id in sorted(_cycle_members(parents)):
        (logger or ClientLogger("TREE")).warning(
            f"'{nodes_by_id[source_id].title}' (source {source_id}) sits in a parent cycle; "
            "placing it under the root"
        )
        parents[source_id] = 0

    children_by_parent: dict[int, list[TreeNode]] = {}
    for source_id, node in nodes_by_id.items():
        children_by_parent.setdefault(parents[source_id], []).append(node)

    for children in children_by_parent.values():
        children.sort(key=lambda child: (child.sort_index, child.source_id))

    return children_by_parent


class TreeReplicator:
    """Replay a source tree through batched head-inserts.

    Args:
        multiplexer: Batch multiplexer used for every sibling group.
        key_prefix: Prefix of the per-batch command keys (``{prefix}_{n}``).
    """

    def __init__(
        self,
        multiplexer: BatchMultiplexer,
        key_prefix: str = "node_add",
        logger: ClientLogger | None = None,
    ) -> None:
        self.multiplexer = multiplexer
        self.key_prefix = key_prefix
        self._logger = logger or ClientLogger("TREE")

    async def replicate(
        self,
        source: Iterable[TreeNode | Mapping[str, Any]],
        child_command: ChildCommandFactory,
        root_id: int = 0,
    ) -> list[CreatedNode]:
        """Create ``source`` under destination parent ``root_id``.

        Returns one ``CreatedNode`` per created node, in creation order.
        A child whose id is missing from its batch result is logged and its
        subtree is not created.
        """
        children_by_parent = build_children_map(build_tree_nodes(source), self._logger)
        created: list[CreatedNode] = []

        # (source parent id, destination parent id); popped depth-first.
        worklist: list[tuple[int, int]] = [(0, root_id)]

        while worklist:
            source_parent, destination_parent = worklist.pop()
            children = children_by_parent.get(source_parent)
            if not children:
                continue

            submission = list(reversed(children))
            commands: list[Command] = []
            for position, node in enumerate(submission):
                method, params = child_command(destination_parent, node.title)
                commands.append(Command(key=f"{self.key_prefix}_{position}", method=method, params=params))

            results = await self.multiplexer.execute(commands)

            created_ids: dict[int, int] = {}
            for command, node in zip(commands, submission):
                created_id = to_positive_int(extract_scalar_id(results.get(command.key)))
                if created_id is None:
                    self._logger.warning(
                        f"No id returned for '{node.title}' (source {node.source_id}); "
                        "skipping its subtree"
                    )
                    continue
                created_ids[node.source_id] = created_id
                record = CreatedNode(
                    source_id=node.source_id,
                    created_id=created_id,
                    parent_id=destination_parent,
                    title=node.title,
                )
                created.append(record)

            # Reversed push so the first child is expanded first.
            for node in reversed(children):
                if node.source_id in created_ids:
                    worklist.append((node.source_id, created_ids[node.source_id]))

        self._logger.info(f"Replicated {len(created)} node(s) under {root_id}")
        return created
