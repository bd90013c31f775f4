"""Read-only tree snapshots consumed by the placement and walkthrough engines.

A snapshot is the root identity plus a flat ``id -> node`` mapping. Each
node knows its parent, its children in creation order, and its sibling
index (creation order among its parent's children, never renumbered).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from tools.vectors import Vec3, as_vec3

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeNode:
    """One entry of the tree. Position is None until it has been placed."""
    node_id: str
    parent_id: Optional[str]
    children: tuple[str, ...] = ()
    sibling_index: int = 0
    position: Optional[Vec3] = None
    aggregate: bool = False        # children use the wide-aggregation rings

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class TreeSnapshot:
    """Immutable view of a tree at one moment."""

    def __init__(self, root_id: Optional[str], nodes: Mapping[str, TreeNode]):
        self._root_id = root_id
        self._nodes = MappingProxyType(dict(nodes))

    # === Queries ===========================================================

    @property
    def root_id(self) -> Optional[str]:
        return self._root_id

    @property
    def root(self) -> Optional[TreeNode]:
        if self._root_id is None:
            return None
        return self._nodes.get(self._root_id)

    @property
    def nodes(self) -> Mapping[str, TreeNode]:
        return self._nodes

    def is_empty(self) -> bool:
        """True when there is no root to lay out."""
        return self.root is None

    def get(self, node_id: str) -> Optional[TreeNode]:
        return self._nodes.get(node_id)

    def __getitem__(self, node_id: str) -> TreeNode:
        return self._nodes[node_id]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def children_of(self, node_id: str) -> tuple[str, ...]:
        node = self._nodes.get(node_id)
        return node.children if node is not None else ()

    def depth(self, node_id: str) -> int:
        """Level of *node_id*: the root is 0, its children 1, and so on.

        Walks parent links; a dangling or cyclic chain stops the walk.
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(node_id)
        level = 0
        seen = {node_id}
        while node.parent_id is not None:
            parent = self._nodes.get(node.parent_id)
            if parent is None or parent.node_id in seen:
                break
            seen.add(parent.node_id)
            level += 1
            node = parent
        return level

    # === Serialisation =====================================================

    @classmethod
    def from_dict(cls, data: Mapping) -> "TreeSnapshot":
        """Build a snapshot from the external interchange shape.

        Expected::

            {"rootId": "nexus-1",
             "nodes": {"nexus-1": {"parentId": None, "children": ["a", "b"]},
                       "a": {"parentId": "nexus-1", "children": []}, ...}}

        ``root_id`` / ``parent_id`` spellings are accepted too, as are the
        optional ``position``, ``siblingIndex`` and ``aggregate`` fields.
        Without an explicit sibling index a node takes its position in its
        parent's child list.
        """
        root_id = data.get("rootId", data.get("root_id"))
        raw_nodes: Mapping[str, Mapping] = data.get("nodes") or {}

        inferred_index: dict[str, int] = {}
        for raw in raw_nodes.values():
            for idx, child_id in enumerate(raw.get("children") or ()):
                inferred_index.setdefault(child_id, idx)

        nodes: dict[str, TreeNode] = {}
        for node_id, raw in raw_nodes.items():
            parent_id = raw.get("parentId", raw.get("parent_id"))
            if node_id == root_id:
                parent_id = None
            sibling_index = raw.get("siblingIndex", raw.get("sibling_index"))
            if sibling_index is None:
                sibling_index = inferred_index.get(node_id, 0)
            position = raw.get("position")
            nodes[node_id] = TreeNode(
                node_id=node_id,
                parent_id=parent_id,
                children=tuple(raw.get("children") or ()),
                sibling_index=int(sibling_index),
                position=as_vec3(position) if position is not None else None,
                aggregate=bool(raw.get("aggregate", False)),
            )

        if root_id is not None and root_id not in nodes:
            log.warning("Snapshot root %s is missing from the node map", root_id)
        return cls(root_id, nodes)

    def to_dict(self) -> dict:
        """Inverse of :meth:`from_dict` (camelCase keys)."""
        out: dict[str, dict] = {}
        for node_id, node in self._nodes.items():
            entry: dict[str, object] = {
                "parentId": node.parent_id,
                "children": list(node.children),
                "siblingIndex": node.sibling_index,
            }
            if node.position is not None:
                entry["position"] = list(node.position)
            if node.aggregate:
                entry["aggregate"] = True
            out[node_id] = entry
        return {"rootId": self._root_id, "nodes": out}


EMPTY_SNAPSHOT = TreeSnapshot(None, {})
