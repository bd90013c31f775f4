"""In-memory tree store: node insertion with atomic, append-only placement.

Each insertion computes the new node's starfield position and publishes the
node together with that position under one lock, so no reader of
:meth:`TreeStore.snapshot` ever sees a node without a position.

Sibling indices come from a per-parent counter that only ever grows.
Deleting a node therefore leaves its ring slot / helix step empty instead
of handing it to the next sibling; existing nodes never move.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from typing import Iterable, Optional

import config
from geometry.starfield import StarfieldPlacer
from geometry.tree import TreeNode, TreeSnapshot
from tools.vectors import Vec3, as_vec3

log = logging.getLogger(__name__)


def _new_node_id(prefix: str = "node") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class TreeStore:
    """Owns one growing tree and hands out immutable snapshots of it."""

    def __init__(
        self,
        placer: Optional[StarfieldPlacer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.log = logger or log
        self.placer = placer or StarfieldPlacer(logger=self.log)
        self._lock = threading.Lock()
        self._root_id: Optional[str] = None
        self._nodes: dict[str, TreeNode] = {}
        self._next_index: dict[str, int] = {}
        self._snapshot = TreeSnapshot(None, {})

    # === Reads =============================================================

    def snapshot(self) -> TreeSnapshot:
        """Latest published snapshot (safe to share between threads)."""
        return self._snapshot

    @property
    def root_id(self) -> Optional[str]:
        return self._root_id

    def position(self, node_id: str) -> Vec3:
        node = self._snapshot[node_id]
        return node.position

    # === Mutations =========================================================

    def create_root(
        self,
        root_id: Optional[str] = None,
        position: Vec3 = config.DEFAULT_ROOT_POSITION,
    ) -> TreeNode:
        """Create the nexus. A store holds exactly one root."""
        with self._lock:
            if self._root_id is not None:
                raise ValueError(f"Tree already has a root: {self._root_id}")
            root_id = root_id or _new_node_id("nexus")
            root = TreeNode(
                node_id=root_id,
                parent_id=None,
                position=as_vec3(position),
            )
            self._root_id = root_id
            self._nodes[root_id] = root
            self._publish()
        self.log.info("Created nexus %s at %s", root_id, root.position)
        return root

    def add_node(
        self,
        parent_id: str,
        node_id: Optional[str] = None,
        *,
        aggregate: bool = False,
    ) -> TreeNode:
        """Insert a child under *parent_id* and place it.

        Raises:
            KeyError: *parent_id* is not in the tree.
            ValueError: *node_id* is already in use.
        """
        with self._lock:
            node = self._insert(parent_id, node_id, aggregate)
            self._publish()
        return node

    def add_nodes(
        self,
        parent_id: str,
        node_ids: Iterable[Optional[str]],
    ) -> list[TreeNode]:
        """Insert several children under one parent, in order.

        Used when importing a whole conversation as replies to the nexus.
        The batch is published as a single snapshot.
        """
        added: list[TreeNode] = []
        with self._lock:
            try:
                for nid in node_ids:
                    added.append(self._insert(parent_id, nid, False))
            finally:
                # Nodes inserted before a failure stay in the tree
                self._publish()
        self.log.info("Imported %d nodes under %s", len(added), parent_id)
        return added

    def remove_node(self, node_id: str) -> list[str]:
        """Delete *node_id* and its whole subtree. Returns the removed ids.

        Remaining nodes keep their positions and sibling indices.
        """
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                raise KeyError(f"Unknown node: {node_id}")
            if node.parent_id is None:
                raise ValueError("The nexus cannot be removed")

            removed: list[str] = []
            stack = [node_id]
            while stack:
                current = stack.pop()
                if current not in self._nodes:
                    continue
                removed.append(current)
                stack.extend(self._nodes[current].children)
                del self._nodes[current]
                self._next_index.pop(current, None)

            parent = self._nodes[node.parent_id]
            self._nodes[parent.node_id] = dataclasses.replace(
                parent,
                children=tuple(c for c in parent.children if c != node_id),
            )
            self._publish()
        self.log.info("Removed %d nodes starting at %s", len(removed), node_id)
        return removed

    # === Internals =========================================================

    def _insert(
        self,
        parent_id: str,
        node_id: Optional[str],
        aggregate: bool,
    ) -> TreeNode:
        parent = self._nodes.get(parent_id)
        if parent is None:
            raise KeyError(f"Unknown parent node: {parent_id}")
        node_id = node_id or _new_node_id()
        if node_id in self._nodes:
            raise ValueError(f"Duplicate node id: {node_id}")

        sibling_index = self._next_index.get(parent_id, 0)
        view = TreeSnapshot(self._root_id, self._nodes)
        position = self.placer.place_child(view, parent_id, sibling_index)

        node = TreeNode(
            node_id=node_id,
            parent_id=parent_id,
            sibling_index=sibling_index,
            position=position,
            aggregate=aggregate,
        )
        self._nodes[node_id] = node
        self._nodes[parent_id] = dataclasses.replace(
            parent, children=parent.children + (node_id,),
        )
        self._next_index[parent_id] = sibling_index + 1
        return node

    def _publish(self):
        self._snapshot = TreeSnapshot(self._root_id, self._nodes)
