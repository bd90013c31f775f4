"""Starfield placement: 3D positions for tree nodes in free space.

Two placement rules, both pure functions of a sibling index and the
positions of the parent and the nexus (root):

  1. Ring placement for children of the nexus. Nodes sit on rings of
     ``nodes_per_ring`` slots with radius growing per node; each ring is
     rotated by the golden angle and rings alternate above / below the
     nexus plane.
  2. Helix placement for children of any other node. Nodes march away from
     the nexus along the nexus->parent direction while circling that axis.

Children of an aggregation node use the ring rule again, anchored at the
aggregation node with the wide profile (``WIDE_RING``).

A node's position is computed exactly once, when it is inserted, and is
never recomputed when siblings come and go. Degenerate geometry never
raises: every case falls back to a fixed offset from the parent and is
reported on the injected logger.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import config
from geometry.tree import TreeSnapshot
from tools.vectors import (
    WORLD_UP,
    Vec3,
    add,
    cross,
    is_finite,
    normalize,
    scale,
    sub,
)

log = logging.getLogger(__name__)

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))   # ~137.5 degrees

# ---------------------------------------------------------------------------
# Constant profiles
# ---------------------------------------------------------------------------

VERTICAL_ALTERNATING = "alternating"
VERTICAL_STACKED = "stacked"


@dataclass(frozen=True)
class RingProfile:
    """Constants for the ring rule.

    ``vertical_mode`` picks how rings are lifted off the anchor plane:
    ``"alternating"`` puts ring 1 above, ring 2 below, ring 3 higher above,
    and so on; ``"stacked"`` lifts ring ``r`` by ``r * ring_height``.
    """
    base_radius: float = config.DEFAULT_BASE_RADIUS
    radius_increment: float = config.DEFAULT_RADIUS_INCREMENT
    nodes_per_ring: int = config.DEFAULT_NODES_PER_RING
    ring_height: float = config.DEFAULT_RING_HEIGHT
    vertical_mode: str = VERTICAL_ALTERNATING

    def __post_init__(self):
        if self.nodes_per_ring < 1:
            raise ValueError("nodes_per_ring must be at least 1")
        if self.vertical_mode not in (VERTICAL_ALTERNATING, VERTICAL_STACKED):
            raise ValueError(f"Unknown vertical_mode: {self.vertical_mode!r}")


@dataclass(frozen=True)
class HelixProfile:
    """Constants for the helix rule."""
    base_distance: float = config.DEFAULT_BASE_DISTANCE
    distance_increment: float = config.DEFAULT_DISTANCE_INCREMENT
    turns_per_node: float = config.DEFAULT_TURNS_PER_NODE
    helix_radius: float = config.DEFAULT_HELIX_RADIUS


ROOT_RING = RingProfile()
WIDE_RING = RingProfile(
    base_radius=config.DEFAULT_WIDE_BASE_RADIUS,
    radius_increment=config.DEFAULT_WIDE_RADIUS_INCREMENT,
    nodes_per_ring=config.DEFAULT_WIDE_NODES_PER_RING,
    ring_height=config.DEFAULT_WIDE_RING_HEIGHT,
    vertical_mode=VERTICAL_STACKED,
)
DEFAULT_HELIX = HelixProfile()


# ---------------------------------------------------------------------------
# Placement primitives
# ---------------------------------------------------------------------------

def ring_slot(index: int, profile: RingProfile = ROOT_RING) -> tuple[int, int]:
    """Return ``(ring, slot)`` for sibling *index*."""
    return index // profile.nodes_per_ring, index % profile.nodes_per_ring


def ring_angle(index: int, profile: RingProfile = ROOT_RING) -> float:
    """Angle (radians, unwrapped) of sibling *index* on its ring."""
    ring, slot = ring_slot(index, profile)
    return slot * (2 * math.pi / profile.nodes_per_ring) + ring * GOLDEN_ANGLE


def ring_lift(ring: int, profile: RingProfile = ROOT_RING) -> float:
    """Vertical offset of a whole ring."""
    if ring == 0:
        return 0.0
    if profile.vertical_mode == VERTICAL_STACKED:
        return ring * profile.ring_height
    step = math.ceil(ring / 2)
    sign = 1 if ring % 2 == 1 else -1
    return step * profile.ring_height * sign


def spiral_position(
    index: int,
    anchor: Vec3,
    profile: RingProfile = ROOT_RING,
) -> Vec3:
    """Ring placement of sibling *index* around *anchor*.

    Radius grows strictly with the index, so no two siblings share a point.
    """
    radius = profile.base_radius + index * profile.radius_increment
    ring, _ = ring_slot(index, profile)
    angle = ring_angle(index, profile)
    offset = (
        -radius * math.cos(angle),
        ring_lift(ring, profile),
        radius * math.sin(angle),
    )
    return add(anchor, offset)


def degenerate_fallback(parent: Vec3, root: Vec3) -> Vec3:
    """Fixed small offset from the parent, always finite.

    A non-finite parent falls back to the root, then to the origin.
    """
    for anchor in (parent, root):
        candidate = add(anchor, config.DEGENERATE_OFFSET)
        if is_finite(candidate):
            return candidate
    return tuple(float(c) for c in config.DEGENERATE_OFFSET)


def helix_position(
    index: int,
    parent: Vec3,
    root: Vec3,
    profile: HelixProfile = DEFAULT_HELIX,
    logger: Optional[logging.Logger] = None,
) -> Vec3:
    """Helix placement of sibling *index* beyond *parent*, away from *root*.

    Falls back to :func:`degenerate_fallback` when the parent sits on the
    root or the result is not finite.
    """
    logger = logger or log
    fallback = degenerate_fallback(parent, root)

    direction = normalize(sub(parent, root))
    if direction is None:
        logger.warning(
            "Helix placement: parent %s coincides with root %s; "
            "using fixed offset for child %d", parent, root, index,
        )
        return fallback

    distance = profile.base_distance + index * profile.distance_increment
    angle = index * profile.turns_per_node * 2 * math.pi

    right = normalize(cross(direction, WORLD_UP))
    if right is None:
        logger.warning(
            "Helix placement: direction %s is parallel to world up; "
            "using the x axis as the helix basis", direction,
        )
        right = (1.0, 0.0, 0.0)
    up2 = cross(direction, right)

    offset = add(
        scale(right, profile.helix_radius * math.cos(angle)),
        scale(up2, profile.helix_radius * math.sin(angle)),
    )
    position = add(add(parent, scale(direction, distance)), offset)

    if not is_finite(position):
        logger.warning(
            "Helix placement produced non-finite %s for child %d; "
            "using fixed offset", position, index,
        )
        return fallback
    return position


def fibonacci_spiral_position(
    index: int,
    base_radius: float = config.DEFAULT_FIBONACCI_RADIUS,
) -> Vec3:
    """Flat golden-angle spiral around the origin (radius ~ sqrt(index))."""
    angle = index * GOLDEN_ANGLE
    radius = base_radius * math.sqrt(index + 1)
    return (math.cos(angle) * radius, 0.0, math.sin(angle) * radius)


# ---------------------------------------------------------------------------
# Placer
# ---------------------------------------------------------------------------

class StarfieldPlacer:
    """Chooses the placement rule for a new node and applies it.

    Called once per node by the tree mutation layer (see
    :class:`geometry.store.TreeStore`); the returned position is stored on
    the node and never recomputed.
    """

    def __init__(
        self,
        ring: RingProfile = ROOT_RING,
        wide: RingProfile = WIDE_RING,
        helix: HelixProfile = DEFAULT_HELIX,
        logger: Optional[logging.Logger] = None,
    ):
        self.ring = ring
        self.wide = wide
        self.helix = helix
        self.log = logger or log

    # === Public API ========================================================

    def place_child(
        self,
        snapshot: TreeSnapshot,
        parent_id: str,
        sibling_index: int,
    ) -> Vec3:
        """Position for a new child of *parent_id* with the given index.

        *snapshot* is the tree before the child is inserted. Nodes without a
        stored position are resolved on the fly from their own ancestry.
        """
        if parent_id not in snapshot:
            raise KeyError(f"Unknown parent node: {parent_id}")
        cache: dict[str, Vec3] = {}
        return self._place(snapshot, parent_id, sibling_index, cache)

    def place_tree(self, snapshot: TreeSnapshot) -> dict[str, Vec3]:
        """Positions for every node reachable from the root.

        Stored positions are kept as they are; missing ones are computed
        from sibling indices. Used for imported trees.
        """
        root = snapshot.root
        if root is None:
            return {}
        positions: dict[str, Vec3] = {}
        stack = [root.node_id]
        while stack:
            node_id = stack.pop()
            if node_id in positions:
                continue
            positions[node_id] = self.position_of(snapshot, node_id, positions)
            for child_id in reversed(snapshot.children_of(node_id)):
                if child_id in snapshot and child_id not in positions:
                    stack.append(child_id)

        self.log.info("Placed %d nodes for tree %s", len(positions), root.node_id)
        return positions

    def position_of(
        self,
        snapshot: TreeSnapshot,
        node_id: str,
        cache: Optional[dict[str, Vec3]] = None,
    ) -> Vec3:
        """Stored position of *node_id*, or the one it would have been given."""
        cache = {} if cache is None else cache
        if node_id in cache:
            return cache[node_id]

        node = snapshot[node_id]
        if node.position is not None:
            position = node.position
        elif node.parent_id is None or node.parent_id not in snapshot:
            position = config.DEFAULT_ROOT_POSITION
        else:
            position = self._place(snapshot, node.parent_id, node.sibling_index, cache)
        cache[node_id] = position
        return position

    # === Internals =========================================================

    def _root_position(self, snapshot: TreeSnapshot, cache: dict[str, Vec3]) -> Vec3:
        if snapshot.root is None:
            return config.DEFAULT_ROOT_POSITION
        return self.position_of(snapshot, snapshot.root.node_id, cache)

    def _place(
        self,
        snapshot: TreeSnapshot,
        parent_id: str,
        index: int,
        cache: dict[str, Vec3],
    ) -> Vec3:
        parent = snapshot[parent_id]
        parent_pos = self.position_of(snapshot, parent_id, cache)

        if parent_id == snapshot.root_id or parent.parent_id is None:
            position = spiral_position(index, parent_pos, self.ring)
            ring, slot = ring_slot(index, self.ring)
            self.log.debug(
                "L1 node under %s: ring %d, slot %d, (%.2f, %.2f, %.2f)",
                parent_id, ring, slot, *position,
            )
        elif parent.aggregate:
            position = spiral_position(index, parent_pos, self.wide)
            self.log.debug(
                "Aggregated node under %s: index %d, (%.2f, %.2f, %.2f)",
                parent_id, index, *position,
            )
        else:
            root_pos = self._root_position(snapshot, cache)
            position = helix_position(index, parent_pos, root_pos, self.helix, self.log)
            self.log.debug(
                "L%d node under %s: child %d, (%.2f, %.2f, %.2f)",
                snapshot.depth(parent_id) + 1, parent_id, index, *position,
            )

        if not is_finite(position):
            self.log.warning(
                "Non-finite position for child %d of %s; using fixed offset",
                index, parent_id,
            )
            position = degenerate_fallback(parent_pos, self._root_position(snapshot, cache))
        return position

