"""Walkthrough layout: the tree as a chain of connected rooms.

Pipeline (recomputed from a snapshot on every request, nothing stored):

  1. Sequencing: depth-first pre-order walk from the nexus, children in
     creation order.  One room per node.
  2. Room layout: a footprint per room drawn from a fixed palette with a
     seeded linear-congruential stream, rooms chained in a snake pattern
     (rows of four, alternating right / left, turning down at row ends).
  3. Wall carving: four walls per room; the entry and exit sides are split
     around a centered doorway.

Rooms are positioned from the previous room's exit doorway, so the exit
doorway of room ``i`` and the entry doorway of room ``i + 1`` line up
laterally and sit exactly ``room_gap`` apart (coincident at the default gap
of 0).
Rows are therefore centred on doorways rather than advanced by a plain
footprint cursor, so room centres differ from a cursor-based layout.

Grid space is the X/Z floor plane; every point is emitted at floor height
``y = 0``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import config
from geometry.tree import TreeSnapshot
from tools.prng import LCG_VERSION, LinearCongruentialStream, seed_from_identity
from tools.vectors import Vec3

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RIGHT = "right"
DOWN = "down"
LEFT = "left"
UP = "up"

OPPOSITE = {RIGHT: LEFT, LEFT: RIGHT, UP: DOWN, DOWN: UP}

# Wall side carrying the doorway for a given travel direction
SIDE_FOR_DIRECTION = {UP: "top", DOWN: "bottom", LEFT: "left", RIGHT: "right"}


@dataclass(frozen=True)
class RoomType:
    """A footprint preset."""
    width: float    # X direction
    depth: float    # Z direction
    name: str


# Footprint presets for variety (metres)
ROOM_TYPES: tuple[RoomType, ...] = (
    RoomType(5, 5, "small"),
    RoomType(6, 5, "compact"),
    RoomType(7, 6, "medium"),
    RoomType(8, 7, "large"),
    RoomType(9, 8, "grand"),
    RoomType(6, 8, "long"),
    RoomType(8, 6, "wide"),
)

# Landmark colors, one per room, cycled
WALL_COLORS: tuple[str, ...] = (
    "#00BFFF",  # bright blue
    "#FF6B35",  # bright orange
    "#9B59B6",  # bright purple
    "#00FF7F",  # bright green
    "#FFD700",  # bright yellow
    "#FF1493",  # bright pink
    "#00FFFF",  # cyan
    "#FF4500",  # red-orange
    "#7FFF00",  # chartreuse
    "#FF69B4",  # hot pink
    "#1E90FF",  # dodger blue
    "#FF8C00",  # dark orange
    "#8A2BE2",  # blue violet
    "#32CD32",  # lime green
    "#FFB6C1",  # light pink
    "#4169E1",  # royal blue
    "#FFA500",  # orange
)


@dataclass(frozen=True)
class WalkthroughProfile:
    """Tunable constants for the walkthrough pipeline."""
    door_width: float = config.DEFAULT_DOOR_WIDTH
    room_gap: float = config.DEFAULT_ROOM_GAP
    rooms_per_row: int = config.DEFAULT_ROOMS_PER_ROW
    palette: tuple[RoomType, ...] = ROOM_TYPES
    wall_colors: tuple[str, ...] = WALL_COLORS

    def __post_init__(self):
        if self.rooms_per_row < 1:
            raise ValueError("rooms_per_row must be at least 1")
        if not self.palette:
            raise ValueError("palette must not be empty")
        if not self.wall_colors:
            raise ValueError("wall_colors must not be empty")
        if self.door_width < 0 or self.room_gap < 0:
            raise ValueError("door_width and room_gap must be non-negative")


DEFAULT_PROFILE = WalkthroughProfile()

# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WallSegment:
    """One straight wall piece on the floor plane."""
    start: Vec3
    end: Vec3
    owner_sequence_index: int
    color: str
    side: str           # "top", "bottom", "left" or "right"

    def to_dict(self) -> dict:
        return {
            "start": list(self.start),
            "end": list(self.end),
            "ownerSequenceIndex": self.owner_sequence_index,
            "color": self.color,
        }


@dataclass
class Room:
    """A placed room. ``x``/``z`` is the footprint's minimum corner."""
    node_id: str
    sequence_index: int
    room_type: str
    x: float
    z: float
    width: float
    depth: float
    entry_direction: Optional[str]
    exit_direction: Optional[str]
    walls: list[WallSegment] = field(default_factory=list)

    @property
    def center(self) -> Vec3:
        return (self.x + self.width / 2, 0.0, self.z + self.depth / 2)

    def door_center(self, direction: str) -> Vec3:
        """Midpoint of the wall facing *direction*."""
        if direction == RIGHT:
            return (self.x + self.width, 0.0, self.z + self.depth / 2)
        if direction == LEFT:
            return (self.x, 0.0, self.z + self.depth / 2)
        if direction == DOWN:
            return (self.x + self.width / 2, 0.0, self.z + self.depth)
        if direction == UP:
            return (self.x + self.width / 2, 0.0, self.z)
        raise ValueError(f"Unknown direction: {direction!r}")

    @property
    def entry_door(self) -> Optional[Vec3]:
        if self.entry_direction is None:
            return None
        return self.door_center(self.entry_direction)

    @property
    def exit_door(self) -> Optional[Vec3]:
        if self.exit_direction is None:
            return None
        return self.door_center(self.exit_direction)

    def overlaps(self, other: "Room", tolerance: float = 1e-6) -> bool:
        """Axis-aligned footprint intersection with positive area."""
        return (self.x < other.x + other.width - tolerance and
                self.x + self.width > other.x + tolerance and
                self.z < other.z + other.depth - tolerance and
                self.z + self.depth > other.z + tolerance)


@dataclass(frozen=True)
class RoomAnchor:
    """Where a node stands in the walkthrough."""
    node_id: str
    center: Vec3
    sequence_index: int
    direction: float = 0.0      # facing, radians

    def to_dict(self) -> dict:
        return {
            "id": self.node_id,
            "center": list(self.center),
            "sequenceIndex": self.sequence_index,
            "direction": self.direction,
        }


@dataclass
class WalkthroughLayout:
    """Complete walkthrough result."""
    rooms: list[RoomAnchor]
    walls: list[WallSegment]
    typical_room_size: float
    plan: list[Room] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "rooms": [r.to_dict() for r in self.rooms],
            "walls": [w.to_dict() for w in self.walls],
            "typicalRoomSize": self.typical_room_size,
        }


# ---------------------------------------------------------------------------
# Phase 1: Sequencing
# ---------------------------------------------------------------------------

def sequence_rooms(
    snapshot: TreeSnapshot,
    start_id: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> list[str]:
    """Depth-first pre-order node ids starting at *start_id* (default: root).

    Only parent/child links are used. Child ids missing from the snapshot or
    reached twice are skipped and logged.
    """
    logger = logger or log
    start_id = start_id if start_id is not None else snapshot.root_id
    if start_id is None or start_id not in snapshot:
        return []

    order: list[str] = []
    visited: set[str] = set()
    stack = [start_id]
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            logger.warning("Sequencing: %s reached twice; skipping", node_id)
            continue
        visited.add(node_id)
        order.append(node_id)

        children = snapshot.children_of(node_id)
        logger.debug("Sequencing: %s has %d children", node_id, len(children))
        for child_id in reversed(children):
            if child_id not in snapshot:
                logger.warning(
                    "Sequencing: child %s of %s is missing from the snapshot",
                    child_id, node_id,
                )
                continue
            stack.append(child_id)
    return order


# ---------------------------------------------------------------------------
# Phase 2: Room layout
# ---------------------------------------------------------------------------

def snake_exit(index: int, count: int, rooms_per_row: int) -> Optional[str]:
    """Exit direction of room *index* out of *count* rooms (boustrophedon).

    Even rows run right, odd rows run left, the last room of a row turns
    down, and the final room has no exit.
    """
    if index >= count - 1:
        return None
    row, col = divmod(index, rooms_per_row)
    if col == rooms_per_row - 1:
        return DOWN
    return RIGHT if row % 2 == 0 else LEFT


class RoomLayoutBuilder:
    """Assigns a footprint and a floor position to each room in sequence."""

    def __init__(
        self,
        profile: WalkthroughProfile = DEFAULT_PROFILE,
        logger: Optional[logging.Logger] = None,
    ):
        self.profile = profile
        self.log = logger or log

    def choose_footprints(self, root_id: str, count: int) -> list[RoomType]:
        """Draw *count* footprints from the stream seeded by *root_id*."""
        stream = LinearCongruentialStream.for_identity(root_id)
        palette = self.profile.palette
        return [palette[stream.choice_index(len(palette))] for _ in range(count)]

    def build(self, root_id: str, sequence: list[str]) -> list[Room]:
        count = len(sequence)
        footprints = self.choose_footprints(root_id, count)

        rooms: list[Room] = []
        for index, (node_id, footprint) in enumerate(zip(sequence, footprints)):
            exit_dir = snake_exit(index, count, self.profile.rooms_per_row)
            if index == 0:
                x, z = 0.0, 0.0
                entry_dir = None
            else:
                prev = rooms[index - 1]
                entry_dir = OPPOSITE[prev.exit_direction]
                x, z = self._origin_after(prev, footprint)

            rooms.append(Room(
                node_id=node_id,
                sequence_index=index,
                room_type=footprint.name,
                x=x, z=z,
                width=float(footprint.width),
                depth=float(footprint.depth),
                entry_direction=entry_dir,
                exit_direction=exit_dir,
            ))
        return rooms

    def _origin_after(self, prev: Room, footprint: RoomType) -> tuple[float, float]:
        """Corner of the next room so its entry doorway faces prev's exit."""
        door_x, _, door_z = prev.exit_door
        gap = self.profile.room_gap
        w, d = footprint.width, footprint.depth
        direction = prev.exit_direction

        if direction == RIGHT:
            return door_x + gap, door_z - d / 2
        if direction == LEFT:
            return door_x - gap - w, door_z - d / 2
        if direction == DOWN:
            return door_x - w / 2, door_z + gap
        # UP
        return door_x - w / 2, door_z - gap - d


# ---------------------------------------------------------------------------
# Phase 3: Wall carving
# ---------------------------------------------------------------------------

def _split_for_door(
    start: Vec3, end: Vec3, door_width: float,
) -> list[tuple[Vec3, Vec3]]:
    """Split a straight wall into two pieces around a centered opening.

    Pieces that would have no length (door wider than the wall) are dropped.
    """
    length_x = end[0] - start[0]
    length_z = end[2] - start[2]
    wall_len = abs(length_x) + abs(length_z)    # walls are axis-aligned
    if wall_len <= 0:
        return []
    half = min(door_width / 2, wall_len / 2)
    mid = (start[0] + length_x / 2, 0.0, start[2] + length_z / 2)
    ux, uz = length_x / wall_len, length_z / wall_len

    before_end = (mid[0] - ux * half, 0.0, mid[2] - uz * half)
    after_start = (mid[0] + ux * half, 0.0, mid[2] + uz * half)

    pieces = []
    if wall_len / 2 - half > 0:
        pieces.append((start, before_end))
        pieces.append((after_start, end))
    return pieces


def carve_walls(
    rooms: list[Room],
    profile: WalkthroughProfile = DEFAULT_PROFILE,
) -> list[WallSegment]:
    """Emit the wall segments of every room, doorways carved.

    Sides are emitted top, bottom, left, right. Each room's segments are
    also stored on ``room.walls``.
    """
    walls: list[WallSegment] = []
    colors = profile.wall_colors

    for room in rooms:
        x, z, w, d = room.x, room.z, room.width, room.depth
        color = colors[room.sequence_index % len(colors)]
        door_sides = {
            SIDE_FOR_DIRECTION[direction]
            for direction in (room.entry_direction, room.exit_direction)
            if direction is not None
        }

        sides = (
            ("top", (x, 0.0, z), (x + w, 0.0, z)),
            ("bottom", (x, 0.0, z + d), (x + w, 0.0, z + d)),
            ("left", (x, 0.0, z), (x, 0.0, z + d)),
            ("right", (x + w, 0.0, z), (x + w, 0.0, z + d)),
        )

        room.walls = []
        for side, start, end in sides:
            if side in door_sides:
                pieces = _split_for_door(start, end, profile.door_width)
            else:
                pieces = [(start, end)]
            for seg_start, seg_end in pieces:
                room.walls.append(WallSegment(
                    start=seg_start, end=seg_end,
                    owner_sequence_index=room.sequence_index,
                    color=color, side=side,
                ))
        walls.extend(room.walls)

    return walls


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def build_walkthrough(
    snapshot: TreeSnapshot,
    profile: WalkthroughProfile = DEFAULT_PROFILE,
    logger: Optional[logging.Logger] = None,
) -> WalkthroughLayout:
    """Run sequencing, room layout and wall carving for *snapshot*.

    An empty snapshot gives an empty layout. The result depends only on the
    snapshot's ids and edges, so repeated calls return equal layouts.
    """
    logger = logger or log
    if snapshot.is_empty():
        return WalkthroughLayout(
            rooms=[], walls=[],
            typical_room_size=config.EMPTY_ROOM_SIZE,
            metadata=_validate([], [], profile, seed=None),
        )

    root_id = snapshot.root_id
    sequence = sequence_rooms(snapshot, root_id, logger)
    rooms = RoomLayoutBuilder(profile, logger).build(root_id, sequence)
    walls = carve_walls(rooms, profile)

    anchors = [
        RoomAnchor(node_id=r.node_id, center=r.center, sequence_index=r.sequence_index)
        for r in rooms
    ]
    metadata = _validate(rooms, walls, profile, seed=seed_from_identity(root_id))

    logger.info(
        "Generated walkthrough for %s: %d rooms, %d wall segments, %d rows",
        root_id, len(rooms), len(walls), metadata["row_count"],
    )
    for r in rooms:
        logger.debug(
            "  %d: %s %gx%g at (%.1f, %.1f) -> %s",
            r.sequence_index, r.room_type, r.width, r.depth, r.x, r.z, r.node_id,
        )
    for warning in metadata["warnings"]:
        logger.warning("Walkthrough %s: %s", root_id, warning)

    return WalkthroughLayout(
        rooms=anchors,
        walls=walls,
        typical_room_size=config.TYPICAL_ROOM_SIZE,
        plan=rooms,
        metadata=metadata,
    )


def find_overlaps(rooms: list[Room], cell_size: float) -> list[tuple[str, str]]:
    """Pairs of rooms whose footprints intersect, in sequence order.

    Rooms are bucketed on a square grid of *cell_size* and only rooms that
    share a bucket are compared, so a chain of bounded-size rooms is checked
    in linear time. The result does not depend on *cell_size*.
    """
    if cell_size <= 0:
        raise ValueError("cell_size must be positive")
    grid: dict[tuple[int, int], list[Room]] = {}
    pairs: list[tuple[int, int]] = []

    for room in rooms:
        cells = [
            (cx, cz)
            for cx in range(math.floor(room.x / cell_size),
                            math.floor((room.x + room.width) / cell_size) + 1)
            for cz in range(math.floor(room.z / cell_size),
                            math.floor((room.z + room.depth) / cell_size) + 1)
        ]
        checked: set[int] = set()
        for key in cells:
            for other in grid.get(key, ()):
                if other.sequence_index in checked:
                    continue
                checked.add(other.sequence_index)
                if other.overlaps(room):
                    pairs.append((other.sequence_index, room.sequence_index))
        for key in cells:
            grid.setdefault(key, []).append(room)

    pairs.sort()
    by_index = {r.sequence_index: r.node_id for r in rooms}
    return [(by_index[a], by_index[b]) for a, b in pairs]


def _validate(
    rooms: list[Room],
    walls: list[WallSegment],
    profile: WalkthroughProfile,
    seed: Optional[int],
) -> dict:
    """Check doorway alignment and footprint overlaps; return metadata."""
    warnings: list[str] = []
    misaligned: list[tuple[int, int]] = []

    for prev, nxt in zip(rooms, rooms[1:]):
        a, b = prev.exit_door, nxt.entry_door
        axis = 2 if prev.exit_direction in (LEFT, RIGHT) else 0
        lateral_ok = abs(a[axis] - b[axis]) <= 1e-9
        span = abs(a[0] - b[0]) + abs(a[2] - b[2])
        if not lateral_ok or abs(span - profile.room_gap) > 1e-9:
            misaligned.append((prev.sequence_index, nxt.sequence_index))
            warnings.append(
                f"Doorways of rooms {prev.sequence_index} and "
                f"{nxt.sequence_index} do not line up"
            )

    cell = max(max(t.width, t.depth) for t in profile.palette) + profile.room_gap
    overlapping = find_overlaps(rooms, cell or 1.0)
    if overlapping:
        warnings.append(f"{len(overlapping)} room pairs overlap")

    row_size = profile.rooms_per_row
    return {
        "room_count": len(rooms),
        "wall_count": len(walls),
        "door_count": max(len(rooms) - 1, 0),
        "row_count": (len(rooms) + row_size - 1) // row_size,
        "misaligned_doors": misaligned,
        "overlapping_rooms": overlapping,
        "seed": seed,
        "prng_version": LCG_VERSION,
        "warnings": warnings,
    }
