"""Configuration defaults for the nexus layout engine."""

import os

# Logging
LOG_LEVEL = os.environ.get("NEXUS_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Root anchor (the nexus sits at the origin of its own local space)
DEFAULT_ROOT_POSITION = (0.0, 0.0, 0.0)

# Ring placement around the nexus (level-1 nodes)
DEFAULT_BASE_RADIUS = 6.0
DEFAULT_RADIUS_INCREMENT = 0.4
DEFAULT_NODES_PER_RING = 6
DEFAULT_RING_HEIGHT = 2.5

# Wide-aggregation ring placement (children of an aggregation node)
DEFAULT_WIDE_BASE_RADIUS = 4.0
DEFAULT_WIDE_RADIUS_INCREMENT = 0.2
DEFAULT_WIDE_NODES_PER_RING = 8
DEFAULT_WIDE_RING_HEIGHT = 4.0

# Helix placement away from the nexus (level-2+ nodes)
DEFAULT_BASE_DISTANCE = 3.0
DEFAULT_DISTANCE_INCREMENT = 0.8
DEFAULT_TURNS_PER_NODE = 0.3
DEFAULT_HELIX_RADIUS = 1.5
DEGENERATE_OFFSET = (2.0, 1.0, 2.0)

# Flat fibonacci spiral
DEFAULT_FIBONACCI_RADIUS = 4.0

# Walkthrough (metres)
DEFAULT_DOOR_WIDTH = 2.5
DEFAULT_ROOM_GAP = 0.0
DEFAULT_ROOMS_PER_ROW = 4
TYPICAL_ROOM_SIZE = 7.0
EMPTY_ROOM_SIZE = 4.0

# Output
OUTPUT_DIR = os.environ.get(
    "NEXUS_OUTPUT_DIR",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "output"),
)
