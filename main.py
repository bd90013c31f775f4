"""Nexus Layout - starfield and walkthrough geometry for idea trees.

Reads a tree snapshot (JSON) and prints the requested layout as JSON.

Usage:
    python main.py tree.json                       # starfield positions
    python main.py tree.json --view walkthrough    # rooms + walls
    python main.py tree.json --view walkthrough --output palace.json
"""

import argparse
import json
import logging
import os
import sys

from dotenv import load_dotenv

# Load settings from .env before anything else imports config
_env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(_env_path, override=False)

import config  # noqa: E402
from geometry.starfield import StarfieldPlacer  # noqa: E402
from geometry.tree import TreeSnapshot  # noqa: E402
from geometry.walkthrough import WalkthroughProfile, build_walkthrough  # noqa: E402

log = logging.getLogger("nexus_layout")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Nexus Layout - starfield and walkthrough geometry"
    )
    parser.add_argument(
        "snapshot",
        type=str,
        help="Path to a tree snapshot JSON file ('-' for stdin).",
    )
    parser.add_argument(
        "--view",
        choices=("starfield", "walkthrough"),
        default="starfield",
        help="Which layout to compute.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the JSON result here (relative paths go to the output dir).",
    )
    parser.add_argument(
        "--room-gap",
        type=float,
        default=config.DEFAULT_ROOM_GAP,
        help="Spacing between consecutive walkthrough rooms.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=config.LOG_LEVEL,
        help="Logging level (DEBUG, INFO, WARNING, ...).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format=config.LOG_FORMAT,
    )

    try:
        snapshot = _load_snapshot(args.snapshot)
    except (OSError, ValueError, KeyError):
        log.exception("Could not read snapshot %s", args.snapshot)
        return 1

    if args.view == "walkthrough":
        try:
            profile = WalkthroughProfile(room_gap=args.room_gap)
        except ValueError as e:
            log.error("Invalid walkthrough settings: %s", e)
            return 2
        result = build_walkthrough(snapshot, profile).to_dict()
    else:
        positions = StarfieldPlacer().place_tree(snapshot)
        result = {
            "rootId": snapshot.root_id,
            "positions": {k: list(v) for k, v in positions.items()},
        }

    text = json.dumps(result, indent=2)
    if args.output:
        path = _write_output(args.output, text)
        log.info("Wrote %s layout to %s", args.view, path)
    else:
        print(text)
    return 0


def _load_snapshot(path: str) -> TreeSnapshot:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("Snapshot must be a JSON object")
    return TreeSnapshot.from_dict(data)


def _write_output(target: str, text: str) -> str:
    path = target if os.path.isabs(target) else os.path.join(config.OUTPUT_DIR, target)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
        f.write("\n")
    return path


if __name__ == "__main__":
    sys.exit(main())
