"""Tests for starfield placement (ring, helix and aggregation rules)."""
import logging
import math
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from geometry.starfield import (
    GOLDEN_ANGLE,
    HelixProfile,
    RingProfile,
    ROOT_RING,
    WIDE_RING,
    StarfieldPlacer,
    degenerate_fallback,
    fibonacci_spiral_position,
    helix_position,
    ring_lift,
    spiral_position,
)
from geometry.store import TreeStore
from geometry.tree import TreeSnapshot

ORIGIN = (0.0, 0.0, 0.0)
TWO_PI = 2 * math.pi


class _CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _capture_logger(name):
    logger = logging.getLogger(name)
    logger.handlers = []
    handler = _CaptureHandler()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, handler


def _planar_angle(pos, anchor=ORIGIN):
    """Angle used by the ring rule: x = -r cos(a), z = r sin(a)."""
    return math.atan2(pos[2] - anchor[2], -(pos[0] - anchor[0])) % TWO_PI


def _angle_diff(a, b):
    d = (a - b) % TWO_PI
    return min(d, TWO_PI - d)


def _build_store(root_id="nexus-1", children=7):
    store = TreeStore()
    store.create_root(root_id)
    for i in range(children):
        store.add_node(root_id, f"{root_id}-c{i}")
    return store


def test_worked_example_first_ring():
    """Children 0-5 land on ring 0 at radius 6.0..8.0, 60 degrees apart."""
    store = _build_store(children=7)
    for i in range(6):
        x, y, z = store.position(f"nexus-1-c{i}")
        radius = math.hypot(x, z)
        assert abs(radius - (6.0 + 0.4 * i)) < 1e-9, f"child {i} radius {radius}"
        assert y == 0.0, f"child {i} should sit on the nexus plane, y={y}"
        expected = math.radians(60 * i)
        assert _angle_diff(_planar_angle((x, y, z)), expected) < 1e-9, \
            f"child {i} angle {math.degrees(_planar_angle((x, y, z)))}"
    print("  PASSED: worked example ring 0")


def test_worked_example_second_ring():
    """Child 6 opens ring 1: radius 8.4, golden angle, lifted by ring height."""
    store = _build_store(children=7)
    x, y, z = store.position("nexus-1-c6")
    assert abs(math.hypot(x, z) - 8.4) < 1e-9
    assert _angle_diff(_planar_angle((x, y, z)), GOLDEN_ANGLE) < 1e-9
    assert abs(math.degrees(GOLDEN_ANGLE) - 137.5077) < 1e-3
    assert y == 2.5, f"ring 1 should be +ring_height, got {y}"
    print("  PASSED: worked example ring 1")


def test_first_child_on_negative_x_axis():
    """Index 0 sits at (-base_radius, 0, 0) from the anchor."""
    x, y, z = spiral_position(0, (1.0, 2.0, 3.0))
    assert abs(x - (1.0 - 6.0)) < 1e-12
    assert y == 2.0
    assert abs(z - 3.0) < 1e-12
    print("  PASSED: first child on -x axis")


def test_ring_rotation_is_golden_angle():
    """Slot 0 of ring r is rotated r * golden angle from slot 0 of ring 0."""
    base = _planar_angle(spiral_position(0, ORIGIN))
    for ring in range(1, 8):
        pos = spiral_position(ring * ROOT_RING.nodes_per_ring, ORIGIN)
        offset = (_planar_angle(pos) - base) % TWO_PI
        expected = (ring * GOLDEN_ANGLE) % TWO_PI
        assert _angle_diff(offset, expected) < 1e-9, \
            f"ring {ring}: offset {offset}, expected {expected}"
    print("  PASSED: ring rotation")


def test_vertical_alternation():
    """Rings alternate above and below, stepping out every two rings."""
    lifts = [ring_lift(r) for r in range(6)]
    assert lifts == [0.0, 2.5, -2.5, 5.0, -5.0, 7.5], lifts
    print("  PASSED: vertical alternation")


def test_stacked_profile_lifts_monotonically():
    """The wide profile stacks rings upward instead of alternating."""
    lifts = [ring_lift(r, WIDE_RING) for r in range(4)]
    assert lifts == [0.0, 4.0, 8.0, 12.0], lifts
    print("  PASSED: stacked vertical mode")


def test_ring_profile_rejects_bad_values():
    for kwargs in ({"nodes_per_ring": 0}, {"vertical_mode": "spiral"}):
        try:
            RingProfile(**kwargs)
        except ValueError:
            continue
        raise AssertionError(f"RingProfile({kwargs}) should fail")
    print("  PASSED: ring profile validation")


def test_no_sibling_collision_on_rings():
    """Many root children never share a position."""
    store = _build_store(children=60)
    positions = [store.position(f"nexus-1-c{i}") for i in range(60)]
    assert len(set(positions)) == 60, "duplicate root-child positions"
    print("  PASSED: no collision among 60 ring siblings")


def test_no_sibling_collision_on_helix():
    """Many children of a level-1 node never share a position."""
    store = _build_store(children=2)
    for i in range(40):
        store.add_node("nexus-1-c1", f"deep-{i}")
    positions = [store.position(f"deep-{i}") for i in range(40)]
    assert len(set(positions)) == 40, "duplicate helix positions"
    print("  PASSED: no collision among 40 helix siblings")


def test_determinism_across_runs():
    """Same ids and creation order produce bit-identical positions."""
    def grow():
        store = TreeStore()
        store.create_root("nexus-x")
        for i in range(9):
            store.add_node("nexus-x", f"a{i}")
        for i in range(5):
            store.add_node("a3", f"b{i}")
        store.add_node("b2", "c0")
        snap = store.snapshot()
        return {nid: snap[nid].position for nid in snap}

    first, second = grow(), grow()
    assert first == second
    print("  PASSED: deterministic placement")


def test_helix_moves_away_from_root():
    """Helix children sit further from the nexus than their parent."""
    store = _build_store(children=3)
    parent = store.position("nexus-1-c2")
    for i in range(6):
        store.add_node("nexus-1-c2", f"h{i}")
        pos = store.position(f"h{i}")
        assert math.dist(pos, ORIGIN) > math.dist(parent, ORIGIN), \
            f"h{i} at {pos} is not beyond parent {parent}"
    print("  PASSED: helix grows outward")


def test_helix_formula():
    """Index 0 of the helix: parent + dir * base_distance + radius * right."""
    parent = (-6.0, 0.0, 0.0)
    pos = helix_position(0, parent, ORIGIN)
    # dir = (-1, 0, 0); right = normalize(dir x up) = (0, 0, -1)
    expected = (-9.0, 0.0, -1.5)
    assert all(abs(a - b) < 1e-12 for a, b in zip(pos, expected)), pos
    print("  PASSED: helix formula")


def test_helix_custom_profile():
    """Profile constants drive distance growth."""
    profile = HelixProfile(base_distance=1.0, distance_increment=1.0,
                           turns_per_node=1.0, helix_radius=0.0)
    pos = helix_position(2, (0.0, 0.0, 10.0), ORIGIN, profile)
    # whole turns and zero radius: straight out along +z by 1 + 2 * 1
    assert all(abs(a - b) < 1e-12 for a, b in zip(pos, (0.0, 0.0, 13.0))), pos
    print("  PASSED: helix custom profile")


def test_nan_guard_parent_on_root():
    """Parent coincident with root gives the finite fallback and a warning."""
    logger, handler = _capture_logger("test.starfield.coincident")
    pos = helix_position(3, (1.0, 1.0, 1.0), (1.0, 1.0, 1.0), logger=logger)
    assert pos == (3.0, 2.0, 3.0), pos
    assert all(math.isfinite(c) for c in pos)
    assert any(r.levelno == logging.WARNING for r in handler.records), \
        "degenerate placement should be reported"
    print("  PASSED: NaN guard (parent on root)")


def test_parallel_to_up_uses_x_axis():
    """A parent straight above the nexus uses (1, 0, 0) as the helix basis."""
    logger, handler = _capture_logger("test.starfield.parallel")
    pos = helix_position(0, (0.0, 5.0, 0.0), ORIGIN, logger=logger)
    expected = (1.5, 8.0, 0.0)
    assert all(abs(a - b) < 1e-12 for a, b in zip(pos, expected)), pos
    assert handler.records, "basis substitution should be reported"
    print("  PASSED: parallel-to-up basis")


def test_non_finite_parent_never_leaks():
    """Even a NaN parent yields a finite position."""
    logger, _ = _capture_logger("test.starfield.nan")
    pos = helix_position(0, (float("nan"), 0.0, 0.0), ORIGIN, logger=logger)
    assert all(math.isfinite(c) for c in pos), pos
    assert degenerate_fallback((float("nan"),) * 3, (float("inf"),) * 3) == (2.0, 1.0, 2.0)
    print("  PASSED: non-finite parent")


def test_store_child_of_root_anchored_child_degenerate():
    """A level-1 node placed on the nexus still gives finite grandchildren."""
    store = TreeStore(placer=StarfieldPlacer(ring=RingProfile(base_radius=0.0,
                                                              radius_increment=0.0)))
    store.create_root("n")
    store.add_node("n", "on-root")
    assert store.position("on-root") == (0.0, 0.0, 0.0)
    store.add_node("on-root", "grandchild")
    assert store.position("grandchild") == (2.0, 1.0, 2.0)
    print("  PASSED: degenerate store insertion")


def test_wide_aggregation_profile():
    """Children of an aggregation node use the wide ring around that node."""
    store = _build_store(children=2)
    agg = store.add_node("nexus-1-c0", "agg", aggregate=True)
    for i in range(10):
        store.add_node("agg", f"w{i}")
    for i in range(10):
        expected = spiral_position(i, agg.position, WIDE_RING)
        assert store.position(f"w{i}") == expected, f"w{i}"
    # slot 8 starts ring 1, stacked one ring height above the aggregation node
    assert abs(store.position("w8")[1] - (agg.position[1] + 4.0)) < 1e-12
    print("  PASSED: wide aggregation profile")


def test_place_tree_matches_incremental():
    """Bulk placement of a position-less snapshot equals incremental placement."""
    store = TreeStore()
    store.create_root("root")
    for i in range(8):
        store.add_node("root", f"a{i}")
    for i in range(4):
        store.add_node("a5", f"b{i}")
    store.add_node("b1", "c0")
    incremental = {nid: store.snapshot()[nid].position for nid in store.snapshot()}

    stripped = store.snapshot().to_dict()
    for entry in stripped["nodes"].values():
        entry.pop("position", None)
    bulk = StarfieldPlacer().place_tree(TreeSnapshot.from_dict(stripped))
    assert bulk == incremental
    print("  PASSED: bulk placement matches incremental")


def test_place_tree_empty():
    assert StarfieldPlacer().place_tree(TreeSnapshot(None, {})) == {}
    print("  PASSED: bulk placement of empty tree")


def test_fibonacci_spiral():
    x, y, z = fibonacci_spiral_position(0)
    assert (x, y, z) == (4.0, 0.0, 0.0)
    x3, _, z3 = fibonacci_spiral_position(3)
    assert abs(math.hypot(x3, z3) - 8.0) < 1e-12
    print("  PASSED: fibonacci spiral")


if __name__ == "__main__":
    print("Running starfield tests...\n")
    tests = [
        test_worked_example_first_ring,
        test_worked_example_second_ring,
        test_first_child_on_negative_x_axis,
        test_ring_rotation_is_golden_angle,
        test_vertical_alternation,
        test_stacked_profile_lifts_monotonically,
        test_ring_profile_rejects_bad_values,
        test_no_sibling_collision_on_rings,
        test_no_sibling_collision_on_helix,
        test_determinism_across_runs,
        test_helix_moves_away_from_root,
        test_helix_formula,
        test_helix_custom_profile,
        test_nan_guard_parent_on_root,
        test_parallel_to_up_uses_x_axis,
        test_non_finite_parent_never_leaks,
        test_store_child_of_root_anchored_child_degenerate,
        test_wide_aggregation_profile,
        test_place_tree_matches_incremental,
        test_place_tree_empty,
        test_fibonacci_spiral,
    ]

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"  FAILED: {test.__name__}: {e}")
            failed += 1

    print(f"\n{'='*50}")
    print(f"Results: {passed} passed, {failed} failed, {len(tests)} total")
    if failed == 0:
        print("ALL TESTS PASSED")
    else:
        print(f"{failed} TEST(S) FAILED")
