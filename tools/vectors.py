"""Small 3-vector helpers for the placement engine.

Positions are plain ``(x, y, z)`` float tuples so they can be stored on
frozen dataclasses and compared exactly.
"""

from __future__ import annotations

import math

Vec3 = tuple[float, float, float]

WORLD_UP: Vec3 = (0.0, 1.0, 0.0)
EPSILON = 1e-9


def add(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def scale(v: Vec3, k: float) -> Vec3:
    return (v[0] * k, v[1] * k, v[2] * k)


def cross(a: Vec3, b: Vec3) -> Vec3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def length(v: Vec3) -> float:
    return math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


def normalize(v: Vec3) -> Vec3 | None:
    """Return *v* scaled to unit length, or None if it is (near) zero."""
    n = length(v)
    if not n > EPSILON:
        return None
    return (v[0] / n, v[1] / n, v[2] / n)


def is_finite(v: Vec3) -> bool:
    """True when no coordinate is NaN or infinite."""
    return all(math.isfinite(c) for c in v)


def as_vec3(value) -> Vec3:
    """Coerce a 3-item sequence (list, tuple) into a float Vec3."""
    x, y, z = value
    return (float(x), float(y), float(z))
