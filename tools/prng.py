"""Seeded pseudo-random stream for procedural room choices.

The walkthrough layout must regenerate identically for the same tree on
every run and in every port of the engine, so the stream is a fixed
linear-congruential recurrence rather than :mod:`random`.

Version 1 recurrence::

    value = (value * 9301 + 49297) % 233280
    draw  = value / 233280          # in [0, 1)
"""

from __future__ import annotations

LCG_VERSION = 1
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280


def seed_from_identity(identity: str) -> int:
    """Sum of the UTF-16 code units of *identity*.

    Characters outside the BMP count as their two surrogate halves, matching
    ports whose strings are UTF-16.
    """
    data = identity.encode("utf-16-le", "surrogatepass")
    return sum(
        int.from_bytes(data[i:i + 2], "little") for i in range(0, len(data), 2)
    )


class LinearCongruentialStream:
    """Deterministic ``[0, 1)`` stream, advanced once per :meth:`next` call."""

    version = LCG_VERSION

    def __init__(self, seed: int):
        self.seed = int(seed)
        self._value = self.seed

    def next(self) -> float:
        self._value = (self._value * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return self._value / LCG_MODULUS

    def choice_index(self, size: int) -> int:
        """Draw once and map the result onto ``range(size)``."""
        if size <= 0:
            raise ValueError("choice_index() needs a non-empty range")
        return int(self.next() * size)

    @classmethod
    def for_identity(cls, identity: str) -> "LinearCongruentialStream":
        return cls(seed_from_identity(identity))
