from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


# ------------------------------ Block ---------------------------------


@dataclass(frozen=True, order=False)
class Block:
    """A time interval [start, end) during which at least one AP was visible.

    Times are expressed in trace time units (seconds since the trace epoch).

    Used by:
      - the offline-optimal policy (candidate and scheduled transmit windows)
      - block summaries and plots

    `cost` is the selection key of the offline-optimal policy (smaller is
    better). When not provided it defaults to -length, i.e. longest first.
    """
    start: float
    end: float
    cost: Optional[float] = None

    # Derived; excluded from equality so that re-costed copies compare by span.
    length: float = field(init=False, compare=False)

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Block end ({self.end}) precedes start ({self.start}).")
        object.__setattr__(self, "length", float(self.end) - float(self.start))
        if self.cost is None:
            object.__setattr__(self, "cost", -self.length)

    def contains(self, t: float) -> bool:
        return float(self.start) <= float(t) < float(self.end)

    def overlaps(self, other: "Block") -> bool:
        return float(self.start) < float(other.end) and float(other.start) < float(self.end)

    def within(self, other: "Block") -> bool:
        """True if this block lies entirely inside `other`."""
        return float(other.start) <= float(self.start) and float(self.end) <= float(other.end)

    def trimmed(self, length: float) -> "Block":
        """A copy starting at the same time and lasting at most `length`."""
        new_end = min(float(self.end), float(self.start) + max(0.0, float(length)))
        return Block(self.start, new_end, self.cost)

    def with_cost(self, cost: float) -> "Block":
        return Block(self.start, self.end, float(cost))
