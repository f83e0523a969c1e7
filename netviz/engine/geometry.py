"""Axis-aligned rectangles used for node bounds, guide lines and dimension lines.

Coordinates follow the layout engine's convention: ``x``/``y`` are the minimum
edges and ``X``/``Y`` the maximum edges. A guide or dimension line is a
degenerate rectangle where one extent is zero.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Bounds:
    """An axis-aligned rectangle.

    Attributes:
        x: Left edge
        X: Right edge
        y: Top edge
        Y: Bottom edge
    """

    x: float
    X: float
    y: float
    Y: float

    @classmethod
    def around(cls, cx: float, cy: float, width: float, height: float) -> Bounds:
        """Build the rectangle of a box centred on (cx, cy)."""
        return cls(cx - width / 2, cx + width / 2, cy - height / 2, cy + height / 2)

    @property
    def width(self) -> float:
        return self.X - self.x

    @property
    def height(self) -> float:
        return self.Y - self.y

    def cx(self) -> float:
        return (self.x + self.X) / 2

    def cy(self) -> float:
        return (self.y + self.Y) / 2

    def inflate(self, pad: float) -> Bounds:
        return Bounds(self.x - pad, self.X + pad, self.y - pad, self.Y + pad)

    def transpose(self) -> Bounds:
        """Swap the axes. Lets one routine handle both horizontal and vertical cases."""
        return Bounds(self.y, self.Y, self.x, self.X)

    def overlap_x(self, other: Bounds) -> float:
        """Length of the overlap of the two x-extents, or 0 if they are disjoint."""
        ux, vx = self.cx(), other.cx()
        if ux <= vx and other.x < self.X:
            return self.X - other.x
        if vx <= ux and self.x < other.X:
            return other.X - self.x
        return 0

    def overlap_y(self, other: Bounds) -> float:
        """Length of the overlap of the two y-extents, or 0 if they are disjoint."""
        uy, vy = self.cy(), other.cy()
        if uy <= vy and other.y < self.Y:
            return self.Y - other.y
        if vy <= uy and self.y < other.Y:
            return other.Y - self.y
        return 0

    def intersects(self, other: Bounds) -> bool:
        """True if the rectangles touch or overlap (closed intervals)."""
        return (
            self.x <= other.X
            and other.x <= self.X
            and self.y <= other.Y
            and other.y <= self.Y
        )

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "X": self.X, "y": self.y, "Y": self.Y}


def round_half(value: float) -> float:
    """Round to the nearest 0.5, ties rounding up."""
    return math.floor(value * 2 + 0.5) / 2
