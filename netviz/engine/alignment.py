"""Snap-to-alignment search run while a single node is dragged.

Per drag-move the detector:

1. buckets every candidate node's edges and centre on each axis,
2. snaps the dragged node onto the busiest bucket within the threshold
   (centre buckets first, then edge buckets),
3. finds runs of overlapping nodes beside the dragged node and snaps it so
   that it repeats an existing gap, or sits half-way between its neighbours.

The detector only writes the dragged node's transient ``px``/``py``; it never
creates constraints. Guide and dimension lines are returned for display.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from netviz.engine.constraints import AlignmentConstraint, ConstraintSet
from netviz.engine.core import Node, is_pinned
from netviz.engine.geometry import Bounds, round_half

logger = logging.getLogger("netviz.alignment")

GUIDE_PAD = 4
# Projection lines run this far past the furthest edge; the measurement line sits at DIMENSION_OFFSET.
PROJECTION_OVERHANG = 12
DIMENSION_OFFSET = 9
# Clearance added to y edge snaps so the nodes do not touch.
Y_EDGE_CLEARANCE = 1


@dataclass
class _Entry:
    id: str
    extent: tuple[float, float]


@dataclass
class _Match:
    coord: float
    entries: list[_Entry]
    offset: float


@dataclass
class AxisAlignment:
    """An edge or centre match on one axis.

    Attributes:
        axis: "x" or "y"
        coord: Matched bucket coordinate
        members: Hashes of the nodes sharing the coordinate
        offset: 0 for a centre match, otherwise the signed half extent used
        guide: Guide-line rectangle spanning the members and the dragged node
    """

    axis: str
    coord: float
    members: list[str]
    offset: float
    guide: Bounds

    @property
    def centre(self) -> bool:
        return self.offset == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "axis": self.axis,
            "coord": self.coord,
            "members": list(self.members),
            "offset": self.offset,
            "centre": self.centre,
            "guide": self.guide.as_dict(),
        }


@dataclass
class DimensionLines:
    """Geometry for the equal-gap display: projection and measurement lines."""

    projection: list[Bounds] = field(default_factory=list)
    dimension: list[Bounds] = field(default_factory=list)

    def transpose(self) -> DimensionLines:
        return DimensionLines(
            projection=[b.transpose() for b in self.projection],
            dimension=[b.transpose() for b in self.dimension],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "projection": [b.as_dict() for b in self.projection],
            "dimension": [b.as_dict() for b in self.dimension],
        }


@dataclass
class DragResult:
    """Everything found for one drag-move. Unmatched parts are None."""

    x: AxisAlignment | None = None
    y: AxisAlignment | None = None
    x_distribution: DimensionLines | None = None
    y_distribution: DimensionLines | None = None
    px: float | None = None
    py: float | None = None

    @property
    def found(self) -> dict[str, Any]:
        """Only the matched parts, keyed by name."""
        parts = {
            "x": self.x,
            "y": self.y,
            "x_distribution": self.x_distribution,
            "y_distribution": self.y_distribution,
        }
        return {k: v for k, v in parts.items() if v is not None}

    def __bool__(self) -> bool:
        return bool(self.found)

    def to_dict(self) -> dict[str, Any]:
        return {k: v.to_dict() for k, v in self.found.items()} | {"px": self.px, "py": self.py}


def _add(buckets: dict[float, list[_Entry]], coord: float, entry: _Entry) -> None:
    buckets.setdefault(round_half(coord), []).append(entry)


def find_alignment(
    centre_map: dict[float, list[_Entry]],
    edge_map: dict[float, list[_Entry]],
    half: float,
    threshold: float,
    position: float,
) -> _Match | None:
    """Pick the bucket to snap to on one axis.

    Centre buckets are scanned first, then edge buckets at ``position + half``
    and ``position - half``. A later bucket wins only with strictly more
    members, so on a tie the first one scanned is kept.
    """
    best: _Match | None = None

    def bigger(entries: list[_Entry]) -> bool:
        return len(entries) > (len(best.entries) if best else 0)

    for coord, entries in centre_map.items():
        if position - threshold < coord < position + threshold and bigger(entries):
            best = _Match(coord, entries, 0)
    for coord, entries in edge_map.items():
        if position + half - threshold < coord < position + half + threshold and bigger(entries):
            best = _Match(coord, entries, half)
        elif position - half - threshold < coord < position - half + threshold and bigger(entries):
            best = _Match(coord, entries, -half)
    return best


def find_overlap_groups(
    bounds: list[Bounds], split: float
) -> tuple[list[list[Bounds]], int]:
    """Group y-sorted bounds into runs that overlap on x.

    Single forward pass: each unvisited position starts a run made of itself
    and every later box overlapping it. Overlap chains that are not
    contiguous in sort order are not merged.

    Returns:
        The runs of two or more boxes, and the last index whose bottom edge
        lies above ``split`` (-1 if none).
    """
    groups: list[list[Bounds]] = []
    index = -1
    visited = [False] * len(bounds)
    for i, b in enumerate(bounds):
        if b.Y < split:
            index = i
        if all(visited):
            continue
        new_node = False
        if not visited[i]:
            new_node = True
            visited[i] = True
        run = [b]
        for j in range(i + 1, len(bounds)):
            if b.overlap_x(bounds[j]) > 0:
                if not visited[j]:
                    new_node = True
                    visited[j] = True
                run.append(bounds[j])
        if new_node and len(run) > 1:
            groups.append(run)
    return groups, index


def _pair_lines(lines: DimensionLines, upper: Bounds, lower: Bounds) -> None:
    far = max(upper.X, lower.X)
    lines.projection.append(Bounds(upper.X, far + PROJECTION_OVERHANG, upper.Y, upper.Y))
    lines.projection.append(Bounds(lower.X, far + PROJECTION_OVERHANG, lower.y, lower.y))
    lines.dimension.append(
        Bounds(far + DIMENSION_OFFSET, far + DIMENSION_OFFSET, upper.Y, lower.y)
    )


def _gap_lines(
    lines: DimensionLines, target: Bounds, neighbour: Bounds, at: float, edge: float
) -> None:
    """Lines between the dragged node's edge at ``at`` and the neighbour edge ``edge``."""
    far = max(target.X, neighbour.X)
    lines.projection.append(Bounds(target.X, far + PROJECTION_OVERHANG, at, at))
    lines.projection.append(Bounds(neighbour.X, far + PROJECTION_OVERHANG, edge, edge))
    lines.dimension.append(Bounds(far + DIMENSION_OFFSET, far + DIMENSION_OFFSET, at, edge))


def distribute(
    candidates: Iterable[Bounds],
    target: Bounds,
    pointer: float,
    half: float,
    threshold: float,
    snapped: float | None,
) -> tuple[float, DimensionLines] | None:
    """Equal-gap and mid-point snapping along y.

    ``candidates`` are the other nodes' bounds and ``target`` the dragged
    node's; ``pointer`` is the pointer's y and ``half`` the dragged node's
    half height. ``snapped`` is the transient y already chosen by an axis
    match, if any: a distribution snap then applies only when it lands on
    exactly that value. Transpose all inputs and outputs for the x axis.

    Returns:
        The snapped transient y and the dimension lines, or None.
    """
    probe = target.inflate(1)
    # sorted() is stable, so equal tops keep candidate order
    column = sorted((b for b in candidates if b.overlap_x(probe) > 0), key=lambda b: b.y)
    groups, index = find_overlap_groups(column, pointer - half)
    if not groups:
        return None

    gaps: dict[float, list[tuple[Bounds, Bounds]]] = {}
    for run in groups:
        for upper, lower in zip(run, run[1:]):
            gaps.setdefault(lower.y - upper.Y, []).append((upper, lower))

    lines = DimensionLines()
    coord = snapped
    found = False
    for gap, pairs in gaps.items():
        matched = False
        if index > -1:
            above = column[index].Y + gap
            if pointer - half - threshold < above < pointer - half + threshold:
                candidate = above + half
                if snapped is None or coord == candidate:
                    coord = candidate
                    _gap_lines(lines, target, column[index], above, column[index].Y)
                    matched = True
        if index < len(column) - 1:
            below = column[index + 1].y - gap
            if pointer + half - threshold < below < pointer + half + threshold:
                candidate = below - half
                if snapped is None or coord == candidate:
                    coord = candidate
                    _gap_lines(lines, target, column[index + 1], below, column[index + 1].y)
                    matched = True
        if matched:
            found = True
            for upper, lower in pairs:
                _pair_lines(lines, upper, lower)

    if not found and 0 <= index < len(column) - 1:
        upper, lower = column[index], column[index + 1]
        midpoint = (lower.y + upper.Y) / 2
        if pointer - threshold < midpoint < pointer + threshold and (
            snapped is None or coord == midpoint
        ):
            coord = midpoint
            far = max(target.X, upper.X, lower.X)
            top, bottom = midpoint - half, midpoint + half
            lines.projection.append(Bounds(target.X, far + PROJECTION_OVERHANG, bottom, bottom))
            lines.projection.append(Bounds(upper.X, far + PROJECTION_OVERHANG, upper.Y, upper.Y))
            lines.dimension.append(
                Bounds(far + DIMENSION_OFFSET, far + DIMENSION_OFFSET, top, upper.Y)
            )
            lines.projection.append(Bounds(target.X, far + PROJECTION_OVERHANG, top, top))
            lines.projection.append(Bounds(lower.X, far + PROJECTION_OVERHANG, lower.y, lower.y))
            lines.dimension.append(
                Bounds(far + DIMENSION_OFFSET, far + DIMENSION_OFFSET, bottom, lower.y)
            )
            found = True

    if not found:
        return None
    return coord, lines


class AlignmentDetector:
    """Geometric search for snap targets during a single-node drag.

    Stateless between calls; reads node positions and constraints and writes
    only the dragged node's ``px``/``py``.
    """

    def __init__(
        self,
        nodes: Callable[[], list[Node]],
        constraints: ConstraintSet,
        *,
        threshold: float = 10,
        enabled: bool = True,
        pin: Callable[[Node], bool] = is_pinned,
        on_aligned: Callable[[Node, DragResult], None] | None = None,
    ) -> None:
        self._nodes = nodes
        self._constraints = constraints
        self.threshold = threshold
        self.enabled = enabled
        self._pin = pin
        self._on_aligned = on_aligned

    def _candidates(self, dragged: Node) -> list[Node]:
        aligned = {
            nid
            for c in self._constraints.constraints_of(dragged.id)
            if isinstance(c, AlignmentConstraint)
            for nid in c.node_ids
        }
        return [
            n
            for n in self._nodes()
            if n.id != dragged.id and self._pin(n) and n.id not in aligned
        ]

    def detect(self, dragged: Node, x: float, y: float) -> DragResult:
        """Run the search for ``dragged`` with the pointer at (x, y).

        Returns an empty ``DragResult`` when snapping is off or the node is
        not pinned.
        """
        result = DragResult()
        if not self.enabled or not self._pin(dragged):
            return result

        threshold = self.threshold
        half_w = dragged.width / 2
        half_h = dragged.height / 2
        target = dragged.bounds

        edge_x: dict[float, list[_Entry]] = {}
        edge_y: dict[float, list[_Entry]] = {}
        centre_x: dict[float, list[_Entry]] = {}
        centre_y: dict[float, list[_Entry]] = {}
        candidates = self._candidates(dragged)
        for node in candidates:
            b = node.bounds
            x_extent = (b.x, b.X)
            y_extent = (b.y, b.Y)
            for coord in x_extent:
                _add(edge_x, coord, _Entry(node.hash, y_extent))
            for coord in y_extent:
                _add(edge_y, coord, _Entry(node.hash, x_extent))
            _add(centre_x, b.cx(), _Entry(node.hash, y_extent))
            _add(centre_y, b.cy(), _Entry(node.hash, x_extent))

        x_match = find_alignment(centre_x, edge_x, half_w, threshold, x)
        y_match = find_alignment(centre_y, edge_y, half_h, threshold, y)

        if x_match is not None:
            span = [v for e in x_match.entries for v in e.extent]
            guide = Bounds(
                x_match.coord,
                x_match.coord,
                min(*span, target.y) - GUIDE_PAD,
                max(*span, target.Y) + GUIDE_PAD,
            )
            result.x = AxisAlignment(
                "x", x_match.coord, [e.id for e in x_match.entries], x_match.offset, guide
            )
            dragged.px = x_match.coord - x_match.offset
        if y_match is not None:
            span = [v for e in y_match.entries for v in e.extent]
            guide = Bounds(
                min(*span, target.x) - GUIDE_PAD,
                max(*span, target.X) + GUIDE_PAD,
                y_match.coord,
                y_match.coord,
            )
            result.y = AxisAlignment(
                "y", y_match.coord, [e.id for e in y_match.entries], y_match.offset, guide
            )
            offset = y_match.offset
            if offset > 0:
                offset += Y_EDGE_CLEARANCE
            elif offset < 0:
                offset -= Y_EDGE_CLEARANCE
            dragged.py = y_match.coord - offset

        boxes = [n.bounds for n in candidates]
        try:
            vertical = distribute(
                boxes,
                target,
                y,
                half_h,
                threshold,
                dragged.py if result.y is not None else None,
            )
            if vertical is not None:
                dragged.py, result.y_distribution = vertical
            horizontal = distribute(
                [b.transpose() for b in boxes],
                target.transpose(),
                x,
                half_w,
                threshold,
                dragged.px if result.x is not None else None,
            )
            if horizontal is not None:
                dragged.px = horizontal[0]
                result.x_distribution = horizontal[1].transpose()
        except (ArithmeticError, ValueError):
            logger.exception("Dimension computation failed for node %s", dragged.hash)

        result.px = dragged.px
        result.py = dragged.py
        if result and self._on_aligned is not None:
            self._on_aligned(dragged, result)
        return result
