"""Separation and alignment constraints and the collection that owns them.

Two constraint kinds are supported, modelled as separate dataclasses:

- ``SeparationConstraint``: a gap (``>=`` or ``==``) between exactly two
  nodes along one axis. Immutable once created; to change it, remove it and
  create a new one.
- ``AlignmentConstraint``: two or more nodes sharing a coordinate on one
  axis, each with its own offset. It can be extended in place by passing the
  same instance to ``ConstraintSet.constrain`` again.

Constraints refer to nodes by stable id. The engine indices (``left``,
``right``, ``offsets[i].node``) are a cache that must be refreshed with
``update_constraint_indexing`` after any node removal or reorder.

Constraint identity is object identity: two separation constraints between
the same pair are distinct constraints.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from netviz.engine.core import GraphRegistry
from netviz.engine.geometry import Bounds

logger = logging.getLogger("netviz.constraints")

Axis = Literal["x", "y"]

# Extra space above/below the outermost node when drawing an alignment guide.
GUIDE_PAD = 4


def _new_id() -> str:
    return uuid.uuid4().hex


def _check_axis(axis: str) -> None:
    if axis not in ("x", "y"):
        raise ValueError(f"Constraint axis must be 'x' or 'y', got: {axis!r}")


@dataclass(frozen=True)
class NodeOffset:
    """A member of an alignment constraint: node id plus its offset."""

    id: str
    offset: float = 0.0


@dataclass
class OffsetIndex:
    """Engine-facing form of a ``NodeOffset``: resolved node index plus offset."""

    node: int
    offset: float = 0.0


@dataclass(eq=False)
class SeparationConstraint:
    """Keep two nodes apart by ``gap`` along ``axis``.

    Construct one without node ids and pass it to ``ConstraintSet.constrain``
    as a template; the set creates a new bound constraint for the node pair.

    Attributes:
        axis: "x" or "y"
        gap: Minimum (or exact, when ``equality``) distance between the centres
        equality: True for an exact gap, False for a minimum gap
        left_id: Id of the left-hand node
        right_id: Id of the right-hand node
        left: Cached engine index of the left-hand node
        right: Cached engine index of the right-hand node

    Raises:
        ValueError: If axis is not "x" or "y"
        TypeError: If gap is not a number
    """

    axis: Axis
    gap: float
    equality: bool = False
    left_id: str | None = None
    right_id: str | None = None
    left: int = -1
    right: int = -1
    constraint_id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        _check_axis(self.axis)
        if isinstance(self.gap, bool) or not isinstance(self.gap, (int, float)):
            raise TypeError(f"Separation gap must be a number, got: {type(self.gap).__name__}")

    @property
    def node_ids(self) -> list[str]:
        return [i for i in (self.left_id, self.right_id) if i is not None]

    def template(self) -> dict[str, Any]:
        return {"axis": self.axis, "gap": self.gap, "equality": self.equality}

    @classmethod
    def from_template(cls, data: Mapping[str, Any]) -> SeparationConstraint:
        return cls(axis=data["axis"], gap=data["gap"], equality=data.get("equality", False))

    def to_engine(self) -> dict[str, Any]:
        return {
            "type": "separation",
            "axis": self.axis,
            "left": self.left,
            "right": self.right,
            "gap": self.gap,
            "equality": self.equality,
        }


@dataclass(eq=False)
class AlignmentConstraint:
    """Align two or more nodes on ``axis``.

    ``node_offsets`` and ``offsets`` are parallel lists and always have the
    same length. ``visible`` toggles the guide line drawn for the constraint.
    """

    axis: Axis
    node_offsets: list[NodeOffset] = field(default_factory=list)
    offsets: list[OffsetIndex] = field(default_factory=list)
    visible: bool = False
    constraint_id: str = field(default_factory=_new_id)
    _bounds_fn: Callable[[], Bounds] | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        _check_axis(self.axis)

    @property
    def node_ids(self) -> list[str]:
        return [no.id for no in self.node_offsets]

    def bounds(self) -> Bounds:
        """Guide-line rectangle for display. Bound when the constraint is first added."""
        if self._bounds_fn is None:
            raise RuntimeError("Alignment constraint has not been added to a constraint set")
        return self._bounds_fn()

    def to_engine(self) -> dict[str, Any]:
        return {
            "type": "alignment",
            "axis": self.axis,
            "offsets": [{"node": o.node, "offset": o.offset} for o in self.offsets],
        }


Constraint = Union[SeparationConstraint, AlignmentConstraint]

AlignTarget = Union[NodeOffset, tuple[str, float], Mapping[str, Any], str]


def _as_node_offset(target: AlignTarget) -> NodeOffset:
    if isinstance(target, NodeOffset):
        return target
    if isinstance(target, str):
        return NodeOffset(target)
    if isinstance(target, Mapping):
        return NodeOffset(target["id"], target.get("offset", 0.0))
    node_id, offset = target
    return NodeOffset(node_id, offset)


class ConstraintSet:
    """Owns every constraint and the node -> constraints back-reference index.

    Every successful mutation republishes the whole collection (engine form)
    through ``on_change``.
    """

    def __init__(
        self,
        registry: GraphRegistry,
        on_change: Callable[[list[Any]], None] | None = None,
    ) -> None:
        self._registry = registry
        self.on_change = on_change
        self._constraints: list[Any] = []
        # node id -> constraints referencing it, in creation order
        self._by_node: dict[str, list[Constraint]] = defaultdict(list)

    # ========== Collection access ==========

    def __iter__(self):
        return iter(list(self._constraints))

    def __len__(self) -> int:
        return len(self._constraints)

    def __contains__(self, constraint: object) -> bool:
        return self._index_of(constraint) >= 0

    def _index_of(self, constraint: object) -> int:
        for i, c in enumerate(self._constraints):
            if c is constraint:
                return i
        return -1

    def all(self) -> list[Any]:
        return list(self._constraints)

    def alignments(self) -> list[AlignmentConstraint]:
        return [c for c in self._constraints if isinstance(c, AlignmentConstraint)]

    def separations(self) -> list[SeparationConstraint]:
        return [c for c in self._constraints if isinstance(c, SeparationConstraint)]

    def get(self, constraint_id: str) -> Constraint | None:
        for c in self._constraints:
            if getattr(c, "constraint_id", None) == constraint_id:
                return c
        return None

    def constraints_of(self, node_id: str) -> list[Constraint]:
        """Constraints that reference ``node_id`` (the node's back-references)."""
        return list(self._by_node.get(node_id, []))

    def to_engine(self) -> list[Any]:
        result: list[Any] = []
        for c in self._constraints:
            if isinstance(c, (SeparationConstraint, AlignmentConstraint)):
                result.append(c.to_engine())
            else:
                result.append(c)
        return result

    def _publish(self) -> None:
        if self.on_change is not None:
            self.on_change(self.to_engine())

    def _link(self, node_id: str, constraint: Constraint) -> None:
        refs = self._by_node[node_id]
        if not any(c is constraint for c in refs):
            refs.append(constraint)

    def _unlink(self, node_id: str, constraint: Constraint) -> None:
        refs = self._by_node.get(node_id)
        if refs is None:
            return
        refs[:] = [c for c in refs if c is not constraint]
        # Clean up empty entries to prevent memory leaks
        if not refs:
            del self._by_node[node_id]

    # ========== Mutation ==========

    def constrain(
        self,
        template: Any,
        targets: Sequence[str] | Iterable[AlignTarget] = (),
    ) -> Any:
        """Create a constraint, or add members to an existing alignment.

        Args:
            template: A ``SeparationConstraint`` template, a new
                ``AlignmentConstraint``, or an alignment instance already in
                this set (to add members to it).
            targets: Two node ids for a separation constraint; node offsets for
                an alignment (``NodeOffset``, ``(id, offset)``, ``{"id", "offset"}``
                or a bare id meaning offset 0).

        Returns:
            The constraint now held in the collection.

        Raises:
            ValueError: If the targets are invalid or reference unknown nodes.
        """
        if isinstance(template, SeparationConstraint):
            constraint = self._constrain_separation(template, list(targets))
        elif isinstance(template, AlignmentConstraint):
            constraint = self._constrain_alignment(template, [_as_node_offset(t) for t in targets])
        else:
            logger.warning("Unknown constraint type, default action executed: %r", template)
            self._constraints.append(template)
            constraint = template
        self._publish()
        return constraint

    def _constrain_separation(
        self, template: SeparationConstraint, id_pair: list[Any]
    ) -> SeparationConstraint:
        if len(id_pair) != 2:
            raise ValueError(
                f"Cannot create separation constraint, incorrect number of nodes: {id_pair}"
            )
        left_id, right_id = id_pair
        if left_id == right_id:
            raise ValueError(
                f"Cannot create separation constraint between a node and itself: {left_id!r}"
            )
        left = self._registry.find_index(left_id)
        right = self._registry.find_index(right_id)
        if left == -1 or right == -1:
            raise ValueError(
                f"Cannot create separation constraint, node does not exist: {id_pair}"
            )
        constraint = dataclasses.replace(
            template,
            left_id=left_id,
            right_id=right_id,
            left=left,
            right=right,
            constraint_id=_new_id(),
        )
        self._constraints.append(constraint)
        self._link(left_id, constraint)
        self._link(right_id, constraint)
        return constraint

    def _constrain_alignment(
        self, template: AlignmentConstraint, targets: list[NodeOffset]
    ) -> AlignmentConstraint:
        existing = template in self
        if not existing and template.node_offsets:
            # A fresh object that arrived with members already listed: treat them as targets.
            targets = [*template.node_offsets, *targets]
            template.node_offsets = []
            template.offsets = []

        node_offsets = list(dict.fromkeys(targets))
        if existing:
            initial = len(node_offsets)
            node_offsets = [no for no in node_offsets if no not in template.node_offsets]
            if len(node_offsets) < initial:
                logger.warning(
                    "Nodes already constrained: %s",
                    [no.id for no in targets if no in template.node_offsets],
                )
            if not node_offsets:
                return template
        elif len(node_offsets) < 2:
            raise ValueError(
                f"Alignment constraint needs at least 2 nodes, got: {[no.id for no in node_offsets]}"
            )

        offsets = []
        for no in node_offsets:
            i = self._registry.find_index(no.id)
            if i == -1:
                raise ValueError(f"Cannot create constraint, node does not exist: {no.id!r}")
            offsets.append(OffsetIndex(i, no.offset))

        template.offsets.extend(offsets)
        template.node_offsets.extend(node_offsets)
        if template._bounds_fn is None:
            template._bounds_fn = functools.partial(self.constraint_bounds, template)
        if not existing:
            self._constraints.append(template)
        for no in node_offsets:
            self._link(no.id, template)
        return template

    def constraint_bounds(self, constraint: AlignmentConstraint) -> Bounds:
        """Guide line for an alignment constraint.

        The line sits on the first member's coordinate; it is a display aid
        and does not check that the members really are aligned.
        """
        if not isinstance(constraint, AlignmentConstraint):
            raise TypeError("Only valid for align constraints")
        nodes = [
            n for n in (self._registry.get_node_by_id(nid) for nid in constraint.node_ids) if n
        ]
        if not nodes:
            raise ValueError("Alignment constraint has no resolvable nodes")
        first = nodes[0]
        if constraint.axis == "x":
            return Bounds(
                x=first.x or 0.0,
                X=first.x or 0.0,
                y=min(n.bounds.y for n in nodes) - GUIDE_PAD,
                Y=max(n.bounds.Y for n in nodes) + GUIDE_PAD,
            )
        return Bounds(
            x=min(n.bounds.x for n in nodes) - GUIDE_PAD,
            X=max(n.bounds.X for n in nodes) + GUIDE_PAD,
            y=first.y or 0.0,
            Y=first.y or 0.0,
        )

    def unconstrain(
        self,
        node_ids: str | Iterable[str],
        constraint: Constraint | None = None,
    ) -> None:
        """Remove nodes from constraints.

        With ``constraint`` given, the nodes are removed from that constraint
        only; otherwise from every constraint that references any of them.
        Removing either end of a separation constraint deletes it; an
        alignment left with one member or fewer is deleted.
        """
        ids = [node_ids] if isinstance(node_ids, str) else list(node_ids)
        if constraint is not None:
            affected: list[Any] = [constraint]
        else:
            affected = []
            for nid in ids:
                for c in self._by_node.get(nid, []):
                    if not any(c is a for a in affected):
                        affected.append(c)

        for c in affected:
            if isinstance(c, SeparationConstraint):
                self.remove_constraint(c)
            elif isinstance(c, AlignmentConstraint):
                kept = [
                    (no, o)
                    for no, o in zip(c.node_offsets, c.offsets)
                    if no.id not in ids
                ]
                c.node_offsets = [no for no, _ in kept]
                c.offsets = [o for _, o in kept]
                for nid in ids:
                    self._unlink(nid, c)
                if len(c.offsets) <= 1:
                    self.remove_constraint(c)
        self._publish()

    def remove_constraint(self, constraint: Any) -> bool:
        """Delete a constraint and strip it from its nodes' back-references.

        Returns False, after logging a warning, if the constraint is not held.
        """
        index = self._index_of(constraint)
        if index == -1:
            logger.warning("Cannot delete constraint, does not exist: %r", constraint)
            return False
        if isinstance(constraint, (SeparationConstraint, AlignmentConstraint)):
            for nid in constraint.node_ids:
                self._unlink(nid, constraint)
        del self._constraints[index]
        self._publish()
        return True

    def update_constraint_indexing(self) -> None:
        """Re-resolve cached engine indices from node ids.

        Must run after any node removal or reorder. Separation constraints
        whose endpoints no longer resolve are deleted; alignment members that
        no longer resolve are unconstrained.
        """
        for c in list(self._constraints):
            if self._index_of(c) == -1:
                continue
            if isinstance(c, SeparationConstraint):
                left = self._registry.find_index(c.left_id or "")
                right = self._registry.find_index(c.right_id or "")
                if left == -1 or right == -1:
                    logger.warning("Node went missing, deleting constraint: %r", c)
                    self.remove_constraint(c)
                    continue
                c.left, c.right = left, right
            elif isinstance(c, AlignmentConstraint):
                missing = []
                for no, o in zip(c.node_offsets, c.offsets):
                    index = self._registry.find_index(no.id)
                    if index == -1:
                        missing.append(no.id)
                    o.node = index
                if missing:
                    logger.warning("Nodes went missing, removing constraints: %s", missing)
                    self.unconstrain(missing, c)
        self._publish()

    def constraint_visibility(
        self,
        value: bool = False,
        constraint: AlignmentConstraint | Iterable[AlignmentConstraint] | None = None,
    ) -> list[AlignmentConstraint]:
        """Show or hide alignment guide lines. Defaults to every alignment.

        Separation constraints have no guide and are skipped.
        """
        if constraint is None:
            targets: list[Any] = self.alignments()
        elif isinstance(constraint, AlignmentConstraint):
            targets = [constraint]
        else:
            targets = list(constraint)
        toggled = []
        for c in targets:
            if isinstance(c, AlignmentConstraint):
                c.visible = value
                toggled.append(c)
        return toggled

    # ========== Consistency ==========

    def check(self) -> list[str]:
        """Report broken invariants. Empty list means consistent."""
        errors = []
        for c in self._constraints:
            if isinstance(c, AlignmentConstraint):
                if len(c.offsets) != len(c.node_offsets):
                    errors.append(
                        f"Alignment {c.constraint_id} has {len(c.offsets)} offsets "
                        f"but {len(c.node_offsets)} node offsets"
                    )
                if len(c.node_offsets) < 2:
                    errors.append(f"Alignment {c.constraint_id} has fewer than 2 members")
            elif isinstance(c, SeparationConstraint):
                if len(c.node_ids) != 2:
                    errors.append(f"Separation {c.constraint_id} does not have two endpoints")
            else:
                continue
            for nid in c.node_ids:
                if self._registry.find_index(nid) == -1:
                    errors.append(f"Constraint {c.constraint_id} references missing node {nid!r}")
                if not any(r is c for r in self._by_node.get(nid, [])):
                    errors.append(
                        f"Node {nid!r} is missing a back-reference to {c.constraint_id}"
                    )
        for nid, refs in self._by_node.items():
            for r in refs:
                if r not in self:
                    errors.append(f"Node {nid!r} references a deleted constraint")
        return errors
