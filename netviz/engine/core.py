"""Core graph entities and the in-memory registry.

The registry owns the canonical mappings from stable identifiers to nodes,
groups and predicates. Relationships themselves live in the triplet store;
the registry only caches predicates that carry a ``hash`` so they can be
edited later.

Cross references (node -> parent group, group -> children) are stored as
stable identifiers and resolved through the registry at use time, so deleting
an entity never leaves a dangling object reference behind.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from netviz.engine.geometry import Bounds

if TYPE_CHECKING:
    from netviz.engine.constraints import SeparationConstraint

logger = logging.getLogger("netviz.registry")

ARROWHEADS = (-1, 0, 1, 2)

# Edge style fields with a typed home on Predicate. Anything else goes to extras.
_PREDICATE_FIELDS = (
    "type",
    "hash",
    "subject",
    "object",
    "text",
    "stroke",
    "stroke_width",
    "stroke_dasharray",
    "arrowhead",
)


def is_pinned(node: Node) -> bool:
    """Default pin predicate: bit 0 of ``fixed`` (or ``fixed is True``)."""
    return bool(int(node.fixed) & 1)


@dataclass(eq=False)
class Node:
    """A graph vertex.

    ``x`` and ``y`` are the centre of the node, matching the layout engine.
    ``px``/``py`` hold the transient target position while the node is dragged.

    Attributes:
        hash: Unique key in the registry
        id: Display/selection key; defaults to ``hash``
        x: Centre x coordinate (filled in by the registry when missing)
        y: Centre y coordinate (filled in by the registry when missing)
        width: Rendered width
        height: Rendered height
        fixed: Pin state. Bit 0 is user-set, bit 1 is set while dragging
        shortname: Optional label text
        color: Optional fill colour
        parent: Id of the owning group, if any
        properties: Caller-defined fields

    Raises:
        TypeError: If hash is not a string
        ValueError: If hash is empty
    """

    hash: str
    id: str | None = None
    x: float | None = None
    y: float | None = None
    width: float = 0.0
    height: float = 0.0
    fixed: bool | int = False
    shortname: str | None = None
    color: str | None = None
    px: float | None = None
    py: float | None = None
    parent: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.hash, str):
            raise TypeError(f"Node hash must be a string, got: {type(self.hash).__name__}")
        if not self.hash:
            raise ValueError("Node requires a hash field.")
        if self.id is None:
            self.id = self.hash
        elif not isinstance(self.id, str):
            raise TypeError(f"Node id must be a string, got: {type(self.id).__name__}")

    @property
    def bounds(self) -> Bounds:
        """Rectangle derived from the centre position and rendered size."""
        return Bounds.around(self.x or 0.0, self.y or 0.0, self.width, self.height)

    def __repr__(self) -> str:
        return f"Node({self.hash!r}, x={self.x}, y={self.y}, fixed={self.fixed})"


@dataclass
class Predicate:
    """The typed, styleable payload of a relationship.

    Attributes:
        type: Relationship tag, required
        hash: Optional unique edge identifier, enables later edits
        subject: Hash of the subject node (set when the triplet is added)
        object: Hash of the object node (set when the triplet is added)
        text: Edge label
        stroke: Line colour
        stroke_width: Line width
        stroke_dasharray: Dash pattern
        arrowhead: 0 none, 1 forward, -1 backward, 2 both
        constraint: Optional separation constraint template between the endpoints
        extras: Caller-defined fields

    Raises:
        TypeError: If type is not a string
        ValueError: If type is empty or arrowhead is not a known value
    """

    type: str
    hash: str | None = None
    subject: str | None = None
    object: str | None = None
    text: str | None = None
    stroke: str | None = None
    stroke_width: float | None = None
    stroke_dasharray: str | float | None = None
    arrowhead: int = 1
    constraint: SeparationConstraint | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.type, str):
            raise TypeError("Predicate type field must be a string")
        if not self.type:
            raise ValueError("Predicate requires type field.")
        if self.arrowhead not in ARROWHEADS:
            raise ValueError(
                f"Predicate arrowhead must be one of {ARROWHEADS}, got: {self.arrowhead!r}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Plain-JSON form used by the triplet store and saved documents."""
        data: dict[str, Any] = dict(self.extras)
        for name in _PREDICATE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.constraint is not None:
            data["constraint"] = self.constraint.template()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Predicate:
        from netviz.engine.constraints import SeparationConstraint

        known = {k: v for k, v in data.items() if k in _PREDICATE_FIELDS}
        extras = {
            k: v for k, v in data.items() if k not in _PREDICATE_FIELDS and k != "constraint"
        }
        if "type" not in known:
            raise ValueError("Predicate requires type field.")
        constraint = None
        if data.get("constraint") is not None:
            constraint = SeparationConstraint.from_template(data["constraint"])
        return cls(**known, constraint=constraint, extras=extras)

    def canonical(self) -> str:
        """Stable string used for by-value predicate matching."""
        return json.dumps(self.to_dict(), sort_keys=True, default=str)


@dataclass(eq=False)
class Group:
    """A hierarchical cluster of nodes and sub-groups.

    ``leaves`` and ``groups`` hold node ids and group ids; the registry
    resolves them to engine indices when the layout is pushed.
    """

    id: str
    leaves: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    parent: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    bounds: Bounds | None = None

    @property
    def level(self) -> int:
        return self.data.get("level", 0)

    @property
    def is_empty(self) -> bool:
        return len(self.leaves) == 0 and len(self.groups) <= 1


@dataclass(eq=False)
class Link:
    """A derived edge view. Rebuilt from the triplet store, never patched."""

    source: Node
    target: Node
    predicate: Predicate
    route: list[tuple[float, float]] | None = None


class GraphRegistry:
    """Canonical in-memory mappings for nodes, groups and predicates.

    Node order matters: constraints and groups are handed to the layout
    engine as indices into ``nodes()``.
    """

    def __init__(self) -> None:
        self._nodes: list[Node] = []
        self._nodes_by_hash: dict[str, Node] = {}
        self._groups: list[Group] = []
        self._groups_by_id: dict[str, Group] = {}
        self._predicates: dict[str, Predicate] = {}

    # ========== Node Operations ==========

    def add_node(self, node: Node) -> bool:
        """Register a node. Returns False (and changes nothing) if the hash exists."""
        if node.hash in self._nodes_by_hash:
            return False
        self._nodes.append(node)
        self._nodes_by_hash[node.hash] = node
        return True

    def get_node(self, node_hash: str) -> Node | None:
        return self._nodes_by_hash.get(node_hash)

    def has_node(self, node_hash: str) -> bool:
        return node_hash in self._nodes_by_hash

    def nodes(self) -> list[Node]:
        """Live node list in engine order."""
        return self._nodes

    def find_index(self, node_id: str) -> int:
        """Engine index of the node with display id ``node_id``, or -1."""
        for i, node in enumerate(self._nodes):
            if node.id == node_id:
                return i
        return -1

    def get_node_by_id(self, node_id: str) -> Node | None:
        i = self.find_index(node_id)
        return self._nodes[i] if i >= 0 else None

    def remove_node(self, node_hash: str) -> Node | None:
        """Unregister a node. Returns the removed node or None if not found.

        Warning:
            Does NOT touch constraints, groups or triplets. Callers are expected
            to strip those first and re-index constraints afterwards.
        """
        node = self._nodes_by_hash.pop(node_hash, None)
        if node is None:
            return None
        self._nodes = [n for n in self._nodes if n is not node]
        return node

    # ========== Group Operations ==========

    def add_group(self, group: Group) -> None:
        if group.id in self._groups_by_id:
            raise ValueError(f"Group {group.id!r} already exists")
        self._groups.append(group)
        self._groups_by_id[group.id] = group

    def get_group(self, group_id: str) -> Group | None:
        return self._groups_by_id.get(group_id)

    def groups(self) -> list[Group]:
        return self._groups

    def group_index(self, group_id: str) -> int:
        for i, group in enumerate(self._groups):
            if group.id == group_id:
                return i
        return -1

    def remove_group(self, group_id: str) -> Group | None:
        group = self._groups_by_id.pop(group_id, None)
        if group is None:
            return None
        self._groups = [g for g in self._groups if g is not group]
        return group

    # ========== Predicate Operations ==========

    def set_predicate(self, predicate: Predicate, *, warn_duplicate: bool = False) -> None:
        """Cache a hashed predicate. Predicates without a hash are ignored."""
        if predicate.hash is None:
            return
        if warn_duplicate and predicate.hash in self._predicates:
            logger.warning(
                "Edge hash must be unique. There already exists a predicate with the hash: %s",
                predicate.hash,
            )
        self._predicates[predicate.hash] = predicate

    def get_predicate(self, predicate_hash: str) -> Predicate | None:
        return self._predicates.get(predicate_hash)

    def predicates(self) -> list[Predicate]:
        return list(self._predicates.values())

    def remove_predicate(self, predicate_hash: str | None) -> bool:
        if predicate_hash is None:
            return False
        return self._predicates.pop(predicate_hash, None) is not None

    # ========== Engine views ==========

    def engine_groups(self) -> list[dict[str, Any]]:
        """Groups with members resolved to engine indices.

        Members that no longer resolve are dropped from the view.
        """
        result = []
        for group in self._groups:
            leaves = [i for i in (self.find_index(nid) for nid in group.leaves) if i >= 0]
            subgroups = [i for i in (self.group_index(gid) for gid in group.groups) if i >= 0]
            result.append({"id": group.id, "leaves": leaves, "groups": subgroups})
        return result

    def stats(self) -> dict[str, Any]:
        return {
            "num_nodes": len(self._nodes),
            "num_groups": len(self._groups),
            "num_predicates": len(self._predicates),
            "num_pinned": sum(1 for n in self._nodes if is_pinned(n)),
        }
