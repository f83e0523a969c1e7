"""NetworkViz client: the primary interface for building and editing a graph."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Generator, Iterable, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from netviz.engine.alignment import AlignmentDetector, DragResult
from netviz.engine.constraints import (
    AlignmentConstraint,
    ConstraintSet,
    SeparationConstraint,
)
from netviz.engine.core import (
    ARROWHEADS,
    GraphRegistry,
    Group,
    Link,
    Node,
    Predicate,
    is_pinned,
)
from netviz.engine.geometry import Bounds
from netviz.engine.layout import LayoutEngine, LayoutOrchestrator, Renderer, StaticLayoutEngine
from netviz.engine.storage import SQLiteTripletStore
from netviz.engine.triplets import MemoryTripletStore, StoreError, Triplet, TripletStore
from netviz.models import (
    GraphStats,
    GroupChildren,
    LayoutOptions,
    SavedGraph,
    SavedGroup,
    SavedNode,
    SavedTriplet,
    ValidationResult,
)

logger = logging.getLogger("netviz.client")

# Public edge property names -> Predicate fields.
EDGE_PROPERTY_ALIASES = {
    "text": "text",
    "arrow": "arrowhead",
    "weight": "stroke_width",
    "dash": "stroke_dasharray",
    "color": "stroke",
}

_NODE_FIELDS = ("id", "x", "y", "width", "height", "fixed", "shortname", "color", "px", "py")
# Recognised node properties kept in Node.properties.
_NODE_EXTRA_PROPERTIES = ("node_shape", "img", "fixed_width")
# Node edits that only change styling and do not need a relayout.
_STYLE_ONLY_NODE_PROPERTIES = ("color", "node_shape")

DRAG_BIT = 2


# --- Conversion helpers: caller input -> engine core types ---


def _as_node(value: Node | Mapping[str, Any] | str) -> Node:
    if isinstance(value, Node):
        return value
    if isinstance(value, str):
        return Node(hash=value)
    if isinstance(value, Mapping):
        if not value.get("hash"):
            raise ValueError("Node requires a hash field.")
        known = {k: v for k, v in value.items() if k in ("hash", *_NODE_FIELDS)}
        properties = {
            k: v for k, v in value.items() if k not in known and k not in ("parent", "properties")
        }
        properties.update(value.get("properties") or {})
        return Node(**known, properties=properties)
    raise TypeError(f"Node must be a Node, mapping or hash string, got: {type(value).__name__}")


def _as_predicate(value: Predicate | Mapping[str, Any]) -> Predicate:
    if isinstance(value, Predicate):
        return value
    if isinstance(value, Mapping):
        return Predicate.from_dict(dict(value))
    raise TypeError(f"Predicate must be a Predicate or mapping, got: {type(value).__name__}")


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _point_along(route: Sequence[tuple[float, float]], fraction: float) -> tuple[float, float]:
    """Point at ``fraction`` of the total length of a polyline."""
    segments = list(zip(route, route[1:]))
    lengths = [((bx - ax) ** 2 + (by - ay) ** 2) ** 0.5 for (ax, ay), (bx, by) in segments]
    remaining = sum(lengths) * fraction
    for ((ax, ay), (bx, by)), length in zip(segments, lengths):
        if remaining <= length and length > 0:
            t = remaining / length
            return ax + (bx - ax) * t, ay + (by - ay) * t
        remaining -= length
    return route[-1]


class NetworkViz:
    """An interactive, constraint-annotated graph.

    Relationships are stored as triplets; nodes, groups and constraints are
    held in memory. Every mutation is serialized and followed by a layout
    restart unless ``prevent_layout`` is set or the call is inside ``batch()``.

    Constructor patterns:
        - ``NetworkViz()`` - in-memory triplet store
        - ``NetworkViz("graph.db")`` - triplets persisted to a SQLite file

    Example:
        ```python
        viz = NetworkViz()
        viz.add_triplet({"hash": "A"}, {"type": "rel", "hash": "p1"}, {"hash": "B"})
        viz.constrain(SeparationConstraint(axis="x", gap=30), ["A", "B"])
        ```
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        options: LayoutOptions | None = None,
        engine: LayoutEngine | None = None,
        renderer: Renderer | None = None,
        sizer: Callable[[Node], None] | None = None,
        pin: Callable[[Node], bool] = is_pinned,
        on_aligned: Callable[[Node, DragResult], None] | None = None,
    ) -> None:
        self.options = options if options is not None else LayoutOptions()
        self._path = str(path) if path else None
        self._store: TripletStore = (
            SQLiteTripletStore(self._path) if self._path else MemoryTripletStore()
        )
        self._registry = GraphRegistry()
        self._constraints = ConstraintSet(self._registry)
        if engine is None:
            engine = StaticLayoutEngine(
                link_length=self.options.edge_length,
                avoid_overlaps=self.options.avoid_overlaps,
                flow_axis=self.options.flow_direction,
            )
        self._layout = LayoutOrchestrator(
            self._registry,
            self._store,
            self._constraints,
            engine=engine,
            renderer=renderer,
            sizer=sizer,
            iterations=self.options.constraint_iterations,
            edge_routing=self.options.enable_edge_routing,
        )
        self._constraints.on_change = self._layout.publish_constraints
        self._detector = AlignmentDetector(
            self._registry.nodes,
            self._constraints,
            threshold=self.options.snap_threshold,
            enabled=self.options.snap_to_alignment,
            pin=pin,
            on_aligned=on_aligned,
        )
        # (subject, canonical predicate, object) -> separation created from the edge
        self._edge_constraints: dict[tuple[str, str, str], SeparationConstraint] = {}
        self._drag_visibility: list[tuple[AlignmentConstraint, bool]] = []
        self._drag_fixed: dict[str, bool | int] = {}
        if self._path:
            self._load_store_nodes()
        self._layout.initial_layout()

    def _load_store_nodes(self) -> None:
        """Register the endpoints of triplets already in a file-backed store."""
        for t in self._store.get({}):
            for node_hash in (t.subject, t.object):
                if not self._registry.has_node(node_hash):
                    self._register_node(Node(hash=node_hash))
            self._registry.set_predicate(t.predicate)

    def close(self) -> None:
        """Release the triplet store."""
        self._store.close()

    def __enter__(self) -> NetworkViz:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def layout(self) -> LayoutOrchestrator:
        return self._layout

    @property
    def constraints(self) -> ConstraintSet:
        return self._constraints

    @property
    def links(self) -> list[Link]:
        return list(self._layout.links)

    @property
    def detector(self) -> AlignmentDetector:
        return self._detector

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Group mutations under one lock and run a single layout restart at the end.

        Batches can nest; only the outermost batch restarts the layout.

        Note:
            Provides batched layout, **not** transaction rollback. If an
            exception occurs mid-batch, partial changes remain and no restart
            is run.
        """
        with self._layout.mutation():
            yield

    # --- Nodes ---

    def _register_node(self, node: Node) -> bool:
        if node.x is None:
            node.x = self.options.width / 2
        if node.y is None:
            node.y = self.options.height / 2
        return self._registry.add_node(node)

    def add_node(
        self,
        node: Node | Mapping[str, Any] | str | Iterable[Node | Mapping[str, Any]],
        prevent_layout: bool = False,
    ) -> list[Node]:
        """Add one node or a list of nodes.

        Nodes without a position are placed at the canvas centre. A node whose
        hash already exists is skipped.

        Returns:
            The nodes that were added.

        Raises:
            ValueError: If a node has no hash.
        """
        items = [node] if isinstance(node, (Node, Mapping, str)) else list(node)
        candidates = [_as_node(item) for item in items]
        added = []
        with self._layout.mutation(prevent_layout):
            for candidate in candidates:
                if self._register_node(candidate):
                    added.append(candidate)
        return added

    def remove_node(self, node_hash: str) -> bool:
        """Remove a node with its constraints, group membership and triplets.

        Returns:
            True if removed, False if the node does not exist.
        """
        node = self._registry.get_node(node_hash)
        if node is None:
            logger.warning("There is no node: %s", node_hash)
            return False
        with self._layout.mutation():
            # constraints resolve by node index, so they go first
            if self._constraints.constraints_of(node.id):
                self._constraints.unconstrain(node.id)
            if node.parent is not None:
                self._ungroup([{"nodes": [node.id]}])
            try:
                triplets = self._store.get({"subject": node_hash})
                triplets += self._store.get({"object": node_hash})
                self._store.delete([{"subject": node_hash}, {"object": node_hash}])
            except StoreError as exc:
                logger.error("Failed to delete triplets of node %s: %s", node_hash, exc)
                triplets = []
            for t in triplets:
                self._registry.remove_predicate(t.predicate.hash)
            self._edge_constraints = {
                k: v for k, v in self._edge_constraints.items() if node_hash not in (k[0], k[2])
            }
            self._registry.remove_node(node_hash)
            self._layout.rebuild_links()
            self._constraints.update_constraint_indexing()
        return True

    def edit_node(self, property: str, ids: str | Sequence[str], value: Any) -> list[Node]:
        """Set a property on one or more nodes.

        With a list of values the same length as ``ids`` (and longer than
        one), each node gets its own value; otherwise every node gets the
        first value.

        Returns:
            The edited nodes.

        Raises:
            ValueError: If ``property`` is the node hash, id or parent.
        """
        if property in ("hash", "id", "parent"):
            raise ValueError(f"Node {property} cannot be edited")
        id_list = _as_list(ids)
        values = _as_list(value)
        multiple = len(values) > 1 and len(values) == len(id_list)
        known = property in _NODE_FIELDS or property in _NODE_EXTRA_PROPERTIES
        if not known:
            logger.warning("Caution. You are modifying a new or unknown property: %s.", property)
        edited = []
        style_only = property in _STYLE_ONLY_NODE_PROPERTIES
        with self._layout.mutation(prevent_layout=style_only):
            for i, node_hash in enumerate(id_list):
                node = self._registry.get_node(node_hash)
                if node is None:
                    logger.warning("Cannot edit node, does not exist: %s", node_hash)
                    continue
                v = values[i] if multiple else values[0]
                if property in _NODE_FIELDS:
                    setattr(node, property, v)
                else:
                    node.properties[property] = v
                edited.append(node)
        if style_only:
            self._layout.render()
        return edited

    def get_node(self, node_hash: str | None = None) -> Node | list[Node] | None:
        """Get a node by hash, or every node when no hash is given."""
        if node_hash is None:
            return list(self._registry.nodes())
        return self._registry.get_node(node_hash)

    def has_node(self, node_hash: str) -> bool:
        return self._registry.has_node(node_hash)

    # --- Triplets ---

    def _triplet_key(self, t: Triplet) -> tuple[str, str, str]:
        return (t.subject, t.predicate.canonical(), t.object)

    def _rekey_edge_constraint(self, old: Triplet, new: Triplet) -> None:
        bound = self._edge_constraints.pop(self._triplet_key(old), None)
        if bound is not None:
            self._edge_constraints[self._triplet_key(new)] = bound

    def _drop_edge_constraint(self, t: Triplet) -> None:
        bound = self._edge_constraints.pop(self._triplet_key(t), None)
        if bound is not None and bound in self._constraints:
            self._constraints.remove_constraint(bound)

    def _resolve_triplet(
        self,
        subject: Node | Mapping[str, Any] | str,
        predicate: Predicate | Mapping[str, Any],
        obj: Node | Mapping[str, Any] | str,
    ) -> tuple[Node, Predicate, Node]:
        if subject is None or predicate is None or obj is None:
            raise ValueError("Triplets added need to include all three fields.")
        s = _as_node(subject)
        o = _as_node(obj)
        p = _as_predicate(predicate)
        p.subject = s.hash
        p.object = o.hash
        return s, p, o

    def add_triplet(
        self,
        subject: Node | Mapping[str, Any] | str,
        predicate: Predicate | Mapping[str, Any],
        obj: Node | Mapping[str, Any] | str,
        prevent_layout: bool = False,
    ) -> Triplet:
        """Add a relationship, creating either endpoint node if needed.

        If the predicate carries a separation constraint template, a
        separation constraint is created between the two endpoints.

        Raises:
            ValueError: If the triplet is invalid or the edge already exists.
            StoreError: If the triplet store fails.
        """
        s, p, o = self._resolve_triplet(subject, predicate, obj)
        triplet = Triplet(subject=s.hash, predicate=p, object=o.hash)
        with self._layout.mutation(prevent_layout):
            try:
                if self._store.get({"subject": s.hash, "predicate": p, "object": o.hash}):
                    raise ValueError("Edge already exists")
                self._store.put(triplet)
            except StoreError as exc:
                logger.error("Failed to add triplet %s -> %s: %s", s.hash, o.hash, exc)
                raise
            self._registry.set_predicate(p, warn_duplicate=True)
            for node in (s, o):
                if not self._registry.has_node(node.hash):
                    self._register_node(node)
            if p.constraint is not None:
                left = self._registry.get_node(s.hash)
                right = self._registry.get_node(o.hash)
                bound = self._constraints.constrain(p.constraint, [left.id, right.id])
                self._edge_constraints[self._triplet_key(triplet)] = bound
        return triplet

    def remove_triplet(
        self,
        subject: Node | Mapping[str, Any] | str,
        predicate: Predicate | Mapping[str, Any],
        obj: Node | Mapping[str, Any] | str,
        prevent_layout: bool = False,
    ) -> bool:
        """Remove a relationship. Silently does nothing if it does not exist.

        Returns:
            True if a triplet was deleted.
        """
        s, p, o = self._resolve_triplet(subject, predicate, obj)
        triplet = Triplet(subject=s.hash, predicate=p, object=o.hash)
        with self._layout.mutation(prevent_layout):
            try:
                removed = self._store.delete(triplet)
            except StoreError as exc:
                logger.error("Failed to remove triplet %s -> %s: %s", s.hash, o.hash, exc)
                return False
            self._registry.remove_predicate(p.hash)
            self._drop_edge_constraint(triplet)
        return removed > 0

    def update_triplet(
        self,
        subject: Node | Mapping[str, Any] | str,
        predicate: Predicate | Mapping[str, Any],
        obj: Node | Mapping[str, Any] | str,
    ) -> None:
        """Replace the relationship(s) between subject and object with ``predicate``.

        Replaced predicates leave the predicate cache and their edge
        separations are removed, so their hashes no longer resolve.
        """
        s, p, o = self._resolve_triplet(subject, predicate, obj)
        triplet = Triplet(subject=s.hash, predicate=p, object=o.hash)
        with self._layout.mutation():
            try:
                replaced = self._store.get({"subject": s.hash, "object": o.hash})
                self._store.delete({"subject": s.hash, "object": o.hash})
                self._store.put(triplet)
            except StoreError as exc:
                logger.error("Failed to update triplet %s -> %s: %s", s.hash, o.hash, exc)
                return
            for old in replaced:
                self._registry.remove_predicate(old.predicate.hash)
                self._drop_edge_constraint(old)
            self._registry.set_predicate(p)
            if p.constraint is not None:
                left = self._registry.get_node(s.hash)
                right = self._registry.get_node(o.hash)
                if left is not None and right is not None:
                    bound = self._constraints.constrain(p.constraint, [left.id, right.id])
                    self._edge_constraints[self._triplet_key(triplet)] = bound

    def reverse_triplets(self) -> int:
        """Swap subject and object of every relationship.

        Returns:
            Number of triplets reversed.
        """
        with self._layout.mutation():
            try:
                triplets = self._store.get({})
                self._store.delete(triplets)
            except StoreError as exc:
                logger.error("Failed to read triplets for reversal: %s", exc)
                return 0
            reversed_triplets = []
            moves = []
            for t in triplets:
                old = copy.deepcopy(t)
                t.predicate.subject, t.predicate.object = t.object, t.subject
                new = Triplet(subject=t.object, predicate=t.predicate, object=t.subject)
                reversed_triplets.append(new)
                moves.append((old, new))
            try:
                self._store.put(reversed_triplets)
            except StoreError as exc:
                logger.error("Failed to write reversed triplets: %s", exc)
                return 0
            # pop every old key first; A->B and B->A may swap keys
            bounds = [
                (new, self._edge_constraints.pop(self._triplet_key(old), None))
                for old, new in moves
            ]
            for new, bound in bounds:
                if bound is not None:
                    self._edge_constraints[self._triplet_key(new)] = bound
                self._registry.set_predicate(new.predicate)
        return len(reversed_triplets)

    def triplets(self, pattern: Mapping[str, Any] | None = None) -> list[Triplet]:
        """Query the triplet store. An empty pattern returns everything."""
        return self._store.get(dict(pattern or {}))

    def edit_edge(self, property: str, ids: str | Sequence[str], value: Any) -> list[Predicate]:
        """Set a property on one or more edges identified by predicate hash.

        ``property`` accepts the public names ``text``, ``arrow``, ``weight``,
        ``dash`` and ``color``; any other name is stored in the predicate's
        extras with a warning. Value broadcasting works as in ``edit_node``.

        The stored triplet is replaced by exact match on subject, old
        predicate and object rather than by the subject/object pair alone,
        so parallel edges between the same nodes are left untouched. A
        cached predicate with no matching stored triplet is dropped from
        the cache and not written back.

        Returns:
            The edited predicates.
        """
        id_list = _as_list(ids)
        values = _as_list(value)
        multiple = len(values) > 1 and len(values) == len(id_list)
        field_name = EDGE_PROPERTY_ALIASES.get(property)
        if field_name is None:
            logger.warning("Caution. You are modifying a new or unknown property: %s.", property)
        elif field_name == "arrowhead" and any(v not in ARROWHEADS for v in values):
            raise ValueError(f"Predicate arrowhead must be one of {ARROWHEADS}, got: {values!r}")

        with self._layout.mutation(prevent_layout=field_name is None):
            edited: list[Predicate] = []
            for i, edge_hash in enumerate(id_list):
                cached = self._registry.get_predicate(edge_hash)
                if cached is None:
                    logger.warning("Cannot edit edge, does not exist: %s", edge_hash)
                    continue
                predicate = copy.deepcopy(cached)
                v = values[i] if multiple else values[0]
                if field_name is not None:
                    setattr(predicate, field_name, v)
                else:
                    predicate.extras[property] = v
                stale = Triplet(subject=cached.subject, predicate=cached, object=cached.object)
                fresh = Triplet(
                    subject=predicate.subject, predicate=predicate, object=predicate.object
                )
                try:
                    deleted = self._store.delete(
                        {"subject": stale.subject, "predicate": cached, "object": stale.object}
                    )
                    if not deleted:
                        logger.warning("Cannot edit edge, no stored triplet matches: %s", edge_hash)
                        self._registry.remove_predicate(edge_hash)
                        continue
                    self._store.put(fresh)
                except StoreError as exc:
                    logger.error("Failed to write edited edge %s: %s", edge_hash, exc)
                    continue
                self._registry.set_predicate(predicate)
                self._rekey_edge_constraint(stale, fresh)
                edited.append(predicate)
        return edited

    def get_predicate(self, predicate_hash: str | None = None) -> Predicate | list[Predicate] | None:
        """Get a predicate by hash, or every hashed predicate when no hash is given."""
        if predicate_hash is None:
            return self._registry.predicates()
        return self._registry.get_predicate(predicate_hash)

    # --- Groups ---

    def add_to_group(
        self,
        group: str | Mapping[str, Any] | Group,
        children: Mapping[str, Sequence[str]] | GroupChildren,
        prevent_layout: bool = False,
    ) -> Group:
        """Add nodes and/or sub-groups to a group, creating the group if needed.

        Members that already belong to another group are moved.

        Args:
            group: Group id, or a mapping/Group with ``id`` and optional ``data``
            children: ``{"nodes": [node ids], "groups": [group ids]}``

        Raises:
            ValueError: If a node or group does not exist, or a group would
                contain itself.
        """
        if isinstance(children, GroupChildren):
            children = children.model_dump()
        node_ids = list(children.get("nodes") or [])
        group_ids = list(children.get("groups") or [])
        if isinstance(group, str):
            group_id, data = group, None
        elif isinstance(group, Group):
            group_id, data = group.id, group.data
        else:
            group_id, data = group["id"], group.get("data")

        if not all(self._registry.find_index(nid) >= 0 for nid in node_ids):
            raise ValueError("One or more nodes do not exist. Check node hash is correct")
        if not all(self._registry.get_group(gid) is not None for gid in group_ids):
            raise ValueError("One or more groups do not exist.")
        if group_id in group_ids:
            raise ValueError(f"Group {group_id!r} cannot contain itself")

        with self._layout.mutation(prevent_layout):
            existing = self._registry.get_group(group_id)
            if existing is not None and data is None:
                data = existing.data
            moved_nodes = [
                nid for nid in node_ids if self._registry.get_node_by_id(nid).parent is not None
            ]
            moved_groups = [
                gid for gid in group_ids if self._registry.get_group(gid).parent is not None
            ]
            if moved_nodes or moved_groups:
                self._ungroup([{"nodes": moved_nodes, "groups": moved_groups}])

            target = self._registry.get_group(group_id)
            if target is None:
                if data is None:
                    data = {"level": 0, "color": self.options.default_group_color}
                target = Group(id=group_id, data=dict(data))
                self._registry.add_group(target)
            for nid in node_ids:
                if nid not in target.leaves:
                    target.leaves.append(nid)
                self._registry.get_node_by_id(nid).parent = group_id
            for gid in group_ids:
                sub = self._registry.get_group(gid)
                if sub is None:
                    logger.warning("Group %s was pruned while regrouping, skipping", gid)
                    continue
                if gid not in target.groups:
                    target.groups.append(gid)
                sub.parent = group_id
                sub.data["level"] = target.level + 1
        return target

    def ungroup(
        self,
        children: Mapping[str, Sequence[str]] | Sequence[Mapping[str, Sequence[str]]],
        prevent_layout: bool = False,
    ) -> None:
        """Remove nodes and/or groups from their parent groups.

        Groups left with no leaves and at most one sub-group are deleted.
        """
        items = [children] if isinstance(children, Mapping) else list(children)
        with self._layout.mutation(prevent_layout):
            self._ungroup(items)

    def _ungroup(self, items: Iterable[Mapping[str, Sequence[str]]]) -> None:
        for child in items:
            for nid in child.get("nodes") or []:
                node = self._registry.get_node_by_id(nid)
                if node is None or node.parent is None:
                    continue
                parent = self._registry.get_group(node.parent)
                if parent is not None:
                    parent.leaves = [leaf for leaf in parent.leaves if leaf != nid]
                node.parent = None
            for gid in child.get("groups") or []:
                sub = self._registry.get_group(gid)
                if sub is None or sub.parent is None:
                    continue
                parent = self._registry.get_group(sub.parent)
                if parent is not None:
                    parent.groups = [g for g in parent.groups if g != gid]
                sub.parent = None
                sub.data["level"] = 0
        self._prune_groups()

    def _prune_groups(self) -> None:
        pruned = True
        while pruned:
            pruned = False
            for group in list(self._registry.groups()):
                if not group.is_empty:
                    continue
                self._registry.remove_group(group.id)
                if group.parent is not None:
                    parent = self._registry.get_group(group.parent)
                    if parent is not None:
                        parent.groups = [g for g in parent.groups if g != group.id]
                for gid in group.groups:
                    sub = self._registry.get_group(gid)
                    if sub is not None:
                        sub.parent = None
                        sub.data["level"] = 0
                pruned = True

    def get_group(self, group_id: str | None = None) -> Group | list[Group] | None:
        """Get a group by id, or every group when no id is given."""
        if group_id is None:
            return list(self._registry.groups())
        return self._registry.get_group(group_id)

    # --- Constraints ---

    def constrain(self, template: Any, targets: Iterable[Any] = ()) -> Any:
        """Create a constraint or extend an existing alignment. See ``ConstraintSet.constrain``."""
        with self._layout.mutation():
            return self._constraints.constrain(template, list(targets))

    def unconstrain(
        self,
        node_ids: str | Iterable[str],
        constraint: SeparationConstraint | AlignmentConstraint | None = None,
    ) -> None:
        with self._layout.mutation():
            self._constraints.unconstrain(node_ids, constraint)

    def remove_constraint(self, constraint: Any) -> bool:
        """Remove a constraint given the object or its ``constraint_id``."""
        if isinstance(constraint, str):
            found = self._constraints.get(constraint)
            if found is None:
                logger.warning("Cannot delete constraint, does not exist: %s", constraint)
                return False
            constraint = found
        with self._layout.mutation():
            return self._constraints.remove_constraint(constraint)

    def update_constraint_indexing(self) -> None:
        with self._layout.mutation():
            self._constraints.update_constraint_indexing()

    def constraint_visibility(
        self,
        value: bool = False,
        constraint: AlignmentConstraint | Iterable[AlignmentConstraint] | None = None,
    ) -> list[AlignmentConstraint]:
        with self._layout.lock:
            toggled = self._constraints.constraint_visibility(value, constraint)
        self._layout.render()
        return toggled

    def get_constraints(self) -> list[Any]:
        return self._constraints.all()

    # --- Layout passthrough ---

    def restart(self, iterations: int | None = None) -> None:
        with self._layout.lock:
            self._layout.restart(iterations)

    def handle_disconnects(self) -> None:
        self._layout.handle_disconnects()

    # --- Interaction ---

    def get_by_coords(self, x: float, X: float, y: float, Y: float) -> dict[str, list[Any]]:
        """Nodes, groups and routed edges inside a selection box.

        The box may be given with its corners in any order. An edge is inside
        when the points at one and two thirds of its route both are.
        """
        box = Bounds(min(x, X), max(x, X), min(y, Y), max(y, Y))

        def inside(point: tuple[float, float]) -> bool:
            return box.x <= point[0] <= box.X and box.y <= point[1] <= box.Y

        nodes = [n for n in self._registry.nodes() if n.bounds.intersects(box)]
        groups = [
            g for g in self._registry.groups() if g.bounds is not None and g.bounds.intersects(box)
        ]
        edges = [
            link
            for link in self._layout.links
            if link.route
            and inside(_point_along(link.route, 1 / 3))
            and inside(_point_along(link.route, 2 / 3))
        ]
        return {"nodes": nodes, "groups": groups, "edges": edges}

    def drag_start(self, node_hash: str) -> Node | None:
        """Begin dragging a node: set the drag pin bit and show its alignment guides."""
        node = self._registry.get_node(node_hash)
        if node is None:
            logger.warning("Cannot drag node, does not exist: %s", node_hash)
            return None
        with self._layout.lock:
            self._drag_fixed[node_hash] = node.fixed
            node.fixed = int(node.fixed) | DRAG_BIT
            node.px, node.py = node.x, node.y
            self._drag_visibility = [
                (c, c.visible)
                for c in self._constraints.constraints_of(node.id)
                if isinstance(c, AlignmentConstraint)
            ]
            for c, _ in self._drag_visibility:
                c.visible = True
        return node

    def drag_move(
        self,
        node_hash: str,
        x: float,
        y: float,
        dx: float = 0,
        dy: float = 0,
        selection: Sequence[str] | None = None,
    ) -> DragResult:
        """Move a dragged node's transient position to the pointer and snap it.

        With more than one node selected, the alignment search is skipped and
        every other selected node moves by ``(dx, dy)``.
        """
        node = self._registry.get_node(node_hash)
        if node is None:
            logger.warning("Cannot drag node, does not exist: %s", node_hash)
            return DragResult()
        with self._layout.lock:
            node.px, node.py = x, y
            if selection is not None and len(selection) > 1:
                for other_hash in selection:
                    if other_hash == node_hash:
                        continue
                    other = self._registry.get_node(other_hash)
                    if other is None:
                        continue
                    other.px = (other.px if other.px is not None else other.x or 0.0) + dx
                    other.py = (other.py if other.py is not None else other.y or 0.0) + dy
                return DragResult(px=node.px, py=node.py)

            self._layout.renderer.clear_guides()
            result = self._detector.detect(node, x, y)
            result.px, result.py = node.px, node.py
            if result:
                self._layout.renderer.show_guides(result)
        return result

    def drag_end(self, node_hash: str) -> Node | None:
        """Finish a drag: commit the transient position and restore guide visibility."""
        node = self._registry.get_node(node_hash)
        if node is None:
            logger.warning("Cannot drag node, does not exist: %s", node_hash)
            return None
        self._layout.renderer.clear_guides()
        with self._layout.mutation():
            for c, visible in self._drag_visibility:
                c.visible = visible
            self._drag_visibility = []
            node.fixed = self._drag_fixed.pop(node_hash, int(node.fixed) & ~DRAG_BIT)
            if node.px is not None:
                node.x = node.px
            if node.py is not None:
                node.y = node.py
        return node

    # --- Serialization ---

    def to_document(self) -> SavedGraph:
        """Snapshot the graph as a ``SavedGraph`` model."""
        return SavedGraph(
            triplets=[
                SavedTriplet(subject=t.subject, predicate=t.predicate.to_dict(), object=t.object)
                for t in self._store.get({})
            ],
            nodes=[SavedNode(hash=n.hash, x=n.x, y=n.y) for n in self._registry.nodes()],
            groups=[
                SavedGroup(
                    id=g.id,
                    data=g.data,
                    children=GroupChildren(nodes=list(g.leaves), groups=list(g.groups)),
                )
                for g in self._registry.groups()
            ],
        )

    def save_graph(self) -> str:
        """Serialize the graph to a JSON document string."""
        return self.to_document().model_dump_json()

    @classmethod
    def from_document(
        cls, document: str | Mapping[str, Any] | SavedGraph, **kwargs: Any
    ) -> NetworkViz:
        """Build a new instance from a saved document.

        Keyword arguments are passed to the constructor.
        """
        if isinstance(document, SavedGraph):
            doc = document
        elif isinstance(document, str):
            doc = SavedGraph.model_validate_json(document)
        else:
            doc = SavedGraph.model_validate(document)

        viz = cls(**kwargs)
        with viz.batch():
            viz.add_node([Node(hash=n.hash, x=n.x, y=n.y) for n in doc.nodes])
            for t in doc.triplets:
                viz.add_triplet(t.subject, dict(t.predicate), t.object)
            for g in doc.groups:
                viz.add_to_group({"id": g.id, "data": g.data}, {"nodes": g.children.nodes})
            for g in doc.groups:
                if g.children.groups:
                    viz.add_to_group(g.id, {"groups": g.children.groups})
        return viz

    # --- Consistency ---

    def validate(self) -> ValidationResult:
        """Check the graph for internal consistency.

        Returns:
            A ``ValidationResult`` with ``valid``, ``errors``, and ``warnings`` fields.
        """
        errors = list(self._constraints.check())
        warnings: list[str] = []

        try:
            triplets = self._store.get({})
        except StoreError as exc:
            return ValidationResult(valid=False, errors=[str(exc)])
        seen_hashes: dict[str, int] = {}
        for t in triplets:
            for end in (t.subject, t.object):
                if not self._registry.has_node(end):
                    warnings.append(f"Triplet endpoint {end!r} is not a registered node")
            if t.predicate.hash is not None:
                seen_hashes[t.predicate.hash] = seen_hashes.get(t.predicate.hash, 0) + 1
        for edge_hash, count in seen_hashes.items():
            if count > 1:
                warnings.append(f"Predicate hash {edge_hash!r} is used by {count} triplets")

        for node in self._registry.nodes():
            if node.parent is None:
                continue
            parent = self._registry.get_group(node.parent)
            if parent is None:
                errors.append(f"Node {node.hash!r} references missing group {node.parent!r}")
            elif node.id not in parent.leaves:
                errors.append(f"Node {node.hash!r} is not a leaf of its group {node.parent!r}")
        for group in self._registry.groups():
            for nid in group.leaves:
                member = self._registry.get_node_by_id(nid)
                if member is None:
                    errors.append(f"Group {group.id!r} references missing node {nid!r}")
                elif member.parent != group.id:
                    errors.append(f"Node {nid!r} in group {group.id!r} has parent {member.parent!r}")
            for gid in group.groups:
                sub = self._registry.get_group(gid)
                if sub is None:
                    errors.append(f"Group {group.id!r} references missing group {gid!r}")
                elif sub.parent != group.id:
                    errors.append(f"Group {gid!r} in group {group.id!r} has parent {sub.parent!r}")
            if group.is_empty:
                warnings.append(f"Group {group.id!r} is empty and will be pruned")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def stats(self) -> GraphStats:
        """Get node, triplet, group and constraint counts.

        Returns:
            A ``GraphStats`` with totals and ``triplets_by_type``.
        """
        s = self._registry.stats()
        by_type: dict[str, int] = {}
        triplets = self._store.get({})
        for t in triplets:
            by_type[t.predicate.type] = by_type.get(t.predicate.type, 0) + 1
        return GraphStats(
            node_count=s["num_nodes"],
            triplet_count=len(triplets),
            group_count=s["num_groups"],
            constraint_count=len(self._constraints),
            pinned_count=s["num_pinned"],
            triplets_by_type=by_type,
        )
