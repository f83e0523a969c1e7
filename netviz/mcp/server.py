"""netviz MCP server: exposes graph, group and constraint operations as tools for AI agents."""

from __future__ import annotations

import functools
import logging
import os
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from netviz.client import NetworkViz
from netviz.engine.constraints import AlignmentConstraint, NodeOffset, SeparationConstraint
from netviz.engine.core import Group, Node, Predicate
from netviz.engine.persistence import load_document, save_document

# All logging goes to stderr; stdout carries JSON-RPC
logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("netviz.mcp")

# ---------------------------------------------------------------------------
# Client singleton for the single-process stdio server
# ---------------------------------------------------------------------------

_CLIENT: NetworkViz | None = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    global _CLIENT
    db_path = os.environ.get("NETVIZ_DB_PATH")
    graph_path = os.environ.get("NETVIZ_GRAPH_PATH")
    if graph_path and Path(graph_path).exists():
        logger.info("Loading graph document: %s", graph_path)
        _CLIENT = NetworkViz.from_document(load_document(graph_path))
    else:
        logger.info("Opening netviz triplet store: %s", db_path or ":memory:")
        _CLIENT = NetworkViz(db_path)
    try:
        yield {}
    finally:
        if _CLIENT is not None:
            if graph_path:
                save_document(_CLIENT.to_document(), graph_path)
                logger.info("Saved graph document: %s", graph_path)
            _CLIENT.close()
            _CLIENT = None


mcp = FastMCP(
    "netviz",
    instructions=(
        "netviz is an interactive graph of nodes, typed relationships (triplets) and groups, "
        "with layout constraints. "
        "Key behaviors: Nodes are keyed by hash and are auto-created when referenced in a triplet. "
        "Edges with a hash can be edited later with edit_edge. "
        "Separation constraints keep two nodes a gap apart on one axis; alignment constraints "
        "line up two or more nodes on one axis and can be extended by passing constraint_id. "
        "Constraints are referenced by the constraint_id returned when they are created."
    ),
    lifespan=app_lifespan,
)


def _get_client() -> NetworkViz:
    """Return the active NetworkViz client."""
    if _CLIENT is None:
        raise RuntimeError("netviz client is not initialized")
    return _CLIENT


def _safe_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Tool %s failed", fn.__name__)
            return {"error": True, "message": f"{type(exc).__name__}: {exc}"}
    return wrapper


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _node_dict(node: Node) -> dict:
    return {
        "hash": node.hash,
        "id": node.id,
        "x": node.x,
        "y": node.y,
        "width": node.width,
        "height": node.height,
        "fixed": node.fixed,
        "shortname": node.shortname,
        "color": node.color,
        "parent": node.parent,
        "properties": node.properties,
    }


def _group_dict(group: Group) -> dict:
    return {
        "id": group.id,
        "leaves": list(group.leaves),
        "groups": list(group.groups),
        "parent": group.parent,
        "data": group.data,
    }


def _constraint_dict(constraint: Any) -> dict:
    if isinstance(constraint, SeparationConstraint):
        return {
            "constraint_id": constraint.constraint_id,
            "type": "separation",
            "axis": constraint.axis,
            "gap": constraint.gap,
            "equality": constraint.equality,
            "nodes": constraint.node_ids,
        }
    if isinstance(constraint, AlignmentConstraint):
        return {
            "constraint_id": constraint.constraint_id,
            "type": "alignment",
            "axis": constraint.axis,
            "visible": constraint.visible,
            "nodes": [{"id": no.id, "offset": no.offset} for no in constraint.node_offsets],
        }
    return {"type": "unknown", "value": repr(constraint)}


def _find_constraint(constraint_id: str) -> Any:
    constraint = _get_client().constraints.get(constraint_id)
    if constraint is None:
        raise ValueError(f"Constraint not found: {constraint_id}")
    return constraint


# ===================================================================
# Node tools (4)
# ===================================================================


@mcp.tool()
@_safe_tool
def add_node(
    hash: str,
    x: float | None = None,
    y: float | None = None,
    width: float = 0.0,
    height: float = 0.0,
    fixed: bool = False,
    shortname: str | None = None,
    properties: dict[str, Any] | None = None,
) -> dict:
    """Add a node to the graph. Existing hashes are left unchanged.

    Args:
        hash: Unique node key.
        x: Centre x. Defaults to the canvas centre.
        y: Centre y. Defaults to the canvas centre.
        width: Node width.
        height: Node height.
        fixed: Pin the node in place.
        shortname: Label text.
        properties: Arbitrary key-value metadata for the node.
    """
    viz = _get_client()
    node = Node(
        hash=hash,
        x=x,
        y=y,
        width=width,
        height=height,
        fixed=fixed,
        shortname=shortname,
        properties=properties or {},
    )
    added = viz.add_node(node)
    current = viz.get_node(hash)
    return {**_node_dict(current), "created": bool(added)}


@mcp.tool()
@_safe_tool
def get_node(hash: str) -> dict:
    """Get a node by its hash.

    Args:
        hash: The node hash to look up.
    """
    node = _get_client().get_node(hash)
    if node is None:
        return {"found": False, "hash": hash}
    return _node_dict(node)


@mcp.tool()
@_safe_tool
def remove_node(hash: str) -> dict:
    """Remove a node with its triplets, constraints and group membership.

    Args:
        hash: The node hash to remove.
    """
    return {"deleted": _get_client().remove_node(hash), "hash": hash}


@mcp.tool()
@_safe_tool
def edit_node(property: str, ids: list[str], value: Any) -> dict:
    """Set a property on one or more nodes.

    Args:
        property: Field to set, e.g. "x", "fixed", "color", "shortname".
        ids: Node hashes to edit.
        value: One value for every node, or a list with one value per node.
    """
    nodes = _get_client().edit_node(property, ids, value)
    return {"edited": [_node_dict(n) for n in nodes]}


# ===================================================================
# Triplet tools (5)
# ===================================================================


@mcp.tool()
@_safe_tool
def add_triplet(
    subject: str,
    object: str,
    type: str,
    hash: str | None = None,
    text: str | None = None,
    arrowhead: int = 1,
    separation: dict[str, Any] | None = None,
    extras: dict[str, Any] | None = None,
) -> dict:
    """Add a relationship between two nodes. Missing nodes are created.

    Args:
        subject: Subject node hash.
        object: Object node hash.
        type: Relationship type.
        hash: Optional unique edge id, required to edit the edge later.
        text: Edge label.
        arrowhead: 0 none, 1 forward, -1 backward, 2 both.
        separation: Optional {"axis", "gap", "equality"} separation between the endpoints.
        extras: Arbitrary key-value metadata for the edge.
    """
    predicate = Predicate(
        type=type,
        hash=hash,
        text=text,
        arrowhead=arrowhead,
        constraint=SeparationConstraint.from_template(separation) if separation else None,
        extras=extras or {},
    )
    triplet = _get_client().add_triplet(subject, predicate, object)
    return triplet.to_dict()


@mcp.tool()
@_safe_tool
def remove_triplet(subject: str, object: str, predicate: dict[str, Any]) -> dict:
    """Remove a relationship.

    Args:
        subject: Subject node hash.
        object: Object node hash.
        predicate: The predicate exactly as returned by query_triplets.
    """
    deleted = _get_client().remove_triplet(subject, predicate, object)
    return {"deleted": deleted}


@mcp.tool()
@_safe_tool
def query_triplets(
    subject: str | None = None,
    object: str | None = None,
    type: str | None = None,
) -> dict:
    """Find relationships, optionally filtered by endpoint and type.

    Args:
        subject: Only triplets with this subject hash.
        object: Only triplets with this object hash.
        type: Only triplets whose predicate has this type.
    """
    pattern: dict[str, Any] = {}
    if subject is not None:
        pattern["subject"] = subject
    if object is not None:
        pattern["object"] = object
    triplets = _get_client().triplets(pattern)
    if type is not None:
        triplets = [t for t in triplets if t.predicate.type == type]
    return {"triplets": [t.to_dict() for t in triplets], "count": len(triplets)}


@mcp.tool()
@_safe_tool
def edit_edge(property: str, ids: list[str], value: Any) -> dict:
    """Set a property on one or more edges.

    Args:
        property: "text", "arrow", "weight", "dash", "color" or a custom name.
        ids: Edge (predicate) hashes to edit.
        value: One value for every edge, or a list with one value per edge.
    """
    predicates = _get_client().edit_edge(property, ids, value)
    return {"edited": [p.to_dict() for p in predicates]}


@mcp.tool()
@_safe_tool
def reverse_triplets() -> dict:
    """Swap subject and object of every relationship."""
    return {"reversed": _get_client().reverse_triplets()}


# ===================================================================
# Group tools (3)
# ===================================================================


@mcp.tool()
@_safe_tool
def add_to_group(
    group_id: str,
    nodes: list[str] | None = None,
    groups: list[str] | None = None,
    data: dict[str, Any] | None = None,
) -> dict:
    """Add nodes and/or sub-groups to a group, creating it if needed.

    Args:
        group_id: Target group id.
        nodes: Node ids to add.
        groups: Group ids to nest inside the target.
        data: Style/text data for a newly created group.
    """
    group: dict[str, Any] = {"id": group_id}
    if data is not None:
        group["data"] = data
    result = _get_client().add_to_group(group, {"nodes": nodes or [], "groups": groups or []})
    return _group_dict(result)


@mcp.tool()
@_safe_tool
def ungroup(nodes: list[str] | None = None, groups: list[str] | None = None) -> dict:
    """Remove nodes and/or groups from their parent groups. Empty groups are deleted.

    Args:
        nodes: Node ids to ungroup.
        groups: Group ids to ungroup.
    """
    viz = _get_client()
    viz.ungroup({"nodes": nodes or [], "groups": groups or []})
    return {"groups": [_group_dict(g) for g in viz.get_group()]}


@mcp.tool()
@_safe_tool
def list_groups() -> dict:
    """List every group with its members."""
    return {"groups": [_group_dict(g) for g in _get_client().get_group()]}


# ===================================================================
# Constraint tools (6)
# ===================================================================


@mcp.tool()
@_safe_tool
def constrain_separation(
    axis: str,
    gap: float,
    left: str,
    right: str,
    equality: bool = False,
) -> dict:
    """Keep two nodes at least (or exactly) a gap apart along an axis.

    Args:
        axis: "x" or "y".
        gap: Distance between the node centres.
        left: Id of the left-hand node.
        right: Id of the right-hand node.
        equality: True for an exact gap.
    """
    template = SeparationConstraint(axis=axis, gap=gap, equality=equality)
    return _constraint_dict(_get_client().constrain(template, [left, right]))


@mcp.tool()
@_safe_tool
def constrain_alignment(
    axis: str,
    nodes: list[dict[str, Any]],
    constraint_id: str | None = None,
) -> dict:
    """Align nodes on an axis, or add nodes to an existing alignment.

    Args:
        axis: "x" or "y". Ignored when extending an existing constraint.
        nodes: List of {"id": node id, "offset": number}.
        constraint_id: Existing alignment to extend.
    """
    if constraint_id is not None:
        template = _find_constraint(constraint_id)
    else:
        template = AlignmentConstraint(axis=axis)
    targets = [NodeOffset(n["id"], n.get("offset", 0.0)) for n in nodes]
    return _constraint_dict(_get_client().constrain(template, targets))


@mcp.tool()
@_safe_tool
def unconstrain(node_ids: list[str], constraint_id: str | None = None) -> dict:
    """Remove nodes from constraints.

    Args:
        node_ids: Node ids to remove.
        constraint_id: Only remove them from this constraint.
    """
    viz = _get_client()
    constraint = _find_constraint(constraint_id) if constraint_id is not None else None
    viz.unconstrain(node_ids, constraint)
    return {"constraints": [_constraint_dict(c) for c in viz.get_constraints()]}


@mcp.tool()
@_safe_tool
def remove_constraint(constraint_id: str) -> dict:
    """Delete a constraint.

    Args:
        constraint_id: The constraint to delete.
    """
    return {"deleted": _get_client().remove_constraint(constraint_id)}


@mcp.tool()
@_safe_tool
def list_constraints() -> dict:
    """List every constraint."""
    constraints = _get_client().get_constraints()
    return {"constraints": [_constraint_dict(c) for c in constraints], "count": len(constraints)}


@mcp.tool()
@_safe_tool
def set_constraint_visibility(visible: bool, constraint_id: str | None = None) -> dict:
    """Show or hide alignment guide lines.

    Args:
        visible: New visibility.
        constraint_id: Only this alignment. Defaults to every alignment.
    """
    constraint = _find_constraint(constraint_id) if constraint_id is not None else None
    toggled = _get_client().constraint_visibility(visible, constraint)
    return {"updated": [c.constraint_id for c in toggled]}


# ===================================================================
# Interaction and document tools (5)
# ===================================================================


@mcp.tool()
@_safe_tool
def drag_node(hash: str, x: float, y: float) -> dict:
    """Drag a node to a position, snapping to nearby alignments, and drop it there.

    Args:
        hash: Node to drag. It must be pinned for snapping to apply.
        x: Pointer x.
        y: Pointer y.
    """
    viz = _get_client()
    if viz.drag_start(hash) is None:
        return {"found": False, "hash": hash}
    result = viz.drag_move(hash, x, y)
    node = viz.drag_end(hash)
    return {"node": _node_dict(node), "alignment": result.to_dict()}


@mcp.tool()
@_safe_tool
def get_by_coords(x: float, X: float, y: float, Y: float) -> dict:
    """Find nodes, groups and edges inside a box.

    Args:
        x: One horizontal edge of the box.
        X: The other horizontal edge.
        y: One vertical edge of the box.
        Y: The other vertical edge.
    """
    found = _get_client().get_by_coords(x, X, y, Y)
    return {
        "nodes": [n.hash for n in found["nodes"]],
        "groups": [g.id for g in found["groups"]],
        "edges": [
            {"subject": e.source.hash, "object": e.target.hash, "type": e.predicate.type}
            for e in found["edges"]
        ],
    }


@mcp.tool()
@_safe_tool
def save_graph(path: str | None = None) -> dict:
    """Serialize the graph, optionally writing it to a file.

    Args:
        path: File to write. Without it the document is returned inline.
    """
    viz = _get_client()
    if path is None:
        return viz.to_document().model_dump()
    target = save_document(viz.to_document(), path)
    return {"saved": str(target)}


@mcp.tool()
@_safe_tool
def validate() -> dict:
    """Check the graph for internal consistency."""
    return _get_client().validate().model_dump()


@mcp.tool()
@_safe_tool
def get_stats() -> dict:
    """Get node, triplet, group and constraint counts."""
    return _get_client().stats().model_dump()


# ===================================================================
# Resources
# ===================================================================


@mcp.resource("netviz://stats")
def stats_resource() -> str:
    """Live graph statistics."""
    if _CLIENT is None:
        raise RuntimeError("netviz client is not initialized")
    stats = _CLIENT.stats()
    lines = [
        "# netviz Statistics\n",
        f"Nodes: {stats.node_count}",
        f"Triplets: {stats.triplet_count}",
        f"Groups: {stats.group_count}",
        f"Constraints: {stats.constraint_count}",
        f"Pinned nodes: {stats.pinned_count}",
    ]
    if stats.triplets_by_type:
        lines.append("\n## Triplets by Type")
        for t, c in stats.triplets_by_type.items():
            lines.append(f"- {t}: {c}")
    return "\n".join(lines)


# ===================================================================
# Entry point
# ===================================================================


def run_server() -> None:
    """Run the netviz MCP server over stdio."""
    mcp.run(transport="stdio")
