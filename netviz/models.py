"""Pydantic models for the netviz public API.

The saved-document models mirror the JSON produced by ``NetworkViz.save_graph``;
``LayoutOptions`` carries the configuration for a graph instance.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class SavedTriplet(BaseModel):
    """One relationship in a saved document. The predicate is kept as plain JSON."""

    subject: str
    predicate: dict[str, Any]
    object: str

    @field_validator("predicate")
    @classmethod
    def _check_type(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(value.get("type"), str) or not value["type"]:
            raise ValueError("Predicate requires type field.")
        return value


class SavedNode(BaseModel):
    hash: str = Field(min_length=1)
    x: float | None = None
    y: float | None = None


class GroupChildren(BaseModel):
    nodes: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)


class SavedGroup(BaseModel):
    id: str
    data: dict[str, Any] = Field(default_factory=dict)
    children: GroupChildren = Field(default_factory=GroupChildren)


class SavedGraph(BaseModel):
    """A serialized graph: triplets, node positions and group membership."""

    triplets: list[SavedTriplet] = Field(default_factory=list)
    nodes: list[SavedNode] = Field(default_factory=list)
    groups: list[SavedGroup] = Field(default_factory=list)


class LayoutOptions(BaseModel):
    """Configuration for a graph instance.

    Attributes:
        width: Canvas width, used to place nodes without a position
        height: Canvas height, used to place nodes without a position
        snap_to_alignment: Run the alignment search while dragging
        snap_threshold: Maximum distance for a snap, in pixels
        edge_length: Ideal link length handed to the layout engine
        enable_edge_routing: Run the edge-routing pass after each layout
        avoid_overlaps: Ask the layout engine to keep nodes apart
        flow_direction: Axis of flow for directed layouts
        constraint_iterations: Relaxation iterations per restart
        margin: Node margin
        pad: Node padding
        default_group_color: Fill colour for new groups
    """

    width: float = Field(default=900, gt=0)
    height: float = Field(default=600, gt=0)
    snap_to_alignment: bool = True
    snap_threshold: float = Field(default=10, ge=0)
    edge_length: float = Field(default=150, gt=0)
    enable_edge_routing: bool = True
    avoid_overlaps: bool = True
    flow_direction: Literal["x", "y"] = "y"
    constraint_iterations: int = Field(default=1, ge=0)
    margin: float = Field(default=10, ge=0)
    pad: float = Field(default=15, ge=0)
    default_group_color: str = "#F6ECAF"


class ValidationResult(BaseModel):
    """Result of a graph consistency check.

    Contains a pass/fail flag, a list of errors, and a list of warnings
    found during validation.
    """

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class GraphStats(BaseModel):
    """Summary counts for a graph.

    Reports node, triplet, group and constraint totals, with triplets broken
    down by predicate type.
    """

    node_count: int
    triplet_count: int
    group_count: int
    constraint_count: int
    pinned_count: int
    triplets_by_type: dict[str, int]
