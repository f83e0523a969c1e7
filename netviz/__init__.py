"""netviz: an interactive, constraint-annotated graph with snap-to-alignment dragging."""

__version__ = "0.1.0"

from netviz.client import NetworkViz
from netviz.engine.alignment import DragResult
from netviz.engine.constraints import AlignmentConstraint, NodeOffset, SeparationConstraint
from netviz.engine.core import Group, Node, Predicate
from netviz.engine.triplets import StoreError, Triplet
from netviz.models import GraphStats, LayoutOptions, SavedGraph, ValidationResult

__all__ = [
    "AlignmentConstraint",
    "DragResult",
    "GraphStats",
    "Group",
    "LayoutOptions",
    "NetworkViz",
    "Node",
    "NodeOffset",
    "Predicate",
    "SavedGraph",
    "SeparationConstraint",
    "StoreError",
    "Triplet",
    "ValidationResult",
    "__version__",
]
