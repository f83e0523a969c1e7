from netviz.engine.alignment import AlignmentDetector, AxisAlignment, DimensionLines, DragResult
from netviz.engine.constraints import (
    AlignmentConstraint,
    ConstraintSet,
    NodeOffset,
    OffsetIndex,
    SeparationConstraint,
)
from netviz.engine.core import GraphRegistry, Group, Link, Node, Predicate, is_pinned
from netviz.engine.geometry import Bounds
from netviz.engine.layout import (
    LayoutEngine,
    LayoutOrchestrator,
    LayoutState,
    NullRenderer,
    Renderer,
    StaticLayoutEngine,
)
from netviz.engine.persistence import load_document, save_document
from netviz.engine.storage import SQLiteTripletStore
from netviz.engine.triplets import MemoryTripletStore, StoreError, Triplet, TripletStore

__all__ = [
    "Bounds",
    "Node",
    "Predicate",
    "Group",
    "Link",
    "GraphRegistry",
    "is_pinned",
    "Triplet",
    "TripletStore",
    "MemoryTripletStore",
    "SQLiteTripletStore",
    "StoreError",
    "SeparationConstraint",
    "AlignmentConstraint",
    "NodeOffset",
    "OffsetIndex",
    "ConstraintSet",
    "AlignmentDetector",
    "AxisAlignment",
    "DimensionLines",
    "DragResult",
    "LayoutState",
    "LayoutEngine",
    "Renderer",
    "NullRenderer",
    "StaticLayoutEngine",
    "LayoutOrchestrator",
    "save_document",
    "load_document",
]
