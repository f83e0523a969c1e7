"""Shared fixtures for netviz tests."""

import pytest

from netviz import NetworkViz
from netviz.engine.constraints import ConstraintSet
from netviz.engine.core import GraphRegistry, Node


@pytest.fixture()
def viz():
    """Fresh in-memory NetworkViz instance."""
    return NetworkViz()


@pytest.fixture()
def tmp_db_path(tmp_path):
    """Temporary database path with automatic cleanup."""
    return str(tmp_path / "test.db")


@pytest.fixture()
def registry():
    """Registry with four 20x20 nodes A-D on a row, 100px apart."""
    reg = GraphRegistry()
    for i, h in enumerate("ABCD"):
        reg.add_node(Node(hash=h, x=100.0 * (i + 1), y=100.0, width=20, height=20))
    return reg


@pytest.fixture()
def constraint_set(registry):
    return ConstraintSet(registry)


@pytest.fixture()
def populated_viz():
    """In-memory NetworkViz with a small reference graph.

    Nodes (4):
        A, B, C, D (20x20, positioned on a row)

    Triplets (3):
        A -rel(p1)-> B
        B -rel(p2)-> C
        C -depends(p3)-> D
    """
    viz = NetworkViz()
    for i, h in enumerate("ABCD"):
        viz.add_node(Node(hash=h, x=100.0 * (i + 1), y=100.0, width=20, height=20))
    viz.add_triplet("A", {"type": "rel", "hash": "p1"}, "B")
    viz.add_triplet("B", {"type": "rel", "hash": "p2"}, "C")
    viz.add_triplet("C", {"type": "depends", "hash": "p3"}, "D")
    return viz
