"""Tests for separation/alignment constraints and the ConstraintSet."""

import logging

import pytest

from netviz.engine.constraints import (
    AlignmentConstraint,
    ConstraintSet,
    NodeOffset,
    SeparationConstraint,
)
from netviz.engine.core import GraphRegistry, Node
from netviz.engine.geometry import Bounds


class TestSeparation:
    def test_template_validation(self):
        with pytest.raises(ValueError):
            SeparationConstraint(axis="z", gap=10)
        with pytest.raises(TypeError):
            SeparationConstraint(axis="x", gap="10")

    def test_constrain_creates_bound_copy(self, constraint_set):
        template = SeparationConstraint(axis="x", gap=40)
        c = constraint_set.constrain(template, ["A", "B"])
        assert c is not template
        assert template.left_id is None
        assert (c.left_id, c.right_id) == ("A", "B")
        assert (c.left, c.right) == (0, 1)
        assert c.gap == 40
        assert c.constraint_id != template.constraint_id

    def test_back_references(self, constraint_set):
        c = constraint_set.constrain(SeparationConstraint(axis="x", gap=40), ["A", "B"])
        assert constraint_set.constraints_of("A") == [c]
        assert constraint_set.constraints_of("B") == [c]
        assert constraint_set.constraints_of("C") == []

    def test_duplicates_are_distinct(self, constraint_set):
        template = SeparationConstraint(axis="y", gap=20)
        first = constraint_set.constrain(template, ["A", "B"])
        second = constraint_set.constrain(template, ["A", "B"])
        assert first is not second
        assert len(constraint_set) == 2
        assert len(constraint_set.constraints_of("A")) == 2

    @pytest.mark.parametrize("targets", [["A"], ["A", "B", "C"], ["A", "A"], ["A", "missing"]])
    def test_invalid_targets(self, constraint_set, targets):
        with pytest.raises(ValueError):
            constraint_set.constrain(SeparationConstraint(axis="x", gap=10), targets)
        assert len(constraint_set) == 0

    def test_engine_form(self, constraint_set):
        constraint_set.constrain(SeparationConstraint(axis="x", gap=40, equality=True), ["B", "D"])
        assert constraint_set.to_engine() == [
            {"type": "separation", "axis": "x", "left": 1, "right": 3, "gap": 40, "equality": True}
        ]


class TestAlignment:
    def test_create(self, constraint_set):
        c = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", ("C", 5.0)])
        assert c.node_ids == ["A", "C"]
        assert [(o.node, o.offset) for o in c.offsets] == [(0, 0.0), (2, 5.0)]
        assert c in constraint_set

    def test_needs_two_members(self, constraint_set):
        with pytest.raises(ValueError, match="at least 2"):
            constraint_set.constrain(AlignmentConstraint(axis="x"), ["A"])
        with pytest.raises(ValueError):
            constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "A"])
        assert len(constraint_set) == 0

    def test_unknown_member(self, constraint_set):
        with pytest.raises(ValueError, match="does not exist"):
            constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "nope"])

    def test_prefilled_members_become_targets(self, constraint_set):
        prefilled = AlignmentConstraint(axis="x", node_offsets=[NodeOffset("A"), NodeOffset("B")])
        c = constraint_set.constrain(prefilled, [{"id": "C", "offset": 2}])
        assert c.node_ids == ["A", "B", "C"]
        assert len(c.offsets) == 3

    def test_extend_skips_existing_members(self, constraint_set, caplog):
        c = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", "B"])
        with caplog.at_level(logging.WARNING, logger="netviz.constraints"):
            same = constraint_set.constrain(c, ["B", "C"])
        assert same is c
        assert "Nodes already constrained" in caplog.text
        assert c.node_ids == ["A", "B", "C"]
        assert len(c.offsets) == 3
        assert len(constraint_set) == 1
        assert constraint_set.constraints_of("C") == [c]

    def test_extend_with_only_existing_is_noop(self, constraint_set):
        c = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", "B"])
        constraint_set.constrain(c, ["A"])
        assert c.node_ids == ["A", "B"]

    def test_unbound_bounds(self):
        with pytest.raises(RuntimeError):
            AlignmentConstraint(axis="x").bounds()

    def test_guide_bounds_x(self):
        reg = GraphRegistry()
        reg.add_node(Node(hash="A", x=100, y=50, width=20, height=10))
        reg.add_node(Node(hash="B", x=100, y=150, width=20, height=30))
        cs = ConstraintSet(reg)
        c = cs.constrain(AlignmentConstraint(axis="x"), ["A", "B"])
        assert c.bounds() == Bounds(100, 100, 41, 169)

    def test_guide_bounds_y(self, constraint_set):
        c = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", "D"])
        assert c.bounds() == Bounds(86, 414, 100, 100)

    def test_guide_tracks_node_moves(self, constraint_set, registry):
        c = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", "B"])
        registry.get_node("A").y = 300
        assert c.bounds().y == 300

    def test_constraint_bounds_rejects_separation(self, constraint_set):
        with pytest.raises(TypeError):
            constraint_set.constraint_bounds(SeparationConstraint(axis="x", gap=1))


class TestUnconstrain:
    def test_removes_separation(self, constraint_set):
        constraint_set.constrain(SeparationConstraint(axis="x", gap=40), ["A", "B"])
        constraint_set.unconstrain("A")
        assert len(constraint_set) == 0
        assert constraint_set.constraints_of("B") == []

    def test_alignment_keeps_remaining_members(self, constraint_set):
        c = constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "B", "C"])
        constraint_set.unconstrain("B")
        assert c.node_ids == ["A", "C"]
        assert [o.node for o in c.offsets] == [0, 2]
        assert c in constraint_set
        assert constraint_set.constraints_of("B") == []

    def test_alignment_deleted_below_two(self, constraint_set):
        c = constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "B"])
        constraint_set.unconstrain(["A"])
        assert c not in constraint_set
        assert constraint_set.constraints_of("B") == []

    def test_specific_constraint_only(self, constraint_set):
        first = constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "B", "C"])
        second = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", "B", "C"])
        constraint_set.unconstrain("A", first)
        assert first.node_ids == ["B", "C"]
        assert second.node_ids == ["A", "B", "C"]
        assert constraint_set.constraints_of("A") == [second]


class TestRemoveConstraint:
    def test_remove(self, constraint_set):
        c = constraint_set.constrain(SeparationConstraint(axis="x", gap=40), ["A", "B"])
        assert constraint_set.remove_constraint(c) is True
        assert constraint_set.constraints_of("A") == []
        assert constraint_set.check() == []

    def test_missing_warns(self, constraint_set, caplog):
        with caplog.at_level(logging.WARNING, logger="netviz.constraints"):
            assert constraint_set.remove_constraint(SeparationConstraint(axis="x", gap=1)) is False
        assert "does not exist" in caplog.text

    def test_get_by_id(self, constraint_set):
        c = constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "B"])
        assert constraint_set.get(c.constraint_id) is c
        assert constraint_set.get("missing") is None


class TestIndexing:
    def test_reindex_after_removal(self, constraint_set, registry):
        sep = constraint_set.constrain(SeparationConstraint(axis="x", gap=40), ["C", "D"])
        align = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", "C", "D"])
        registry.remove_node("B")
        constraint_set.update_constraint_indexing()
        assert (sep.left, sep.right) == (1, 2)
        assert [o.node for o in align.offsets] == [0, 1, 2]
        assert constraint_set.check() == []

    def test_reindex_drops_missing_nodes(self, constraint_set, registry):
        sep = constraint_set.constrain(SeparationConstraint(axis="x", gap=40), ["A", "B"])
        align = constraint_set.constrain(AlignmentConstraint(axis="y"), ["A", "C", "D"])
        registry.remove_node("A")
        constraint_set.update_constraint_indexing()
        assert sep not in constraint_set
        assert align.node_ids == ["C", "D"]
        assert [o.node for o in align.offsets] == [1, 2]
        assert constraint_set.check() == []


class TestMisc:
    def test_on_change_publishes_engine_form(self, registry):
        published = []
        cs = ConstraintSet(registry, on_change=published.append)
        cs.constrain(AlignmentConstraint(axis="x"), ["A", "B"])
        assert published[-1] == [
            {
                "type": "alignment",
                "axis": "x",
                "offsets": [{"node": 0, "offset": 0.0}, {"node": 1, "offset": 0.0}],
            }
        ]

    def test_unknown_type_appended(self, constraint_set, caplog):
        raw = {"type": "custom", "weight": 1}
        with caplog.at_level(logging.WARNING, logger="netviz.constraints"):
            assert constraint_set.constrain(raw) is raw
        assert "Unknown constraint type" in caplog.text
        assert constraint_set.to_engine() == [raw]

    def test_visibility(self, constraint_set):
        a = constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "B"])
        b = constraint_set.constrain(AlignmentConstraint(axis="y"), ["C", "D"])
        constraint_set.constrain(SeparationConstraint(axis="x", gap=1), ["A", "C"])
        assert constraint_set.constraint_visibility(True) == [a, b]
        assert a.visible and b.visible
        constraint_set.constraint_visibility(False, a)
        assert not a.visible
        assert b.visible

    def test_filters(self, constraint_set):
        a = constraint_set.constrain(AlignmentConstraint(axis="x"), ["A", "B"])
        s = constraint_set.constrain(SeparationConstraint(axis="x", gap=1), ["A", "C"])
        assert constraint_set.alignments() == [a]
        assert constraint_set.separations() == [s]
        assert list(constraint_set) == [a, s]
