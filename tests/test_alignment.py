"""Tests for snap-to-alignment detection during drags."""

import pytest

from netviz.engine.alignment import (
    AlignmentDetector,
    DragResult,
    _Entry,
    distribute,
    find_alignment,
    find_overlap_groups,
)
from netviz.engine.constraints import AlignmentConstraint, ConstraintSet
from netviz.engine.core import GraphRegistry, Node
from netviz.engine.geometry import Bounds


def _detector(*nodes, **kwargs):
    reg = GraphRegistry()
    for n in nodes:
        reg.add_node(n)
    constraints = ConstraintSet(reg)
    return AlignmentDetector(reg.nodes, constraints, **kwargs), constraints


def _pinned(hash, x, y, width=20, height=20):
    return Node(hash=hash, x=x, y=y, width=width, height=height, fixed=True)


class TestFindAlignment:
    def test_centre_wins_tie(self):
        match = find_alignment(
            {100.0: [_Entry("a", (0, 1))]}, {105.0: [_Entry("b", (0, 1))]}, 5, 10, 100
        )
        assert match.coord == 100.0
        assert match.offset == 0

    def test_bigger_edge_bucket_wins(self):
        match = find_alignment(
            {100.0: [_Entry("a", (0, 1))]},
            {105.0: [_Entry("b", (0, 1)), _Entry("c", (0, 1))]},
            5,
            10,
            100,
        )
        assert match.coord == 105.0
        assert match.offset == 5

    def test_window_is_open(self):
        assert find_alignment({110.0: [_Entry("a", (0, 1))]}, {}, 5, 10, 100) is None

    def test_nothing_in_range(self):
        assert find_alignment({}, {}, 5, 10, 100) is None


class TestOverlapGroups:
    def test_single_forward_pass(self):
        b0 = Bounds(0, 10, 0, 10)
        b1 = Bounds(20, 30, 20, 30)
        b2 = Bounds(5, 25, 40, 50)
        groups, index = find_overlap_groups([b0, b1, b2], 35)
        # b0-b2 and b1-b2 overlap but b0-b1 do not: two runs, not one cluster
        assert groups == [[b0, b2], [b1, b2]]
        assert index == 1

    def test_no_overlap(self):
        groups, index = find_overlap_groups([Bounds(0, 10, 0, 10), Bounds(50, 60, 20, 30)], 5)
        assert groups == []
        assert index == -1


class TestEdgeAndCentre:
    def test_left_edge_snap(self):
        a = _pinned("A", 130, 50, width=60)
        b = _pinned("B", 130, 150, width=60)
        c = _pinned("C", 112, 400)
        detector, _ = _detector(a, b, c)

        result = detector.detect(c, 112, 400)

        assert result.x is not None
        assert result.x.coord == 100
        assert result.x.offset == -10
        assert not result.x.centre
        assert result.x.members == ["A", "B"]
        assert result.x.guide == Bounds(100, 100, 36, 414)
        assert c.px == 110
        assert result.px == 110
        # the dragged node's left edge lands on the shared left edge
        assert c.px - c.width / 2 == 100
        assert set(result.found) == {"x"}

    def test_centre_snap(self):
        a = _pinned("A", 100, 50)
        c = _pinned("C", 106, 300)
        detector, _ = _detector(a, c)
        result = detector.detect(c, 106, 300)
        assert result.x.centre
        assert c.px == 100

    def test_y_edge_snap_keeps_clearance(self):
        a = _pinned("A", 50, 210)
        b = _pinned("B", 300, 210)
        c = _pinned("C", 600, 188)
        detector, _ = _detector(a, b, c)

        result = detector.detect(c, 600, 188)

        assert result.y.coord == 200
        assert result.y.offset == 10
        assert c.py == 189
        assert result.y.guide == Bounds(36, 614, 200, 200)
        assert set(result.found) == {"y"}


class TestCandidates:
    def test_unpinned_dragged_node(self):
        a = _pinned("A", 100, 50)
        c = Node(hash="C", x=106, y=300, width=20, height=20)
        detector, _ = _detector(a, c)
        result = detector.detect(c, 106, 300)
        assert not result
        assert c.px is None

    def test_disabled(self):
        a = _pinned("A", 100, 50)
        c = _pinned("C", 106, 300)
        detector, _ = _detector(a, c, enabled=False)
        assert not detector.detect(c, 106, 300)

    def test_unpinned_candidates_ignored(self):
        a = Node(hash="A", x=100, y=50, width=20, height=20)
        c = _pinned("C", 106, 300)
        detector, _ = _detector(a, c)
        assert not detector.detect(c, 106, 300)

    def test_nodes_aligned_with_dragged_ignored(self):
        a = _pinned("A", 100, 50)
        c = _pinned("C", 106, 300)
        detector, constraints = _detector(a, c)
        constraints.constrain(AlignmentConstraint(axis="y"), ["A", "C"])
        assert not detector.detect(c, 106, 300)

    def test_custom_pin_predicate(self):
        a = Node(hash="A", x=100, y=50, width=20, height=20)
        c = Node(hash="C", x=106, y=300, width=20, height=20)
        detector, _ = _detector(a, c, pin=lambda n: True)
        assert detector.detect(c, 106, 300).x.coord == 100

    def test_on_aligned_called_when_found(self):
        calls = []
        a = _pinned("A", 100, 50)
        c = _pinned("C", 106, 300)
        detector, _ = _detector(a, c, on_aligned=lambda n, r: calls.append((n.hash, r)))
        detector.detect(c, 106, 300)
        detector.detect(c, 500, 500)
        assert len(calls) == 1
        assert calls[0][0] == "C"
        assert isinstance(calls[0][1], DragResult)


class TestDistribution:
    def test_equal_gap_below_column(self):
        a = _pinned("A", 100, 50, width=40)
        b = _pinned("B", 100, 100, width=40)
        c = _pinned("C", 100, 153, width=40)
        detector, _ = _detector(a, b, c)

        result = detector.detect(c, 100, 153)

        assert c.py == 150
        lines = result.y_distribution
        assert Bounds(129, 129, 140, 110) in lines.dimension
        assert Bounds(129, 129, 60, 90) in lines.dimension
        assert Bounds(120, 132, 140, 140) in lines.projection
        assert result.x_distribution is None
        # the column's shared centre is matched on x as well
        assert result.x.centre
        assert c.px == 100

    def test_midpoint(self):
        a = _pinned("A", 100, 50, width=40)
        b = _pinned("B", 100, 150, width=40)
        c = _pinned("C", 100, 101, width=40)
        detector, _ = _detector(a, b, c)

        result = detector.detect(c, 100, 101)

        assert c.py == 100
        assert result.y is None
        assert len(result.y_distribution.projection) == 4
        assert len(result.y_distribution.dimension) == 2

    def test_equal_gap_in_row(self):
        a = _pinned("A", 50, 100, height=40)
        b = _pinned("B", 100, 100, height=40)
        c = _pinned("C", 153, 100, height=40)
        detector, _ = _detector(a, b, c)

        result = detector.detect(c, 153, 100)

        assert c.px == 150
        # lines come back in screen orientation: dimension lines are horizontal
        for line in result.x_distribution.dimension:
            assert line.y == line.Y

    def test_distribute_requires_agreement_with_axis_snap(self):
        column = [Bounds(80, 120, 40, 60), Bounds(80, 120, 90, 110)]
        target = Bounds(80, 120, 143, 163)
        assert distribute(column, target, 153, 10, 10, None)[0] == 150
        assert distribute(column, target, 153, 10, 10, 150)[0] == 150
        assert distribute(column, target, 153, 10, 10, 152) is None

    def test_to_dict_contains_only_found_parts(self):
        a = _pinned("A", 100, 50)
        c = _pinned("C", 106, 300)
        detector, _ = _detector(a, c)
        data = detector.detect(c, 106, 300).to_dict()
        assert set(data) == {"x", "px", "py"}
        assert data["x"]["coord"] == 100

    @pytest.mark.parametrize("threshold", [1, 5])
    def test_threshold_limits_snap(self, threshold):
        a = _pinned("A", 100, 50)
        c = _pinned("C", 106, 300)
        detector, _ = _detector(a, c, threshold=threshold)
        assert not detector.detect(c, 106, 300)
