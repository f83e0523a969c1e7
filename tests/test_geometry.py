"""Tests for Bounds rectangles and coordinate rounding."""

import pytest

from netviz.engine.geometry import Bounds, round_half


class TestBounds:
    def test_around_centre(self):
        b = Bounds.around(100, 50, 40, 20)
        assert b == Bounds(80, 120, 40, 60)
        assert b.width == 40
        assert b.height == 20
        assert b.cx() == 100
        assert b.cy() == 50

    def test_inflate(self):
        assert Bounds(0, 10, 0, 10).inflate(1) == Bounds(-1, 11, -1, 11)

    def test_transpose_swaps_axes(self):
        b = Bounds(1, 2, 3, 4)
        assert b.transpose() == Bounds(3, 4, 1, 2)
        assert b.transpose().transpose() == b

    def test_overlap_x(self):
        a = Bounds(0, 10, 0, 10)
        assert a.overlap_x(Bounds(5, 15, 100, 110)) == 5
        assert Bounds(5, 15, 100, 110).overlap_x(a) == 5

    def test_overlap_x_disjoint_or_touching(self):
        a = Bounds(0, 10, 0, 10)
        assert a.overlap_x(Bounds(20, 30, 0, 10)) == 0
        assert a.overlap_x(Bounds(10, 20, 0, 10)) == 0

    def test_overlap_y(self):
        a = Bounds(0, 10, 0, 10)
        assert a.overlap_y(Bounds(100, 110, 8, 30)) == 2
        assert a.overlap_y(Bounds(0, 10, 11, 20)) == 0

    def test_intersects_is_closed(self):
        a = Bounds(0, 10, 0, 10)
        assert a.intersects(Bounds(10, 20, 10, 20))
        assert not a.intersects(Bounds(11, 20, 0, 10))

    def test_as_dict(self):
        assert Bounds(1, 2, 3, 4).as_dict() == {"x": 1, "X": 2, "y": 3, "Y": 4}

    def test_frozen(self):
        b = Bounds(0, 1, 0, 1)
        with pytest.raises(AttributeError):
            b.x = 5


class TestRoundHalf:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(100.2, 100.0), (100.3, 100.5), (1.25, 1.5), (1.2, 1.0), (-0.25, 0.0), (7.0, 7.0)],
    )
    def test_round_to_half(self, value, expected):
        assert round_half(value) == expected
