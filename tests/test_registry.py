"""Tests for core entities and the in-memory registry."""

import logging

import pytest

from netviz.engine.constraints import SeparationConstraint
from netviz.engine.core import GraphRegistry, Group, Node, Predicate, is_pinned
from netviz.engine.geometry import Bounds


class TestNode:
    def test_id_defaults_to_hash(self):
        assert Node(hash="a").id == "a"
        assert Node(hash="a", id="display").id == "display"

    def test_hash_required(self):
        with pytest.raises(ValueError, match="hash"):
            Node(hash="")

    def test_hash_must_be_string(self):
        with pytest.raises(TypeError):
            Node(hash=5)

    def test_bounds_from_centre(self):
        node = Node(hash="a", x=50, y=20, width=40, height=10)
        assert node.bounds == Bounds(30, 70, 15, 25)

    def test_equality_is_identity(self):
        assert Node(hash="a") != Node(hash="a")

    @pytest.mark.parametrize(
        ("fixed", "pinned"),
        [(False, False), (True, True), (0, False), (1, True), (2, False), (3, True)],
    )
    def test_pin_bit(self, fixed, pinned):
        assert is_pinned(Node(hash="a", fixed=fixed)) is pinned


class TestPredicate:
    def test_type_required(self):
        with pytest.raises(ValueError):
            Predicate(type="")
        with pytest.raises(TypeError):
            Predicate(type=None)

    def test_arrowhead_validated(self):
        for value in (-1, 0, 1, 2):
            assert Predicate(type="rel", arrowhead=value).arrowhead == value
        with pytest.raises(ValueError, match="arrowhead"):
            Predicate(type="rel", arrowhead=3)

    def test_to_dict_skips_unset(self):
        assert Predicate(type="rel").to_dict() == {"type": "rel", "arrowhead": 1}

    def test_extras_flattened(self):
        data = Predicate(type="rel", hash="p1", extras={"weight": 2}).to_dict()
        assert data["weight"] == 2
        assert data["hash"] == "p1"

    def test_from_dict_round_trip(self):
        data = {
            "type": "rel",
            "hash": "p1",
            "text": "label",
            "stroke": "red",
            "weight": 2,
            "constraint": {"axis": "x", "gap": 40, "equality": True},
        }
        p = Predicate.from_dict(data)
        assert p.text == "label"
        assert p.extras == {"weight": 2}
        assert isinstance(p.constraint, SeparationConstraint)
        assert p.constraint.gap == 40
        assert p.constraint.equality is True
        assert Predicate.from_dict(p.to_dict()).canonical() == p.canonical()

    def test_from_dict_requires_type(self):
        with pytest.raises(ValueError):
            Predicate.from_dict({"hash": "p1"})

    def test_canonical_ignores_key_order(self):
        a = Predicate(type="rel", extras={"a": 1, "b": 2})
        b = Predicate(type="rel", extras={"b": 2, "a": 1})
        assert a.canonical() == b.canonical()


class TestGroup:
    def test_level_from_data(self):
        assert Group(id="g").level == 0
        assert Group(id="g", data={"level": 2}).level == 2

    def test_is_empty(self):
        assert Group(id="g").is_empty
        assert Group(id="g", groups=["h"]).is_empty
        assert not Group(id="g", groups=["h", "i"]).is_empty
        assert not Group(id="g", leaves=["a"]).is_empty


class TestRegistryNodes:
    def test_add_and_get(self):
        reg = GraphRegistry()
        node = Node(hash="a")
        assert reg.add_node(node) is True
        assert reg.get_node("a") is node
        assert reg.has_node("a")

    def test_duplicate_hash_rejected(self):
        reg = GraphRegistry()
        reg.add_node(Node(hash="a"))
        assert reg.add_node(Node(hash="a")) is False
        assert len(reg.nodes()) == 1

    def test_find_index_uses_display_id(self):
        reg = GraphRegistry()
        reg.add_node(Node(hash="a", id="first"))
        reg.add_node(Node(hash="b", id="second"))
        assert reg.find_index("second") == 1
        assert reg.find_index("b") == -1
        assert reg.get_node_by_id("first").hash == "a"

    def test_remove_shifts_indices(self, registry):
        removed = registry.remove_node("B")
        assert removed.hash == "B"
        assert registry.find_index("C") == 1
        assert registry.remove_node("B") is None


class TestRegistryGroups:
    def test_add_duplicate_group(self):
        reg = GraphRegistry()
        reg.add_group(Group(id="g"))
        with pytest.raises(ValueError):
            reg.add_group(Group(id="g"))

    def test_engine_groups_resolve_indices(self, registry):
        registry.add_group(Group(id="outer", leaves=["A"], groups=["inner"]))
        registry.add_group(Group(id="inner", leaves=["C", "missing"]))
        assert registry.engine_groups() == [
            {"id": "outer", "leaves": [0], "groups": [1]},
            {"id": "inner", "leaves": [2], "groups": []},
        ]

    def test_remove_group(self):
        reg = GraphRegistry()
        reg.add_group(Group(id="g"))
        assert reg.remove_group("g").id == "g"
        assert reg.get_group("g") is None
        assert reg.group_index("g") == -1


class TestRegistryPredicates:
    def test_unhashed_predicates_not_cached(self):
        reg = GraphRegistry()
        reg.set_predicate(Predicate(type="rel"))
        assert reg.predicates() == []

    def test_duplicate_hash_warns(self, caplog):
        reg = GraphRegistry()
        reg.set_predicate(Predicate(type="rel", hash="p1"))
        with caplog.at_level(logging.WARNING, logger="netviz.registry"):
            reg.set_predicate(Predicate(type="other", hash="p1"), warn_duplicate=True)
        assert "Edge hash must be unique" in caplog.text
        assert reg.get_predicate("p1").type == "other"

    def test_remove_predicate(self):
        reg = GraphRegistry()
        reg.set_predicate(Predicate(type="rel", hash="p1"))
        assert reg.remove_predicate("p1") is True
        assert reg.remove_predicate("p1") is False
        assert reg.remove_predicate(None) is False

    def test_stats(self, registry):
        registry.get_node("A").fixed = True
        stats = registry.stats()
        assert stats["num_nodes"] == 4
        assert stats["num_pinned"] == 1
