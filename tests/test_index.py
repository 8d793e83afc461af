"""Tests for the lookup index: point, range, prefix, composite, incremental."""

import random
from types import SimpleNamespace

import pytest

from scoreview.core.exceptions import ValidationFailed
from scoreview.engine.index import LookupIndex, build_index, resolve_path
from scoreview.models.view_models import IndexDescriptor


def ent(entity_id, name, email=None, **extra):
    return SimpleNamespace(id=entity_id, name=name, email=email, **extra)


@pytest.fixture
def people():
    return [
        ent("1", "Alice", "alice@ex.com"),
        ent("2", "Bob"),
        ent("3", "Anna", "anna@ex.com"),
        ent("4", "Carl", "carl@ex.com"),
    ]


class TestLookup:
    def test_point_lookup(self, people):
        index = build_index("name", people)
        assert index.lookup("Bob") == ["2"]
        assert index.lookup("Zed") == []

    def test_range_lookup(self, people):
        index = build_index("name", people)
        assert index.lookup_range("Anna", "Bob") == ["3", "2"]
        assert index.lookup_range(high="Alice") == ["1"]
        assert index.lookup_range(low="Bz") == ["4"]

    def test_none_values_not_indexed(self, people):
        index = build_index("email", people)
        assert len(index) == 3
        assert "2" not in index.lookup_range()

    def test_prefix_index(self, people):
        index = build_index(
            IndexDescriptor(name="name_first", attributes=["name"], prefix_length=1),
            people,
        )
        assert index.lookup("A") == ["1", "3"]
        assert index.lookup("Amanda") == ["1", "3"]

    def test_composite_index(self):
        rows = [
            ent("1", "Alice", profile={"city": "Oslo"}),
            ent("2", "Alice", profile={"city": "Rome"}),
            ent("3", "Bob", profile={"city": "Oslo"}),
        ]
        index = build_index(
            IndexDescriptor(name="name_city", attributes=["name", "profile.city"]), rows
        )
        assert index.lookup(("Alice", "Rome")) == ["2"]
        assert index.lookup_range(("Alice", ""), ("Alice", "zzz")) == ["1", "2"]

    def test_resolve_path(self):
        obj = ent("1", "A", profile={"address": {"zip": "0150"}})
        assert resolve_path(obj, "profile.address.zip") == "0150"
        assert resolve_path(obj, "profile.missing.zip") is None


class TestIncremental:
    def test_change_moves_key(self, people):
        index = build_index("name", people)
        index.on_entity_changed(ent("2", "Bert"))
        assert index.lookup("Bob") == []
        assert index.lookup("Bert") == ["2"]

    def test_remove(self, people):
        index = build_index("name", people)
        index.on_entity_removed("1")
        index.on_entity_removed("missing")
        assert index.lookup("Alice") == []
        assert len(index) == 3

    def test_incremental_matches_rebuild(self):
        rng = random.Random(11)
        names = ["Ann", "Ben", "Cid", "Dot", "Eve", None]
        current = {}
        index = LookupIndex(IndexDescriptor(name="n", attributes=["name"], prefix_length=2))
        index.build([])

        for _ in range(500):
            entity_id = str(rng.randint(0, 30))
            if current and rng.random() < 0.2:
                victim = rng.choice(sorted(current))
                del current[victim]
                index.on_entity_removed(victim)
            else:
                current[entity_id] = ent(entity_id, rng.choice(names))
                index.on_entity_changed(current[entity_id])

            if rng.random() < 0.1:
                rebuilt = LookupIndex(index.descriptor).build(current.values())
                assert index.snapshot() == rebuilt.snapshot()
                assert index.lookup_range() == rebuilt.lookup_range()

        rebuilt = LookupIndex(index.descriptor).build(current.values())
        assert index.snapshot() == rebuilt.snapshot()


class TestUnique:
    def test_duplicate_rejected(self, people):
        index = build_index(
            IndexDescriptor(name="email_u", attributes=["email"], unique=True), people
        )
        with pytest.raises(ValidationFailed):
            index.on_entity_changed(ent("9", "Zed", "alice@ex.com"))
        assert index.lookup("alice@ex.com") == ["1"]

    def test_same_entity_may_keep_its_key(self, people):
        index = build_index(
            IndexDescriptor(name="email_u", attributes=["email"], unique=True), people
        )
        index.on_entity_changed(ent("1", "Alicia", "alice@ex.com"))
        assert index.lookup("alice@ex.com") == ["1"]
