"""Tests for the service write path: trigger + persistence + index upkeep."""

import pytest
from sqlmodel import Session, select

from scoreview.core.exceptions import EntityNotFound, NoData, ValidationFailed
from scoreview.models.entity_models import DerivedSummary, ScoreRecord
from scoreview.models.view_models import (
    EntityIn,
    EntityUpdate,
    IndexDescriptor,
    ScoreRecordIn,
)


def test_create_runs_trigger(service):
    entity = service.create_entity(EntityIn(id="u1", name=" Alice ", email="a@ex.com"))
    assert entity.name == "Alice"
    assert entity.created_at is not None
    assert service.get_entity("u1").name == "Alice"


def test_duplicate_id_rejected(service, alice):
    with pytest.raises(ValidationFailed):
        service.create_entity(EntityIn(id="u1", name="Other"))


def test_invalid_update_leaves_row_intact(service, alice):
    with pytest.raises(ValidationFailed):
        service.update_entity("u1", EntityUpdate(email="broken"))
    stored = service.get_entity("u1")
    assert stored.email == "alice@example.com"
    assert stored.updated_at == alice.updated_at


def test_update_email_resets_verification(service, alice):
    service.update_entity("u1", EntityUpdate(email_verified=True))
    assert service.get_entity("u1").email_verified is True

    updated = service.update_entity("u1", EntityUpdate(email="new@example.com"))
    assert updated.email_verified is False
    assert updated.created_at == service.get_entity("u1").created_at


def test_update_unknown_entity(service):
    with pytest.raises(EntityNotFound):
        service.update_entity("ghost", EntityUpdate(name="x"))


def test_delete_entity_cascades(service, alice, db_engine):
    service.upsert_record(ScoreRecordIn(id="r1", entity_id="u1", score=5, weight=1))
    service.upsert_record(ScoreRecordIn(id="r2", entity_id="u1", score=7, weight=1))

    assert service.delete_entity("u1") == 2

    with Session(db_engine) as session:
        assert session.exec(select(ScoreRecord)).all() == []
        assert session.get(DerivedSummary, "u1") is None
    with pytest.raises(EntityNotFound):
        service.get_summary("u1")


def test_recreated_entity_starts_without_data(service, alice):
    service.upsert_record(ScoreRecordIn(id="r1", entity_id="u1", score=5, weight=1))
    service.delete_entity("u1")
    service.create_entity(EntityIn(id="u1", name="Alice again"))
    with pytest.raises(NoData):
        service.get_summary("u1")


class TestIndexMaintenance:
    def test_registered_index_follows_writes(self, service, alice):
        service.register_index("name")
        service.create_entity(EntityIn(id="u2", name="Bob"))
        assert service.lookup("name", "Bob") == ["u2"]

        service.update_entity("u2", EntityUpdate(name="Bert"))
        assert service.lookup("name", "Bob") == []
        assert service.lookup("name", "Bert") == ["u2"]

        service.delete_entity("u2")
        assert service.lookup("name", "Bert") == []

    def test_incremental_equals_rebuild(self, service, alice):
        index = service.register_index(
            IndexDescriptor(name="initial", attributes=["name"], prefix_length=1)
        )
        for i, name in enumerate(["Ann", "Ben", "Amy", "Cal"]):
            service.create_entity(EntityIn(id=f"e{i}", name=name))
        service.update_entity("e1", EntityUpdate(name="Abe"))
        service.delete_entity("e3")

        rebuilt = service.register_index(index.descriptor)
        assert index.snapshot() == rebuilt.snapshot()
        assert service.lookup("initial", "A") == ["e0", "e1", "e2", "u1"]

    def test_unique_index_blocks_write(self, service, alice):
        service.register_index(
            IndexDescriptor(name="email", attributes=["email"], unique=True)
        )
        with pytest.raises(ValidationFailed):
            service.create_entity(
                EntityIn(id="u2", name="Copy", email="alice@example.com")
            )
        with pytest.raises(EntityNotFound):
            service.get_entity("u2")

    def test_range_lookup(self, service, alice):
        service.register_index("name")
        service.create_entity(EntityIn(id="u2", name="Bob"))
        service.create_entity(EntityIn(id="u3", name="Cleo"))
        assert service.lookup_range("name", "B", "C") == ["u2"]

    def test_unknown_index(self, service):
        with pytest.raises(KeyError):
            service.lookup("nope", "x")


def test_deleted_entity_releases_its_lock(service, alice):
    service.upsert_record(ScoreRecordIn(id="r1", entity_id="u1", score=5, weight=1))
    service.delete_entity("u1")
    assert len(service.locks) == 0
