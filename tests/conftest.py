"""Shared fixtures: a fresh in-memory database per test."""

import pytest
from sqlmodel import SQLModel

from scoreview.database import make_engine
from scoreview.models.view_models import EntityIn
from scoreview.service import ScoreViewService


@pytest.fixture
def db_engine():
    engine = make_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite, safe for multiple threads with their own connections."""
    engine = make_engine(f"sqlite:///{tmp_path / 'scoreview.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(params=["full", "incremental"])
def service(request, db_engine):
    """Service under both recompute policies."""
    return ScoreViewService(db_engine, policy=request.param)


@pytest.fixture
def alice(service):
    return service.create_entity(EntityIn(id="u1", name="Alice", email="alice@example.com"))
