"""
Shared fixtures: an in-memory SQLite database swapped into both services
and Redis disabled so caches run in-process.
"""
import os

# Must be set before the service modules are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["DISABLE_REDIS"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from pricing_service import main as pricing_main
from pricing_service.db import get_session as pricing_get_session
from vitals_service import main as vitals_main
from vitals_service.db import get_session as vitals_get_session


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


def _session_override(engine):
    def get_session_override():
        with Session(engine) as session:
            yield session

    return get_session_override


@pytest.fixture
def pricing_client(engine, monkeypatch):
    monkeypatch.delenv("ADMIN_TOKEN", raising=False)
    pricing_main.app.dependency_overrides[pricing_get_session] = _session_override(engine)
    pricing_main.cache.invalidate_pattern("*")
    yield TestClient(pricing_main.app)
    pricing_main.app.dependency_overrides.clear()
    pricing_main.cache.invalidate_pattern("*")


@pytest.fixture
def vitals_client(engine, monkeypatch):
    monkeypatch.delenv("USER_SERVICE_URL", raising=False)
    monkeypatch.delenv("ADMIN_TOKEN", raising=False)
    vitals_main.app.dependency_overrides[vitals_get_session] = _session_override(engine)
    yield TestClient(vitals_main.app)
    vitals_main.app.dependency_overrides.clear()
