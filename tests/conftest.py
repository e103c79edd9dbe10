"""
Airlane Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

Every test gets a fresh in-memory SQLite database (foreign keys on), a blob
store under tmp_path and a frozen clock that only moves when told to.
"""

from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool


# ---------------------------------------------------------------------------
# Global singletons
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset config and structured-log singletons between tests."""
    import airlane.engine.config as cfg_mod
    from airlane.engine.logging import shutdown_logging

    cfg_mod._platform_config = None
    shutdown_logging()
    yield
    cfg_mod._platform_config = None
    shutdown_logging()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FrozenClock:
    """Callable clock returning aware UTC datetimes; moves only on advance()."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    import airlane.db.models  # noqa: F401
    from airlane.db.base import Base
    from airlane.db.session import create_storage_engine
    from airlane.engine.config import DatabaseConfig

    eng = create_storage_engine(
        DatabaseConfig(url="sqlite://"),
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    s = Session(engine)
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Plans, users, teams
# ---------------------------------------------------------------------------

@pytest.fixture
def storage_config(tmp_path):
    """Small plan limits so quota edges are easy to hit."""
    from airlane.engine.config import PlanConfig, StorageConfig

    return StorageConfig(
        root=str(tmp_path / "storage"),
        plans={
            "basic": PlanConfig(
                name="Basic", storage_limit_bytes=1000, max_file_size_bytes=800, version_cap=5
            ),
            "premium": PlanConfig(
                name="Premium", storage_limit_bytes=100_000, max_file_size_bytes=50_000, version_cap=0
            ),
        },
    )


@pytest.fixture
def plan_catalog(storage_config):
    from airlane.storage.plans import PlanCatalog

    return PlanCatalog.from_config(storage_config)


@pytest.fixture
def make_user(session, plan_catalog):
    """Factory: make_user("alice", plan="premium", version_cap=2)."""
    from airlane.storage.plans import PlanManager

    manager = PlanManager(session, plan_catalog)

    def _make(name: str = "alice", plan: Optional[str] = None, **overrides):
        user = manager.create_user(name.title(), f"{name}@example.com", plan)
        for key, value in overrides.items():
            setattr(user, key, value)
        session.commit()
        return user

    return _make


@pytest.fixture
def make_team(session):
    """Factory: make_team("Design", alice, bob)."""
    from airlane.storage.teams import TeamDirectory

    directory = TeamDirectory(session)

    def _make(name: str = "Design", *members):
        team = directory.create_team(name)
        for member in members:
            directory.add_member(team, member)
        session.commit()
        return team

    return _make


# ---------------------------------------------------------------------------
# Blobs and the service facade
# ---------------------------------------------------------------------------

@pytest.fixture
def blob_store(storage_config):
    from airlane.storage.blobs import LocalBlobStore

    return LocalBlobStore(storage_config.root)


@pytest.fixture
def service(session, blob_store, plan_catalog, clock):
    from airlane.storage.service import StorageService

    return StorageService(session, blob_store, plan_catalog, clock=clock)


@pytest.fixture
def make_upload():
    """Factory: make_upload("report.pdf", b"...", size=None, mime_type=None)."""
    from airlane.storage.blobs import UploadedFile

    def _make(filename: str, data: bytes, size: Optional[int] = None, mime_type: Optional[str] = None):
        return UploadedFile(filename=filename, stream=io.BytesIO(data), mime_type=mime_type, size=size)

    return _make


def blob_files(blob_store):
    """All payload files currently on disk."""
    if not blob_store.root.exists():
        return []
    return [p for p in blob_store.root.rglob("*") if p.is_file()]


@pytest.fixture
def stored_files(blob_store):
    return lambda: blob_files(blob_store)


@pytest.fixture
def structured_logs(tmp_path):
    """Initialise the module-level JSONL writer under tmp_path."""
    from airlane.engine.logging import init_logging

    return init_logging(str(tmp_path / "logs"))
