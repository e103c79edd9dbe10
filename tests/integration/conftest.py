"""
Integration test fixtures — a full project on disk with a file-backed database.

Uses SQLite so no live infrastructure is needed; point ``database.url`` at
PostgreSQL to run the same workflows against the production driver.
Mark with @pytest.mark.integration to skip in unit-only runs.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import pytest


# Custom marker for integration tests
def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end storage workflows")


@pytest.fixture
def integration_project(tmp_path):
    """
    Create an Airlane project tree: airlane.yaml, storage root, log directory.
    Returns the root Path.
    """
    root = tmp_path / "project"
    root.mkdir()

    (root / "airlane.yaml").write_text(
        "platform:\n"
        "  name: IntegrationLane\n"
        "  environment: dev\n"
        "database:\n"
        f"  url: sqlite:///{root / 'airlane.db'}\n"
        "storage:\n"
        f"  root: {root / '.airlane' / 'storage'}\n"
        "  default_plan: basic\n"
        "  plans:\n"
        "    basic:\n"
        "      name: Basic\n"
        "      storage_limit_bytes: 1000\n"
        "      max_file_size_bytes: 800\n"
        "      version_cap: 3\n"
        "    premium:\n"
        "      name: Premium\n"
        "      storage_limit_bytes: 100000\n"
        "      max_file_size_bytes: 50000\n"
        "      version_cap: 0\n"
        "logging:\n"
        f"  directory: {root / '.airlane' / 'logs'}\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def platform(integration_project, monkeypatch):
    """
    Load config by auto-discovery, create tables and start structured logging.
    Yields the PlatformConfig; tears the DB session registry down afterwards.
    """
    from airlane.db.session import close_all_sessions, init_storage_db
    from airlane.engine.config import get_platform_config
    from airlane.engine.logging import init_logging, shutdown_logging

    monkeypatch.chdir(integration_project)
    config = get_platform_config()
    init_storage_db(config.database, create_tables=True)
    init_logging(config.logging.directory, config.logging.level)
    yield config
    shutdown_logging()
    close_all_sessions()
