"""Unit tests for airlane.engine.config — PlatformConfig, plan tiers, loading."""

import pytest

import airlane.engine.config as cfg_mod
from airlane.engine.config import (
    PlanConfig,
    PlatformConfig,
    StorageConfig,
    get_platform_config,
    load_platform_config,
)
from airlane.engine.errors import ConfigError

GIB = 1024 ** 3
MIB = 1024 ** 2


class TestPlatformConfig:
    """Test PlatformConfig Pydantic model."""

    def test_defaults(self):
        cfg = PlatformConfig()
        assert cfg.name == "Airlane"
        assert cfg.environment == "dev"
        assert cfg.database.pool_size == 10
        assert cfg.storage.disk == "local"
        assert cfg.storage.trash_retention_days == 30
        assert cfg.storage.default_plan == "basic"
        assert cfg.logging.level == "INFO"

    def test_default_plans(self):
        plans = PlatformConfig().storage.plans
        assert plans["basic"].storage_limit_bytes == 5 * GIB
        assert plans["basic"].max_file_size_bytes == 20 * MIB
        assert plans["basic"].version_cap == 25
        assert plans["premium"].storage_limit_bytes == 200 * GIB
        assert plans["premium"].max_file_size_bytes == 1024 * MIB
        assert plans["premium"].version_cap == 150

    def test_valid_environments(self):
        for env in ("dev", "staging", "prod"):
            assert PlatformConfig(environment=env).environment == env

    def test_invalid_environment(self):
        with pytest.raises(ValueError, match="dev/staging/prod"):
            PlatformConfig(environment="test")

    def test_default_plan_must_exist(self):
        with pytest.raises(ValueError, match="default_plan"):
            StorageConfig(default_plan="gold")

    def test_negative_limits_rejected(self):
        with pytest.raises(ValueError):
            PlanConfig(name="Broken", storage_limit_bytes=-1, max_file_size_bytes=0)


class TestLoadPlatformConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_platform_config(str(tmp_path / "airlane.yaml"))
        assert cfg == PlatformConfig()

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "airlane.yaml"
        path.write_text(
            "platform:\n"
            "  name: TestLane\n"
            "  environment: staging\n"
            "database:\n"
            "  url: sqlite://\n"
            "storage:\n"
            "  root: /srv/airlane\n"
            "  default_plan: team\n"
            "  plans:\n"
            "    team:\n"
            "      name: Team\n"
            "      storage_limit_bytes: 1000\n"
            "      max_file_size_bytes: 100\n"
            "      version_cap: 3\n"
            "logging:\n"
            "  level: DEBUG\n",
            encoding="utf-8",
        )
        cfg = load_platform_config(str(path))
        assert cfg.name == "TestLane"
        assert cfg.environment == "staging"
        assert cfg.database.url == "sqlite://"
        assert cfg.storage.root == "/srv/airlane"
        assert list(cfg.storage.plans) == ["team"]
        assert cfg.storage.plans["team"].version_cap == 3
        assert cfg.logging.level == "DEBUG"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "airlane.yaml"
        path.write_text("storage: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Could not parse"):
            load_platform_config(str(path))

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "airlane.yaml"
        path.write_text("storage:\n  default_plan: gold\n", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_platform_config(str(path))
        assert exc_info.value.context["validation_errors"]

    def test_auto_discovery_walks_up(self, tmp_path, monkeypatch):
        (tmp_path / "airlane.yaml").write_text("environment: prod\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert load_platform_config().environment == "prod"


class TestGetPlatformConfig:
    def test_cached_singleton(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        first = get_platform_config()
        assert get_platform_config() is first

    def test_uses_loaded_config(self, tmp_path):
        path = tmp_path / "airlane.yaml"
        path.write_text("environment: staging\n", encoding="utf-8")
        load_platform_config(str(path))
        assert get_platform_config().environment == "staging"
        assert cfg_mod._platform_config is get_platform_config()
