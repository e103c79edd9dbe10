"""Unit tests for airlane.storage.plans — PlanCatalog and copy-on-assign."""

import pytest
from pydantic import ValidationError

from airlane.engine.config import PlanConfig, StorageConfig
from airlane.engine.errors import ValidationFailedError
from airlane.storage.plans import PlanCatalog, PlanManager, PlanTier


class TestPlanCatalog:
    def test_from_config(self, plan_catalog):
        assert "basic" in plan_catalog
        assert "gold" not in plan_catalog
        basic = plan_catalog.get("basic")
        assert basic.key == "basic"
        assert basic.name == "Basic"
        assert basic.storage_limit_bytes == 1000

    def test_default(self, plan_catalog):
        assert plan_catalog.default.key == "basic"

    def test_iteration(self, plan_catalog):
        assert sorted(tier.key for tier in plan_catalog) == ["basic", "premium"]

    def test_unknown_plan(self, plan_catalog):
        with pytest.raises(ValidationFailedError, match="gold") as exc_info:
            plan_catalog.get("gold")
        assert exc_info.value.validation_errors[0]["field"] == "plan"

    def test_unknown_default(self):
        tier = PlanTier(key="a", name="A", storage_limit_bytes=1, max_file_size_bytes=1, version_cap=0)
        with pytest.raises(ValidationFailedError):
            PlanCatalog({"a": tier}, "b")

    def test_tiers_are_frozen(self, plan_catalog):
        with pytest.raises(ValidationError):
            plan_catalog.get("basic").version_cap = 99

    def test_catalog_is_read_only(self, plan_catalog):
        with pytest.raises(TypeError):
            plan_catalog._tiers["gold"] = plan_catalog.default


class TestPlanManager:
    def test_create_user_on_default_plan(self, session, plan_catalog):
        user = PlanManager(session, plan_catalog).create_user("Alice", " Alice@Example.com ")
        assert user.email == "alice@example.com"
        assert user.plan == "basic"
        assert user.storage_used_bytes == 0
        assert user.max_storage_bytes == 1000
        assert user.max_file_size_bytes == 800
        assert user.version_cap == 5

    def test_create_user_on_named_plan(self, session, plan_catalog):
        user = PlanManager(session, plan_catalog).create_user("Bob", "bob@example.com", "premium")
        assert user.plan == "premium"
        assert user.max_storage_bytes == 100_000
        assert user.version_cap == 0

    def test_assign_copies_limits(self, session, plan_catalog, make_user):
        alice = make_user("alice")
        PlanManager(session, plan_catalog).assign(alice, "premium")
        assert alice.plan == "premium"
        assert alice.max_storage_bytes == 100_000
        assert alice.max_file_size_bytes == 50_000

    def test_assign_unknown_plan(self, session, plan_catalog, make_user):
        alice = make_user("alice")
        with pytest.raises(ValidationFailedError):
            PlanManager(session, plan_catalog).assign(alice, "gold")
        assert alice.plan == "basic"

    def test_redefined_tier_does_not_reach_existing_users(self, session, plan_catalog, make_user):
        alice = make_user("alice")
        redefined = PlanCatalog.from_config(StorageConfig(plans={
            "basic": PlanConfig(name="Basic", storage_limit_bytes=5, max_file_size_bytes=5, version_cap=1),
        }))
        bob = PlanManager(session, redefined).create_user("Bob", "bob@example.com")

        assert alice.max_storage_bytes == 1000
        assert bob.max_storage_bytes == 5

        PlanManager(session, redefined).assign(alice, "basic")
        assert alice.max_storage_bytes == 5
