"""
Airlane Plans — Immutable plan tiers and copy-on-assign limits.

Plan tiers are read from configuration once into a read-only catalog.
Assigning a plan copies its numeric limits onto the user row, so later
redefinitions of a tier never reach users until they are reassigned.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from airlane.db.models import User
from airlane.engine.config import StorageConfig
from airlane.engine.errors import ValidationFailedError

logger = logging.getLogger("airlane.storage.plans")


class PlanTier(BaseModel):
    """Resolved limits of one plan tier."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    storage_limit_bytes: int
    max_file_size_bytes: int
    version_cap: int


class PlanCatalog:
    """Read-only lookup table of plan tiers keyed by plan key."""

    def __init__(self, tiers: Mapping[str, PlanTier], default_key: str):
        if default_key not in tiers:
            raise ValidationFailedError(f"Unknown default plan '{default_key}'")
        self._tiers: Mapping[str, PlanTier] = MappingProxyType(dict(tiers))
        self._default_key = default_key

    @classmethod
    def from_config(cls, config: StorageConfig) -> "PlanCatalog":
        tiers: Dict[str, PlanTier] = {
            key: PlanTier(key=key, **plan.model_dump())
            for key, plan in config.plans.items()
        }
        return cls(tiers, config.default_plan)

    def get(self, key: str) -> PlanTier:
        try:
            return self._tiers[key]
        except KeyError:
            raise ValidationFailedError(
                f"Unknown plan '{key}'",
                validation_errors=[{"field": "plan", "error": f"must be one of {sorted(self._tiers)}"}],
            ) from None

    @property
    def default(self) -> PlanTier:
        return self._tiers[self._default_key]

    def __iter__(self) -> Iterator[PlanTier]:
        return iter(self._tiers.values())

    def __contains__(self, key: object) -> bool:
        return key in self._tiers


class PlanManager:
    def __init__(self, session: Session, catalog: PlanCatalog):
        self._session = session
        self._catalog = catalog

    def assign(self, user: User, plan_key: str) -> User:
        """Copy the tier's limits onto the user."""
        tier = self._catalog.get(plan_key)
        user.plan = tier.key
        user.max_storage_bytes = tier.storage_limit_bytes
        user.max_file_size_bytes = tier.max_file_size_bytes
        user.version_cap = tier.version_cap
        self._session.flush()
        logger.info(f"Assigned plan '{tier.key}' to user {user.id}")
        return user

    def create_user(self, name: str, email: str, plan_key: Optional[str] = None) -> User:
        """Create a user with zero usage on the given (or default) plan."""
        tier = self._catalog.get(plan_key) if plan_key else self._catalog.default
        user = User(name=name, email=email.strip().lower(), storage_used_bytes=0)
        self._session.add(user)
        self._session.flush()
        return self.assign(user, tier.key)
