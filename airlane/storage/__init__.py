"""Airlane Storage — Item tree, versions, quota, sharing and the service facade."""

from airlane.storage.blobs import LocalBlobStore, UploadedFile  # noqa: F401
from airlane.storage.plans import PlanCatalog, PlanManager, PlanTier  # noqa: F401
from airlane.storage.quota import QuotaLedger  # noqa: F401
from airlane.storage.service import StorageService  # noqa: F401
from airlane.storage.sharing import SharedItems, SharingResolver  # noqa: F401
from airlane.storage.teams import TeamDirectory  # noqa: F401
from airlane.storage.tree import ItemTree  # noqa: F401
from airlane.storage.versions import VersionStore  # noqa: F401

__all__ = [
    "ItemTree",
    "LocalBlobStore",
    "PlanCatalog",
    "PlanManager",
    "PlanTier",
    "QuotaLedger",
    "SharedItems",
    "SharingResolver",
    "StorageService",
    "TeamDirectory",
    "UploadedFile",
    "VersionStore",
]
