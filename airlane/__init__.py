"""
Airlane — Storage domain engine for personal and team file storage.
Version: 1.0

Folders, files and notes in a per-user tree, bounded version history,
per-plan quotas, and sharing with users, teams, the company, or public links.

Entry point: ``airlane.storage.StorageService``.
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "storage", "utilities"]
