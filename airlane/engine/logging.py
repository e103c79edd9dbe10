"""
Airlane Logging — Structured JSON file-based activity logs.

Implements:
- FileLogger: Per-object-type, per-category log files (daily rotation)
- Log entry builders for storage, quota and security events
- A module-level writer managed by init_logging()/shutdown_logging()

Files: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl

Writes are synchronous; the storage engine runs no background threads.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("airlane.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "storage": ["execution", "security"],
    "quota": ["execution"],
    "sharing": ["execution", "security"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        if category not in OBJECT_TYPE_CATEGORIES.get(object_type, []):
            raise ValueError(f"Unknown log destination {object_type}/{category}")
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        file_path = self._resolve_path(entry.object_type, entry.category)
        key = str(file_path)

        with self._file_locks[key]:
            with open(file_path, "a", encoding="utf-8") as f:
                f.write(entry.to_json())
                f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        today = date.today().isoformat()
        return self._log_dir / object_type / category / f"{today}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def query(
        self,
        object_type: str,
        category: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Query log entries for a given object_type/category.

        Args:
            start_date: Earliest date to include (defaults to 7 days ago).
            end_date: Latest date to include (defaults to today).
            filters: Exact-match key/value pairs on top-level entry keys.
            limit: Max number of entries to return.

        Returns:
            List of parsed log-entry dicts in chronological order.
        """
        if end_date is None:
            end_date = date.today()
        if start_date is None:
            start_date = end_date - timedelta(days=7)

        log_base = self._log_dir / object_type / category
        if not log_base.exists():
            return []

        results: List[Dict[str, Any]] = []
        current = start_date
        while current <= end_date and len(results) < limit:
            file_path = log_base / f"{current.isoformat()}.jsonl"
            if file_path.exists():
                results.extend(self._read_jsonl(file_path, filters, limit - len(results)))
            current += timedelta(days=1)
        return results

    @staticmethod
    def _read_jsonl(
        path: Path,
        filters: Optional[Dict[str, Any]],
        remaining: int,
    ) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if filters and not all(data.get(k) == v for k, v in filters.items()):
                        continue
                    entries.append(data)
                    if len(entries) >= remaining:
                        break
        except OSError as exc:
            logger.warning("Could not read log file %s: %s", path, exc)
        return entries


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    user_id: Optional[int] = None,
    item_id: Optional[int] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if user_id is not None:
        entry["user_id"] = user_id
    if item_id is not None:
        entry["item_id"] = item_id
    entry.update(extra)
    return entry


def log_storage_operation(
    action: str,
    user_id: Optional[int],
    item_id: Optional[int],
    success: bool = True,
    error: Optional[str] = None,
    **properties: Any,
) -> LogEntry:
    """Build a storage operation entry (upload, move, share, ...)."""
    data = _base_entry(
        event="storage_operation",
        level="INFO" if success else "ERROR",
        user_id=user_id,
        item_id=item_id,
        action=action,
        success=success,
    )
    if error:
        data["error"] = error
    if properties:
        data["properties"] = properties
    return LogEntry("storage", "execution", data)


def log_quota_event(
    event: str,
    user_id: int,
    bytes_delta: int,
    used_bytes: Optional[int] = None,
    max_bytes: Optional[int] = None,
) -> LogEntry:
    """Build a quota ledger entry (charge, credit, recalculate, rejection)."""
    data = _base_entry(
        event=event,
        level="WARNING" if event == "quota_rejected" else "INFO",
        user_id=user_id,
        bytes_delta=bytes_delta,
    )
    if used_bytes is not None:
        data["used_bytes"] = used_bytes
    if max_bytes is not None:
        data["max_bytes"] = max_bytes
    return LogEntry("quota", "execution", data)


def log_security_event(
    event: str,
    user_id: Optional[int],
    item_id: Optional[int] = None,
    reason: Optional[str] = None,
    **extra: Any,
) -> LogEntry:
    """Build a sharing/access security entry (denied access, dead link)."""
    data = _base_entry(
        event=event,
        level="WARNING",
        user_id=user_id,
        item_id=item_id,
        **extra,
    )
    if reason:
        data["reason"] = reason
    return LogEntry("sharing", "security", data)


# ---------------------------------------------------------------------------
# Convenience: module-level writer
# ---------------------------------------------------------------------------

_file_logger: Optional[FileLogger] = None


def init_logging(log_dir: str = "logs", level: str = "INFO") -> FileLogger:
    """Initialize the module-level structured log writer."""
    global _file_logger
    logging.getLogger("airlane").setLevel(level.upper())
    _file_logger = FileLogger(log_dir=log_dir)
    logger.info(f"Structured logging initialised at {_file_logger.log_dir}")
    return _file_logger


def get_file_logger() -> Optional[FileLogger]:
    return _file_logger


def log(entry: LogEntry) -> bool:
    """Write an entry through the module-level writer. Never raises."""
    if _file_logger is None:
        logger.debug("Structured logging not initialized — entry dropped")
        return False
    try:
        _file_logger.write(entry)
        return True
    except OSError as e:
        logger.error(f"Log write error: {e}")
        return False


def shutdown_logging() -> None:
    global _file_logger
    _file_logger = None
