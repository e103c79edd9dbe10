"""
Airlane Error Hierarchy — Typed, caller-recoverable storage failures.

Every failure the storage engine expects is raised as one of these types
before any durable write happens. Callers translate them into denial
responses; NotFoundError doubles as "access denied" so that unauthorized
access stays indistinguishable from non-existence.

Hierarchy:
    AirlaneError
    ├── InvalidParentError       — Parent is not a folder or belongs to another user
    ├── CyclicMoveError          — Move would place an item inside itself
    ├── FileTooLargeError        — Upload exceeds the per-file plan limit
    ├── QuotaExceededError       — Upload/note exceeds remaining quota
    ├── InvalidPayloadError      — Zero or indeterminate payload size
    ├── NotANoteError            — Note update attempted on a non-note
    ├── NotFoundError            — Unknown id, dead link, or access denied
    ├── ValidationFailedError    — Malformed share target or arguments
    └── ConfigError              — Invalid airlane.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AirlaneError(Exception):
    """
    Base error for all storage engine failures.
    All context is serializable to JSON for structured logs.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.item_id: Optional[int] = context.get("item_id")
        self.user_id: Optional[int] = context.get("user_id")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("item_id", "user_id", "operation")
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.item_id is not None:
            parts.append(f"item_id={self.item_id}")
        return " | ".join(parts)


class InvalidParentError(AirlaneError):
    """Parent is not a folder, or belongs to a different user."""
    pass


class CyclicMoveError(AirlaneError):
    """Target parent is the item itself or one of its descendants."""
    pass


class FileTooLargeError(AirlaneError):
    """Upload size exceeds the user's max_file_size_bytes."""

    def __init__(self, size: int, limit: int, **context: Any):
        self.size = size
        self.limit = limit
        super().__init__(
            f"File size of {size} bytes exceeds the allowed limit of {limit} bytes.",
            **context,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["size"] = self.size
        d["limit"] = self.limit
        return d


class QuotaExceededError(AirlaneError):
    """Storing the payload would exceed the user's remaining quota."""

    def __init__(self, required: int, remaining: int, **context: Any):
        self.required = required
        self.remaining = remaining
        super().__init__(
            f"Storage quota exceeded. Required: {required} bytes, "
            f"remaining: {remaining} bytes.",
            **context,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["required"] = self.required
        d["remaining"] = self.remaining
        return d


class InvalidPayloadError(AirlaneError):
    """Payload size is zero or could not be determined."""
    pass


class NotANoteError(AirlaneError):
    """Note content update attempted on a folder or file."""
    pass


class NotFoundError(AirlaneError):
    """Unknown item/link, expired link, or access denied."""
    pass


class ValidationFailedError(AirlaneError):
    """
    Arguments rejected (sharing with self, unknown plan, past expiry).
    Includes field-level error details.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class ConfigError(AirlaneError):
    """Configuration error — invalid airlane.yaml."""
    pass
