"""
Data models for storage layer.

Defines the persisted usage document and the snapshots derived from it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List


class ErrorCategory(Enum):
    """Mutually exclusive error buckets; values are the persisted keys."""
    RATE_LIMIT = "rateLimit"
    QUOTA = "quota"
    AUTH = "auth"
    SERVER = "server"
    NETWORK = "network"
    OTHER = "other"


def empty_error_categories() -> Dict[ErrorCategory, int]:
    return {category: 0 for category in ErrorCategory}


@dataclass(frozen=True)
class ErrorLogEntry:
    """One entry of the bounded error history."""
    timestamp: datetime
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "error": self.message,
            "context": dict(self.context),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "ErrorLogEntry":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            message=data.get("error", ""),
            context=dict(data.get("context") or {}),
        )


@dataclass
class UsageRecord:
    """Cumulative usage for one billing period.

    Stored as a single JSON document; every update rewrites the whole
    document so readers never observe a half-applied change.
    """
    last_reset: datetime
    token_usage: int = 0
    request_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    error_categories: Dict[ErrorCategory, int] = field(default_factory=empty_error_categories)
    errors: List[ErrorLogEntry] = field(default_factory=list)
    version: int = 0

    @classmethod
    def fresh(cls, now: datetime) -> "UsageRecord":
        """Zeroed record for a billing period starting at ``now``."""
        return cls(last_reset=now)

    def to_document(self) -> Dict[str, Any]:
        """Serialize using the persisted field names."""
        return {
            "tokenUsage": self.token_usage,
            "requestCount": self.request_count,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "errors": [entry.to_document() for entry in self.errors],
            "errorCategories": {
                category.value: self.error_categories.get(category, 0)
                for category in ErrorCategory
            },
            "lastReset": self.last_reset.isoformat(),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any], version: int = 0) -> "UsageRecord":
        """Deserialize a stored document, tolerating missing counters."""
        raw_categories = data.get("errorCategories") or {}
        categories = empty_error_categories()
        for category in ErrorCategory:
            categories[category] = int(raw_categories.get(category.value, 0))

        return cls(
            last_reset=datetime.fromisoformat(data["lastReset"]),
            token_usage=int(data.get("tokenUsage", 0)),
            request_count=int(data.get("requestCount", 0)),
            success_count=int(data.get("successCount", 0)),
            failure_count=int(data.get("failureCount", 0)),
            error_categories=categories,
            errors=[ErrorLogEntry.from_document(e) for e in data.get("errors") or []],
            version=version,
        )


@dataclass(frozen=True)
class TokenUsageResult:
    """Outcome of recording token usage against the monthly quota."""
    warning_triggered: bool
    usage_percentage: float


@dataclass(frozen=True)
class UsageSnapshot:
    """Read-only view of usage for display."""
    token_usage: int
    request_count: int
    success_count: int
    failure_count: int
    error_categories: Dict[ErrorCategory, int]
    last_reset: datetime
    quota_limit: int
    remaining_quota: int
    usage_percentage: float
    success_rate: float
    recent_errors: List[ErrorLogEntry]
