"""Health check engine: models, executor contract, and status classification.

A check plugin is a ``CheckExecutor`` subclass that contributes a
``CheckDefinition`` and produces one ``CheckRunResult`` per execution.
``classify`` applies the definition's latency threshold on top of whatever
the executor decided.
"""

from __future__ import annotations

import dataclasses
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable

# Column limits shared by the registry and the snapshot store
MAX_KEY_LENGTH = 100
MAX_DISPLAY_NAME_LENGTH = 200
MAX_CATEGORY_LENGTH = 100
MAX_MESSAGE_LENGTH = 500
MAX_RAW_MESSAGE_LENGTH = 16_000
MAX_ERROR_CODE_LENGTH = 200
MAX_ERROR_DETAIL_LENGTH = 1000


# ── Models ───────────────────────────────────────────────────────────────────


class Status(str, Enum):
    UNKNOWN = "unknown"
    UP = "up"
    DEGRADED = "degraded"
    DOWN = "down"


class ErrorCode(str, Enum):
    """Structured failure codes carried on Down/Degraded results."""

    SECRET_UNAVAILABLE = "SecretUnavailable"
    AUTHENTICATION_FAILURE = "AuthenticationFailure"
    HTTP_FAILURE = "HttpFailure"
    TIMEOUT = "Timeout"
    INVALID_RESPONSE = "InvalidResponse"
    EXECUTOR_FAULT = "ExecutorFault"
    MISSING_CHECK = "MissingCheck"


@dataclass(frozen=True)
class CheckDefinition:
    """Static scheduling + display metadata for one check."""

    key: str
    display_name: str
    category: str
    interval_seconds: int = 300
    timeout_seconds: int = 10
    degraded_threshold_ms: int | None = None
    is_enabled: bool = True

    def __post_init__(self) -> None:
        key = truncate(self.key, MAX_KEY_LENGTH)
        display_name = truncate(self.display_name, MAX_DISPLAY_NAME_LENGTH)
        if not key:
            raise ValueError("Check 'key' is required")
        if not display_name:
            raise ValueError(f"Check '{key}' needs a display name")
        if self.interval_seconds <= 0:
            raise ValueError(f"Check '{key}': interval_seconds must be > 0")
        if self.timeout_seconds <= 0:
            raise ValueError(f"Check '{key}': timeout_seconds must be > 0")
        if self.degraded_threshold_ms is not None and self.degraded_threshold_ms <= 0:
            raise ValueError(f"Check '{key}': degraded_threshold_ms must be > 0 or None")

        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "key", key)
        object.__setattr__(self, "display_name", display_name)
        object.__setattr__(self, "category", truncate(self.category, MAX_CATEGORY_LENGTH) or "")

    def same_contribution(self, other: CheckDefinition) -> bool:
        """True when every plugin-owned field matches (``is_enabled`` excluded)."""
        return (
            self.display_name == other.display_name
            and self.category == other.category
            and self.interval_seconds == other.interval_seconds
            and self.timeout_seconds == other.timeout_seconds
            and self.degraded_threshold_ms == other.degraded_threshold_ms
        )

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class CheckRunResult:
    """Outcome of a single check execution."""

    status: Status
    latency_ms: int | None = None
    message: str = ""
    raw_message: str | None = None
    http_status_code: int | None = None
    error_code: str | None = None
    error_detail: str | None = None


@dataclass(frozen=True)
class CheckSnapshot:
    """Latest classified result for a key, with the time it was recorded."""

    key: str
    status: Status
    checked_at: datetime
    latency_ms: int | None = None
    message: str = ""
    raw_message: str | None = None
    http_status_code: int | None = None
    error_code: str | None = None
    error_detail: str | None = None

    @classmethod
    def from_result(cls, key: str, result: CheckRunResult, checked_at: datetime) -> CheckSnapshot:
        return cls(
            key=key,
            status=result.status,
            checked_at=checked_at,
            latency_ms=result.latency_ms,
            message=result.message,
            raw_message=result.raw_message,
            http_status_code=result.http_status_code,
            error_code=result.error_code,
            error_detail=result.error_detail,
        )

    def to_dict(self) -> dict[str, Any]:
        d = dataclasses.asdict(self)
        d["status"] = self.status.value
        d["checked_at"] = self.checked_at.isoformat()
        return d


# ── Executor contract ────────────────────────────────────────────────────────


class Deadline:
    """Cancellation signal handed to an executor for one run.

    Async executors are cancelled outright when the deadline passes; blocking
    executors running on a worker thread should poll ``cancelled`` or bound
    their own I/O with ``remaining()``.
    """

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        self.started = time.monotonic()
        self.cancelled = threading.Event()

    @property
    def expires_at(self) -> float:
        return self.started + self.timeout_seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.cancelled.is_set() or self.remaining() <= 0

    def cancel(self) -> None:
        self.cancelled.set()


class CheckExecutor(ABC):
    """Capability every check plugin implements.

    Subclasses set ``definition`` and implement ``execute``, either as a
    coroutine (preferred) or as a plain blocking method. A blocking method
    that returns an awaitable has it awaited on the event loop.
    ``execute`` must not raise for expected conditions: "not configured" is
    ``Status.UNKNOWN``, an unreadable credential is ``Status.DOWN`` with
    ``SecretUnavailable``.
    """

    definition: CheckDefinition

    @property
    def key(self) -> str:
        return self.definition.key

    @abstractmethod
    def execute(self, deadline: Deadline) -> CheckRunResult | Awaitable[CheckRunResult]:
        ...


# ── Classification ───────────────────────────────────────────────────────────


def classify(definition: CheckDefinition, raw: CheckRunResult) -> CheckRunResult:
    """Downgrade a slow ``Up`` to ``Degraded`` when the latency threshold is exceeded.

    Executors own every other status decision.
    """
    threshold = definition.degraded_threshold_ms
    if (
        raw.status is Status.UP
        and threshold is not None
        and raw.latency_ms is not None
        and raw.latency_ms > threshold
    ):
        return dataclasses.replace(raw, status=Status.DEGRADED)
    return raw


def normalize_result(raw: CheckRunResult, measured_ms: int) -> CheckRunResult:
    """Fill in measured latency (floor 0) and clamp free-text fields to column limits."""
    latency = raw.latency_ms if raw.latency_ms is not None else measured_ms
    return dataclasses.replace(
        raw,
        latency_ms=max(0, int(latency)),
        message=truncate(raw.message, MAX_MESSAGE_LENGTH) or "",
        raw_message=truncate(raw.raw_message, MAX_RAW_MESSAGE_LENGTH),
        error_code=truncate(raw.error_code, MAX_ERROR_CODE_LENGTH),
        error_detail=truncate(raw.error_detail, MAX_ERROR_DETAIL_LENGTH),
    )


# ── Helpers ──────────────────────────────────────────────────────────────────


def truncate(value: str | None, max_length: int) -> str | None:
    """Trim whitespace; blank becomes None; cut to ``max_length``."""
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    trimmed = str(value).strip()
    if not trimmed:
        return None
    return trimmed[:max_length]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
