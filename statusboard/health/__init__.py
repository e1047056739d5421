"""Health subsystem: check engine, definition registry, snapshot store, scheduler."""

from .engine import (
    CheckDefinition,
    CheckExecutor,
    CheckRunResult,
    CheckSnapshot,
    Deadline,
    ErrorCode,
    Status,
    classify,
)
from .query import SnapshotQueryService, StatusRow
from .registry import DefinitionRegistry, ReconcileReport
from .scheduler import HealthScheduler, TriggerOutcome
from .store import ResultStore
