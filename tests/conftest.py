"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from statusboard.health.engine import (
    CheckDefinition,
    CheckExecutor,
    CheckRunResult,
    Deadline,
    Status,
)
from statusboard.health.registry import DefinitionRegistry
from statusboard.health.store import ResultStore


class StaticCheck(CheckExecutor):
    """Async executor returning a fixed result, optionally after a delay."""

    def __init__(self, definition: CheckDefinition, result: CheckRunResult | None = None, delay: float = 0.0):
        self.definition = definition
        self.result = result or CheckRunResult(status=Status.UP, message="OK")
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def execute(self, deadline: Deadline) -> CheckRunResult:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.result
        finally:
            self.active -= 1


class BlockingCheck(CheckExecutor):
    """Synchronous executor that sleeps on a worker thread."""

    def __init__(self, definition: CheckDefinition, delay: float = 0.0):
        self.definition = definition
        self.delay = delay
        self.calls = 0
        self.thread_names: list[str] = []

    def execute(self, deadline: Deadline) -> CheckRunResult:
        self.calls += 1
        self.thread_names.append(threading.current_thread().name)
        end = time.monotonic() + self.delay
        while time.monotonic() < end and not deadline.cancelled.is_set():
            time.sleep(0.01)
        return CheckRunResult(status=Status.UP, message="Blocking OK")


class RaisingCheck(CheckExecutor):
    def __init__(self, definition: CheckDefinition):
        self.definition = definition

    async def execute(self, deadline: Deadline) -> CheckRunResult:
        raise RuntimeError("boom")


def make_definition(key: str = "svc.ping", **overrides) -> CheckDefinition:
    fields = {
        "key": key,
        "display_name": overrides.pop("display_name", key.title()),
        "category": overrides.pop("category", "Testing"),
        "interval_seconds": 300,
        "timeout_seconds": 10,
    }
    fields.update(overrides)
    return CheckDefinition(**fields)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "statusboard.db"


@pytest.fixture
def registry(db_path) -> DefinitionRegistry:
    return DefinitionRegistry(db_path)


@pytest.fixture
def store(db_path) -> ResultStore:
    return ResultStore(db_path)
