"""Health check scheduler: one independent loop per enabled check.

Each key cycles Idle -> Running -> Idle. A tick (timer or manual) that
arrives while the key is Running is dropped rather than queued, so a slow
upstream never has more than one request in flight from us. Executors run
as asyncio tasks (async plugins) or on a thread pool (blocking plugins) and
are raced against their timeout; on timeout the run is abandoned and a
``Timeout`` result is stored instead.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .engine import (
    CheckDefinition,
    CheckExecutor,
    CheckRunResult,
    CheckSnapshot,
    Deadline,
    ErrorCode,
    Status,
    classify,
    normalize_result,
    utcnow,
)
from .registry import DefinitionRegistry
from .store import ResultStore

logger = logging.getLogger(__name__)


@dataclass
class TriggerOutcome:
    """Result of a manual run-now request."""

    key: str
    outcome: str  # completed | busy | disabled
    snapshot: CheckSnapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "outcome": self.outcome,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
        }


class HealthScheduler:
    """Runs every enabled check on its own cadence and writes results through."""

    def __init__(
        self,
        registry: DefinitionRegistry,
        store: ResultStore,
        executors: Iterable[CheckExecutor],
        on_result: Callable[[CheckSnapshot], Any] | None = None,
        max_workers: int = 16,
    ) -> None:
        self.registry = registry
        self.store = store
        self.on_result = on_result  # SSE broadcast callback
        self._executors: dict[str, CheckExecutor] = {e.key: e for e in executors}
        self._max_workers = max_workers
        self._pool = self._new_pool()
        self._loops: dict[str, asyncio.Task[None]] = {}
        self._loop_intervals: dict[str, int] = {}  # interval each live loop is sleeping on
        self._last_tick: dict[str, float] = {}  # event loop time of the last timer tick
        self._runs: dict[str, asyncio.Task[CheckSnapshot | None]] = {}
        self._in_flight: set[str] = set()
        self._started_at: dict[str, datetime] = {}
        self._event_loop: asyncio.AbstractEventLoop | None = None
        self._running = False
        self.run_counts: dict[str, int] = defaultdict(int)
        self.dropped_ticks: dict[str, int] = defaultdict(int)
        registry.subscribe(self._on_definition_changed)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start one loop per enabled definition."""
        if self._running:
            return
        self._running = True
        self._event_loop = asyncio.get_running_loop()

        enabled = self.registry.enabled()
        for definition in enabled:
            self._start_loop(definition.key)

        if not enabled:
            logger.info("No enabled health checks, scheduler idle")
        else:
            logger.info(
                "Health scheduler started: %d of %d checks enabled",
                len(enabled), len(self.registry.all()),
            )

    async def stop(self) -> None:
        """Cancel every loop and in-flight run."""
        self._running = False
        tasks = list(self._loops.values()) + list(self._runs.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loops.clear()
        self._runs.clear()
        self._loop_intervals.clear()
        self._pool.shutdown(wait=False, cancel_futures=True)
        # fresh pool so the scheduler can be started again
        self._pool = self._new_pool()
        logger.info("Health scheduler stopped")

    def _new_pool(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="health-check")

    # ── Introspection ─────────────────────────────────────────────────────

    @property
    def executors(self) -> dict[str, CheckExecutor]:
        return dict(self._executors)

    def is_running(self, key: str) -> bool:
        return key in self._in_flight

    def state(self, key: str) -> str:
        return "running" if key in self._in_flight else "idle"

    def is_scheduled(self, key: str) -> bool:
        task = self._loops.get(key)
        return task is not None and not task.done()

    def started_at(self, key: str) -> datetime | None:
        return self._started_at.get(key)

    # ── Enable / disable ──────────────────────────────────────────────────

    def enable(self, key: str) -> CheckDefinition:
        return self.registry.set_enabled(key, True)

    def disable(self, key: str) -> CheckDefinition:
        return self.registry.set_enabled(key, False)

    def _on_definition_changed(self, definition: CheckDefinition) -> None:
        """Registry listener; may be called from a request worker thread."""
        event_loop = self._event_loop
        if event_loop is None or not self._running:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is event_loop:
            self._sync_schedule(definition.key)
        else:
            event_loop.call_soon_threadsafe(self._sync_schedule, definition.key)

    def _sync_schedule(self, key: str) -> None:
        if not self._running:
            return
        definition = self.registry.get(key)
        wanted = definition is not None and definition.is_enabled
        if wanted and not self.is_scheduled(key):
            self._start_loop(key)
            logger.info("Check %s enabled, scheduling resumed", key)
        elif not wanted and self.is_scheduled(key):
            self._stop_loop(key)
            logger.info("Check %s disabled, scheduling stopped", key)
        elif wanted and self._loop_intervals.get(key, definition.interval_seconds) != definition.interval_seconds:
            # the sleeping loop still waits on the old interval; re-arm it from the last tick
            last = self._last_tick.get(key)
            delay = 0.0
            if last is not None and self._event_loop is not None:
                delay = max(0.0, definition.interval_seconds - (self._event_loop.time() - last))
            self._stop_loop(key)
            self._start_loop(key, initial_delay=delay)
            logger.info(
                "Check %s interval changed to %ss, next tick in %.1fs",
                key, definition.interval_seconds, delay,
            )

    def _start_loop(self, key: str, initial_delay: float = 0.0) -> None:
        definition = self.registry.get(key)
        if definition is not None:
            self._loop_intervals[key] = definition.interval_seconds
        self._loops[key] = asyncio.create_task(
            self._check_loop(key, initial_delay), name=f"health-loop-{key}",
        )

    def _stop_loop(self, key: str) -> None:
        # the in-flight run (if any) is a separate task and still finishes
        task = self._loops.pop(key, None)
        self._loop_intervals.pop(key, None)
        if task:
            task.cancel()

    # ── Triggers ──────────────────────────────────────────────────────────

    async def _check_loop(self, key: str, initial_delay: float = 0.0) -> None:
        """Persistent loop: tick now, then every interval since the last tick started.

        If a run started before this loop (e.g. the key was disabled and
        re-enabled mid-run) is still in flight, the first tick waits for it
        to finish instead of being dropped.
        """
        event_loop = asyncio.get_running_loop()
        try:
            if initial_delay > 0:
                await asyncio.sleep(initial_delay)

            first = True
            while self._running:
                definition = self.registry.get(key)
                if definition is None or not definition.is_enabled:
                    break
                self._loop_intervals[key] = definition.interval_seconds

                in_flight = self._runs.get(key)
                if first and in_flight is not None:
                    # cancelling this loop leaves the awaited run untouched
                    await asyncio.wait({in_flight})
                    first = False
                    continue
                first = False

                tick_started = event_loop.time()
                self._last_tick[key] = tick_started
                try:
                    self._tick(definition)
                except Exception:
                    logger.exception("Health tick error: %s", key)

                elapsed = event_loop.time() - tick_started
                await asyncio.sleep(max(0.0, definition.interval_seconds - elapsed))
        finally:
            if self._loops.get(key) is asyncio.current_task():
                del self._loops[key]
                self._loop_intervals.pop(key, None)

    def _tick(
        self, definition: CheckDefinition, manual: bool = False,
    ) -> asyncio.Task[CheckSnapshot | None] | None:
        """Start a run unless one is already in flight for this key."""
        key = definition.key
        if key in self._in_flight:
            if not manual:
                self.dropped_ticks[key] += 1
            logger.debug("Check %s still running, %s dropped", key, "trigger" if manual else "tick")
            return None

        # test-and-set happens on the event loop thread with no await in between
        self._in_flight.add(key)
        task = asyncio.create_task(self._run(definition), name=f"health-run-{key}")
        self._runs[key] = task
        return task

    async def run_now(self, key: str) -> TriggerOutcome:
        """Manual trigger sharing the timer's Idle/Running guard.

        Raises ``KeyError`` for unknown keys. A busy or disabled key is a
        no-op reported through ``TriggerOutcome.outcome``.
        """
        definition = self.registry.get(key)
        if definition is None:
            raise KeyError(key)
        if not definition.is_enabled:
            return TriggerOutcome(key=key, outcome="disabled")

        task = self._tick(definition, manual=True)
        if task is None:
            return TriggerOutcome(key=key, outcome="busy")

        # caller cancellation (e.g. client disconnect) must not abort the run
        snapshot = await asyncio.shield(task)
        return TriggerOutcome(key=key, outcome="completed", snapshot=snapshot)

    async def run_all_now(self) -> list[TriggerOutcome]:
        """Trigger every enabled check concurrently."""
        keys = [d.key for d in self.registry.enabled()]
        return list(await asyncio.gather(*(self.run_now(k) for k in keys)))

    # ── Execution ─────────────────────────────────────────────────────────

    async def _run(self, definition: CheckDefinition) -> CheckSnapshot | None:
        key = definition.key
        self._started_at[key] = utcnow()
        try:
            raw = await self._execute(definition)
            result = classify(definition, raw)
            snapshot = CheckSnapshot.from_result(key, result, utcnow())

            try:
                self.store.write(snapshot)
            except Exception:
                logger.exception("Failed to store result for %s", key)
                return None

            self.run_counts[key] += 1
            logger.debug(
                "Check %s: %s (%sms) %s",
                key, snapshot.status.value, snapshot.latency_ms, snapshot.message,
            )
            self._notify(snapshot)
            return snapshot
        finally:
            self._in_flight.discard(key)
            if self._runs.get(key) is asyncio.current_task():
                del self._runs[key]

    async def _execute(self, definition: CheckDefinition) -> CheckRunResult:
        key = definition.key
        executor = self._executors.get(key)
        if executor is None:
            return normalize_result(
                CheckRunResult(
                    status=Status.UNKNOWN,
                    message="Check implementation missing",
                    error_code=ErrorCode.MISSING_CHECK.value,
                    error_detail=f"No check implementation is registered for key '{key}'.",
                ),
                0,
            )

        timeout = definition.timeout_seconds
        deadline = Deadline(timeout)
        t0 = time.perf_counter()
        future = self._invoke(executor, deadline)

        try:
            done, _ = await asyncio.wait({future}, timeout=timeout)
        except asyncio.CancelledError:
            deadline.cancel()
            future.cancel()
            raise

        measured = _elapsed_ms(t0)

        if future not in done:
            # abandon: do not wait for the executor to unwind
            deadline.cancel()
            future.cancel()
            future.add_done_callback(_discard_late_result)
            logger.warning("Check %s timed out after %ss", key, timeout)
            return normalize_result(
                CheckRunResult(
                    status=Status.DOWN,
                    latency_ms=measured,
                    message="Timed out",
                    error_code=ErrorCode.TIMEOUT.value,
                    error_detail=f"Check timed out after {timeout} seconds.",
                ),
                measured,
            )

        try:
            raw = future.result()
        except Exception as e:
            logger.warning("Check %s raised %s", key, type(e).__name__, exc_info=True)
            return normalize_result(_fault(f"{type(e).__name__}: {e}", measured), measured)

        if not isinstance(raw, CheckRunResult):
            logger.warning("Check %s returned %s instead of a result", key, type(raw).__name__)
            return normalize_result(
                _fault(f"Executor returned {type(raw).__name__}", measured), measured,
            )
        return normalize_result(raw, measured)

    def _invoke(self, executor: CheckExecutor, deadline: Deadline) -> asyncio.Future[Any]:
        if inspect.iscoroutinefunction(executor.execute):
            return asyncio.ensure_future(executor.execute(deadline))
        return asyncio.ensure_future(self._invoke_blocking(executor, deadline))

    async def _invoke_blocking(self, executor: CheckExecutor, deadline: Deadline) -> Any:
        event_loop = asyncio.get_running_loop()
        result = await event_loop.run_in_executor(self._pool, executor.execute, deadline)
        # a plain ``def execute`` may still hand back a coroutine
        if inspect.isawaitable(result):
            result = await result
        return result

    def _notify(self, snapshot: CheckSnapshot) -> None:
        if self.on_result:
            try:
                self.on_result(snapshot)
            except Exception:
                logger.exception("SSE callback error")


def _fault(detail: str, latency_ms: int) -> CheckRunResult:
    return CheckRunResult(
        status=Status.DOWN,
        latency_ms=latency_ms,
        message="Request failed",
        error_code=ErrorCode.EXECUTOR_FAULT.value,
        error_detail=detail,
    )


def _elapsed_ms(t0: float) -> int:
    return max(0, int((time.perf_counter() - t0) * 1000))


def _discard_late_result(future: asyncio.Future[Any]) -> None:
    """Consume an abandoned executor's outcome so it is never reported."""
    if not future.cancelled():
        future.exception()

