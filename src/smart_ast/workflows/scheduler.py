"""TaskScheduler: runs task requests through cache, retry and circuit breaking."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol

from smart_ast.entities.analysis import OutcomeStatus, TaskOutcome, TaskRequest, TaskType
from smart_ast.entities.errors import ErrorCategory

if TYPE_CHECKING:
    from collections.abc import Sequence

    from smart_ast.memory.result_cache import ResultCache
    from smart_ast.resilience.handler import ErrorHandler
    from smart_ast.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_TASK_TIMEOUT = 300.0

Analyze = Callable[[TaskRequest], Awaitable[dict[str, Any]]]


class SchedulerListener(Protocol):
    """Observer notified as tasks start and settle."""

    def on_task_start(self, task_type: TaskType) -> None: ...

    def on_task_complete(
        self, task_type: TaskType, outcome: TaskOutcome, completed: int, total: int
    ) -> None: ...


class TaskScheduler:
    """Executes task requests sequentially or as a bounded concurrent fan-out.

    Every request yields exactly one TaskOutcome. Recoverable faults become
    Warning outcomes; a non-recoverable fault is recorded as an Error outcome
    and then raised (immediately in sequential mode, after all siblings have
    settled in concurrent mode).

    Usage:
        scheduler = TaskScheduler(analyze, cache, handler)
        outcomes = await scheduler.run(requests)
    """

    def __init__(
        self,
        analyze: Analyze,
        cache: ResultCache,
        handler: ErrorHandler,
        retry_policy: RetryPolicy | None = None,
        concurrent: bool = True,
        max_concurrency: int | None = None,
        timeout_seconds: float = DEFAULT_TASK_TIMEOUT,
        listener: SchedulerListener | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialize the scheduler.

        Args:
            analyze: Coroutine function producing a task's payload.
            cache: Result cache consulted before and written after analysis.
            handler: Shared resilience state (retry, breakers, history).
            retry_policy: Overrides the handler's default policy.
            concurrent: Fan out when more than one request is given.
            max_concurrency: Upper bound on simultaneously running tasks.
            timeout_seconds: Per-attempt timeout.
            listener: Optional start/complete observer.
            clock: Timer used for outcome durations.
        """
        self.analyze = analyze
        self.cache = cache
        self.handler = handler
        self.retry_policy = retry_policy
        self.concurrent = concurrent
        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds
        self.listener = listener
        self._clock = clock

        self.outcomes: dict[TaskType, TaskOutcome] = {}
        self.cache_hits = 0
        self.cache_lookups = 0
        self._completed = 0
        self._total = 0

    async def run(self, requests: Sequence[TaskRequest]) -> dict[TaskType, TaskOutcome]:
        """Run every request and return one outcome per task type.

        ``self.outcomes`` holds every settled outcome even when this raises.
        """
        self.outcomes = {}
        self._completed = 0
        self._total = len(requests)

        if self.concurrent and len(requests) > 1:
            await self._run_concurrent(requests)
        else:
            for request in requests:
                await self.run_task(request)
        return self.outcomes

    async def _run_concurrent(self, requests: Sequence[TaskRequest]) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def bounded(request: TaskRequest) -> TaskOutcome:
            if semaphore is None:
                return await self.run_task(request)
            async with semaphore:
                return await self.run_task(request)

        results = await asyncio.gather(*(bounded(r) for r in requests), return_exceptions=True)
        faults = [r for r in results if isinstance(r, BaseException)]
        if faults:
            if len(faults) > 1:
                logger.error(
                    "%d tasks failed non-recoverably; raising the first", len(faults)
                )
            raise faults[0]

    async def run_task(self, request: TaskRequest) -> TaskOutcome:
        """Serve one request from cache or run it under retry and breaker."""
        task_type = request.task_type
        context = f"{task_type} analysis"
        if self.listener is not None:
            self.listener.on_task_start(task_type)
        started = self._clock()

        key = self.cache.generate_key(task_type, request.input_files)
        if key is not None:
            self.cache_lookups += 1
            cached = self.cache.get(key)
            if cached is not None:
                self.cache_hits += 1
                logger.info("Using cached results for %s analysis", task_type)
                return self._settle(TaskOutcome(
                    task_type=task_type,
                    status=OutcomeStatus.SUCCESS,
                    payload=cached,
                    from_cache=True,
                    duration_seconds=self._clock() - started,
                ))

        try:
            payload = await self.handler.execute_with_retry(
                lambda: self.handler.execute_with_circuit_breaker(
                    lambda: self._attempt(request),
                    context,
                    ErrorCategory.EXTERNAL_SERVICE,
                ),
                context,
                self.retry_policy,
            )
        except Exception as exc:
            info = self.handler.handle(exc, context)
            duration = self._clock() - started
            if info.recoverable:
                logger.warning("%s failed, continuing: %s", context, info.message)
                return self._settle(TaskOutcome(
                    task_type=task_type,
                    status=OutcomeStatus.WARNING,
                    payload={"error": info.message, "partial_results": {}},
                    error_info=info,
                    duration_seconds=duration,
                ))
            logger.error("%s failed: %s", context, info.message)
            self._settle(TaskOutcome(
                task_type=task_type,
                status=OutcomeStatus.ERROR,
                error_info=info,
                duration_seconds=duration,
            ))
            raise

        duration = self._clock() - started
        if payload.get("error"):
            logger.warning("%s completed with warnings", context)
            return self._settle(TaskOutcome(
                task_type=task_type,
                status=OutcomeStatus.WARNING,
                payload=payload,
                duration_seconds=duration,
            ))

        self.cache.set(key, payload)
        return self._settle(TaskOutcome(
            task_type=task_type,
            status=OutcomeStatus.SUCCESS,
            payload=payload,
            duration_seconds=duration,
        ))

    async def _attempt(self, request: TaskRequest) -> dict[str, Any]:
        return await asyncio.wait_for(self.analyze(request), timeout=self.timeout_seconds)

    def _settle(self, outcome: TaskOutcome) -> TaskOutcome:
        self.outcomes[outcome.task_type] = outcome
        self._completed += 1
        if self.listener is not None:
            self.listener.on_task_complete(
                outcome.task_type, outcome, self._completed, self._total
            )
        return outcome

    @property
    def cache_efficiency(self) -> int:
        if not self.cache_lookups:
            return 0
        return round(self.cache_hits / self.cache_lookups * 100)
