"""AnalysisPipeline: the scan -> analyze -> enhance -> report phase machine."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from smart_ast.config import DEFAULT_EXCLUDE_PATTERNS
from smart_ast.entities.analysis import OutcomeStatus, TaskRequest, TaskType
from smart_ast.entities.errors import TaskError
from smart_ast.memory.result_cache import ResultCache
from smart_ast.nodes.analysis.ai_executor import AIExecutor
from smart_ast.nodes.analysis.complexity_analyzer import ComplexityAnalyzer
from smart_ast.nodes.analysis.performance_profiler import PerformanceProfiler
from smart_ast.nodes.analysis.registry import relevant_files, run_task_analysis
from smart_ast.nodes.analysis.security_analyzer import SecurityAnalyzer
from smart_ast.nodes.scanning.file_reader import FileReader
from smart_ast.nodes.scanning.scanner import ProjectScanner
from smart_ast.reporting.report_builder import ReportBuilder
from smart_ast.resilience.errors import PipelineStateError, ValidationFault
from smart_ast.resilience.handler import ErrorHandler
from smart_ast.resilience.retry import RetryPolicy
from smart_ast.workflows.events import EventLog, EventType
from smart_ast.workflows.models import (
    PHASE_ORDER,
    AnalysisMetrics,
    PipelinePhase,
    PipelineState,
)
from smart_ast.workflows.scheduler import TaskScheduler

if TYPE_CHECKING:
    from collections.abc import Sequence

    from smart_ast.config import AnalyzerConfig
    from smart_ast.entities.analysis import ProjectInfo, TaskOutcome
    from smart_ast.workflows.models import AnalysisReport

logger = logging.getLogger(__name__)

STATE_FILE = "analysis-state.json"

BASE_TASK_TYPES: tuple[TaskType, ...] = (
    TaskType.API,
    TaskType.COMPONENTS,
    TaskType.WEBSOCKET,
    TaskType.AUTH,
    TaskType.DATABASE,
    TaskType.PERFORMANCE,
)
PRESETS: dict[str, tuple[TaskType, ...]] = {
    "security": (TaskType.AUTH, TaskType.SECURITY),
    "quality": (TaskType.PERFORMANCE, TaskType.COMPLEXITY),
}

TaskAnalyzer = Callable[[TaskRequest, "ProjectInfo"], Awaitable[dict[str, Any]]]


def resolve_task_types(
    analysis_type: str | Sequence[str], depth: str = "standard"
) -> list[TaskType]:
    """Expand a preset name or an explicit list into task types.

    ``full`` and ``comprehensive`` give the six base types, or all eight at
    comprehensive depth. A comma-separated string is treated as a list.
    Unknown names are dropped with a warning; duplicates keep first position.
    """
    if isinstance(analysis_type, str):
        if analysis_type in ("full", "comprehensive"):
            return list(TaskType) if depth == "comprehensive" else list(BASE_TASK_TYPES)
        if analysis_type in PRESETS:
            return list(PRESETS[analysis_type])
        names = [name.strip() for name in analysis_type.split(",") if name.strip()]
    else:
        names = list(analysis_type)

    resolved: list[TaskType] = []
    for name in names:
        try:
            task_type = TaskType(name)
        except ValueError:
            logger.warning("Ignoring unknown analysis type %r", name)
            continue
        if task_type not in resolved:
            resolved.append(task_type)
    return resolved


class AnalysisPipeline:
    """Runs one analysis of a project from scan to persisted report.

    Phases are entered strictly forward:
    idle -> scanning -> analyzing -> enhancing -> reporting -> completed,
    with ``failed`` reachable from any phase. A pipeline runs once.

    Usage:
        pipeline = AnalysisPipeline(load_config(path="./my-app"))
        report = await pipeline.run()
    """

    def __init__(
        self,
        config: AnalyzerConfig,
        scanner: ProjectScanner | None = None,
        report_builder: ReportBuilder | None = None,
        ai_executor: AIExecutor | None = None,
        cache: ResultCache | None = None,
        handler: ErrorHandler | None = None,
        events: EventLog | None = None,
        reader: FileReader | None = None,
        task_analyzer: TaskAnalyzer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Wire collaborators, building defaults from ``config``.

        Args:
            config: Immutable run configuration.
            scanner: Project scanner; defaults to one over ``config.path``.
            report_builder: Report writer; defaults to ``config.output``.
            ai_executor: AI CLI runner; defaults to ``config.ai``.
            cache: Result cache; defaults to ``config.cache``.
            handler: Resilience state; defaults to ``config.retry`` and
                ``config.circuit_breaker``.
            events: Event log to record into.
            reader: File reader used by task and secondary analyzers.
            task_analyzer: Produces one task's payload; defaults to
                ``run_task_analysis``.
            clock: Monotonic clock for elapsed time.
        """
        self.config = config
        self.events = events or EventLog()
        self.scanner = scanner or ProjectScanner(
            config.path,
            include=config.include,
            exclude=[*DEFAULT_EXCLUDE_PATTERNS, *config.exclude],
            max_files=config.max_files,
        )
        self.report_builder = report_builder or ReportBuilder(
            config.output.directory, config.output.formats
        )
        self.ai_executor = ai_executor or AIExecutor(
            config.ai.provider, config.ai.timeout_seconds, config.ai.model
        )
        self.cache = cache or ResultCache(
            config.cache.directory, config.cache.ttl_seconds, config.cache.enabled
        )
        self.retry_policy = RetryPolicy(
            max_attempts=config.retry.max_attempts,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
            jitter=config.retry.jitter,
        )
        self.handler = handler or ErrorHandler(
            retry_policy=self.retry_policy,
            failure_threshold=config.circuit_breaker.failure_threshold,
            breaker_timeout=config.circuit_breaker.timeout_seconds,
            verbose=config.verbose,
        )
        self.reader = reader or FileReader(config.max_file_size)
        self.task_analyzer = task_analyzer or self._run_task_analysis
        self.security_analyzer = SecurityAnalyzer()
        self.performance_profiler = PerformanceProfiler()
        self.complexity_analyzer = ComplexityAnalyzer()
        self._clock = clock

        self.state = PipelineState()
        self.project: ProjectInfo | None = None
        self.task_types: list[TaskType] = []
        self.outcomes: dict[TaskType, TaskOutcome] = {}
        self.scheduler: TaskScheduler | None = None
        self._started: float | None = None
        self._finished: float | None = None

        self.handler.on_error(
            lambda info: self.events.emit(EventType.ERROR, error=info.model_dump(mode="json"))
        )
        self.handler.on_circuit_open(
            lambda payload: self.events.emit(EventType.CIRCUIT_BREAKER_OPEN, **payload)
        )

    # -- run ---------------------------------------------------------------

    async def run(self) -> AnalysisReport:
        """Execute every phase and return the report.

        Raises:
            PipelineStateError: The pipeline already ran.
            ValidationFault: Nothing to analyze.
            Exception: Any non-recoverable task fault, after recording it.
        """
        if self.state.phase != PipelinePhase.IDLE:
            raise PipelineStateError(f"pipeline already ran (phase: {self.state.phase})")

        self.state.started_at = datetime.now(tz=UTC)
        self._started = self._clock()
        self.events.emit(
            EventType.ANALYSIS_START,
            path=self.config.path,
            analysis_type=self.config.analysis_type,
        )
        logger.info("Starting analysis of %s", self.config.path)

        try:
            self._transition(PipelinePhase.SCANNING)
            project = await self.scan()

            self._transition(PipelinePhase.ANALYZING)
            outcomes = await self.analyze(project)

            self._transition(PipelinePhase.ENHANCING)
            enhanced = await self.enhance(outcomes, project)

            self._transition(PipelinePhase.REPORTING)
            report = self.build_report(outcomes, project, enhanced)

            self._transition(PipelinePhase.COMPLETED)
            self._finished = self._clock()
            self.save_state(report)
        except Exception as exc:
            self._fail(exc)
            raise
        finally:
            await self.cleanup()

        self.events.emit(
            EventType.ANALYSIS_COMPLETE,
            output_dir=report.output_dir,
            files=report.files,
            metrics=report.metrics,
        )
        logger.info("Analysis complete: %s", report.summary.get("text", ""))
        return report

    def _transition(self, phase: PipelinePhase) -> None:
        current = self.state.phase
        if phase == PipelinePhase.FAILED:
            allowed = current not in (PipelinePhase.COMPLETED, PipelinePhase.FAILED)
        else:
            allowed = (
                current != PipelinePhase.FAILED
                and PHASE_ORDER.index(phase) == PHASE_ORDER.index(current) + 1
            )
        if not allowed:
            raise PipelineStateError(f"illegal phase transition {current} -> {phase}")

        self.state.phase = phase
        logger.debug("Pipeline phase: %s -> %s", current, phase)
        self.events.emit(EventType.PHASE_CHANGE, previous=current.value, phase=phase.value)

    def _fail(self, exc: Exception) -> None:
        info = self.handler.handle(exc, "pipeline run")
        if not any(e.error is info for e in self.state.errors):
            self.state.errors.append(TaskError(task_type="pipeline", error=info))
        logger.error("Analysis failed: %s", info.original_message)
        self._finished = self._clock()
        if self.state.phase not in (PipelinePhase.COMPLETED, PipelinePhase.FAILED):
            self._transition(PipelinePhase.FAILED)

    # -- phases ------------------------------------------------------------

    async def scan(self) -> ProjectInfo:
        """Scan the project.

        Raises:
            FileNotFoundError: The project directory does not exist.
            ValidationFault: The scan found no files.
        """
        project = await asyncio.to_thread(self.scanner.scan)
        self.project = project
        if project.total_files == 0:
            raise ValidationFault(
                "No files found to analyze. Check your include/exclude patterns."
            )
        logger.info(
            "Found %s project using %s (%d files)",
            project.language,
            project.framework,
            project.total_files,
        )
        return project

    async def analyze(self, project: ProjectInfo) -> dict[TaskType, TaskOutcome]:
        self.task_types = resolve_task_types(
            self.config.analysis_type, self.config.analysis_depth
        )
        if not self.task_types:
            raise ValidationFault(
                f"No valid analysis types in {self.config.analysis_type!r}"
            )

        requests = [
            TaskRequest(task_type=t, input_files=tuple(relevant_files(t, project.files)))
            for t in self.task_types
        ]
        self.scheduler = TaskScheduler(
            analyze=lambda request: self.task_analyzer(request, project),
            cache=self.cache,
            handler=self.handler,
            retry_policy=self.retry_policy,
            concurrent=self.config.parallel,
            max_concurrency=self.config.max_concurrent_tasks,
            timeout_seconds=self.config.timeout_seconds,
            listener=self,
        )
        try:
            await self.scheduler.run(requests)
        finally:
            self.outcomes = dict(self.scheduler.outcomes)
        return self.outcomes

    async def enhance(
        self, outcomes: dict[TaskType, TaskOutcome], project: ProjectInfo
    ) -> dict[str, dict[str, Any]]:
        """Run the secondary analyzers whose trigger holds. Never raises."""
        jobs: list[tuple[str, Callable[..., dict[str, Any]], dict[str, Any] | None]] = []

        security_inputs = [
            outcomes[t].payload for t in (TaskType.AUTH, TaskType.SECURITY) if t in outcomes
        ]
        if security_inputs:
            jobs.append(("security", self.security_analyzer.analyze, _merge_payloads(security_inputs)))
        if TaskType.PERFORMANCE in outcomes:
            jobs.append((
                "performance",
                self.performance_profiler.analyze,
                outcomes[TaskType.PERFORMANCE].payload,
            ))
        complexity = outcomes.get(TaskType.COMPLEXITY)
        if self.config.analysis_depth == "comprehensive" or complexity is not None:
            jobs.append((
                "complexity",
                self.complexity_analyzer.analyze,
                complexity.payload if complexity is not None else None,
            ))

        if not jobs:
            return {}

        logger.info("Enhancing results with specialized analyzers...")
        refs = project.all_files()[: self.config.max_files]
        files = await asyncio.to_thread(self.reader.read_files, refs)

        enhanced: dict[str, dict[str, Any]] = {}
        for name, analyze, prior in jobs:
            try:
                enhanced[name] = analyze(prior, files, project)
            except Exception as e:
                warning = f"{name} enhancement failed: {e}"
                logger.warning("%s", warning, exc_info=self.config.verbose)
                self.state.warnings.append(warning)
        return enhanced

    def build_report(
        self,
        outcomes: dict[TaskType, TaskOutcome],
        project: ProjectInfo,
        enhanced: dict[str, dict[str, Any]],
    ) -> AnalysisReport:
        report = self.report_builder.build(
            outcomes,
            project,
            enhanced=enhanced,
            warnings=list(self.state.warnings),
            error_history=[r.model_dump(mode="json") for r in self.handler.history],
        )
        report.analysis_metrics = self.get_analysis_metrics()
        report.state = self.state.snapshot()
        report.events = self.events
        return report

    def save_state(self, report: AnalysisReport) -> Path | None:
        """Write ``analysis-state.json`` when enabled. Failures are logged only."""
        if not self.config.save_state:
            return None
        path = Path(report.output_dir) / STATE_FILE
        document = {
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "options": self.config.model_dump(mode="json"),
            "metrics": self.get_analysis_metrics().to_dict(),
            "state": self.state.snapshot(),
            "summary": {
                "total_files": self.project.total_files if self.project else 0,
                "analysis_types": [t.value for t in self.task_types],
                "success": not self.state.errors,
            },
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save analysis state: %s", e)
            return None
        logger.debug("Analysis state saved to %s", path)
        return path

    async def cleanup(self) -> None:
        try:
            await self.ai_executor.cleanup()
        except Exception as e:
            logger.warning("Cleanup failed: %s", e)

    # -- scheduler listener ------------------------------------------------

    def on_task_start(self, task_type: TaskType) -> None:
        logger.info("Analyzing %s...", task_type)
        self.events.emit(EventType.ANALYSIS_TYPE_START, task_type=task_type.value)

    def on_task_complete(
        self, task_type: TaskType, outcome: TaskOutcome, completed: int, total: int
    ) -> None:
        if outcome.error_info is not None:
            self.state.errors.append(TaskError(task_type=task_type.value, error=outcome.error_info))
        if outcome.status == OutcomeStatus.WARNING:
            self.state.warnings.append(f"{task_type} analysis completed with warnings")
        elif outcome.status == OutcomeStatus.SUCCESS:
            logger.info("%s analysis complete%s", task_type, " (cached)" if outcome.from_cache else "")

        self.state.progress = round(completed / total * 100) if total else 100
        self.events.emit(EventType.PROGRESS, percent=self.state.progress)
        self.events.emit(
            EventType.ANALYSIS_TYPE_COMPLETE,
            task_type=task_type.value,
            status=outcome.status.value,
            from_cache=outcome.from_cache,
        )

    # -- metrics -----------------------------------------------------------

    def get_analysis_metrics(self) -> AnalysisMetrics:
        if self._started is None:
            elapsed = 0.0
        else:
            elapsed = (self._finished or self._clock()) - self._started
        hits = self.scheduler.cache_hits if self.scheduler else 0
        lookups = self.scheduler.cache_lookups if self.scheduler else 0
        return AnalysisMetrics(
            elapsed_seconds=round(elapsed, 3),
            files_analyzed=self.project.total_files if self.project else 0,
            cache_hits=hits,
            cache_lookups=lookups,
            cache_efficiency=round(hits / lookups * 100) if lookups else 0,
            errors=len(self.state.errors),
            warnings=len(self.state.warnings),
        )

    async def _run_task_analysis(
        self, request: TaskRequest, project: ProjectInfo
    ) -> dict[str, Any]:
        return await run_task_analysis(request, project, self.reader, self.ai_executor)


def _merge_payloads(payloads: list[dict[str, Any]]) -> dict[str, Any]:
    """Merge task payloads, skipping failed ones unless every one failed."""
    usable = [p for p in payloads if not p.get("error")]
    if not usable:
        return payloads[0]
    merged: dict[str, Any] = {}
    for payload in usable:
        merged.update(payload)
    return merged
