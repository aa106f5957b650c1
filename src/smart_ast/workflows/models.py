"""Pipeline state and result models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from smart_ast.entities.errors import TaskError
    from smart_ast.workflows.events import EventLog


class PipelinePhase(StrEnum):
    """Pipeline phases, in the only order they may be entered."""

    IDLE = "idle"
    SCANNING = "scanning"
    ANALYZING = "analyzing"
    ENHANCING = "enhancing"
    REPORTING = "reporting"
    COMPLETED = "completed"
    FAILED = "failed"


PHASE_ORDER: tuple[PipelinePhase, ...] = (
    PipelinePhase.IDLE,
    PipelinePhase.SCANNING,
    PipelinePhase.ANALYZING,
    PipelinePhase.ENHANCING,
    PipelinePhase.REPORTING,
    PipelinePhase.COMPLETED,
)


@dataclass
class PipelineState:
    """Mutable progress of one pipeline run."""

    phase: PipelinePhase = PipelinePhase.IDLE
    progress: int = 0
    errors: list[TaskError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    started_at: datetime | None = None

    def snapshot(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "progress": self.progress,
            "errors": [e.model_dump(mode="json") for e in self.errors],
            "warnings": list(self.warnings),
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


@dataclass(frozen=True)
class AnalysisMetrics:
    """Aggregate run metrics.

    ``cache_efficiency`` is the rounded percentage of cache lookups that hit,
    0 when no lookup happened.
    """

    elapsed_seconds: float = 0.0
    files_analyzed: int = 0
    cache_hits: int = 0
    cache_lookups: int = 0
    cache_efficiency: int = 0
    errors: int = 0
    warnings: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AnalysisReport:
    """What a completed run hands back to its caller."""

    output_dir: str
    files: list[str]
    summary: dict[str, Any]
    insights: list[str]
    recommendations: list[dict[str, Any]]
    metrics: dict[str, Any]
    analysis_metrics: AnalysisMetrics | None = None
    state: dict[str, Any] = field(default_factory=dict)
    events: EventLog | None = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
