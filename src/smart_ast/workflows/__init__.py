"""Pipeline orchestration: scheduling, lifecycle events and run state.

``AnalysisPipeline`` lives in ``smart_ast.workflows.pipeline`` and is not
re-exported here, so that reporting can import the models without pulling in
the orchestrator.
"""

from smart_ast.workflows.events import EventLog, EventType, PipelineEvent
from smart_ast.workflows.models import (
    AnalysisMetrics,
    AnalysisReport,
    PipelinePhase,
    PipelineState,
)
from smart_ast.workflows.scheduler import TaskScheduler

__all__ = [
    "AnalysisMetrics",
    "AnalysisReport",
    "EventLog",
    "EventType",
    "PipelineEvent",
    "PipelinePhase",
    "PipelineState",
    "TaskScheduler",
]
