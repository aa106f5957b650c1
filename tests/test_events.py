"""Tests for the event log and pipeline state models."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest

from smart_ast.entities.errors import TaskError
from smart_ast.resilience.classifier import classify_error
from smart_ast.workflows.events import EventLog, EventType, PipelineEvent
from smart_ast.workflows.models import AnalysisMetrics, PipelinePhase, PipelineState


class TestEventLog:
    def test_emit_records_in_order(self) -> None:
        events = EventLog()
        first = events.emit(EventType.ANALYSIS_START, path="/p")
        events.emit(EventType.PROGRESS, percent=50)
        events.emit(EventType.PROGRESS, percent=100)

        assert isinstance(first, PipelineEvent)
        assert first.data == {"path": "/p"}
        assert len(events) == 3
        assert [e.type for e in events] == [
            EventType.ANALYSIS_START,
            EventType.PROGRESS,
            EventType.PROGRESS,
        ]
        assert [e.data["percent"] for e in events.of_type(EventType.PROGRESS)] == [50, 100]

    def test_subscribers_receive_events(self) -> None:
        events = EventLog()
        received: list[EventType] = []
        events.subscribe(lambda e: received.append(e.type))
        events.emit(EventType.PHASE_CHANGE, phase="scanning")
        assert received == [EventType.PHASE_CHANGE]

    def test_failing_subscriber_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        events = EventLog()
        received: list[EventType] = []

        def broken(event: PipelineEvent) -> None:
            raise RuntimeError("observer broke")

        events.subscribe(broken)
        events.subscribe(lambda e: received.append(e.type))
        with caplog.at_level(logging.ERROR, logger="smart_ast.workflows.events"):
            events.emit(EventType.ERROR, message="x")

        assert received == [EventType.ERROR]
        assert "Event subscriber failed" in caplog.text
        assert len(events) == 1

    def test_to_list(self) -> None:
        events = EventLog()
        events.emit(EventType.ANALYSIS_COMPLETE, files=["a.json"])
        (entry,) = events.to_list()
        assert entry["type"] == "analysis_complete"
        assert entry["data"] == {"files": ["a.json"]}
        assert datetime.fromisoformat(entry["timestamp"]).tzinfo is not None


class TestPipelineState:
    def test_snapshot(self) -> None:
        started = datetime(2026, 1, 1, tzinfo=UTC)
        info = classify_error(TimeoutError("timed out"), "api analysis")
        state = PipelineState(
            phase=PipelinePhase.ANALYZING,
            progress=40,
            errors=[TaskError(task_type="api", error=info)],
            warnings=["api analysis completed with warnings"],
            started_at=started,
        )
        snapshot = state.snapshot()
        assert snapshot["phase"] == "analyzing"
        assert snapshot["progress"] == 40
        assert snapshot["errors"][0]["task_type"] == "api"
        assert snapshot["errors"][0]["error"]["category"] == "network"
        assert snapshot["warnings"] == ["api analysis completed with warnings"]
        assert snapshot["started_at"] == started.isoformat()

    def test_defaults(self) -> None:
        snapshot = PipelineState().snapshot()
        assert snapshot == {
            "phase": "idle",
            "progress": 0,
            "errors": [],
            "warnings": [],
            "started_at": None,
        }


class TestAnalysisMetrics:
    def test_to_dict(self) -> None:
        metrics = AnalysisMetrics(cache_hits=1, cache_lookups=2, cache_efficiency=50)
        assert metrics.to_dict() == {
            "elapsed_seconds": 0.0,
            "files_analyzed": 0,
            "cache_hits": 1,
            "cache_lookups": 2,
            "cache_efficiency": 50,
            "errors": 0,
            "warnings": 0,
        }
