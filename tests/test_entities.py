"""Tests for entity models: TaskType, FileRef, TaskOutcome, ProjectInfo, ErrorInfo."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from smart_ast.entities import (
    ErrorCategory,
    FileRef,
    OutcomeStatus,
    ProjectInfo,
    RecoveryStrategy,
    Severity,
    TaskOutcome,
    TaskRequest,
    TaskType,
)
from smart_ast.resilience import classify_error


def _ref(path: str, digest: str = "abc") -> FileRef:
    return FileRef(path=f"/p/{path}", relative_path=path, content_hash=digest, size=10)


class TestTaskType:
    def test_task_type_values(self) -> None:
        expected = {
            "api", "components", "websocket", "auth",
            "database", "performance", "security", "complexity",
        }
        assert {t.value for t in TaskType} == expected
        for t in TaskType:
            assert isinstance(t, str)

    def test_outcome_status_values(self) -> None:
        assert {s.value for s in OutcomeStatus} == {"success", "warning", "error"}

    def test_error_category_values(self) -> None:
        assert {c.value for c in ErrorCategory} == {
            "network", "filesystem", "parsing", "external_service", "validation", "unknown",
        }


class TestFileRef:
    def test_frozen(self) -> None:
        ref = _ref("a.js")
        with pytest.raises(ValidationError):
            ref.size = 20  # type: ignore[misc]

    def test_equality_by_value(self) -> None:
        assert _ref("a.js") == _ref("a.js")
        assert _ref("a.js") != _ref("a.js", digest="def")


class TestTaskRequest:
    def test_defaults_to_no_files(self) -> None:
        request = TaskRequest(task_type=TaskType.API)
        assert request.input_files == ()

    def test_rejects_unknown_task_type(self) -> None:
        with pytest.raises(ValidationError):
            TaskRequest(task_type="graphql")  # type: ignore[arg-type]


class TestTaskOutcome:
    def test_succeeded(self) -> None:
        ok = TaskOutcome(task_type=TaskType.API, status=OutcomeStatus.SUCCESS)
        warn = TaskOutcome(task_type=TaskType.API, status=OutcomeStatus.WARNING)
        assert ok.succeeded
        assert not warn.succeeded
        assert ok.from_cache is False
        assert ok.payload == {}

    def test_carries_error_info(self) -> None:
        info = classify_error(TimeoutError("timed out"), "api analysis")
        outcome = TaskOutcome(
            task_type=TaskType.API, status=OutcomeStatus.WARNING, error_info=info
        )
        dumped = outcome.model_dump(mode="json")
        restored = TaskOutcome.model_validate(dumped)
        assert restored == outcome
        assert restored.error_info is not None
        assert restored.error_info.category == ErrorCategory.NETWORK


class TestProjectInfo:
    def test_all_files_deduplicates_across_categories(self) -> None:
        shared = _ref("services/api.js")
        project = ProjectInfo(
            path="/p",
            files={"apis": [shared], "services": [shared, _ref("services/db.js")]},
        )
        assert [f.relative_path for f in project.all_files()] == [
            "services/api.js",
            "services/db.js",
        ]
        assert project.total_files == 2

    def test_defaults(self) -> None:
        project = ProjectInfo(path="/p")
        assert project.framework == "unknown"
        assert project.total_files == 0
        assert project.git == {}


class TestErrorModels:
    def test_recovery_strategy_defaults(self) -> None:
        strategy = RecoveryStrategy(type="none")
        assert strategy.max_attempts == 0
        assert strategy.jitter is False

    def test_severity_values(self) -> None:
        assert [s.value for s in Severity] == ["low", "medium", "high", "critical"]
