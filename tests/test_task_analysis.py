"""Tests for heuristic task analysis: BaseAnalyzer and the task registry."""

from __future__ import annotations

import errno
from pathlib import Path
from typing import Any

import pytest

from smart_ast.entities.analysis import FileRef, ProjectInfo, TaskRequest, TaskType
from smart_ast.nodes.analysis.base_analyzer import BaseAnalyzer
from smart_ast.nodes.analysis.registry import (
    RELEVANT_CATEGORIES,
    format_analysis_result,
    relevant_files,
    run_task_analysis,
)
from smart_ast.nodes.scanning.file_reader import FileReader
from smart_ast.nodes.scanning.scanner import ProjectScanner


class FakeAIExecutor:
    """Non-mock executor stand-in that returns canned recommendations."""

    is_mock = False

    def __init__(self, insights: list[str]) -> None:
        self.insights = insights
        self.calls: list[TaskType] = []

    async def enhance(
        self, task_type: TaskType, results: dict[str, Any], project: ProjectInfo
    ) -> list[str]:
        self.calls.append(task_type)
        return self.insights


class TestBaseAnalyzer:
    def test_express_endpoints(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("routes/users.js", sample_sources["routes/users.js"])
        results = BaseAnalyzer().analyze_files([source])
        assert [(e["method"], e["path"]) for e in results["endpoints"]] == [
            ("GET", "/users"),
            ("POST", "/users"),
        ]
        assert results["endpoints"][0]["line"] == 5
        assert results["files_analyzed"] == 1

    def test_eval_is_a_security_issue(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("routes/users.js", sample_sources["routes/users.js"])
        results = BaseAnalyzer().analyze_files([source])
        issues = results["security"]["issues"]
        assert len(issues) == 1
        assert issues[0]["issue"] == "Dangerous eval() usage"
        assert issues[0]["severity"] == "high"
        assert issues[0]["line"] == 11

    def test_components_and_hooks(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("components/App.jsx", sample_sources["components/App.jsx"])
        results = BaseAnalyzer().analyze_files([source])
        assert list(results["components"]) == ["App"]
        app = results["components"]["App"]
        assert app["type"] == "function"
        assert app["hooks"] == ["useEffect", "useState"]

    def test_class_component(self, make_source: Any) -> None:
        content = "export class Panel extends React.Component {\n  render() { return null; }\n}\n"
        results = BaseAnalyzer().analyze_files([make_source("components/Panel.jsx", content)])
        assert results["components"]["Panel"]["type"] == "class"

    def test_websocket_events(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("socket/chat.js", sample_sources["socket/chat.js"])
        results = BaseAnalyzer().analyze_files([source])
        assert results["websocket"]["libraries"] == ["socket.io"]
        events = [(e["event"], e["direction"]) for e in results["websocket"]["events"]]
        assert events == [
            ("connection", "inbound"),
            ("message", "inbound"),
            ("message", "outbound"),
        ]

    def test_auth_detection(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("auth/jwt.js", sample_sources["auth/jwt.js"])
        results = BaseAnalyzer().analyze_files([source])
        auth = results["auth"]
        assert auth["methods"] == ["jwt"]
        assert auth["roles"] == ["admin"]
        assert auth["password_hashing"] is True

    def test_models_and_raw_queries(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        query = "const rows = db.query('SELECT * FROM users WHERE id = ?', [id]);\n"
        results = BaseAnalyzer().analyze_files([
            make_source("models/user.js", sample_sources["models/user.js"]),
            make_source("services/db.js", query),
        ])
        database = results["database"]
        assert database["orms"] == ["mongoose"]
        assert database["models"][0]["name"] == "User"
        assert database["raw_queries"][0]["statement"] == "SELECT"

    def test_flask_route_methods(self, make_source: Any) -> None:
        content = "@app.route('/login', methods=['GET', 'POST'])\ndef login():\n    pass\n"
        results = BaseAnalyzer().analyze_files([make_source("api/views.py", content)])
        assert [(e["method"], e["path"]) for e in results["endpoints"]] == [
            ("GET", "/login"),
            ("POST", "/login"),
        ]

    def test_next_route_handlers(self, make_source: Any) -> None:
        content = "export async function GET(request) {\n  return Response.json([]);\n}\n"
        results = BaseAnalyzer().analyze_files([make_source("app/api/users/[id]/route.ts", content)])
        endpoint = results["endpoints"][0]
        assert endpoint["path"] == "/api/users/:id"
        assert endpoint["framework"] == "nextjs"

    def test_performance_patterns(self, make_source: Any) -> None:
        content = "const copy = JSON.parse(JSON.stringify(data));\nfs.readFileSync(path);\n"
        results = BaseAnalyzer().analyze_files([make_source("services/util.js", content)])
        assert [i["issue"] for i in results["performance"]["issues"]] == [
            "Inefficient deep cloning",
            "Synchronous file I/O",
        ]


class TestRegistry:
    def test_every_task_type_has_categories(self) -> None:
        assert set(RELEVANT_CATEGORIES) == set(TaskType)

    def test_relevant_files_deduplicates(self) -> None:
        shared = FileRef(path="/p/services/a.js", relative_path="services/a.js", content_hash="1")
        component = FileRef(path="/p/components/B.jsx", relative_path="components/B.jsx", content_hash="2")
        categorized = {"components": [component], "apis": [shared], "services": [shared]}
        assert relevant_files(TaskType.PERFORMANCE, categorized) == [component, shared]
        assert relevant_files(TaskType.WEBSOCKET, categorized) == []

    def test_format_api_result_groups_endpoints(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("routes/users.js", sample_sources["routes/users.js"])
        results = BaseAnalyzer().analyze_files([source])
        payload = format_analysis_result(TaskType.API, results)
        assert payload["type"] == "api"
        assert list(payload["api_groups"]) == ["users"]
        assert len(payload["security_issues"]) == 1
        assert "Implement rate limiting" in payload["recommendations"]

    def test_format_auth_result(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("auth/jwt.js", sample_sources["auth/jwt.js"])
        results = BaseAnalyzer().analyze_files([source])
        payload = format_analysis_result(TaskType.AUTH, results)
        assert payload["authentication"]["methods"] == ["jwt"]
        assert payload["authorization"] == {"type": "role_based", "roles": ["admin"]}

    def test_format_complexity_result_counts(
        self, make_source: Any, sample_sources: dict[str, str]
    ) -> None:
        source = make_source("routes/users.js", sample_sources["routes/users.js"])
        results = BaseAnalyzer().analyze_files([source])
        payload = format_analysis_result(TaskType.COMPLEXITY, results)
        assert payload["endpoints"] == 2
        assert payload["recommendations"] == ["Analysis completed"]


class TestRunTaskAnalysis:
    async def test_no_files_returns_suggestions(self) -> None:
        payload = await run_task_analysis(
            TaskRequest(task_type=TaskType.WEBSOCKET), ProjectInfo(path="/p"), FileReader()
        )
        assert "error" not in payload
        assert payload["message"] == "No relevant files found for websocket analysis"
        assert payload["suggestions"]

    async def test_analyzes_scanned_files(self, sample_project: Path) -> None:
        project = ProjectScanner(sample_project, collect_git=False).scan()
        request = TaskRequest(
            task_type=TaskType.API,
            input_files=tuple(relevant_files(TaskType.API, project.files)),
        )
        payload = await run_task_analysis(request, project, FileReader())
        assert payload["files_analyzed"] == 1
        assert len(payload["endpoints"]) == 2
        assert "ai_insights" not in payload

    async def test_unreadable_files_raise_enoent(self, sample_project: Path) -> None:
        project = ProjectScanner(sample_project, collect_git=False).scan()
        refs = tuple(relevant_files(TaskType.AUTH, project.files))
        (sample_project / "auth/jwt.js").unlink()
        with pytest.raises(FileNotFoundError) as excinfo:
            await run_task_analysis(
                TaskRequest(task_type=TaskType.AUTH, input_files=refs), project, FileReader()
            )
        assert excinfo.value.errno == errno.ENOENT

    async def test_ai_insights_prepended(self, sample_project: Path) -> None:
        project = ProjectScanner(sample_project, collect_git=False).scan()
        request = TaskRequest(
            task_type=TaskType.AUTH,
            input_files=tuple(relevant_files(TaskType.AUTH, project.files)),
        )
        executor = FakeAIExecutor(["Rotate signing keys"])
        payload = await run_task_analysis(request, project, FileReader(), executor)  # type: ignore[arg-type]
        assert executor.calls == [TaskType.AUTH]
        assert payload["ai_insights"] == ["Rotate signing keys"]
        assert payload["recommendations"][0] == "Rotate signing keys"
