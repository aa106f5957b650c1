"""Tests for ReportBuilder content and persistence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from smart_ast.entities.analysis import OutcomeStatus, ProjectInfo, TaskOutcome, TaskType
from smart_ast.reporting.report_builder import INDEX_FILE, INDEX_LIMIT, ReportBuilder, render_markdown

PROJECT = ProjectInfo(
    path="/srv/app",
    framework="express",
    language="javascript",
    metrics={"total_files": 7, "code_files": 5, "total_lines": 120},
)

API_PAYLOAD: dict[str, Any] = {
    "type": "api",
    "endpoints": [{"method": "GET", "path": "/users"}, {"method": "POST", "path": "/users"}],
    "api_groups": {"users": []},
    "security_issues": [{"severity": "high"}, {"severity": "critical"}],
    "recommendations": ["Implement rate limiting"],
}


def _outcome(task_type: TaskType, payload: dict[str, Any], **kwargs: Any) -> TaskOutcome:
    return TaskOutcome(task_type=task_type, status=kwargs.pop("status", OutcomeStatus.SUCCESS),
                       payload=payload, **kwargs)


class TestBuild:
    def test_writes_requested_formats(self, tmp_path: Path) -> None:
        builder = ReportBuilder(tmp_path / "out", ["json", "markdown"])
        report = builder.build({TaskType.API: _outcome(TaskType.API, API_PAYLOAD)}, PROJECT)

        assert [Path(f).suffix for f in report.files] == [".json", ".md"]
        assert all(Path(f).name.startswith("analysis-") for f in report.files)
        document = json.loads(Path(report.files[0]).read_text(encoding="utf-8"))
        assert document["results"]["api"] == API_PAYLOAD
        assert document["outcomes"]["api"]["status"] == "success"
        assert "files" not in document["project"]
        assert report.output_dir == str((tmp_path / "out").resolve())

    def test_unsupported_format_is_skipped(self, tmp_path: Path) -> None:
        builder = ReportBuilder(tmp_path, ["json", "xml"])
        report = builder.build({TaskType.API: _outcome(TaskType.API, API_PAYLOAD)}, PROJECT)
        assert len(report.files) == 1

    def test_index_newest_first_and_capped(self, tmp_path: Path) -> None:
        old = [{"id": f"analysis-{n}"} for n in range(INDEX_LIMIT)]
        (tmp_path / INDEX_FILE).write_text(json.dumps(old), encoding="utf-8")

        builder = ReportBuilder(tmp_path, ["json"])
        builder.build({TaskType.API: _outcome(TaskType.API, API_PAYLOAD)}, PROJECT)

        index = json.loads((tmp_path / INDEX_FILE).read_text(encoding="utf-8"))
        assert len(index) == INDEX_LIMIT
        assert index[0]["project_path"] == "/srv/app"
        assert index[0]["analysis_types"] == ["api"]
        assert index[1]["id"] == "analysis-0"

    def test_corrupt_index_is_replaced(self, tmp_path: Path) -> None:
        (tmp_path / INDEX_FILE).write_text("[{", encoding="utf-8")
        ReportBuilder(tmp_path, ["json"]).build({TaskType.API: _outcome(TaskType.API, API_PAYLOAD)}, PROJECT)
        assert len(json.loads((tmp_path / INDEX_FILE).read_text(encoding="utf-8"))) == 1


class TestContent:
    def test_summary(self) -> None:
        outcomes = {
            TaskType.API: _outcome(TaskType.API, API_PAYLOAD),
            TaskType.AUTH: _outcome(
                TaskType.AUTH,
                {"error": "timeout", "partial_results": {}},
                status=OutcomeStatus.WARNING,
            ),
        }
        summary = ReportBuilder().generate_summary(outcomes, PROJECT, {})
        assert summary["text"] == "Analyzed express project with 7 files, found 2 API endpoints."
        assert summary["analysis_types"] == ["api", "auth"]
        assert summary["outcomes"] == {"success": 1, "warning": 1, "error": 0}
        assert summary["from_cache"] == 0

    def test_insights(self) -> None:
        enhanced = {
            "security": {
                "static_analysis": {"hardcoded_secrets": [{"type": "API Key"}]},
                "owasp_compliance": {"failing": ["A03:2021"]},
            },
            "complexity": {
                "circular_dependencies": [["a.js", "b.js"]],
                "hotspots": [{"severity": "critical"}, {"severity": "medium"}],
            },
        }
        insights = ReportBuilder().generate_insights({"api": API_PAYLOAD, "auth": {"authentication": {}}}, enhanced)
        assert insights == [
            "Found 2 security issues in API code",
            "1 API groups across 2 endpoints",
            "1 hardcoded secrets found in source files",
            "OWASP categories below threshold: A03:2021",
            "Detected 1 circular dependencies that may cause runtime issues",
            "1 complexity hotspots need refactoring",
            "No authentication mechanism detected",
        ]

    def test_recommendations_sorted_and_deduplicated(self) -> None:
        enhanced = {
            "security": {"recommendations": [
                {"priority": "medium", "category": "hardening", "title": "Add Rate Limiting", "description": "d"},
                {"priority": "critical", "category": "secrets", "title": "Remove Hardcoded Secrets", "description": "d"},
            ]},
        }
        results = {"auth": {"recommendations": ["Add Rate Limiting", "Use refresh tokens"]}}
        recs = ReportBuilder().generate_recommendations(results, enhanced)
        assert [(r["title"], r["priority"], r["source"]) for r in recs] == [
            ("Remove Hardcoded Secrets", "critical", "security"),
            ("Add Rate Limiting", "medium", "security"),
            ("Use refresh tokens", "low", "auth"),
        ]

    def test_recommendations_capped(self) -> None:
        results = {"auth": {"recommendations": [f"Tip {n}" for n in range(15)]}}
        assert len(ReportBuilder().generate_recommendations(results, {})) == 10

    def test_api_only_suggests_comprehensive_analysis(self) -> None:
        recs = ReportBuilder().generate_recommendations({"api": API_PAYLOAD}, {})
        assert recs[-1]["title"] == "Perform Comprehensive Analysis"

    def test_metrics_from_enhanced_results(self) -> None:
        enhanced = {
            "security": {"security_score": 40, "metadata": {}},
            "performance": {"performance_score": 80, "metadata": {}},
            "complexity": {
                "maintainability_index": {"score": 90.4},
                "circular_dependencies": [["a.js", "b.js"]],
            },
        }
        metrics = ReportBuilder().calculate_metrics({"api": API_PAYLOAD}, PROJECT, enhanced)
        assert metrics == {
            "total_files": 7,
            "code_files": 5,
            "total_lines": 120,
            "analysis_types": 1,
            "security_score": 40,
            "performance_score": 80,
            "maintainability_score": 70,
            "overall_score": 63,
        }

    def test_metrics_fall_back_to_payloads(self) -> None:
        results = {"api": API_PAYLOAD, "performance": {"issues": [{}, {}, {}]}}
        enhanced = {"security": {"security_score": 0, "metadata": {"error": "timeout"}}}
        metrics = ReportBuilder().calculate_metrics(results, PROJECT, enhanced)
        assert metrics["security_score"] == 70
        assert metrics["performance_score"] == 85
        assert metrics["maintainability_score"] == 100
        assert metrics["overall_score"] == 85


class TestMarkdown:
    def test_sections(self, tmp_path: Path) -> None:
        history = [{
            "timestamp": "2026-01-01T00:00:00+00:00",
            "info": {"category": "network", "context": "api analysis", "original_message": "ECONNRESET"},
        }]
        report = ReportBuilder(tmp_path, ["markdown"]).build(
            {TaskType.API: _outcome(TaskType.API, API_PAYLOAD, from_cache=True)},
            PROJECT,
            warnings=["auth analysis completed with warnings"],
            error_history=history,
        )
        text = Path(report.files[0]).read_text(encoding="utf-8")
        for heading in (
            "# Smart AST Analysis Report",
            "## Summary",
            "## Quality Metrics",
            "## Analysis Results",
            "## Key Insights",
            "## Recommendations",
            "## Warnings",
            "## Error History",
        ):
            assert heading in text
        assert "| api | success | yes |" in text
        assert "| network | api analysis | ECONNRESET |" in text

    def test_optional_sections_omitted(self) -> None:
        document = {
            "timestamp": "t",
            "project": {"path": "/p", "framework": "unknown", "language": "unknown"},
            "summary": {"text": "Analyzed unknown project with 0 files."},
            "metrics": {"security_score": 100, "performance_score": 100,
                        "maintainability_score": 100, "overall_score": 100},
            "outcomes": {},
            "insights": [],
            "recommendations": [],
            "warnings": [],
            "error_history": [],
        }
        text = render_markdown(document)
        assert "## Key Insights" not in text
        assert "## Warnings" not in text
        assert "## Error History" not in text
