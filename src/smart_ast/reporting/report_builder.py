"""Consolidate task outcomes into a quality report and write it to disk."""

from __future__ import annotations

import json
import logging
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from smart_ast.entities.analysis import OutcomeStatus, TaskType
from smart_ast.workflows.models import AnalysisReport

if TYPE_CHECKING:
    from smart_ast.entities.analysis import ProjectInfo, TaskOutcome

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "./smart-ast-output"
INDEX_FILE = "index.json"
INDEX_LIMIT = 50
MAX_RECOMMENDATIONS = 10

_PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


class ReportBuilder:
    """Builds the consolidated report and writes it in each requested format.

    Usage:
        builder = ReportBuilder("./out", ["json", "markdown"])
        report = builder.build(outcomes, project)
    """

    def __init__(
        self,
        output_dir: Path | str = DEFAULT_OUTPUT_DIR,
        formats: list[str] | tuple[str, ...] = ("json", "markdown"),
    ) -> None:
        self.output_dir = Path(output_dir).resolve()
        self.formats = list(formats)

    def build(
        self,
        outcomes: dict[TaskType, TaskOutcome],
        project: ProjectInfo,
        enhanced: dict[str, dict[str, Any]] | None = None,
        warnings: list[str] | None = None,
        error_history: list[dict[str, Any]] | None = None,
    ) -> AnalysisReport:
        """Assemble the report and write it.

        Args:
            outcomes: One outcome per executed task type.
            project: Scanner output for the analyzed project.
            enhanced: Secondary analyzer results keyed by analyzer name.
            warnings: Pipeline warnings to list in the report.
            error_history: Serialized ErrorRecords, newest first.

        Returns:
            AnalysisReport with the written file paths. Format writers that
            fail are logged and left out of ``files``.
        """
        enhanced = enhanced or {}
        results = {str(t): o.payload for t, o in outcomes.items() if o.payload}
        report_id = f"analysis-{int(time.time() * 1000)}"

        summary = self.generate_summary(outcomes, project, enhanced)
        insights = self.generate_insights(results, enhanced)
        recommendations = self.generate_recommendations(results, enhanced)
        metrics = self.calculate_metrics(results, project, enhanced)

        document = {
            "id": report_id,
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "project": project.model_dump(mode="json", exclude={"files"}),
            "summary": summary,
            "insights": insights,
            "recommendations": recommendations,
            "metrics": metrics,
            "outcomes": {
                str(t): {
                    "status": o.status.value,
                    "from_cache": o.from_cache,
                    "duration_seconds": round(o.duration_seconds, 3),
                    "error": o.error_info.message if o.error_info else None,
                }
                for t, o in outcomes.items()
            },
            "results": results,
            "enhanced": enhanced,
            "warnings": warnings or [],
            "error_history": error_history or [],
        }

        self.output_dir.mkdir(parents=True, exist_ok=True)
        files: list[str] = []
        for fmt in self.formats:
            try:
                match fmt:
                    case "json":
                        files.append(str(self.write_json(report_id, document)))
                    case "markdown":
                        files.append(str(self.write_markdown(report_id, document)))
                    case _:
                        logger.warning("Unsupported report format: %s", fmt)
            except OSError as e:
                logger.error("Failed to generate %s report: %s", fmt, e)

        try:
            self.update_index(document)
        except OSError as e:
            logger.warning("Could not update report index: %s", e)

        return AnalysisReport(
            output_dir=str(self.output_dir),
            files=files,
            summary=summary,
            insights=insights,
            recommendations=recommendations,
            metrics=metrics,
        )

    # -- content -----------------------------------------------------------

    def generate_summary(
        self,
        outcomes: dict[TaskType, TaskOutcome],
        project: ProjectInfo,
        enhanced: dict[str, dict[str, Any]],
    ) -> dict[str, Any]:
        parts = [
            f"Analyzed {project.framework} project with "
            f"{project.metrics.get('total_files', project.total_files)} files"
        ]
        api = outcomes.get(TaskType.API)
        if api is not None and api.payload.get("endpoints"):
            parts.append(f"found {len(api.payload['endpoints'])} API endpoints")
        components = outcomes.get(TaskType.COMPONENTS)
        if components is not None and components.payload.get("components"):
            parts.append(f"analyzed {len(components.payload['components'])} components")
        websocket = outcomes.get(TaskType.WEBSOCKET)
        if websocket is not None and websocket.payload.get("events"):
            parts.append(f"identified {len(websocket.payload['events'])} WebSocket events")
        database = outcomes.get(TaskType.DATABASE)
        if database is not None and database.payload.get("models"):
            parts.append(f"{len(database.payload['models'])} database models")
        cycles = enhanced.get("complexity", {}).get("circular_dependencies") or []
        if cycles:
            parts.append(f"{len(cycles)} circular dependencies")

        statuses = {s.value: 0 for s in OutcomeStatus}
        for outcome in outcomes.values():
            statuses[outcome.status.value] += 1
        return {
            "text": ", ".join(parts) + ".",
            "analysis_types": [str(t) for t in outcomes],
            "outcomes": statuses,
            "from_cache": sum(1 for o in outcomes.values() if o.from_cache),
        }

    def generate_insights(
        self, results: dict[str, dict[str, Any]], enhanced: dict[str, dict[str, Any]]
    ) -> list[str]:
        insights: list[str] = []
        api = results.get("api", {})
        if api.get("security_issues"):
            insights.append(f"Found {len(api['security_issues'])} security issues in API code")
        endpoints = api.get("endpoints") or []
        if endpoints:
            insights.append(f"{len(api.get('api_groups') or {})} API groups across {len(endpoints)} endpoints")

        security = enhanced.get("security", {})
        secrets = (security.get("static_analysis") or {}).get("hardcoded_secrets") or []
        if secrets:
            insights.append(f"{len(secrets)} hardcoded secrets found in source files")
        failing = (security.get("owasp_compliance") or {}).get("failing") or []
        if failing:
            insights.append(f"OWASP categories below threshold: {', '.join(failing)}")

        performance = enhanced.get("performance", {})
        for bottleneck in performance.get("bottlenecks") or []:
            insights.append(bottleneck["description"])

        complexity = enhanced.get("complexity", {})
        cycles = complexity.get("circular_dependencies") or []
        if cycles:
            insights.append(
                f"Detected {len(cycles)} circular dependencies that may cause runtime issues"
            )
        hotspots = [h for h in complexity.get("hotspots") or [] if h["severity"] != "medium"]
        if hotspots:
            insights.append(f"{len(hotspots)} complexity hotspots need refactoring")

        database = results.get("database", {})
        if database.get("raw_queries"):
            insights.append(f"{len(database['raw_queries'])} raw SQL queries detected")
        auth = results.get("auth", {})
        if auth and not (auth.get("authentication") or {}).get("methods"):
            insights.append("No authentication mechanism detected")
        return insights

    def generate_recommendations(
        self, results: dict[str, dict[str, Any]], enhanced: dict[str, dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Structured recommendations from secondary analyzers, then task payloads."""
        recommendations: list[dict[str, Any]] = []
        for name, result in enhanced.items():
            for rec in result.get("recommendations") or []:
                if isinstance(rec, dict):
                    recommendations.append({"source": name, **rec})
        for task, payload in results.items():
            for rec in payload.get("recommendations") or []:
                if isinstance(rec, str):
                    recommendations.append({
                        "source": task,
                        "priority": "low",
                        "title": rec,
                        "description": rec,
                    })
        if len(results) == 1 and "api" in results:
            recommendations.append({
                "source": "report",
                "priority": "low",
                "title": "Perform Comprehensive Analysis",
                "description": "Only API analysis was performed. Run a full analysis for "
                "component, performance and security insights.",
            })

        seen: set[str] = set()
        unique = []
        for rec in sorted(recommendations, key=lambda r: _PRIORITY_ORDER.get(r.get("priority", "low"), 3)):
            if rec["title"] not in seen:
                seen.add(rec["title"])
                unique.append(rec)
        return unique[:MAX_RECOMMENDATIONS]

    def calculate_metrics(
        self,
        results: dict[str, dict[str, Any]],
        project: ProjectInfo,
        enhanced: dict[str, dict[str, Any]],
    ) -> dict[str, Any]:
        """Quality scores 0-100; analyzer scores win over payload heuristics."""
        security = enhanced.get("security", {})
        if "security_score" in security and not (security.get("metadata") or {}).get("error"):
            security_score = security["security_score"]
        else:
            issues = [
                *(results.get("api", {}).get("security_issues") or []),
                *(results.get("security", {}).get("issues") or []),
            ]
            security_score = 100
            for issue in issues:
                severity = issue.get("severity")
                if severity == "critical":
                    security_score -= 20
                elif severity == "high":
                    security_score -= 10

        performance = enhanced.get("performance", {})
        if "performance_score" in performance and not (performance.get("metadata") or {}).get("error"):
            performance_score = performance["performance_score"]
        else:
            issues = results.get("performance", {}).get("issues") or []
            performance_score = 100 - min(len(issues) * 5, 50)

        complexity = enhanced.get("complexity", {})
        mi = (complexity.get("maintainability_index") or {}).get("score")
        if mi:
            maintainability_score = round(min(100.0, mi))
        else:
            maintainability_score = 100
        cycles = complexity.get("circular_dependencies") or []
        maintainability_score -= min(len(cycles) * 20, 60)

        security_score = _clamp(security_score)
        performance_score = _clamp(performance_score)
        maintainability_score = _clamp(maintainability_score)
        return {
            "total_files": project.metrics.get("total_files", project.total_files),
            "code_files": project.metrics.get("code_files", 0),
            "total_lines": project.metrics.get("total_lines", 0),
            "analysis_types": len(results),
            "security_score": security_score,
            "performance_score": performance_score,
            "maintainability_score": maintainability_score,
            "overall_score": round(
                (security_score + performance_score + maintainability_score) / 3
            ),
        }

    # -- writers -----------------------------------------------------------

    def write_json(self, report_id: str, document: dict[str, Any]) -> Path:
        path = self.output_dir / f"{report_id}.json"
        path.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")
        return path

    def write_markdown(self, report_id: str, document: dict[str, Any]) -> Path:
        path = self.output_dir / f"{report_id}.md"
        path.write_text(render_markdown(document), encoding="utf-8")
        return path

    def update_index(self, document: dict[str, Any]) -> None:
        """Prepend this run to ``index.json``, keeping the newest entries."""
        index_path = self.output_dir / INDEX_FILE
        index: list[dict[str, Any]] = []
        if index_path.exists():
            try:
                loaded = json.loads(index_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                logger.warning("Report index %s is corrupt, starting a new one", index_path)
            else:
                if isinstance(loaded, list):
                    index = loaded
        index.insert(0, {
            "id": document["id"],
            "timestamp": document["timestamp"],
            "project_path": document["project"]["path"],
            "framework": document["project"]["framework"],
            "summary": document["summary"]["text"],
            "overall_score": document["metrics"]["overall_score"],
            "analysis_types": document["summary"]["analysis_types"],
        })
        index_path.write_text(json.dumps(index[:INDEX_LIMIT], indent=2), encoding="utf-8")


def render_markdown(document: dict[str, Any]) -> str:
    metrics = document["metrics"]
    project = document["project"]
    lines = [
        "# Smart AST Analysis Report",
        "",
        f"- **Project:** `{project['path']}`",
        f"- **Framework:** {project['framework']} ({project['language']})",
        f"- **Generated:** {document['timestamp']}",
        "",
        "## Summary",
        "",
        document["summary"]["text"],
        "",
        "## Quality Metrics",
        "",
        "| Metric | Score |",
        "|--------|-------|",
        f"| Security | {metrics['security_score']} |",
        f"| Performance | {metrics['performance_score']} |",
        f"| Maintainability | {metrics['maintainability_score']} |",
        f"| **Overall** | **{metrics['overall_score']}** |",
        "",
        "## Analysis Results",
        "",
        "| Type | Status | Cached | Duration (s) |",
        "|------|--------|--------|--------------|",
    ]
    for task, outcome in document["outcomes"].items():
        lines.append(
            f"| {task} | {outcome['status']} | {'yes' if outcome['from_cache'] else 'no'} "
            f"| {outcome['duration_seconds']} |"
        )

    if document["insights"]:
        lines += ["", "## Key Insights", ""]
        lines += [f"- {insight}" for insight in document["insights"]]

    if document["recommendations"]:
        lines += ["", "## Recommendations", ""]
        for number, rec in enumerate(document["recommendations"], start=1):
            lines.append(f"{number}. **{rec['title']}** ({rec.get('priority', 'low')})")
            if rec.get("description") and rec["description"] != rec["title"]:
                lines.append(f"   {rec['description']}")

    if document["warnings"]:
        lines += ["", "## Warnings", ""]
        lines += [f"- {warning}" for warning in document["warnings"]]

    if document["error_history"]:
        lines += ["", "## Error History", "", "| Time | Category | Context | Message |",
                  "|------|----------|---------|---------|"]
        for record in document["error_history"]:
            info = record["info"]
            lines.append(
                f"| {record['timestamp']} | {info['category']} | {info['context']} "
                f"| {info['original_message']} |"
            )

    lines.append("")
    return "\n".join(lines)


def _clamp(score: float) -> int:
    return int(max(0, min(100, score)))
