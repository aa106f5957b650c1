"""Task-type dispatch: which files each task reads and how results are shaped."""

from __future__ import annotations

import asyncio
import errno
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, assert_never

from smart_ast.entities.analysis import TaskType
from smart_ast.nodes.analysis.base_analyzer import BaseAnalyzer

if TYPE_CHECKING:
    from smart_ast.entities.analysis import FileRef, ProjectInfo, TaskRequest
    from smart_ast.nodes.analysis.ai_executor import AIExecutor
    from smart_ast.nodes.scanning.file_reader import FileReader

logger = logging.getLogger(__name__)

RELEVANT_CATEGORIES: dict[TaskType, tuple[str, ...]] = {
    TaskType.API: ("apis", "services"),
    TaskType.COMPONENTS: ("components",),
    TaskType.WEBSOCKET: ("websockets",),
    TaskType.AUTH: ("auth",),
    TaskType.DATABASE: ("models", "services"),
    TaskType.PERFORMANCE: ("components", "apis", "services"),
    TaskType.SECURITY: ("auth", "apis", "configs"),
    TaskType.COMPLEXITY: ("apis", "components", "services", "models"),
}

MISSING_FILE_SUGGESTIONS: dict[TaskType, list[str]] = {
    TaskType.API: [
        "Create API routes in routes/, api/, or controllers/ directory",
        "Ensure API files have extensions: .js, .ts, .jsx, .tsx, .py",
        "Check if files contain API patterns like app.get(), router.post(), etc.",
    ],
    TaskType.COMPONENTS: [
        "Place React/Vue components in components/, src/, or pages/ directory",
        "Ensure component files have extensions: .jsx, .tsx, .vue",
        "Check if files export React/Vue components",
    ],
    TaskType.WEBSOCKET: [
        "Create WebSocket files in socket/, ws/, or realtime/ directory",
        "Look for socket.io, WebSocket, or similar implementations",
        "Check for files containing socket, io, or ws in their names",
    ],
    TaskType.AUTH: [
        "Create authentication files in auth/ or middleware/ directory",
        "Look for passport, jwt, or authentication middleware",
        "Check for login, logout, or auth-related functions",
    ],
    TaskType.DATABASE: [
        "Create model files in models/, entities/, or schemas/ directory",
        "Look for database ORM files (Sequelize, TypeORM, Mongoose, SQLAlchemy)",
        "Check for database query implementations",
    ],
    TaskType.PERFORMANCE: [
        "Analysis requires component and API files",
        "Ensure you have sufficient code files to analyze",
        "Consider running individual analysis types first",
    ],
    TaskType.SECURITY: [
        "Security analysis reads auth, API and configuration files",
        "Check that authentication code lives in auth/ or guards/",
    ],
    TaskType.COMPLEXITY: [
        "Complexity analysis reads API, component, service and model files",
        "Check your include/exclude patterns",
    ],
}


def relevant_files(task_type: TaskType, categorized: dict[str, list[FileRef]]) -> list[FileRef]:
    """Files a task reads, deduplicated by path in category order."""
    seen: dict[str, FileRef] = {}
    for category in RELEVANT_CATEGORIES[task_type]:
        for ref in categorized.get(category, []):
            seen.setdefault(ref.path, ref)
    return list(seen.values())


def missing_file_suggestions(task_type: TaskType) -> list[str]:
    return list(MISSING_FILE_SUGGESTIONS.get(task_type, ["No specific suggestions available"]))


def group_endpoints_by_path(endpoints: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    groups: dict[str, list[dict[str, Any]]] = {}
    for endpoint in endpoints:
        segments = [s for s in str(endpoint.get("path", "")).split("/") if s]
        groups.setdefault(segments[0] if segments else "root", []).append(endpoint)
    return groups


def format_analysis_result(task_type: TaskType, results: dict[str, Any]) -> dict[str, Any]:
    """Shape heuristic results into the per-task payload stored and reported."""
    formatted: dict[str, Any] = {
        "type": task_type.value,
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "files_analyzed": results.get("files_analyzed", 0),
    }

    match task_type:
        case TaskType.API:
            endpoints = results["endpoints"]
            formatted["endpoints"] = endpoints
            formatted["api_groups"] = group_endpoints_by_path(endpoints)
            formatted["security_issues"] = results["security"]["issues"]
            formatted["recommendations"] = (
                ["Implement rate limiting", "Add authentication middleware", "Validate input parameters"]
                if endpoints
                else ["No API endpoints found. Check if your API files are in the correct location."]
            )
        case TaskType.COMPONENTS:
            formatted["components"] = results["components"]
            formatted["recommendations"] = [
                "Memoize expensive components",
                "Implement code splitting",
                "Avoid unnecessary re-renders",
            ]
        case TaskType.WEBSOCKET:
            websocket = results["websocket"]
            formatted["libraries"] = websocket["libraries"]
            formatted["events"] = websocket["events"]
            formatted["recommendations"] = (
                ["Handle disconnects and reconnection", "Validate inbound event payloads"]
                if websocket["events"]
                else ["No WebSocket implementation detected"]
            )
        case TaskType.AUTH:
            auth = results["auth"]
            formatted["authentication"] = {
                "methods": auth["methods"],
                "providers": auth["providers"],
                "password_hashing": auth["password_hashing"],
            }
            formatted["authorization"] = {
                "type": "role_based" if auth["roles"] else "none",
                "roles": auth["roles"],
            }
            formatted["recommendations"] = (
                ["Review token expiry and rotation"]
                if auth["methods"]
                else ["Implement authentication system"]
            )
        case TaskType.DATABASE:
            database = results["database"]
            formatted["orms"] = database["orms"]
            formatted["models"] = database["models"]
            formatted["raw_queries"] = database["raw_queries"]
            formatted["recommendations"] = (
                ["Use parameterized queries for raw SQL"]
                if database["raw_queries"]
                else ["No raw SQL detected"]
            )
        case TaskType.PERFORMANCE:
            issues = results["performance"]["issues"]
            formatted["issues"] = issues
            formatted["metrics"] = {"issue_count": len(issues)}
            formatted["recommendations"] = [
                "Optimize bundle size",
                "Implement lazy loading",
                "Add performance monitoring",
            ]
        case TaskType.SECURITY:
            formatted["issues"] = results["security"]["issues"]
            formatted["authentication"] = {"methods": results["auth"]["methods"]}
            formatted["recommendations"] = ["Review flagged security patterns"]
        case TaskType.COMPLEXITY:
            formatted["components"] = len(results["components"])
            formatted["endpoints"] = len(results["endpoints"])
            formatted["recommendations"] = ["Analysis completed"]
        case _:
            assert_never(task_type)

    return formatted


async def run_task_analysis(
    request: TaskRequest,
    project: ProjectInfo,
    reader: FileReader,
    ai_executor: AIExecutor | None = None,
) -> dict[str, Any]:
    """Analyze one task's files and return its formatted payload.

    Raises:
        FileNotFoundError: None of the task's files could be read.
        ExternalServiceError: The AI provider failed (only when not mock).
        TimeoutError: The AI provider timed out.
    """
    task_type = request.task_type
    if not request.input_files:
        logger.warning("No relevant files found for %s analysis", task_type)
        return {
            "type": task_type.value,
            "message": f"No relevant files found for {task_type} analysis",
            "suggestions": missing_file_suggestions(task_type),
        }

    files = await asyncio.to_thread(reader.read_files, request.input_files)
    if not files:
        raise FileNotFoundError(
            errno.ENOENT, f"No files could be read for {task_type} analysis"
        )

    results = BaseAnalyzer().analyze_files(files)
    formatted = format_analysis_result(task_type, results)

    if ai_executor is not None and not ai_executor.is_mock:
        insights = await ai_executor.enhance(task_type, results, project)
        if insights:
            formatted["ai_insights"] = insights
            formatted["recommendations"] = insights + formatted["recommendations"]

    return formatted
