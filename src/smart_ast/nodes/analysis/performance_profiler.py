"""Performance profiling from source heuristics.

Looks for heavy dependencies, oversized components, slow request handlers and
likely memory leaks, then scores the project 0-100.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from smart_ast.entities.analysis import ProjectInfo, SourceFile

logger = logging.getLogger(__name__)

LARGE_DEPENDENCIES: dict[str, str] = {
    "moment": "dayjs or date-fns",
    "lodash": "lodash-es or native methods",
    "jquery": "native DOM APIs",
    "rxjs": "targeted operator imports",
    "antd": "per-component imports",
    "@material-ui/core": "per-component imports",
    "@mui/material": "per-component imports",
    "chart.js": "a lighter chart library",
    "three": "dynamic import on demand",
    "aws-sdk": "modular @aws-sdk/* clients",
    "pandas": "lazy import on the code paths that need it",
}

COMPLEXITY_WEIGHTS: dict[str, tuple[re.Pattern[str], int]] = {
    "loops": (re.compile(r"for\s*\(|while\s*\(|\.map\s*\(|\.forEach\s*\(|\bfor\s+\w+\s+in\b"), 3),
    "conditionals": (re.compile(r"if\s*\(|switch\s*\(|\?\s*[^:]+:|\bif\s+\w"), 2),
    "functions": (re.compile(r"function\s+\w+|=>\s*\{|\bdef\s+\w+"), 2),
    "classes": (re.compile(r"class\s+\w+|\.prototype\."), 4),
    "promises": (re.compile(r"\.then\s*\(|await\s+|Promise\."), 3),
    "callbacks": (re.compile(r"callback|cb\s*\(|\)\s*=>"), 3),
}

HEAVY_COMPONENT_LINES = 300
HEAVY_COMPONENT_HOOKS = 8

_COMPONENT_EXTENSIONS = {".jsx", ".tsx", ".vue", ".svelte"}
_HOOK = re.compile(r"\buse[A-Z]\w*\s*\(")
_MEMO = re.compile(r"React\.memo|\bmemo\(|useMemo|useCallback")
_AWAIT_IN_LOOP = re.compile(r"(?:for\s*\(|\.forEach\s*\(|\bfor\s+\w+\s+in\b)[^\n]*\n(?:[^\n]*\n){0,3}?[^\n]*\bawait\b")
_SYNC_IO = re.compile(r"readFileSync|writeFileSync|execSync|\btime\.sleep\s*\(|requests\.(?:get|post)\s*\(")
_HANDLER = re.compile(r"(?:app|router)\.(?:get|post|put|patch|delete)\s*\(|@(?:app|router)\.(?:get|post|put|patch|delete)\(")
_CODE_SPLITTING = re.compile(r"React\.lazy|\blazy\s*\(|import\s*\(\s*['\"`]|next/dynamic|defineAsyncComponent")
_CACHING = re.compile(r"cache|memoiz|usememo|usecallback|react\.memo|lru_cache", re.IGNORECASE)

LEAK_CHECKS: tuple[tuple[re.Pattern[str], re.Pattern[str], str], ...] = (
    (re.compile(r"addEventListener\s*\("), re.compile(r"removeEventListener\s*\("), "Event listener never removed"),
    (re.compile(r"setInterval\s*\("), re.compile(r"clearInterval\s*\("), "Interval never cleared"),
    (re.compile(r"\.subscribe\s*\("), re.compile(r"\.unsubscribe\s*\("), "Subscription never disposed"),
    (re.compile(r"\.on\s*\(\s*['\"]"), re.compile(r"\.(?:off|removeListener)\s*\("), "Emitter handler never detached"),
)


def estimate_complexity(files: list[SourceFile]) -> str:
    """Weighted count of control-flow and async constructs, bucketed."""
    score = 0
    for file in files:
        for pattern, weight in COMPLEXITY_WEIGHTS.values():
            score += len(pattern.findall(file.content)) * weight
    if score < 15:
        return "low"
    if score < 25:
        return "medium"
    return "high"


class PerformanceProfiler:
    """Profile the performance task payload against the project's files.

    Usage:
        profiler = PerformanceProfiler()
        profile = profiler.analyze(performance_payload, files, project)
    """

    def analyze(
        self,
        prior_result: dict[str, Any] | None,
        files: list[SourceFile],
        project: ProjectInfo,
    ) -> dict[str, Any]:
        if not prior_result or prior_result.get("error"):
            return self._empty_result(project, (prior_result or {}).get("error"))

        bundle = self.analyze_bundle(files, project)
        rendering = self.analyze_rendering(files)
        api = self.analyze_api(files)
        memory = self.analyze_memory(files)

        score = self.calculate_performance_score(bundle, rendering, api, memory)
        logger.debug(
            "Performance profile: %d large deps, %d heavy components, %d slow endpoints, %d leaks",
            len(bundle["large_dependencies"]),
            len(rendering["heavy_components"]),
            len(api["slow_endpoints"]),
            len(memory["potential_leaks"]),
        )
        return {
            **prior_result,
            "metadata": {
                "analysis_date": datetime.now(tz=UTC).isoformat(),
                "framework": project.framework,
                "total_files": len(files),
                "project_size": self.project_size(files),
                "complexity": estimate_complexity(files),
            },
            "bundle": bundle,
            "rendering": rendering,
            "api": api,
            "memory": memory,
            "cache_efficiency": self.assess_cache_efficiency(files),
            "bottlenecks": self.identify_bottlenecks(bundle, rendering, api, memory),
            "performance_score": score,
            "recommendations": self.recommendations(score, bundle, rendering, api, memory),
        }

    def project_size(self, files: list[SourceFile]) -> dict[str, int]:
        total_bytes = sum(f.ref.size for f in files)
        total_lines = sum(f.lines for f in files)
        count = len(files)
        return {
            "bytes": total_bytes,
            "lines": total_lines,
            "files": count,
            "avg_file_size": round(total_bytes / count) if count else 0,
            "avg_lines_per_file": round(total_lines / count) if count else 0,
        }

    def analyze_bundle(self, files: list[SourceFile], project: ProjectInfo) -> dict[str, Any]:
        declared = project.dependencies.get("dependencies", [])
        large = [
            {"name": name, "alternative": LARGE_DEPENDENCIES[name]}
            for name in declared
            if name in LARGE_DEPENDENCIES
        ]
        splitting = sorted({f.relative_path for f in files if _CODE_SPLITTING.search(f.content)})
        return {"large_dependencies": large, "code_splitting": splitting}

    def analyze_rendering(self, files: list[SourceFile]) -> dict[str, Any]:
        heavy = []
        for file in files:
            if file.extension not in _COMPONENT_EXTENSIONS:
                continue
            hooks = len(_HOOK.findall(file.content))
            if file.lines > HEAVY_COMPONENT_LINES or hooks > HEAVY_COMPONENT_HOOKS:
                heavy.append({
                    "name": file.relative_path.rsplit("/", 1)[-1].split(".", 1)[0],
                    "file": file.relative_path,
                    "lines": file.lines,
                    "hooks": hooks,
                    "memoized": bool(_MEMO.search(file.content)),
                })
        return {"heavy_components": heavy}

    def analyze_api(self, files: list[SourceFile]) -> dict[str, Any]:
        slow = []
        for file in files:
            if not _HANDLER.search(file.content):
                continue
            reasons = []
            if _SYNC_IO.search(file.content):
                reasons.append("blocking I/O in request handler")
            if _AWAIT_IN_LOOP.search(file.content):
                reasons.append("sequential awaits inside a loop")
            if reasons:
                slow.append({"endpoint": file.relative_path, "reasons": reasons})
        return {"slow_endpoints": slow}

    def analyze_memory(self, files: list[SourceFile]) -> dict[str, Any]:
        leaks = []
        for file in files:
            for acquire, release, description in LEAK_CHECKS:
                if acquire.search(file.content) and not release.search(file.content):
                    leaks.append({"file": file.relative_path, "description": description})
        return {"potential_leaks": leaks}

    def assess_cache_efficiency(self, files: list[SourceFile]) -> dict[str, Any]:
        score = 30
        for file in files:
            if _CACHING.search(file.content):
                score += 15
        score = min(100, score)
        if score < 50:
            level = "poor"
        elif score < 75:
            level = "moderate"
        else:
            level = "good"
        return {"score": score, "level": level}

    def identify_bottlenecks(
        self,
        bundle: dict[str, Any],
        rendering: dict[str, Any],
        api: dict[str, Any],
        memory: dict[str, Any],
    ) -> list[dict[str, Any]]:
        bottlenecks = []
        if bundle["large_dependencies"]:
            bottlenecks.append({
                "type": "Bundle Size",
                "severity": "high",
                "description": f"{len(bundle['large_dependencies'])} large dependencies affecting load time",
                "location": ", ".join(d["name"] for d in bundle["large_dependencies"]),
                "solution": "Code splitting and tree shaking",
            })
        if rendering["heavy_components"]:
            bottlenecks.append({
                "type": "Rendering Performance",
                "severity": "medium",
                "description": f"{len(rendering['heavy_components'])} components causing render performance issues",
                "location": ", ".join(c["name"] for c in rendering["heavy_components"]),
                "solution": "Component memoization and splitting",
            })
        if api["slow_endpoints"]:
            bottlenecks.append({
                "type": "API Performance",
                "severity": "high",
                "description": f"{len(api['slow_endpoints'])} slow API handlers",
                "location": ", ".join(e["endpoint"] for e in api["slow_endpoints"]),
                "solution": "Asynchronous I/O, batching and caching",
            })
        if memory["potential_leaks"]:
            bottlenecks.append({
                "type": "Memory Usage",
                "severity": "medium",
                "description": f"{len(memory['potential_leaks'])} potential memory leaks detected",
                "location": ", ".join(sorted({leak["file"] for leak in memory["potential_leaks"]})),
                "solution": "Proper cleanup and event listener removal",
            })
        return bottlenecks

    def calculate_performance_score(
        self,
        bundle: dict[str, Any],
        rendering: dict[str, Any],
        api: dict[str, Any],
        memory: dict[str, Any],
    ) -> int:
        score = 100
        score -= 5 * len(bundle["large_dependencies"])
        score -= 10 * len(rendering["heavy_components"])
        score -= 15 * len(api["slow_endpoints"])
        score -= 8 * len(memory["potential_leaks"])
        if bundle["code_splitting"]:
            score += 10
        return max(0, min(100, score))

    def recommendations(
        self,
        score: int,
        bundle: dict[str, Any],
        rendering: dict[str, Any],
        api: dict[str, Any],
        memory: dict[str, Any],
    ) -> list[dict[str, Any]]:
        recs: list[dict[str, Any]] = []
        if score < 50:
            recs.append({
                "priority": "high",
                "category": "performance",
                "title": "Critical Performance Issues Detected",
                "description": f"Performance score is {score}/100. Immediate optimization needed.",
            })
        if bundle["large_dependencies"]:
            recs.append({
                "priority": "high",
                "category": "bundle",
                "title": "Optimize Bundle Size",
                "description": "Consider " + "; ".join(
                    f"{d['alternative']} instead of {d['name']}" for d in bundle["large_dependencies"]
                ),
            })
        unmemoized = [c["name"] for c in rendering["heavy_components"] if not c["memoized"]]
        if unmemoized:
            recs.append({
                "priority": "medium",
                "category": "rendering",
                "title": "Optimize Component Performance",
                "description": f"Memoize or split: {', '.join(unmemoized)}",
            })
        if not bundle["code_splitting"]:
            recs.append({
                "priority": "medium",
                "category": "bundle",
                "title": "Implement Code Splitting",
                "description": "No lazy loading or dynamic imports detected.",
            })
        if api["slow_endpoints"]:
            recs.append({
                "priority": "high",
                "category": "api",
                "title": "Remove Blocking Work From Handlers",
                "description": f"{len(api['slow_endpoints'])} handler file(s) block or serialize I/O.",
            })
        if memory["potential_leaks"]:
            recs.append({
                "priority": "medium",
                "category": "memory",
                "title": "Release Listeners and Timers",
                "description": f"{len(memory['potential_leaks'])} resource(s) acquired without cleanup.",
            })
        return recs

    def _empty_result(self, project: ProjectInfo, error: str | None) -> dict[str, Any]:
        return {
            "bundle": {"large_dependencies": [], "code_splitting": []},
            "rendering": {"heavy_components": []},
            "api": {"slow_endpoints": []},
            "memory": {"potential_leaks": []},
            "bottlenecks": [],
            "performance_score": 0,
            "metadata": {
                "analysis_date": datetime.now(tz=UTC).isoformat(),
                "framework": project.framework,
                "error": error,
            },
            "recommendations": [
                "Performance analysis could not be performed",
                "Check if your project has performance-critical files",
            ],
        }
