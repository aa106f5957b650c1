"""Code complexity, maintainability and technical debt.

Metrics are computed from the source text with pattern heuristics:

- Cyclomatic complexity: 1 + decision points (branches, loops, cases, catches,
  ternaries, boolean operators).
- Cognitive complexity: each control structure costs 1 + its brace nesting
  depth; each boolean operator costs 1.
- Maintainability index: the classic Halstead-free variant,
  ``171 - 5.2 ln(cc) - 0.23 cc - 16.2 ln(loc) + 50 sin(sqrt(2.4 comment_ratio))``
  clamped at 0.
- Technical debt: minutes of estimated remediation per file.

Import statements are assembled into a networkx digraph so circular module
dependencies can be reported.
"""

from __future__ import annotations

import logging
import math
import posixpath
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import networkx as nx

if TYPE_CHECKING:
    from smart_ast.entities.analysis import ProjectInfo, SourceFile

logger = logging.getLogger(__name__)

THRESHOLDS: dict[str, dict[str, int]] = {
    "cyclomatic": {"low": 10, "medium": 20, "high": 30},
    "cognitive": {"low": 15, "medium": 25, "high": 40},
    "nesting": {"low": 4, "medium": 6, "high": 8},
}

DECISION_POINTS = re.compile(
    r"\b(?:if|elif|else|while|for|switch|case|catch|except)\b|\?(?![.?:])|&&|\|\||\b(?:and|or)\b"
)
CONTROL_STRUCTURES = re.compile(r"\b(?:if|else\s+if|elif|for|while|switch|catch|except)\b")
BOOLEAN_OPERATORS = re.compile(r"&&|\|\||\b(?:and|or)\b")
COMMENT_LINE = re.compile(r"^\s*(?://|#|/\*|\*|\"\"\"|''')")
FUNCTION_DEF = re.compile(
    r"^(?P<indent>[ \t]*)(?:export\s+)?(?:async\s+)?(?:function\s+(?P<js>\w+)\s*\((?P<js_params>[^)]*)\)"
    r"|def\s+(?P<py>\w+)\s*\((?P<py_params>[^)]*)\))",
    re.MULTILINE,
)
CLASS_DEF = re.compile(r"^(?P<indent>[ \t]*)(?:export\s+)?class\s+(?P<name>\w+)", re.MULTILINE)
METHOD_LINE = re.compile(r"^\s+(?:async\s+)?(?:def\s+\w+|\w+\s*\([^)]*\)\s*\{)", re.MULTILINE)

DEBT_MARKERS: tuple[tuple[re.Pattern[str], str, str, int], ...] = (
    (re.compile(r"\btodo[\s:]", re.IGNORECASE), "TODO", "medium", 45),
    (re.compile(r"\bfixme[\s:]", re.IGNORECASE), "FIXME", "high", 60),
    (re.compile(r"\bhack[\s:]", re.IGNORECASE), "HACK", "high", 90),
    (re.compile(r"\bxxx[\s:]", re.IGNORECASE), "XXX", "medium", 30),
)

SMELL_MINUTES = 30
DOC_DEBT_MINUTES = 60
MINUTES_PER_COMPLEXITY_POINT = 15
MIN_DUPLICATE_LINE_LENGTH = 30

JS_IMPORT = re.compile(r"""(?:import\s[^'"]*from\s*|import\s*\(\s*|require\s*\(\s*)['"](?P<target>\.{1,2}/[^'"]+)['"]""")
PY_IMPORT = re.compile(r"^\s*(?:from\s+(?P<from>\.*[\w.]*)\s+import|import\s+(?P<plain>[\w.]+))", re.MULTILINE)
_JS_SUFFIXES = ("", ".js", ".jsx", ".ts", ".tsx", ".mjs", "/index.js", "/index.ts", "/index.tsx")


def cyclomatic_complexity(content: str) -> int:
    return 1 + len(DECISION_POINTS.findall(content))


def cognitive_complexity(content: str) -> int:
    score = 0
    depth = 0
    for line in content.splitlines():
        if not COMMENT_LINE.match(line):
            score += sum(1 + depth for _ in CONTROL_STRUCTURES.finditer(line))
            score += len(BOOLEAN_OPERATORS.findall(line))
        depth = max(0, depth + line.count("{") - line.count("}"))
    return score


def nesting_depth(content: str) -> int:
    """Deepest brace nesting, or indentation depth for brace-less sources."""
    depth = deepest = 0
    for char in content:
        if char == "{":
            depth += 1
            deepest = max(deepest, depth)
        elif char == "}":
            depth = max(0, depth - 1)
    if deepest:
        return deepest
    indents = [len(line) - len(line.lstrip(" ")) for line in content.splitlines() if line.strip()]
    return max(indents, default=0) // 4


def comment_ratio(lines: list[str]) -> float:
    if not lines:
        return 0.0
    return sum(1 for line in lines if COMMENT_LINE.match(line)) / len(lines)


def maintainability_index(cc: float, loc: int, ratio: float) -> float:
    if loc <= 0:
        return 100.0
    value = (
        171
        - 5.2 * math.log(max(cc, 1))
        - 0.23 * cc
        - 16.2 * math.log(loc)
        + 50 * math.sin(math.sqrt(2.4 * ratio))
    )
    return max(0.0, value)


def maintainability_category(index: float) -> str:
    if index >= 85:
        return "excellent"
    if index >= 70:
        return "good"
    if index >= 50:
        return "fair"
    if index >= 25:
        return "poor"
    return "critical"


def rate(value: float, kind: str) -> str:
    limits = THRESHOLDS[kind]
    if value <= limits["low"]:
        return "low"
    if value <= limits["medium"]:
        return "medium"
    if value <= limits["high"]:
        return "high"
    return "very_high"


class ComplexityAnalyzer:
    """Score complexity and maintainability for a set of source files.

    Usage:
        analyzer = ComplexityAnalyzer()
        result = analyzer.analyze(complexity_payload, files, project)
    """

    def analyze(
        self,
        prior_result: dict[str, Any] | None,
        files: list[SourceFile],
        project: ProjectInfo,
    ) -> dict[str, Any]:
        if prior_result is not None and prior_result.get("error"):
            return self._empty_result(project, prior_result["error"])

        per_file = [self.file_metrics(f) for f in files]
        smells = [smell for f in files for smell in self.detect_code_smells(f)]
        debt = self.assess_technical_debt(files, per_file)
        cycles = self.find_circular_dependencies(files)

        avg_cc = _average(m["cyclomatic"] for m in per_file)
        total_loc = sum(m["loc"] for m in per_file)
        mi = _average(m["maintainability_index"] for m in per_file) if per_file else 0.0

        logger.debug(
            "Complexity: %d files, avg cc %.1f, MI %.1f, %d import cycles",
            len(files),
            avg_cc,
            mi,
            len(cycles),
        )
        return {
            **(prior_result or {}),
            "metadata": {
                "analysis_date": datetime.now(tz=UTC).isoformat(),
                "framework": project.framework,
                "total_files": len(files),
                "total_lines": total_loc,
            },
            "code_metrics": {
                "cyclomatic_complexity": round(avg_cc, 2),
                "cognitive_complexity": round(_average(m["cognitive"] for m in per_file), 2),
                "max_nesting": max((m["nesting"] for m in per_file), default=0),
                "lines_of_code": total_loc,
                "files": per_file,
            },
            "maintainability_index": {
                "score": round(mi, 2),
                "category": maintainability_category(mi),
            },
            "technical_debt": debt,
            "code_smells": smells,
            "hotspots": self.find_hotspots(per_file),
            "circular_dependencies": cycles,
            "complexity_trends": self.complexity_trend(avg_cc),
            "quality_gates": self.evaluate_quality_gates(avg_cc, mi, debt["debt_ratio"]),
            "recommendations": self.recommendations(avg_cc, mi, smells, cycles, debt),
        }

    def file_metrics(self, file: SourceFile) -> dict[str, Any]:
        lines = file.content.splitlines()
        cc = cyclomatic_complexity(file.content)
        ratio = comment_ratio(lines)
        loc = len(lines)
        return {
            "file": file.relative_path,
            "loc": loc,
            "cyclomatic": cc,
            "cognitive": cognitive_complexity(file.content),
            "nesting": nesting_depth(file.content),
            "comment_ratio": round(ratio, 3),
            "maintainability_index": round(maintainability_index(cc, loc, ratio), 2),
            "rating": rate(cc, "cyclomatic"),
        }

    def detect_code_smells(self, file: SourceFile) -> list[dict[str, Any]]:
        smells: list[dict[str, Any]] = []
        for fn in _functions(file.content):
            if fn["lines"] > 50:
                smells.append({
                    "type": "Long Method",
                    "file": file.relative_path,
                    "function": fn["name"],
                    "severity": "medium",
                    "description": f"Method {fn['name']} has {fn['lines']} lines",
                    "recommendation": "Break down into smaller, focused methods",
                })
            if fn["parameters"] > 5:
                smells.append({
                    "type": "Long Parameter List",
                    "file": file.relative_path,
                    "function": fn["name"],
                    "severity": "medium",
                    "description": f"Method {fn['name']} has {fn['parameters']} parameters",
                    "recommendation": "Use parameter objects or dependency injection",
                })
        for cls in _classes(file.content):
            if cls["methods"] > 20 or cls["lines"] > 500:
                smells.append({
                    "type": "God Class",
                    "file": file.relative_path,
                    "class": cls["name"],
                    "severity": "high",
                    "description": f"Class {cls['name']} has {cls['methods']} methods and {cls['lines']} lines",
                    "recommendation": "Split into classes with single responsibilities",
                })
        nesting = nesting_depth(file.content)
        if nesting > THRESHOLDS["nesting"]["low"]:
            smells.append({
                "type": "Deep Nesting",
                "file": file.relative_path,
                "severity": "high" if nesting > THRESHOLDS["nesting"]["medium"] else "medium",
                "description": f"Maximum nesting level: {nesting}",
                "recommendation": "Reduce nesting using early returns and guard clauses",
            })
        duplicates = _duplicate_lines(file.content.splitlines())
        if duplicates:
            smells.append({
                "type": "Duplicate Code",
                "file": file.relative_path,
                "severity": "medium",
                "description": f"{duplicates} potentially duplicated lines",
                "recommendation": "Extract common code into shared functions",
            })
        return smells

    def assess_technical_debt(
        self, files: list[SourceFile], per_file: list[dict[str, Any]]
    ) -> dict[str, Any]:
        issues: list[dict[str, Any]] = []
        total_minutes = 0
        for file, metrics in zip(files, per_file, strict=True):
            minutes = SMELL_MINUTES * len(self.detect_code_smells(file))
            cc = metrics["cyclomatic"]
            if cc > THRESHOLDS["cyclomatic"]["medium"]:
                effort = (cc - THRESHOLDS["cyclomatic"]["medium"]) * MINUTES_PER_COMPLEXITY_POINT
                minutes += effort
                issues.append({
                    "type": "Complex Code",
                    "file": file.relative_path,
                    "severity": "high" if cc > THRESHOLDS["cyclomatic"]["high"] else "medium",
                    "description": f"High cyclomatic complexity: {cc}",
                    "effort": effort,
                })
            if metrics["loc"] and metrics["comment_ratio"] < 0.1:
                minutes += DOC_DEBT_MINUTES
                issues.append({
                    "type": "Documentation Debt",
                    "file": file.relative_path,
                    "severity": "low",
                    "description": "Insufficient code documentation",
                    "effort": DOC_DEBT_MINUTES,
                })
            for number, line in enumerate(file.content.splitlines(), start=1):
                for pattern, marker, severity, effort in DEBT_MARKERS:
                    if pattern.search(line):
                        minutes += effort
                        issues.append({
                            "type": marker,
                            "file": file.relative_path,
                            "line": number,
                            "severity": severity,
                            "description": f"{marker} comment indicates incomplete work",
                            "effort": effort,
                        })
            total_minutes += minutes

        total_loc = sum(m["loc"] for m in per_file)
        ratio = min(100.0, total_minutes / (total_loc * 0.5) * 100) if total_loc else 0.0
        return {
            "total_minutes": total_minutes,
            "total_hours": round(total_minutes / 60, 1),
            "debt_ratio": round(ratio, 2),
            "issues": issues,
        }

    def find_hotspots(self, per_file: list[dict[str, Any]], limit: int = 10) -> list[dict[str, Any]]:
        ranked = sorted(per_file, key=lambda m: m["cyclomatic"], reverse=True)[:limit]
        hotspots = []
        for m in ranked:
            if m["cyclomatic"] > 30:
                severity = "critical"
            elif m["cyclomatic"] > 20:
                severity = "high"
            else:
                severity = "medium"
            hotspots.append({
                "file": m["file"],
                "complexity": m["cyclomatic"],
                "cognitive": m["cognitive"],
                "severity": severity,
            })
        return hotspots

    def find_circular_dependencies(self, files: list[SourceFile]) -> list[list[str]]:
        """Import cycles between the given files, shortest first."""
        graph = build_import_graph(files)
        cycles = []
        for cycle in nx.simple_cycles(graph):
            start = cycle.index(min(cycle))
            cycles.append(cycle[start:] + cycle[:start])
        return sorted(cycles, key=lambda c: (len(c), c))

    def complexity_trend(self, avg_cc: float) -> dict[str, str]:
        if avg_cc > 25:
            return {"trend": "deteriorating", "severity": "high"}
        if avg_cc > 15:
            return {"trend": "stable_high", "severity": "medium"}
        if avg_cc > 10:
            return {"trend": "stable_medium", "severity": "low"}
        return {"trend": "stable_low", "severity": "low"}

    def evaluate_quality_gates(self, avg_cc: float, mi: float, debt_ratio: float) -> dict[str, Any]:
        gates = [
            {"name": "Cyclomatic Complexity", "threshold": 15, "actual": round(avg_cc, 2),
             "passed": avg_cc <= 15},
            {"name": "Maintainability Index", "threshold": 70, "actual": round(mi, 2),
             "passed": mi >= 70},
            {"name": "Technical Debt Ratio", "threshold": 5, "actual": debt_ratio,
             "passed": debt_ratio <= 5},
        ]
        passed = sum(1 for g in gates if g["passed"])
        failed = len(gates) - passed
        return {
            "gates": gates,
            "passed": passed,
            "failed": failed,
            "status": "pass" if failed == 0 else "fail",
            "overall_score": round(passed / len(gates) * 100),
        }

    def recommendations(
        self,
        avg_cc: float,
        mi: float,
        smells: list[dict[str, Any]],
        cycles: list[list[str]],
        debt: dict[str, Any],
    ) -> list[dict[str, Any]]:
        recs: list[dict[str, Any]] = []
        if avg_cc > THRESHOLDS["cyclomatic"]["low"]:
            recs.append({
                "priority": "high" if avg_cc > THRESHOLDS["cyclomatic"]["medium"] else "medium",
                "category": "complexity",
                "title": "Reduce Code Complexity",
                "description": f"Average cyclomatic complexity is {avg_cc:.1f}",
            })
        if mi < 70:
            recs.append({
                "priority": "high" if mi < 50 else "medium",
                "category": "maintainability",
                "title": "Improve Maintainability",
                "description": f"Maintainability index is {mi:.1f}",
            })
        if cycles:
            recs.append({
                "priority": "medium",
                "category": "architecture",
                "title": "Break Circular Dependencies",
                "description": f"{len(cycles)} import cycle(s), e.g. {' -> '.join(cycles[0])}",
            })
        if smells:
            recs.append({
                "priority": "medium",
                "category": "code_smells",
                "title": "Address Code Smells",
                "description": f"{len(smells)} code smell(s) detected",
            })
        if debt["total_hours"] > 40:
            recs.append({
                "priority": "high",
                "category": "technical_debt",
                "title": "Plan Technical Debt Reduction",
                "description": f"Estimated {debt['total_hours']} hours of remediation",
            })
        return recs

    def _empty_result(self, project: ProjectInfo, error: str) -> dict[str, Any]:
        return {
            "code_metrics": {"cyclomatic_complexity": 0, "cognitive_complexity": 0, "lines_of_code": 0},
            "technical_debt": {"total_minutes": 0, "debt_ratio": 0, "issues": []},
            "maintainability_index": {"score": 0, "category": "unknown"},
            "code_smells": [],
            "hotspots": [],
            "circular_dependencies": [],
            "complexity_trends": {"trend": "unknown", "severity": "low"},
            "quality_gates": {"passed": 0, "failed": 0, "status": "unknown"},
            "metadata": {
                "analysis_date": datetime.now(tz=UTC).isoformat(),
                "framework": project.framework,
                "error": error,
            },
            "recommendations": [
                "Complexity analysis could not be performed",
                "Check if your project has analyzable code files",
            ],
        }


def build_import_graph(files: list[SourceFile]) -> nx.DiGraph:
    """Directed graph of relative_path -> imported relative_path."""
    known = {f.relative_path for f in files}
    graph = nx.DiGraph()
    graph.add_nodes_from(known)
    for file in files:
        for target in _resolve_imports(file, known):
            if target != file.relative_path:
                graph.add_edge(file.relative_path, target)
    return graph


def _resolve_imports(file: SourceFile, known: set[str]) -> set[str]:
    resolved: set[str] = set()
    base = posixpath.dirname(file.relative_path)
    for match in JS_IMPORT.finditer(file.content):
        stem = posixpath.normpath(posixpath.join(base, match.group("target")))
        for suffix in _JS_SUFFIXES:
            if stem + suffix in known:
                resolved.add(stem + suffix)
                break
    if file.extension == ".py":
        for match in PY_IMPORT.finditer(file.content):
            module = match.group("from") or match.group("plain")
            target = _python_module_path(module, base)
            for candidate in (f"{target}.py", f"{target}/__init__.py"):
                if candidate in known:
                    resolved.add(candidate)
                    break
    return resolved


def _python_module_path(module: str, base: str) -> str:
    dots = len(module) - len(module.lstrip("."))
    name = module[dots:].replace(".", "/")
    if not dots:
        return name
    anchor = base
    for _ in range(dots - 1):
        anchor = posixpath.dirname(anchor)
    return posixpath.join(anchor, name) if name else anchor


def _functions(content: str) -> list[dict[str, Any]]:
    lines = content.splitlines()
    found = []
    for match in FUNCTION_DEF.finditer(content):
        name = match.group("js") or match.group("py")
        params = match.group("js_params") if match.group("js") else match.group("py_params")
        start = content.count("\n", 0, match.start())
        found.append({
            "name": name,
            "parameters": len([p for p in (params or "").split(",") if p.strip() and p.strip() != "self"]),
            "lines": _block_length(lines, start, len(match.group("indent"))),
        })
    return found


def _classes(content: str) -> list[dict[str, Any]]:
    lines = content.splitlines()
    found = []
    for match in CLASS_DEF.finditer(content):
        start = content.count("\n", 0, match.start())
        length = _block_length(lines, start, len(match.group("indent")))
        body = "\n".join(lines[start + 1 : start + length])
        found.append({
            "name": match.group("name"),
            "lines": length,
            "methods": len(METHOD_LINE.findall(body)),
        })
    return found


def _block_length(lines: list[str], start: int, indent: int) -> int:
    """Lines from ``start`` until brace balance or indentation closes the block."""
    header = lines[start]
    if "{" in header:
        depth = 0
        for offset, line in enumerate(lines[start:]):
            depth += line.count("{") - line.count("}")
            if depth <= 0 and offset > 0:
                return offset + 1
        return len(lines) - start
    for offset, line in enumerate(lines[start + 1 :], start=1):
        if line.strip() and len(line) - len(line.lstrip()) <= indent:
            return offset
    return len(lines) - start


def _duplicate_lines(lines: list[str]) -> int:
    seen: dict[str, int] = {}
    for line in lines:
        text = line.strip()
        if len(text) >= MIN_DUPLICATE_LINE_LENGTH and not COMMENT_LINE.match(text):
            seen[text] = seen.get(text, 0) + 1
    return sum(count - 1 for count in seen.values() if count > 1)


def _average(values: Any) -> float:
    items = list(values)
    return sum(items) / len(items) if items else 0.0
