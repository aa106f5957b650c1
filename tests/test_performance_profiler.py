"""Tests for PerformanceProfiler."""

from __future__ import annotations

from typing import Any

from smart_ast.entities.analysis import ProjectInfo, SourceFile
from smart_ast.nodes.analysis.performance_profiler import PerformanceProfiler, estimate_complexity

PERF_PAYLOAD: dict[str, Any] = {"type": "performance", "issues": []}

DASHBOARD = "export function Dashboard() {\n" + "  const [v, setV] = useState(0);\n" * 9 + "}\n"
BLOCKING_ROUTE = (
    "app.get('/file', (req, res) => {\n"
    "  res.send(fs.readFileSync('a.txt'));\n"
    "});\n"
)
LISTENER = "window.addEventListener('resize', onResize);\n"


def _project(*deps: str) -> ProjectInfo:
    return ProjectInfo(
        path="/p",
        framework="react",
        dependencies={"dependencies": list(deps), "dev_dependencies": []},
    )


def _problem_files(make_source: Any) -> list[SourceFile]:
    return [
        make_source("components/Dashboard.tsx", DASHBOARD),
        make_source("routes/files.js", BLOCKING_ROUTE),
        make_source("components/Widget.jsx", LISTENER),
    ]


class TestDetectors:
    def test_hook_heavy_component(self, make_source: Any) -> None:
        rendering = PerformanceProfiler().analyze_rendering([make_source("components/Dashboard.tsx", DASHBOARD)])
        heavy = rendering["heavy_components"]
        assert [c["name"] for c in heavy] == ["Dashboard"]
        assert heavy[0]["hooks"] == 9
        assert heavy[0]["memoized"] is False

    def test_non_component_files_are_not_heavy(self, make_source: Any) -> None:
        rendering = PerformanceProfiler().analyze_rendering([make_source("lib/state.js", DASHBOARD)])
        assert rendering["heavy_components"] == []

    def test_blocking_handler(self, make_source: Any) -> None:
        api = PerformanceProfiler().analyze_api([make_source("routes/files.js", BLOCKING_ROUTE)])
        assert api["slow_endpoints"] == [
            {"endpoint": "routes/files.js", "reasons": ["blocking I/O in request handler"]}
        ]

    def test_await_inside_loop(self, make_source: Any) -> None:
        content = (
            "router.post('/bulk', async (req, res) => {\n"
            "  for (const id of req.body.ids) {\n"
            "    await db.remove(id);\n"
            "  }\n"
            "});\n"
        )
        api = PerformanceProfiler().analyze_api([make_source("routes/bulk.js", content)])
        assert api["slow_endpoints"][0]["reasons"] == ["sequential awaits inside a loop"]

    def test_sync_io_outside_handlers_is_ignored(self, make_source: Any) -> None:
        content = "const config = fs.readFileSync('config.json');\n"
        assert PerformanceProfiler().analyze_api([make_source("lib/config.js", content)]) == {
            "slow_endpoints": []
        }

    def test_leaks(self, make_source: Any) -> None:
        files = [
            make_source("components/Widget.jsx", LISTENER),
            make_source("lib/poll.js", "setInterval(poll, 1000);\n"),
            make_source("lib/ok.js", "const id = setInterval(poll, 1000);\nclearInterval(id);\n"),
        ]
        leaks = PerformanceProfiler().analyze_memory(files)["potential_leaks"]
        assert [(leak["file"], leak["description"]) for leak in leaks] == [
            ("components/Widget.jsx", "Event listener never removed"),
            ("lib/poll.js", "Interval never cleared"),
        ]

    def test_large_dependencies(self, make_source: Any) -> None:
        bundle = PerformanceProfiler().analyze_bundle([], _project("express", "moment"))
        assert bundle["large_dependencies"] == [{"name": "moment", "alternative": "dayjs or date-fns"}]
        assert bundle["code_splitting"] == []


class TestAnalyze:
    def test_score_and_bottlenecks(self, make_source: Any) -> None:
        result = PerformanceProfiler().analyze(PERF_PAYLOAD, _problem_files(make_source), _project("moment"))
        # 100 - 5 (moment) - 10 (Dashboard) - 15 (files.js) - 8 (listener)
        assert result["performance_score"] == 62
        assert result["type"] == "performance"
        assert [b["type"] for b in result["bottlenecks"]] == [
            "Bundle Size",
            "Rendering Performance",
            "API Performance",
            "Memory Usage",
        ]
        titles = [r["title"] for r in result["recommendations"]]
        assert titles == [
            "Optimize Bundle Size",
            "Optimize Component Performance",
            "Implement Code Splitting",
            "Remove Blocking Work From Handlers",
            "Release Listeners and Timers",
        ]
        assert result["metadata"]["project_size"]["files"] == 3

    def test_code_splitting_bonus(self, make_source: Any) -> None:
        files = [
            *_problem_files(make_source),
            make_source("pages/index.jsx", "const Chart = React.lazy(() => import('./Chart'));\n"),
        ]
        result = PerformanceProfiler().analyze(PERF_PAYLOAD, files, _project("moment"))
        assert result["performance_score"] == 72
        assert result["bundle"]["code_splitting"] == ["pages/index.jsx"]
        assert "Implement Code Splitting" not in [r["title"] for r in result["recommendations"]]

    def test_low_score_is_flagged(self, make_source: Any) -> None:
        files = [make_source(f"routes/r{n}.js", BLOCKING_ROUTE) for n in range(4)]
        result = PerformanceProfiler().analyze(PERF_PAYLOAD, files, _project())
        assert result["performance_score"] == 40
        assert result["recommendations"][0]["title"] == "Critical Performance Issues Detected"

    def test_cache_efficiency(self, make_source: Any) -> None:
        files = [
            make_source("lib/a.js", "const value = useMemo(() => compute(x), [x]);\n"),
            make_source("lib/b.py", "@lru_cache(maxsize=None)\ndef load():\n    pass\n"),
        ]
        assert PerformanceProfiler().assess_cache_efficiency(files) == {"score": 60, "level": "moderate"}
        assert PerformanceProfiler().assess_cache_efficiency([])["level"] == "poor"

    def test_error_prior_gives_empty_result(self, make_source: Any) -> None:
        prior = {"error": "Request timeout", "partial_results": {}}
        result = PerformanceProfiler().analyze(prior, _problem_files(make_source), _project("moment"))
        assert result["performance_score"] == 0
        assert result["metadata"]["error"] == "Request timeout"
        assert result["bottlenecks"] == []


class TestEstimateComplexity:
    def test_buckets(self, make_source: Any) -> None:
        assert estimate_complexity([]) == "low"
        assert estimate_complexity([make_source("a.js", "for (;;) {}\n" * 6)]) == "medium"
        assert estimate_complexity([make_source("a.js", "for (;;) {}\n" * 10)]) == "high"
