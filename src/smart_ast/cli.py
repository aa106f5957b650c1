"""Command line front end: ``smart-ast [path] [options]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from smart_ast import __version__
from smart_ast.config import load_config
from smart_ast.workflows.pipeline import AnalysisPipeline

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smart-ast",
        description="Analyze a codebase and produce a consolidated quality report",
    )
    parser.add_argument("path", nargs="?", default=None, help="Project directory (default: .)")
    parser.add_argument(
        "-t",
        "--type",
        dest="analysis_type",
        help="Preset (full, comprehensive, security, quality) or comma-separated task types",
    )
    parser.add_argument(
        "-d", "--depth", choices=["standard", "deep", "comprehensive"], help="Analysis depth"
    )
    parser.add_argument("-o", "--output", help="Output directory for reports")
    parser.add_argument(
        "-f", "--format", choices=["json", "markdown", "all"], help="Report format"
    )
    parser.add_argument("--ai", choices=["mock", "gemini", "claude"], help="AI provider")
    parser.add_argument(
        "--max-files",
        type=int,
        help="Maximum files per category, also caps the files read for enhancement",
    )
    parser.add_argument("--timeout", type=float, help="Per-task timeout in seconds (10-3600)")
    parser.add_argument("--include", help="Comma-separated glob patterns to include")
    parser.add_argument("--exclude", help="Comma-separated glob patterns to exclude")
    parser.add_argument("--max-concurrent", type=int, help="Bound on concurrently running tasks")
    parser.add_argument(
        "--sequential", action="store_true", help="Run analysis tasks one at a time"
    )
    parser.add_argument("--no-cache", action="store_true", help="Disable the result cache")
    parser.add_argument("--cache-ttl", type=float, help="Cache entry lifetime in seconds")
    parser.add_argument("--clear-cache", action="store_true", help="Clear the cache before running")
    parser.add_argument("--save-state", action="store_true", help="Write analysis-state.json")
    parser.add_argument("--error-report", help="Write error statistics to this JSON file")
    parser.add_argument("--config", help="Path to a JSON config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _split(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _compact(values: dict[str, Any]) -> dict[str, Any] | None:
    cleaned = {k: v for k, v in values.items() if v is not None}
    return cleaned or None


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed CLI flags into ``load_config`` overrides."""
    formats = None
    if args.format is not None:
        formats = ["json", "markdown"] if args.format == "all" else [args.format]
    return {
        "path": args.path,
        "analysis_type": args.analysis_type,
        "analysis_depth": args.depth,
        "max_files": args.max_files,
        "timeout_seconds": args.timeout,
        "include": _split(args.include),
        "exclude": _split(args.exclude),
        "max_concurrent_tasks": args.max_concurrent,
        "parallel": False if args.sequential else None,
        "save_state": True if args.save_state else None,
        "verbose": True if args.verbose else None,
        "output": _compact({"directory": args.output, "formats": formats}),
        "cache": _compact({
            "enabled": False if args.no_cache else None,
            "ttl_seconds": args.cache_ttl,
        }),
        "ai": _compact({"provider": args.ai}),
    }


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        config = load_config(args.config, **overrides_from_args(args))
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    pipeline = AnalysisPipeline(config)
    if args.clear_cache:
        pipeline.cache.clear()
        logger.info("Cache cleared")

    exit_code = 0
    try:
        report = asyncio.run(pipeline.run())
    except Exception as e:
        logger.error("Analysis failed: %s", e)
        exit_code = 1
    else:
        print(report.summary["text"])
        metrics = report.metrics
        print(
            f"Overall score: {metrics['overall_score']}/100 "
            f"(security {metrics['security_score']}, performance {metrics['performance_score']}, "
            f"maintainability {metrics['maintainability_score']})"
        )
        if report.analysis_metrics is not None:
            print(
                f"Cache efficiency: {report.analysis_metrics.cache_efficiency}%, "
                f"elapsed {report.analysis_metrics.elapsed_seconds:.1f}s"
            )
        for path in report.files:
            print(f"Report written: {path}")
        if pipeline.state.warnings:
            print(f"Completed with {len(pipeline.state.warnings)} warning(s)")

    health = pipeline.handler.get_health_status()
    if health["status"] != "healthy":
        logger.warning("Resilience status: %s", health["status"])
        for recommendation in health["recommendations"]:
            logger.warning("  %s", recommendation)

    if args.error_report:
        try:
            pipeline.handler.save_error_report(Path(args.error_report))
        except OSError as e:
            logger.warning("Could not write error report: %s", e)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
