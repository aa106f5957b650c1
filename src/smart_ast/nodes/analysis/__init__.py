"""Task analyzers and the secondary enhancement analyzers."""

from smart_ast.nodes.analysis.ai_executor import AIExecutor
from smart_ast.nodes.analysis.base_analyzer import BaseAnalyzer
from smart_ast.nodes.analysis.complexity_analyzer import ComplexityAnalyzer
from smart_ast.nodes.analysis.performance_profiler import PerformanceProfiler
from smart_ast.nodes.analysis.registry import run_task_analysis
from smart_ast.nodes.analysis.security_analyzer import SecurityAnalyzer

__all__ = [
    "AIExecutor",
    "BaseAnalyzer",
    "ComplexityAnalyzer",
    "PerformanceProfiler",
    "SecurityAnalyzer",
    "run_task_analysis",
]
