"""Resilience layer: error classification, retry and circuit breaking."""

from smart_ast.resilience.circuit_breaker import CircuitBreaker, CircuitState
from smart_ast.resilience.classifier import classify_error
from smart_ast.resilience.errors import (
    AnalysisError,
    CircuitOpenError,
    ExternalServiceError,
    ParsingFault,
    PipelineStateError,
    ValidationFault,
)
from smart_ast.resilience.handler import ErrorHandler
from smart_ast.resilience.retry import RetryPolicy

__all__ = [
    "AnalysisError",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ErrorHandler",
    "ExternalServiceError",
    "ParsingFault",
    "PipelineStateError",
    "RetryPolicy",
    "ValidationFault",
    "classify_error",
]
