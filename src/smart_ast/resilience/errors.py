"""Exception types raised inside the analysis pipeline."""

from __future__ import annotations

from smart_ast.entities.errors import ErrorCategory


class AnalysisError(Exception):
    """Base fault for the pipeline, optionally carrying a fault code."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationFault(AnalysisError):
    """Input or configuration is unusable."""


class ParsingFault(AnalysisError):
    """Content could not be parsed into the expected format."""


class ExternalServiceError(AnalysisError):
    """The external AI process failed or returned garbage."""


class CircuitOpenError(AnalysisError):
    """A guarded operation was rejected because its breaker is open."""

    def __init__(self, category: ErrorCategory) -> None:
        super().__init__(f"circuit is open for {category.value}", code="ECIRCUITOPEN")
        self.category = category


class PipelineStateError(AnalysisError):
    """An illegal phase transition was requested."""
