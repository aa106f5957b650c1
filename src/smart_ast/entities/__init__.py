"""Entity models for the smart-ast domain layer."""

from smart_ast.entities.analysis import (
    FileRef,
    OutcomeStatus,
    ProjectInfo,
    SourceFile,
    TaskOutcome,
    TaskRequest,
    TaskType,
)
from smart_ast.entities.errors import (
    ErrorCategory,
    ErrorInfo,
    ErrorRecord,
    RecoveryStrategy,
    Severity,
    TaskError,
)

__all__ = [
    "ErrorCategory",
    "ErrorInfo",
    "ErrorRecord",
    "FileRef",
    "OutcomeStatus",
    "ProjectInfo",
    "RecoveryStrategy",
    "Severity",
    "SourceFile",
    "TaskError",
    "TaskOutcome",
    "TaskRequest",
    "TaskType",
]
