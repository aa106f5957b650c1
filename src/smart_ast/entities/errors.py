"""Error taxonomy models produced by the error classifier."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ErrorCategory(StrEnum):
    """Failure categories used for recovery decisions."""

    NETWORK = "network"
    FILESYSTEM = "filesystem"
    PARSING = "parsing"
    EXTERNAL_SERVICE = "external_service"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class Severity(StrEnum):
    """Impact of a classified fault."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryStrategy(BaseModel):
    """How a caller is expected to react to a classified fault."""

    model_config = ConfigDict(frozen=True)

    type: str  # retry, fallback, skip, none
    action: str = ""
    max_attempts: int = 0
    base_delay: float = 0.0
    backoff: str = ""
    jitter: bool = False


class ErrorInfo(BaseModel):
    """Deterministic classification of a raw fault."""

    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    message: str
    original_message: str
    code: str | None = None
    context: str = ""
    recoverable: bool
    retryable: bool
    severity: Severity
    suggested_action: str
    recovery_strategy: RecoveryStrategy


class ErrorRecord(BaseModel):
    """An ErrorInfo as stored in the rolling error history."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    info: ErrorInfo


class TaskError(BaseModel):
    """An error attributed to a task type in the pipeline state."""

    model_config = ConfigDict(frozen=True)

    task_type: str
    error: ErrorInfo
