"""Domain models for analysis tasks, inputs and outcomes."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from smart_ast.entities.errors import ErrorInfo  # noqa: TC001


class TaskType(StrEnum):
    """The analysis dimensions a pipeline run can request."""

    API = "api"
    COMPONENTS = "components"
    WEBSOCKET = "websocket"
    AUTH = "auth"
    DATABASE = "database"
    PERFORMANCE = "performance"
    SECURITY = "security"
    COMPLEXITY = "complexity"


class OutcomeStatus(StrEnum):
    """Final status of one task in one pipeline run."""

    SUCCESS = "success"
    WARNING = "warning"  # Partial result plus an error description
    ERROR = "error"


class FileRef(BaseModel):
    """Identity and content fingerprint of a scanned file."""

    model_config = ConfigDict(frozen=True)

    path: str
    relative_path: str
    content_hash: str
    size: int = 0


class SourceFile(BaseModel):
    """A scanned file together with its decoded content."""

    model_config = ConfigDict(frozen=True)

    ref: FileRef
    content: str
    lines: int = 0
    extension: str = ""

    @property
    def path(self) -> str:
        return self.ref.path

    @property
    def relative_path(self) -> str:
        return self.ref.relative_path


class TaskRequest(BaseModel):
    """One unit of analysis work: a task type over a fixed set of files."""

    model_config = ConfigDict(frozen=True)

    task_type: TaskType
    input_files: tuple[FileRef, ...] = ()


class TaskOutcome(BaseModel):
    """Result of running (or cache-serving) a single TaskRequest."""

    model_config = ConfigDict(frozen=True)

    task_type: TaskType
    status: OutcomeStatus
    payload: dict[str, Any] = Field(default_factory=dict)
    error_info: ErrorInfo | None = None
    from_cache: bool = False
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class ProjectInfo(BaseModel):
    """Scanner output describing the project under analysis."""

    path: str
    project_type: str = "unknown"
    framework: str = "unknown"
    language: str = "unknown"
    files: dict[str, list[FileRef]] = Field(default_factory=dict)
    structure: dict[str, int] = Field(default_factory=dict)
    dependencies: dict[str, list[str]] = Field(default_factory=dict)
    metrics: dict[str, Any] = Field(default_factory=dict)
    last_modified: datetime | None = None
    git: dict[str, Any] = Field(default_factory=dict)

    def all_files(self) -> list[FileRef]:
        """Unique files across every category, in first-seen order."""
        seen: dict[str, FileRef] = {}
        for refs in self.files.values():
            for ref in refs:
                seen.setdefault(ref.path, ref)
        return list(seen.values())

    @property
    def total_files(self) -> int:
        return len(self.all_files())
