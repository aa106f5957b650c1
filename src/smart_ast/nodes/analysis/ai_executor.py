"""External AI CLI execution for enriching heuristic results.

Supports the ``gemini`` and ``claude`` command line tools. Prompts are
written to a temp directory and the process output is parsed as JSON. The
``mock`` provider never spawns a process.

Failures are raised, not swallowed: the task scheduler owns retry and
circuit breaking for everything this module does.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from smart_ast.resilience.errors import ExternalServiceError

if TYPE_CHECKING:
    from smart_ast.entities.analysis import ProjectInfo, TaskType

logger = logging.getLogger(__name__)

DEFAULT_TEMP_DIR = ".smart-ast-temp"
MAX_OUTPUT_PREVIEW = 500

RESPONSE_REQUIREMENTS = (
    "Respond with valid JSON only. No markdown formatting, code blocks, or "
    "explanations outside the JSON structure."
)

_FENCE = re.compile(r"```(?:json)?")


def parse_response(output: str) -> dict[str, Any] | list[Any]:
    """Extract the JSON value from raw CLI output.

    Raises:
        ExternalServiceError: No JSON object or array could be decoded.
    """
    text = output.strip()
    if text.startswith("Loaded cached credentials."):
        text = text.split("\n", 1)[1] if "\n" in text else ""
    text = _FENCE.sub("", text).strip()

    start_positions = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not start_positions:
        raise ExternalServiceError(f"AI response contained no JSON: {output[:MAX_OUTPUT_PREVIEW]!r}")
    text = text[min(start_positions):]

    try:
        value, _ = json.JSONDecoder().raw_decode(text)
    except json.JSONDecodeError as e:
        raise ExternalServiceError(f"AI response was not valid JSON: {e}") from e
    if not isinstance(value, (dict, list)):
        raise ExternalServiceError("AI response was not a JSON object or array")
    return value


class AIExecutor:
    """Runs prompts through an AI CLI as a subprocess.

    Usage:
        executor = AIExecutor("gemini", timeout_seconds=120)
        insights = await executor.execute(prompt)
        await executor.cleanup()
    """

    def __init__(
        self,
        provider: str = "mock",
        timeout_seconds: float = 300.0,
        model: str = "default",
        temp_dir: Path | str = DEFAULT_TEMP_DIR,
    ) -> None:
        self.provider = provider.lower()
        self.timeout_seconds = timeout_seconds
        self.model = model
        self.temp_dir = Path(temp_dir)
        self.invocations = 0

    @property
    def is_mock(self) -> bool:
        return self.provider == "mock"

    def build_command(self, prompt_file: Path) -> list[str]:
        executable = shutil.which(self.provider)
        if executable is None:
            raise ExternalServiceError(
                f"{self.provider} CLI not found. Install it or use the mock provider."
            )
        match self.provider:
            case "gemini":
                command = [executable, "-y", "-f", str(prompt_file)]
            case "claude":
                command = [executable, "-p", prompt_file.read_text(encoding="utf-8")]
            case _:
                raise ExternalServiceError(f"Unsupported AI provider: {self.provider}")
        if self.model != "default":
            command.extend(["--model", self.model])
        return command

    async def execute(self, prompt: str) -> dict[str, Any] | list[Any]:
        """Run one prompt and return the parsed JSON response.

        Raises:
            ExternalServiceError: CLI missing, non-zero exit or unparseable output.
            TimeoutError: The process did not finish within ``timeout_seconds``.
        """
        if self.is_mock:
            return {"recommendations": []}

        prompt_file = self._write_prompt(prompt)
        try:
            command = self.build_command(prompt_file)
            self.invocations += 1
            logger.debug("Running %s CLI (attempt #%d)", self.provider, self.invocations)
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=self.timeout_seconds
                )
            except TimeoutError:
                process.kill()
                await process.wait()
                raise TimeoutError(
                    f"{self.provider} CLI timed out after {self.timeout_seconds}s"
                ) from None
        finally:
            prompt_file.unlink(missing_ok=True)

        err_text = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            raise ExternalServiceError(
                f"{self.provider} CLI exited with code {process.returncode}: "
                f"{err_text[:MAX_OUTPUT_PREVIEW]}"
            )
        if err_text:
            logger.warning("%s CLI warning: %s", self.provider, err_text[:MAX_OUTPUT_PREVIEW])
        return parse_response(stdout.decode("utf-8", errors="replace"))

    async def enhance(
        self, task_type: TaskType, results: dict[str, Any], project: ProjectInfo
    ) -> list[str]:
        """Ask the AI for recommendations about a task's heuristic results."""
        if self.is_mock:
            return []
        response = await self.execute(self.build_prompt(task_type, results, project))
        if isinstance(response, list):
            recommendations = response
        else:
            recommendations = response.get("recommendations") or []
        return [str(r) for r in recommendations[:5]]

    def build_prompt(
        self, task_type: TaskType, results: dict[str, Any], project: ProjectInfo
    ) -> str:
        summary = json.dumps(_summarize(results), indent=2, default=str)
        return (
            f"Project framework: {project.framework}\n"
            f"Project type: {project.project_type}\n"
            f"Language: {project.language}\n\n"
            f"These are heuristic {task_type} analysis findings:\n{summary}\n\n"
            "List up to 5 specific, actionable recommendations as a JSON array of strings.\n\n"
            f"{RESPONSE_REQUIREMENTS}"
        )

    def _write_prompt(self, prompt: str) -> Path:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        path = self.temp_dir / f"prompt-{uuid.uuid4().hex[:12]}.txt"
        path.write_text(prompt, encoding="utf-8")
        return path

    async def cleanup(self) -> None:
        """Delete leftover prompt files. Never raises."""
        if not self.temp_dir.is_dir():
            return
        for path in self.temp_dir.glob("prompt-*.txt"):
            try:
                path.unlink()
            except OSError:
                logger.debug("Could not delete temp file %s", path)
        with contextlib.suppress(OSError):
            self.temp_dir.rmdir()


def _summarize(results: dict[str, Any]) -> dict[str, Any]:
    """Keep prompts small: cap every list at ten entries."""
    summary: dict[str, Any] = {}
    for key, value in results.items():
        if isinstance(value, list):
            summary[key] = value[:10]
        elif isinstance(value, dict):
            summary[key] = _summarize(value)
        else:
            summary[key] = value
    return summary
