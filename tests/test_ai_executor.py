"""Tests for AI CLI execution and response parsing."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from smart_ast.entities.analysis import ProjectInfo, TaskType
from smart_ast.nodes.analysis.ai_executor import AIExecutor, parse_response
from smart_ast.resilience.errors import ExternalServiceError


class TestParseResponse:
    def test_plain_json(self) -> None:
        assert parse_response('{"recommendations": ["a"]}') == {"recommendations": ["a"]}

    def test_fenced_json(self) -> None:
        output = '```json\n["Use helmet", "Add rate limiting"]\n```'
        assert parse_response(output) == ["Use helmet", "Add rate limiting"]

    def test_credentials_banner_is_stripped(self) -> None:
        output = 'Loaded cached credentials.\n{"ok": true}'
        assert parse_response(output) == {"ok": True}

    def test_leading_and_trailing_prose(self) -> None:
        output = 'Here is the result: {"score": 3} hope it helps'
        assert parse_response(output) == {"score": 3}

    def test_no_json(self) -> None:
        with pytest.raises(ExternalServiceError):
            parse_response("I could not analyze this project")

    def test_invalid_json(self) -> None:
        with pytest.raises(ExternalServiceError):
            parse_response('{"unterminated": ')


class TestAIExecutor:
    async def test_mock_provider_never_spawns(self, tmp_path: Path) -> None:
        executor = AIExecutor("mock", temp_dir=tmp_path / "tmp")
        assert executor.is_mock
        assert await executor.execute("prompt") == {"recommendations": []}
        assert await executor.enhance(TaskType.API, {}, ProjectInfo(path="/p")) == []
        assert executor.invocations == 0
        assert not (tmp_path / "tmp").exists()

    def test_provider_is_case_insensitive(self) -> None:
        assert AIExecutor("MOCK").is_mock

    def test_missing_cli(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("smart_ast.nodes.analysis.ai_executor.shutil.which", lambda name: None)
        executor = AIExecutor("gemini", temp_dir=tmp_path)
        with pytest.raises(ExternalServiceError, match="gemini CLI not found"):
            executor.build_command(tmp_path / "prompt.txt")

    def test_gemini_command(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "smart_ast.nodes.analysis.ai_executor.shutil.which", lambda name: f"/usr/bin/{name}"
        )
        executor = AIExecutor("gemini", model="gemini-pro", temp_dir=tmp_path)
        prompt = tmp_path / "prompt.txt"
        assert executor.build_command(prompt) == [
            "/usr/bin/gemini", "-y", "-f", str(prompt), "--model", "gemini-pro",
        ]

    def test_claude_command_inlines_prompt(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "smart_ast.nodes.analysis.ai_executor.shutil.which", lambda name: f"/usr/bin/{name}"
        )
        prompt = tmp_path / "prompt.txt"
        prompt.write_text("analyze this", encoding="utf-8")
        executor = AIExecutor("claude", temp_dir=tmp_path)
        assert executor.build_command(prompt) == ["/usr/bin/claude", "-p", "analyze this"]

    async def test_enhance_caps_recommendations(self, monkeypatch: pytest.MonkeyPatch) -> None:
        executor = AIExecutor("gemini")

        async def fake_execute(prompt: str) -> Any:
            assert "api analysis findings" in prompt
            return [f"tip {n}" for n in range(8)]

        monkeypatch.setattr(executor, "execute", fake_execute)
        insights = await executor.enhance(
            TaskType.API, {"endpoints": list(range(30))}, ProjectInfo(path="/p")
        )
        assert insights == [f"tip {n}" for n in range(5)]

    def test_prompt_truncates_long_lists(self) -> None:
        executor = AIExecutor("gemini")
        prompt = executor.build_prompt(
            TaskType.API, {"endpoints": list(range(30))}, ProjectInfo(path="/p", framework="express")
        )
        assert "Project framework: express" in prompt
        assert "29" not in prompt
        assert "Respond with valid JSON only" in prompt

    async def test_cleanup_removes_prompt_files(self, tmp_path: Path) -> None:
        temp_dir = tmp_path / "ai"
        executor = AIExecutor("gemini", temp_dir=temp_dir)
        executor._write_prompt("one")
        executor._write_prompt("two")
        await executor.cleanup()
        assert not temp_dir.exists()
