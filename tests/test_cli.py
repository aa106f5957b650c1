"""Tests for the smart-ast command line."""

from __future__ import annotations

from pathlib import Path

import pytest

from smart_ast.cli import build_parser, main, overrides_from_args


class TestOverrides:
    def test_flags_map_to_config_fields(self) -> None:
        args = build_parser().parse_args([
            "app",
            "-t", "security",
            "-d", "deep",
            "-f", "all",
            "-o", "reports",
            "--ai", "gemini",
            "--sequential",
            "--no-cache",
            "--cache-ttl", "60",
            "--include", "src/**, lib/**",
            "--max-concurrent", "2",
            "--save-state",
        ])
        overrides = overrides_from_args(args)
        assert overrides["path"] == "app"
        assert overrides["analysis_type"] == "security"
        assert overrides["analysis_depth"] == "deep"
        assert overrides["parallel"] is False
        assert overrides["save_state"] is True
        assert overrides["include"] == ["src/**", "lib/**"]
        assert overrides["max_concurrent_tasks"] == 2
        assert overrides["output"] == {"directory": "reports", "formats": ["json", "markdown"]}
        assert overrides["cache"] == {"enabled": False, "ttl_seconds": 60.0}
        assert overrides["ai"] == {"provider": "gemini"}

    def test_unset_flags_are_none(self) -> None:
        overrides = overrides_from_args(build_parser().parse_args([]))
        assert all(value is None for value in overrides.values())

    def test_single_format(self) -> None:
        overrides = overrides_from_args(build_parser().parse_args(["-f", "json"]))
        assert overrides["output"] == {"formats": ["json"]}

    def test_max_files_help_names_both_limits(self) -> None:
        (action,) = [a for a in build_parser()._actions if a.dest == "max_files"]
        assert action.help is not None
        assert "per category" in action.help
        assert "enhancement" in action.help

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args(["--version"])
        assert excinfo.value.code == 0
        assert "0.1.0" in capsys.readouterr().out


class TestMain:
    def test_successful_run(
        self,
        sample_project: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.chdir(tmp_path)
        out = tmp_path / "reports"
        error_report = tmp_path / "errors.json"
        code = main([
            str(sample_project), "-t", "api", "--no-cache",
            "-o", str(out), "--error-report", str(error_report),
        ])

        assert code == 0
        printed = capsys.readouterr().out
        assert "Overall score:" in printed
        assert "Report written:" in printed
        assert (out / "index.json").exists()
        assert error_report.exists()

    def test_missing_project(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert main([str(tmp_path / "missing"), "--no-cache", "-o", str(tmp_path / "out")]) == 1

    def test_invalid_configuration(self, sample_project: Path) -> None:
        assert main([str(sample_project), "--timeout", "5"]) == 1
