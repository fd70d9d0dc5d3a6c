from __future__ import annotations

from pathlib import Path

import pytest
from neurosym_cli.main import app
from typer.testing import CliRunner

runner = CliRunner()

_AGENT_YAML = """\
name: github-monitor
tasks:
  triage:
    instructions: Fetch open issues and summarize them
    outputs: {summary: string}
  label:
    instructions: Apply labels
"""


@pytest.fixture
def isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """No config files, no trace endpoint, no LLM key."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    for var in (
        "OTEL_QUERY_ENDPOINT",
        "OTEL_QUERY_API_KEY",
        "OTEL_QUERY_BACKEND",
        "ANTHROPIC_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    agent_file = tmp_path / "agent.yaml"
    agent_file.write_text(_AGENT_YAML, encoding="utf-8")
    return agent_file


class TestCli:
    def test_analyze_without_backend(self, isolated: Path) -> None:
        result = runner.invoke(app, ["analyze", str(isolated)])
        assert result.exit_code == 0, result.output
        assert "No trace backend available" in result.output
        assert "triage" in result.output
        assert "0/2 task(s) ready" in result.output

    def test_missing_agent_file(self, isolated: Path) -> None:
        result = runner.invoke(app, ["analyze", str(isolated.parent / "missing.yaml")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_propose_unknown_task(self, isolated: Path) -> None:
        result = runner.invoke(app, ["propose", str(isolated), "nope"])
        assert result.exit_code == 1
        assert "Cannot propose" in result.output
        assert "LLM synthesis disabled" not in result.output

    def test_synthesize_warns_without_api_key(self, isolated: Path) -> None:
        result = runner.invoke(app, ["propose", str(isolated), "triage", "--synthesize"])
        assert result.exit_code == 1
        assert "LLM synthesis disabled" in result.output

    def test_propose_without_data(self, isolated: Path) -> None:
        result = runner.invoke(app, ["propose", str(isolated), "triage"])
        assert result.exit_code == 1
        assert "No execution data" in result.output
