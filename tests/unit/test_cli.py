"""
Unit tests for the command-line interface.
"""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import orjson
import pytest
from typer.testing import CliRunner

from portmorph.cli.main import app
from portmorph.config.models import FileFailure
from portmorph.pipeline.orchestrator import RunResult, RunState
from portmorph.state.persistence import SessionMismatchError

runner = CliRunner()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def source_dir(temp_dir):
    src = temp_dir / "project" / "src"
    src.mkdir(parents=True)
    (src / "types.ts").write_text("export interface User {\n  name: string;\n}\n")
    return temp_dir / "project"


def test_init_writes_config(temp_dir):
    output = temp_dir / "portmorph.yaml"
    result = runner.invoke(app, ["init", "--output", str(output)])

    assert result.exit_code == 0
    assert "source_language: typescript" in output.read_text()


def test_analyze_writes_summary(source_dir, temp_dir):
    output = temp_dir / "analysis.json"
    result = runner.invoke(app, ["analyze", str(source_dir), "--output", str(output)])

    assert result.exit_code == 0
    data = orjson.loads(output.read_bytes())
    assert data["language"] == "typescript"
    assert [f["path"] for f in data["files"]] == ["src/types.ts"]


def test_port_requires_languages(source_dir, temp_dir):
    result = runner.invoke(app, ["port", str(source_dir), str(temp_dir / "out")])

    assert result.exit_code == 1
    assert "--from and --to are required" in result.output


def test_port_missing_source(temp_dir):
    result = runner.invoke(app, ["port", str(temp_dir / "missing"), str(temp_dir / "out"), "-f", "ts", "-t", "dart"])
    assert result.exit_code == 1


def test_port_unsupported_language(source_dir, temp_dir):
    result = runner.invoke(app, ["port", str(source_dir), str(temp_dir / "out"), "-f", "ts", "-t", "cobol"])

    assert result.exit_code == 1
    assert "Configuration Error" in result.output


@patch("portmorph.cli.main.create_llm_client")
def test_port_unreachable_oracle(mock_create, source_dir, temp_dir):
    mock_create.side_effect = ConnectionError("Failed to connect to Ollama at http://localhost:11434: refused")

    result = runner.invoke(app, ["port", str(source_dir), str(temp_dir / "out"), "-f", "ts", "-t", "dart"])

    assert result.exit_code == 1
    assert "Oracle unreachable" in result.output


@patch("portmorph.cli.main.PortingOrchestrator")
@patch("portmorph.cli.main.create_llm_client")
def test_port_runs_orchestrator(mock_create, mock_orchestrator, source_dir, temp_dir):
    """Options are passed through to the run."""
    mock_orchestrator.return_value.run.return_value = RunResult(state=RunState.COMPLETED)

    result = runner.invoke(
        app,
        ["port", str(source_dir), str(temp_dir / "out"), "-f", "ts", "-t", "dart", "--resume", "--workers", "3"],
    )

    assert result.exit_code == 0
    mock_orchestrator.return_value.run.assert_called_once_with(resume=True, dry_run=False)
    config = mock_orchestrator.call_args.args[0]
    assert config.porting.max_workers == 3


@patch("portmorph.cli.main.PortingOrchestrator")
@patch("portmorph.cli.main.create_llm_client")
def test_port_failures_exit_code(mock_create, mock_orchestrator, source_dir, temp_dir):
    failed = RunResult(state=RunState.FAILED, failures=(FileFailure(file="src/types.ts", error="boom"),))
    mock_orchestrator.return_value.run.return_value = failed
    args = ["port", str(source_dir), str(temp_dir / "out"), "-f", "ts", "-t", "dart"]

    assert runner.invoke(app, args).exit_code == 0
    assert runner.invoke(app, args + ["--fail-on-issues"]).exit_code == 1


@patch("portmorph.cli.main.PortingOrchestrator")
@patch("portmorph.cli.main.create_llm_client")
def test_port_interrupted_exit_code(mock_create, mock_orchestrator, source_dir, temp_dir):
    mock_orchestrator.return_value.run.return_value = RunResult(state=RunState.FAILED, cancelled=True)

    result = runner.invoke(app, ["port", str(source_dir), str(temp_dir / "out"), "-f", "ts", "-t", "dart"])

    assert result.exit_code == 130
    assert "--resume" in result.output


@patch("portmorph.cli.main.PortingOrchestrator")
@patch("portmorph.cli.main.create_llm_client")
def test_port_session_mismatch(mock_create, mock_orchestrator, source_dir, temp_dir):
    mock_orchestrator.return_value.run.side_effect = SessionMismatchError("does not match this run (source_path)")

    result = runner.invoke(app, ["port", str(source_dir), str(temp_dir / "out"), "-f", "ts", "-t", "dart", "--resume"])

    assert result.exit_code == 1
    assert "Session Error" in result.output


@patch("portmorph.cli.main.create_llm_client")
def test_models_lists_available(mock_create):
    info = MagicMock(size=4_700_000_000, modified_at="2024-10-01")
    info.name = "qwen2.5-coder:7b"
    mock_create.return_value.list_models.return_value = [info]

    result = runner.invoke(app, ["models"])

    assert result.exit_code == 0
    assert "qwen2.5-coder:7b" in result.output
