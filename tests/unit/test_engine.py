"""
Unit tests for the retry policy and the transformation engine.
"""

import logging
import re
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from portmorph.analyzer.symbol_index import build_index
from portmorph.config.loader import create_config_from_args
from portmorph.config.models import ErrorCategory, FileKind, LanguageType, PortingConfig, PromptMode, SourceUnit
from portmorph.languages.dart.plugin import DartPlugin
from portmorph.languages.typescript.plugin import TypeScriptPlugin
from portmorph.translator.chunker import ChunkCheckpointStore
from portmorph.translator.engine import RunOptions, TransformationEngine
from portmorph.translator.errors import PortingFailedError
from portmorph.translator.retry import RetryPolicy, initial_mode

TS = TypeScriptPlugin()
DART = DartPlugin()

USER_DART = "```dart\nclass User {\n  final String name;\n  User({required this.name});\n}\n```"
GREET_DART = "```dart\nString greet(User user) {\n  return 'Hello ' + user.name;\n}\n```"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def units():
    contents = {
        "src/types.ts": ("export interface User {\n  name: string;\n}\n", FileKind.SOURCE),
        "src/service.ts": (
            "import { User } from './types';\n\nexport function greet(user: User): string {\n"
            "  return 'Hello ' + user.name;\n}\n",
            FileKind.SERVICE,
        ),
        "src/index.ts": ("export * from './types';\nexport * from './service';\n", FileKind.BARREL),
    }
    return {
        path: SourceUnit(path=path, content=content, kind=kind, exports=TS.extract_exports(content))
        for path, (content, kind) in contents.items()
    }


@pytest.fixture
def config(temp_dir):
    return create_config_from_args(
        source_dir=temp_dir / "source",
        target_dir=temp_dir / "out",
        source_lang="typescript",
        target_lang="dart",
        package_name="demo",
    )


@pytest.fixture
def client():
    return MagicMock()


def make_engine(config, client, units, **kwargs) -> TransformationEngine:
    index = build_index(units.values(), lambda path: DART.convert_path(path, LanguageType.TYPESCRIPT))
    return TransformationEngine(config, client, TS, DART, index, **kwargs)


# =============================================================================
# Retry policy
# =============================================================================


def test_backoff_schedule_is_non_decreasing():
    policy = RetryPolicy(3, (0.0, 5.0, 2.0))

    assert policy.backoff_schedule == (0.0, 5.0, 5.0)
    assert policy.backoff_seconds(1) == 0.0
    assert policy.backoff_seconds(3) == 5.0
    assert policy.backoff_seconds(10) == 5.0


def test_retry_policy_from_config():
    config = PortingConfig()
    assert RetryPolicy.for_file(config).max_attempts == 3
    assert RetryPolicy.for_chunk(config).max_attempts == 2
    assert list(RetryPolicy.for_file(config).attempts()) == [1, 2, 3]


def test_retry_policy_requires_an_attempt():
    with pytest.raises(ValueError):
        RetryPolicy(0)


def test_prompt_mode_degrades_per_attempt():
    assert RetryPolicy.mode_for(1, PromptMode.FULL) == PromptMode.FULL
    assert RetryPolicy.mode_for(2, PromptMode.FULL) == PromptMode.REDUCED
    assert RetryPolicy.mode_for(3, PromptMode.FULL) == PromptMode.MINIMAL
    assert RetryPolicy.mode_for(5, PromptMode.REDUCED) == PromptMode.MINIMAL


def test_initial_mode_from_estimate():
    config = PortingConfig()
    assert initial_mode(1000, config) == PromptMode.FULL
    assert initial_mode(1500, config) == PromptMode.REDUCED
    assert initial_mode(2000, config) == PromptMode.MINIMAL


def test_run_options_dump_prompt_once():
    options = RunOptions(debug_prompt=True)
    assert options.claim_prompt_dump()
    assert not options.claim_prompt_dump()


# =============================================================================
# Engine
# =============================================================================


@patch("portmorph.translator.engine.time.sleep")
def test_accepted_on_first_attempt(mock_sleep, config, client, units):
    client.generate.return_value = USER_DART
    engine = make_engine(config, client, units)

    ported = engine.transform(units["src/types.ts"])

    assert ported.target_path == "lib/types.dart"
    assert ported.content == "class User {\n  final String name;\n  User({required this.name});\n}\n"
    assert ported.attempts == 1
    assert not ported.chunked
    assert client.generate.call_count == 1
    mock_sleep.assert_not_called()


@patch("portmorph.translator.engine.time.sleep")
def test_empty_then_valid_response(mock_sleep, config, client, units):
    """An empty answer is retried after the second backoff step."""
    client.generate.side_effect = ["", USER_DART]
    engine = make_engine(config, client, units)

    ported = engine.transform(units["src/types.ts"])

    assert client.generate.call_count == 2
    mock_sleep.assert_called_once_with(2.0)
    assert ported.attempts == 2
    assert "class User" in ported.content


@patch("portmorph.translator.engine.time.sleep")
def test_attempts_never_exceed_maximum(mock_sleep, config, client, units):
    """Rejected output is retried at most max_attempts times with growing waits."""
    client.generate.return_value = "```dart\nclass User {\n```"
    engine = make_engine(config, client, units)

    with pytest.raises(PortingFailedError) as exc_info:
        engine.transform(units["src/types.ts"])

    assert exc_info.value.category == ErrorCategory.SYNTAX
    assert client.generate.call_count == 3
    delays = [c.args[0] for c in mock_sleep.call_args_list]
    assert delays == [2.0, 5.0]
    assert delays == sorted(delays)


@patch("portmorph.translator.engine.time.sleep")
def test_retry_prompts_degrade_and_carry_feedback(mock_sleep, config, client, units):
    client.generate.side_effect = ["```dart\nclass User {\n```", USER_DART]
    engine = make_engine(config, client, units)

    engine.transform(units["src/types.ts"])

    first_prompt = client.generate.call_args_list[0].args[0]
    second_prompt = client.generate.call_args_list[1].args[0]
    assert "## Source Language Features" in first_prompt
    assert "## Source Language Features" not in second_prompt
    assert "## Problems In The Previous Attempt" in second_prompt
    assert "Unbalanced brackets" in second_prompt


@patch("portmorph.translator.engine.time.sleep")
def test_import_rejection_adds_correction(mock_sleep, config, client, units):
    """A rejected import makes the next prompt list the exact required imports."""
    bad = "```dart\nimport 'package:other/types.dart';\n\nString greet(User user) => user.name;\n```"
    client.generate.side_effect = [bad, GREET_DART]
    engine = make_engine(config, client, units)

    ported = engine.transform(units["src/service.ts"])

    second_prompt = client.generate.call_args_list[1].args[0]
    assert "## Import Correction (CRITICAL)" in second_prompt
    assert "import 'types.dart';" in second_prompt
    assert ported.content.startswith("import 'types.dart';\n")
    assert ported.metadata.import_issues == []
    assert ported.metadata.required_imports == ["import 'types.dart';"]


@patch("portmorph.translator.engine.time.sleep")
def test_unknown_failures_stop_early(mock_sleep, config, client, units):
    client.generate.side_effect = RuntimeError("LLM API call failed: boom")
    engine = make_engine(config, client, units)

    with pytest.raises(PortingFailedError) as exc_info:
        engine.transform(units["src/types.ts"])

    assert exc_info.value.category == ErrorCategory.UNKNOWN
    assert client.generate.call_count == 2


@patch("portmorph.translator.engine.time.sleep")
def test_persistent_empty_responses_escalate_to_chunks_once(mock_sleep, config, client, units):
    """After single-pass attempts run dry the file is retried once in chunked mode."""
    client.generate.return_value = ""
    engine = make_engine(config, client, units)

    with pytest.raises(PortingFailedError) as exc_info:
        engine.transform(units["src/types.ts"])

    assert exc_info.value.category == ErrorCategory.TRANSIENT_ORACLE
    assert exc_info.value.chunked
    assert "Chunk 1/2 failed" in exc_info.value.message
    # 3 single-pass attempts, then 2 attempts on the first chunk
    assert client.generate.call_count == 5


@patch("portmorph.translator.engine.time.sleep")
def test_escalated_chunks_port_the_file(mock_sleep, config, client, units):
    client.generate.side_effect = [
        "",
        "",
        "",
        "```dart\nclass User {\n  final String name;\n```",
        "```dart\n  User({required this.name});\n}\n```",
    ]
    engine = make_engine(config, client, units)

    ported = engine.transform(units["src/types.ts"])

    assert ported.chunked
    assert ported.content.count("class User") == 1
    assert "User({required this.name});" in ported.content


def test_pure_barrel_needs_no_oracle(config, client, units):
    """Re-export-only index files are rendered without calling the oracle."""
    engine = make_engine(config, client, units)

    assert engine.is_pure_barrel(units["src/index.ts"])
    ported = engine.transform(units["src/index.ts"])

    client.generate.assert_not_called()
    assert ported.deterministic
    assert ported.target_path == "lib/index.dart"
    assert ported.content == (
        "/// Library exports for root\nlibrary main;\n\nexport 'types.dart';\nexport 'service.dart';\n"
    )


def test_barrel_with_own_code_is_not_pure(config, client, units):
    engine = make_engine(config, client, units)
    unit = units["src/index.ts"].model_copy(
        update={"content": "export * from './types';\nconst registry = new Map();\n"}
    )
    assert not engine.is_pure_barrel(unit)


@patch("portmorph.translator.engine.time.sleep")
def test_oversized_file_is_chunked_and_checkpointed(mock_sleep, temp_dir, config, client, units):
    """A file over the prompt budget is ported chunk by chunk; finished checkpoints are cleared."""
    config = config.model_copy(
        update={"porting": config.porting.model_copy(update={"max_prompt_tokens": 400})}
    )
    body = "\n".join(f"export const value{i} = {i};" for i in range(40))
    content = "export class Big {\n  size = 1;\n}\n" + body + "\n"
    big = SourceUnit(path="src/big.ts", content=content, exports=TS.extract_exports(content))
    units = {**units, "src/big.ts": big}

    def fake_generate(prompt, options):
        number = int(re.search(r"Chunk (\d+) of", prompt).group(1))
        if number == 1:
            return "```dart\nclass Big {\n  int size = 1;\n}\n```"
        return f"```dart\nconst spare{number} = {number};\n```"

    client.generate.side_effect = fake_generate
    store = ChunkCheckpointStore(temp_dir / "state")
    engine = make_engine(config, client, units, checkpoints=store)

    ported = engine.transform(big)

    assert ported.chunked
    assert client.generate.call_count > 1
    assert ported.content.startswith("class Big {")
    assert not store.path_for("src/big.ts").exists()


@patch("portmorph.translator.engine.time.sleep")
def test_debug_prompt_logged_once(mock_sleep, config, client, units, caplog):
    client.generate.return_value = USER_DART
    engine = make_engine(config, client, units, options=RunOptions(debug_prompt=True))

    with caplog.at_level(logging.INFO, logger="portmorph.translator.engine"):
        engine.transform(units["src/types.ts"])
        engine.transform(units["src/types.ts"])

    assert sum("Prompt for" in record.getMessage() for record in caplog.records) == 1


@patch("portmorph.translator.engine.time.sleep")
def test_missing_exports_are_logged(mock_sleep, config, client, units, caplog):
    client.generate.return_value = (
        "```dart\nimport 'types.dart';\n\nString hello(User user) {\n  return user.name;\n}\n```"
    )
    engine = make_engine(config, client, units)

    with caplog.at_level(logging.WARNING, logger="portmorph.translator.engine"):
        ported = engine.transform(units["src/service.ts"])

    assert ported.attempts == 1
    assert "exported symbols not found in output: greet" in caplog.text
