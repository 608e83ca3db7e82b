"""
Unit tests for oracle clients and response parsing.
"""

from unittest.mock import MagicMock, patch

import pytest

from portmorph.config.models import LLMConfig, LLMProvider
from portmorph.translator.llm_client import (
    GenerateOptions,
    OllamaClient,
    OpenAICompatibleClient,
    create_llm_client,
    extract_code,
)


def test_extract_code_from_fenced_block():
    response = "Here you go:\n```dart\nclass A {}\n```\nDone."
    assert extract_code(response) == "class A {}"


def test_extract_code_takes_first_block():
    response = "```dart\nclass A {}\n```\n\n```dart\nclass B {}\n```"
    assert extract_code(response) == "class A {}"


def test_extract_code_without_fence():
    assert extract_code("  class A {}\n") == "class A {}"
    assert extract_code("") == ""


def test_extract_code_unterminated_fence():
    assert extract_code("```dart\nclass A {}\n") == "class A {}"
    assert extract_code("```") == ""


def test_generate_options_from_config():
    options = GenerateOptions.from_config(LLMConfig(temperature=0.3, max_tokens=512))
    assert options.temperature == 0.3
    assert options.top_p == 1.0
    assert options.max_tokens == 512


# =============================================================================
# Ollama
# =============================================================================


@patch("portmorph.translator.llm_client.ollama.Client")
def test_ollama_generate(mock_client_cls):
    mock_client = mock_client_cls.return_value
    mock_client.generate.return_value = {"response": "```dart\nclass A {}\n```"}

    client = OllamaClient(LLMConfig(model="test-model"))
    result = client.generate("prompt", GenerateOptions(temperature=0.2, max_tokens=100))

    assert result == "```dart\nclass A {}\n```"
    kwargs = mock_client.generate.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["prompt"] == "prompt"
    assert kwargs["options"] == {"temperature": 0.2, "top_p": 1.0, "num_predict": 100}


@patch("portmorph.translator.llm_client.ollama.Client")
def test_ollama_empty_response(mock_client_cls):
    mock_client_cls.return_value.generate.return_value = {"response": None}
    assert OllamaClient(LLMConfig()).generate("prompt") == ""


@patch("portmorph.translator.llm_client.ollama.Client")
def test_ollama_connection_failure(mock_client_cls):
    mock_client_cls.return_value.list.side_effect = OSError("refused")

    with pytest.raises(ConnectionError, match="Failed to connect to Ollama"):
        OllamaClient(LLMConfig())


@patch("portmorph.translator.llm_client.ollama.Client")
def test_ollama_call_failure_raises_runtime_error(mock_client_cls):
    mock_client_cls.return_value.generate.side_effect = OSError("timeout")
    client = OllamaClient(LLMConfig())

    with pytest.raises(RuntimeError, match="LLM API call failed"):
        client.generate("prompt")


@patch("portmorph.translator.llm_client.ollama.Client")
def test_ollama_list_models(mock_client_cls):
    mock_client = mock_client_cls.return_value
    client = OllamaClient(LLMConfig())
    mock_client.list.return_value = {
        "models": [
            {"model": "qwen2.5-coder:7b", "size": 4_700_000_000, "modified_at": "2024-10-01"},
            {"name": "llama3"},
        ]
    }

    models = client.list_models()

    assert [m.name for m in models] == ["qwen2.5-coder:7b", "llama3"]
    assert models[0].size == 4_700_000_000
    assert models[1].modified_at is None
    assert client.health_check()


# =============================================================================
# OpenAI-compatible
# =============================================================================


def test_openai_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="API key required"):
        OpenAICompatibleClient(LLMConfig(provider=LLMProvider.OPENAI))


@patch("portmorph.translator.llm_client.OpenAI")
def test_openai_key_from_environment(mock_openai, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8000/v1")

    OpenAICompatibleClient(LLMConfig(provider=LLMProvider.OPENAI, timeout=30))

    mock_openai.assert_called_once_with(api_key="env-key", timeout=30, base_url="http://localhost:8000/v1")


@patch("portmorph.translator.llm_client.OpenAI")
def test_openai_generate(mock_openai, monkeypatch):
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    message = MagicMock()
    message.content = "```dart\nclass A {}\n```"
    mock_openai.return_value.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=message)])

    client = OpenAICompatibleClient(LLMConfig(provider=LLMProvider.OPENAI, api_key="key", model="gpt-test"))
    result = client.generate("prompt", GenerateOptions(temperature=0.5, top_p=0.9, max_tokens=64))

    assert result == "```dart\nclass A {}\n```"
    mock_openai.return_value.chat.completions.create.assert_called_once_with(
        model="gpt-test",
        messages=[{"role": "user", "content": "prompt"}],
        temperature=0.5,
        top_p=0.9,
        max_tokens=64,
    )


@patch("portmorph.translator.llm_client.OpenAI")
def test_openai_no_choices(mock_openai):
    mock_openai.return_value.chat.completions.create.return_value = MagicMock(choices=[])
    client = OpenAICompatibleClient(LLMConfig(provider=LLMProvider.OPENAI, api_key="key"))
    assert client.generate("prompt") == ""


@patch("portmorph.translator.llm_client.OpenAI")
def test_openai_call_failure(mock_openai):
    mock_openai.return_value.chat.completions.create.side_effect = OSError("rate limited")
    client = OpenAICompatibleClient(LLMConfig(provider=LLMProvider.OPENAI, api_key="key"))

    with pytest.raises(RuntimeError, match="rate limited"):
        client.generate("prompt")


# =============================================================================
# Factory
# =============================================================================


@patch("portmorph.translator.llm_client.ollama.Client")
def test_create_ollama_client(mock_client_cls):
    assert isinstance(create_llm_client(LLMConfig()), OllamaClient)


@patch("portmorph.translator.llm_client.OpenAI")
def test_create_openai_client(mock_openai):
    client = create_llm_client(LLMConfig(provider=LLMProvider.OPENAI, api_key="key"))
    assert isinstance(client, OpenAICompatibleClient)
