"""
Oracle clients.

Handles communication with Ollama and OpenAI-compatible endpoints. The
porting engine only needs ``generate``; ``health_check`` and ``list_models``
back the CLI's setup checks and the ``models`` command.
"""

import logging
import os
import re
from dataclasses import dataclass

import ollama
from dotenv import load_dotenv
from openai import OpenAI

from portmorph.config.models import LLMConfig, LLMProvider

load_dotenv()

logger = logging.getLogger(__name__)

FENCED_BLOCK = re.compile(r"```[\w+#.-]*[ \t]*\n(.*?)```", re.DOTALL)


def extract_code(response: str) -> str:
    """
    Extract code from an oracle response.

    Returns the contents of the first fenced block when there is one,
    otherwise the trimmed response. A reply that opens a fence but never
    closes it has the opening fence line removed.

    Args:
        response: Raw oracle response

    Returns:
        Code text (may be empty)
    """
    if not response:
        return ""

    match = FENCED_BLOCK.search(response)
    if match:
        return match.group(1).strip()

    text = response.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1 :] if first_newline != -1 else ""
    return text.strip()


@dataclass
class GenerateOptions:
    """Sampling options for a single oracle call."""

    temperature: float = 0.0
    top_p: float = 1.0
    max_tokens: int = 4096

    @classmethod
    def from_config(cls, config: LLMConfig) -> "GenerateOptions":
        return cls(temperature=config.temperature, top_p=config.top_p, max_tokens=config.max_tokens)


@dataclass
class ModelInfo:
    """A model offered by the oracle."""

    name: str
    size: int | None = None
    modified_at: str | None = None


class OllamaClient:
    """Client for the Ollama API."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.client = ollama.Client(host=config.host, timeout=config.timeout)

        # Test connection
        try:
            self.client.list()
        except Exception as e:
            raise ConnectionError(f"Failed to connect to Ollama at {config.host}: {e}")

    def generate(self, prompt: str, options: GenerateOptions | None = None) -> str:
        """
        Run a single completion.

        Returns:
            The raw response text; empty when the model produced nothing
        """
        options = options or GenerateOptions.from_config(self.config)
        try:
            response = self.client.generate(
                model=self.config.model,
                prompt=prompt,
                options={
                    "temperature": options.temperature,
                    "top_p": options.top_p,
                    "num_predict": options.max_tokens,
                },
            )
        except Exception as e:
            raise RuntimeError(f"LLM API call failed: {e}")

        return response.get("response") or ""

    def health_check(self) -> bool:
        try:
            self.client.list()
            return True
        except Exception as e:
            logger.debug(f"Ollama health check failed: {e}")
            return False

    def list_models(self) -> list[ModelInfo]:
        """Get the models installed on the Ollama server."""
        try:
            response = self.client.list()
        except Exception as e:
            raise RuntimeError(f"Failed to list models: {e}")

        models = []
        for entry in response.get("models", []) or []:
            modified = entry.get("modified_at")
            models.append(
                ModelInfo(
                    name=entry.get("model") or entry.get("name") or "",
                    size=entry.get("size"),
                    modified_at=str(modified) if modified is not None else None,
                )
            )
        return models


class OpenAICompatibleClient:
    """Client for OpenAI-compatible chat completion APIs."""

    def __init__(self, config: LLMConfig):
        self.config = config

        api_key = config.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("API key required (set api_key in config or OPENAI_API_KEY env var)")

        client_kwargs = {"api_key": api_key, "timeout": config.timeout}
        base_url = config.base_url or os.environ.get("OPENAI_BASE_URL")
        if base_url:
            client_kwargs["base_url"] = base_url
        self.client = OpenAI(**client_kwargs)

    def generate(self, prompt: str, options: GenerateOptions | None = None) -> str:
        options = options or GenerateOptions.from_config(self.config)
        try:
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=options.temperature,
                top_p=options.top_p,
                max_tokens=options.max_tokens,
            )
        except Exception as e:
            raise RuntimeError(f"LLM API call failed: {e}")

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def health_check(self) -> bool:
        try:
            self.client.models.list()
            return True
        except Exception as e:
            logger.debug(f"OpenAI-compatible health check failed: {e}")
            return False

    def list_models(self) -> list[ModelInfo]:
        try:
            page = self.client.models.list()
        except Exception as e:
            raise RuntimeError(f"Failed to list models: {e}")
        return [
            ModelInfo(name=model.id, modified_at=str(model.created) if getattr(model, "created", None) else None)
            for model in page.data
        ]


def create_llm_client(config: LLMConfig):
    """Factory function to create the appropriate oracle client based on provider."""
    if config.provider == LLMProvider.OPENAI:
        return OpenAICompatibleClient(config)
    elif config.provider == LLMProvider.OLLAMA:
        return OllamaClient(config)
    else:
        raise ValueError(f"Unsupported LLM provider: {config.provider}")
