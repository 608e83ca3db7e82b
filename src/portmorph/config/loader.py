"""
Configuration loader for PortMorph.

Handles loading configuration from YAML files and CLI arguments.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import (
    LanguageType,
    LLMConfig,
    PortingConfig,
    PortMorphConfig,
    ProjectConfig,
    VerificationConfig,
)


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""

    pass


SOURCE_LANGUAGES = {LanguageType.TYPESCRIPT, LanguageType.JAVASCRIPT, LanguageType.PYTHON}


def parse_language(value: str) -> LanguageType:
    """Parse a language tag, accepting common short forms."""
    aliases = {"ts": "typescript", "js": "javascript", "py": "python"}
    normalized = aliases.get(value.lower(), value.lower())
    try:
        return LanguageType(normalized)
    except ValueError:
        valid = [lang.value for lang in LanguageType]
        raise ConfigurationError(f"Unsupported language '{value}'. Valid languages: {valid}")


def validate_language_pair(source: LanguageType, target: LanguageType) -> None:
    """Ensure the source dialect can be analyzed and differs from the target."""
    if source not in SOURCE_LANGUAGES:
        raise ConfigurationError(
            f"'{source.value}' is not supported as a source language. "
            f"Valid sources: {sorted(lang.value for lang in SOURCE_LANGUAGES)}"
        )
    if source == target:
        raise ConfigurationError("Source and target languages must differ")


def load_config_from_yaml(config_path: Path) -> PortMorphConfig:
    """Load configuration from a YAML file."""
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if raw_config is None:
        raise ConfigurationError("Configuration file is empty")

    try:
        config = PortMorphConfig(**raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed:\n{e}")

    validate_language_pair(config.project.source_language, config.project.target_language)
    return config


def create_config_from_args(
    source_dir: Path,
    target_dir: Path,
    source_lang: str,
    target_lang: str,
    project_name: str | None = None,
    package_name: str | None = None,
    base_config: PortMorphConfig | None = None,
    **kwargs: Any,
) -> PortMorphConfig:
    """
    Create configuration from CLI arguments.

    Values from ``base_config`` (typically loaded from YAML) are kept unless a
    keyword override is given. Overrides are applied per section: ``llm``,
    ``porting`` and ``verification`` accept dicts of field values.
    """
    src_language = parse_language(source_lang)
    tgt_language = parse_language(target_lang)
    validate_language_pair(src_language, tgt_language)

    project_fields: dict[str, Any] = {}
    if base_config is not None:
        project_fields = base_config.project.model_dump()

    project_fields.update(
        name=project_name or project_fields.get("name") or source_dir.name or "portmorph_project",
        source_dir=source_dir,
        target_dir=target_dir,
        source_language=src_language,
        target_language=tgt_language,
    )
    if package_name:
        project_fields["package_name"] = package_name

    try:
        project_config = ProjectConfig(**project_fields)
        sections = {
            "llm": (LLMConfig, base_config.llm if base_config else None),
            "porting": (PortingConfig, base_config.porting if base_config else None),
            "verification": (VerificationConfig, base_config.verification if base_config else None),
        }
        config_dict: dict[str, Any] = {"project": project_config}
        for key, (model_cls, base) in sections.items():
            fields = base.model_dump() if base is not None else {}
            overrides = {k: v for k, v in (kwargs.get(key) or {}).items() if v is not None}
            fields.update(overrides)
            config_dict[key] = model_cls(**fields)
        return PortMorphConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed:\n{e}")


def generate_default_config(output_path: Path) -> None:
    """Generate a default configuration file."""
    default_config = {
        "project": {
            "name": "my_project",
            "source_dir": "./src",
            "target_dir": "./output",
            "source_language": "typescript",
            "target_language": "dart",
            "package_name": "my_project",
        },
        "llm": {
            "provider": "ollama",
            "host": "http://localhost:11434",
            "model": "qwen2.5-coder:7b",
            "temperature": 0.0,
            "top_p": 1.0,
            "max_tokens": 4096,
        },
        "porting": {
            "max_prompt_tokens": 2200,
            "max_attempts": 3,
            "chunk_max_attempts": 2,
            "backoff_schedule": [0, 2, 5, 10],
            "max_workers": 2,
            "priority_files": [],
            "contract_rules": {},
        },
        "verification": {
            "run_analyzer": True,
            "fail_on_warnings": False,
            "retry_threshold": 1,
            "max_refine_attempts": 1,
            "fail_on_issues": False,
        },
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
