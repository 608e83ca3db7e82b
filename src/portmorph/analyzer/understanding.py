"""
Task understanding: the oracle's reading of what a port involves.
"""

import logging
import re

import orjson
from pydantic import ValidationError

from portmorph.config.models import Complexity, PortMorphConfig, TaskUnderstanding
from portmorph.translator.llm_client import GenerateOptions
from portmorph.translator.prompts import build_understanding_prompt

logger = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
CAMEL_KEYS = {
    "projectType": "project_type",
    "criticalFeatures": "critical_features",
    "recommendedStrategy": "recommended_strategy",
}


def default_understanding() -> TaskUnderstanding:
    return TaskUnderstanding(
        project_type="unknown",
        challenges=["Language syntax differences", "Type system mapping"],
        critical_features=["Type conversion", "Import resolution"],
        risks=["Semantic differences", "Missing language features"],
        recommended_strategy="File-by-file porting with dependency ordering",
        complexity=Complexity.MEDIUM,
    )


def parse_understanding(response: str) -> TaskUnderstanding:
    """
    Parse the oracle's JSON answer.

    Accepts surrounding prose, code fences and camelCase keys.

    Raises:
        ValueError: If no usable JSON object is found
    """
    match = JSON_OBJECT.search(response or "")
    if not match:
        raise ValueError("No JSON object in response")
    try:
        data = orjson.loads(match.group(0))
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in response: {e}")
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")

    data = {CAMEL_KEYS.get(key, key): value for key, value in data.items()}
    if isinstance(data.get("complexity"), str):
        data["complexity"] = data["complexity"].strip().lower()
    try:
        return TaskUnderstanding.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Unexpected understanding shape: {e.error_count()} errors")


def understand_task(client, config: PortMorphConfig) -> TaskUnderstanding:
    """Ask the oracle to characterise the task; fall back to defaults on any failure."""
    project = config.project
    prompt = build_understanding_prompt(
        str(project.source_dir), project.source_language.value, project.target_language.value
    )
    options = GenerateOptions(temperature=0.3, top_p=config.llm.top_p, max_tokens=config.llm.max_tokens)
    try:
        return parse_understanding(client.generate(prompt, options))
    except Exception as e:
        logger.warning(f"Failed to generate understanding, using defaults: {e}")
        return default_understanding()
