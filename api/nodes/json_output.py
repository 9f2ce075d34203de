"""Parsing helpers for JSON emitted by language models."""

import json
import re
from typing import Any

# Normal classifier and checker output is a few hundred characters
MAX_MODEL_JSON_CHARS = 50_000

_OPENING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", cleaned))
    return cleaned


def parse_model_json(text: str) -> Any:
    """Decode model output as JSON after removing markdown fences.

    Raises:
        ValueError: output is oversized or not valid JSON
    """
    cleaned = strip_code_fences(text)
    if len(cleaned) > MAX_MODEL_JSON_CHARS:
        raise ValueError(f"Model output too large for JSON parsing ({len(cleaned)} chars)")
    return json.loads(cleaned)
