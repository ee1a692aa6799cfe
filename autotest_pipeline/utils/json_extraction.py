"""
Extraction and repair of JSON objects embedded in LLM replies.

Models wrap JSON in markdown fences, surround it with prose, or emit
slightly malformed objects. These helpers recover the object on a
best-effort basis before schema validation.
"""

import json
import re
from typing import Any, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from autotest_pipeline.exceptions import AgentResponseError

ModelT = TypeVar("ModelT", bound=BaseModel)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```(?:\w+)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_UNESCAPED_QUOTES = re.compile(r'": "([^"]*)"([^",\}\]]*)"([^"]*)"(\s*[,\}\]])')

MIN_JSON_LENGTH = 10


def _is_plausible(candidate: Optional[str]) -> bool:
    if not candidate:
        return False
    stripped = candidate.strip()
    return len(stripped) >= MIN_JSON_LENGTH and stripped != "..." and "{" in stripped


def extract_json_text(text: str) -> Optional[str]:
    """
    Locate the JSON object inside an agent reply.

    Order: a ```json fence, any other fence, then the span from the first
    '{' to the last '}'. Prose around the object is discarded by the span
    scan.

    Returns:
        The candidate JSON text, or None when nothing plausible was found
    """
    if not text:
        return None

    for pattern in (_JSON_FENCE, _ANY_FENCE):
        match = pattern.search(text)
        if match and len(match.group(1).strip()) > MIN_JSON_LENGTH and "{" in match.group(1):
            candidate = match.group(1).strip()
            if _is_plausible(candidate):
                return candidate

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidate = text[start:end + 1]
        if _is_plausible(candidate):
            return candidate

    # Truncated output: an opening brace with no closing one
    if start != -1 and _is_plausible(text[start:]):
        return text[start:].strip()

    return None


def repair_json(text: str) -> str:
    """Apply the common fixups: trailing commas, stray inner quotes, a missing closing brace."""
    repaired = _TRAILING_COMMA.sub(r"\1", text)
    repaired = _UNESCAPED_QUOTES.sub(r'": "\1\\"\2\\"\3"\4', repaired)
    if repaired.count("{") > repaired.count("}"):
        repaired += "}"
    return repaired


def parse_agent_json(text: str, model: Optional[Type[ModelT]] = None) -> Union[ModelT, Any]:
    """
    Parse an agent reply into a dict or a validated pydantic model.

    Raises:
        AgentResponseError: no JSON found, JSON unrecoverable, or schema mismatch
    """
    candidate = extract_json_text(text)
    if candidate is None:
        raise AgentResponseError("No JSON object found in agent response", raw_text=text)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        try:
            data = json.loads(repair_json(candidate))
        except json.JSONDecodeError as e:
            raise AgentResponseError(f"Invalid JSON in agent response: {e}", raw_text=text) from e

    if model is None:
        return data

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise AgentResponseError(f"Agent response failed schema validation: {e}", raw_text=text) from e
