import json
import re
from typing import Any, Dict, Optional, Tuple
from rfp_utils.core.log import get_logger

"""
Helpers for pulling a JSON object out of LLM output and checking its shape.
"""

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def clean_malformed_json(raw: str, *, label: Optional[str] = None) -> str:
    """
    Best-effort scrub for common LLM JSON glitches.

    The heuristics are idempotent - running twice is safe.
    """
    logger = get_logger()

    try:
        # drop trailing commas before ] or }
        raw = re.sub(r",\s*([\]}])", r"\1", raw)

        # replace raw control characters (0x00-0x1F) with space
        raw = re.sub(r"(?<!\\)[\x00-\x08\x0B\x0C\x0E-\x1F]", " ", raw)

        return raw
    except Exception as e:
        logger.debug(f"[clean_malformed_json] ({label or 'json'}) failed: {e}")
        return raw


def extract_json_object(content: str, *, label: Optional[str] = None) -> Dict[str, Any]:
    """
    Return the first ``{...}`` block of ``content`` as a dict.

    Raises ValueError when there is no block or it does not parse to an object.
    """
    logger = get_logger()
    if not isinstance(content, str):
        raise ValueError("AI response content is not text")

    match = _JSON_BLOCK.search(content)
    if not match:
        raise ValueError("No JSON found in AI response")

    block = clean_malformed_json(match.group(0), label=label)
    try:
        parsed = json.loads(block)
    except json.JSONDecodeError as e:
        logger.debug(f"Failed to parse JSON block ({label or 'json'}): {block[:300]}")
        raise ValueError(f"Malformed JSON in AI response: {e.msg}") from e

    if not isinstance(parsed, dict):
        raise ValueError("AI response JSON is not an object")
    return parsed


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_ai_score_response(data: Dict[str, Any]) -> Tuple[bool, str]:
    """Validate AI grading output: rawScore 0-100, reasoning 10-1000 chars, confidence 0-1."""
    if not isinstance(data, dict):
        return False, "Invalid format: expected a JSON object."

    raw_score = data.get("rawScore")
    if not _is_number(raw_score) or not (0 <= raw_score <= 100):
        return False, "Invalid rawScore in AI response"

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str) or not (10 <= len(reasoning) <= 1000):
        return False, "Invalid reasoning in AI response"

    confidence = data.get("confidence")
    if not _is_number(confidence) or not (0 <= confidence <= 1):
        return False, "Invalid confidence in AI response"

    return True, ""


def _coerce_json(value):
    """Return a Python object from storage: handles dict/list/str/bytes/None."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return json.loads(value.decode("utf-8"))
    if isinstance(value, str):
        return json.loads(value)
    return value
