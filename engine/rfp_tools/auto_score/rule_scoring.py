"""
Deterministic scoring for numeric, weighted and pass/fail requirements.

All scorers take the supplier's answer text and return a raw score; they
never raise, and an empty answer always gets the lowest score.
"""

import re
from typing import Optional, Tuple

from rfp_tools.auto_score.auto_score_models import (
    ScoringMethod,
    ScoringSettings,
    ScoringType,
)

# first integer/decimal token, thousands separators allowed ("1,250.50")
_NUMBER = re.compile(r"\d[\d,]*(?:\.\d+)?")

MIN_SUBSTANTIVE_LENGTH = 10
NEGATIVE_ANSWERS = frozenset({"no", "n/a"})


def extract_number(text: Optional[str]) -> Optional[float]:
    """Return the first number in ``text`` (commas stripped) or None."""
    match = _NUMBER.search(text or "")
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def _clamp(value: float, ceiling: float) -> float:
    return max(0.0, min(value, ceiling))


def score_numeric(text: Optional[str], scoring_scale: float = 100) -> float:
    number = extract_number(text)
    if number is None:
        return 0.0
    return _clamp(number, scoring_scale)


def score_weighted(text: Optional[str], scoring_scale: float = 100) -> float:
    """
    Numeric extraction with a length fallback: any substantive answer without
    a number scores 100. Requirement weight is applied later, not here.
    """
    number = extract_number(text)
    if number is not None:
        return _clamp(number, scoring_scale)
    return 100.0 if len((text or "").strip()) > MIN_SUBSTANTIVE_LENGTH else 0.0


def score_pass_fail(text: Optional[str]) -> float:
    answer = (text or "").strip()
    if len(answer) <= MIN_SUBSTANTIVE_LENGTH:
        return 0.0
    if answer.lower() in NEGATIVE_ANSWERS:
        return 0.0
    return 100.0


def score_rule_based(
    scoring_type: ScoringType, text: Optional[str], settings: ScoringSettings
) -> Tuple[float, ScoringMethod]:
    """Dispatch a rule-scored requirement; returns (raw_score, scoring_method)."""
    if scoring_type == ScoringType.NUMERIC:
        return score_numeric(text, settings.scoring_scale), ScoringMethod.NUMERIC
    if scoring_type == ScoringType.WEIGHTED:
        return score_weighted(text, settings.scoring_scale), ScoringMethod.WEIGHTED
    if scoring_type == ScoringType.PASS_FAIL:
        return score_pass_fail(text), ScoringMethod.PASS_FAIL
    raise ValueError(f"{scoring_type} is not rule-scored")


def score_qualitative_heuristic(text: Optional[str]) -> float:
    """Fallback for qualitative answers when AI grading is off or the answer is blank."""
    return 50.0 if len((text or "").strip()) > MIN_SUBSTANTIVE_LENGTH else 0.0
