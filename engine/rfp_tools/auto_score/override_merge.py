"""
Buyer override handling.

``merge_with_existing_buyer_overrides`` is the only place a re-scoring run
touches stored overrides: the fresh set decides which requirements exist
and in what order, and every prior override is carried across as the same
object. ``apply_override`` / ``remove_override`` are the explicit buyer
actions that set or clear one.
"""

from typing import List, Optional, Tuple

from rfp_utils.core.clock import utc_timestamp
from rfp_utils.core.errors import InputError, RequirementNotFoundError
from rfp_tools.auto_score.auto_score_models import BuyerOverride, RequirementScore


def merge_with_existing_buyer_overrides(
    existing: List[RequirementScore], fresh: List[RequirementScore]
) -> List[RequirementScore]:
    by_id = {s.requirement_id: s for s in existing}
    merged: List[RequirementScore] = []
    for score in fresh:
        prior = by_id.get(score.requirement_id)
        if prior is not None and prior.buyer_override is not None:
            merged.append(score.model_copy(update={"buyer_override": prior.buyer_override}))
        else:
            merged.append(score)
    return merged


def _locate(scores: List[RequirementScore], requirement_id: str) -> int:
    for i, s in enumerate(scores):
        if s.requirement_id == requirement_id:
            return i
    raise RequirementNotFoundError(requirement_id)


def apply_override(
    scores: List[RequirementScore],
    requirement_id: str,
    override_score: float,
    user_id: str,
    override_reason: Optional[str] = None,
    overridden_at: Optional[str] = None,
) -> Tuple[List[RequirementScore], RequirementScore, RequirementScore]:
    """Set or replace the override on one requirement. Returns (scores, before, after)."""
    if isinstance(override_score, bool) or not isinstance(override_score, (int, float)):
        raise InputError("Override score must be a number")
    if not 0 <= override_score <= 100:
        raise InputError("Override score must be between 0 and 100")

    idx = _locate(scores, requirement_id)
    before = scores[idx]
    override = BuyerOverride(
        override_score=override_score,
        override_reason=override_reason,
        overridden_at=overridden_at or utc_timestamp(),
        overridden_by_user_id=user_id,
    )
    after = before.model_copy(update={"buyer_override": override})
    updated = list(scores)
    updated[idx] = after
    return updated, before, after


def remove_override(
    scores: List[RequirementScore], requirement_id: str
) -> Tuple[List[RequirementScore], RequirementScore, RequirementScore]:
    """Clear the override on one requirement (no-op if none). Returns (scores, before, after)."""
    idx = _locate(scores, requirement_id)
    before = scores[idx]
    after = before.model_copy(update={"buyer_override": None})
    updated = list(scores)
    updated[idx] = after
    return updated, before, after
