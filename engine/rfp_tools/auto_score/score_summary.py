"""
Evaluation summary over one supplier's score set.

The effective score of a requirement is the buyer override when present,
otherwise the auto raw score. Averages are taken over the requirement count.
"""

from typing import Any, Dict, List, Optional

from rfp_tools.auto_score.auto_score_models import (
    DEFAULT_SCORING_SETTINGS,
    MustHaveFailBehavior,
    RequirementScore,
    ScoringSettings,
)
from rfp_tools.auto_score.requirement_scoring import MUST_HAVE_THRESHOLD


def effective_score(score: RequirementScore) -> float:
    # a stored override without a usable number leaves the auto score in effect
    if score.buyer_override is not None and score.buyer_override.score_value is not None:
        return score.buyer_override.score_value
    return score.auto_score.raw_score


def variance_level(variance: float) -> str:
    if variance <= 1:
        return "low"
    if variance <= 3:
        return "medium"
    return "high"


def summarize_scores(
    scores: List[RequirementScore], settings: Optional[ScoringSettings] = None
) -> Dict[str, Any]:
    settings = settings or DEFAULT_SCORING_SETTINGS

    items = []
    total_auto = 0.0
    total_effective = 0.0
    total_weighted_auto = 0.0
    total_weighted_effective = 0.0
    total_variance = 0.0
    override_count = 0
    must_have_failures = 0
    missing_responses = 0

    for s in scores:
        auto = s.auto_score.raw_score
        effective = effective_score(s)
        has_override = s.buyer_override is not None
        variance = abs(auto - effective) if has_override else 0.0
        violation = s.must_have and effective < MUST_HAVE_THRESHOLD

        total_auto += auto
        total_effective += effective
        total_weighted_auto += auto * s.weight / 100
        total_weighted_effective += effective * s.weight / 100
        if has_override:
            override_count += 1
            total_variance += variance
        if violation:
            must_have_failures += 1
        if not s.supplier_answer_text.strip():
            missing_responses += 1

        items.append(
            {
                "requirementId": s.requirement_id,
                "autoScore": auto,
                "effectiveScore": effective,
                "variance": variance,
                "varianceLevel": variance_level(variance),
                "mustHaveViolation": violation,
            }
        )

    count = len(scores)
    divisor = count or 1
    return {
        "requirementCount": count,
        "averageAutoScore": total_auto / divisor,
        "averageEffectiveScore": total_effective / divisor,
        "totalWeightedAutoScore": total_weighted_auto,
        "totalWeightedEffectiveScore": total_weighted_effective,
        "overrideCount": override_count,
        "averageVariance": total_variance / override_count if override_count else 0.0,
        "mustHaveFailures": must_have_failures,
        "missingResponses": missing_responses,
        "disqualified": (
            settings.must_have_fail_behavior == MustHaveFailBehavior.DISQUALIFY
            and must_have_failures > 0
        ),
        "items": items,
    }
