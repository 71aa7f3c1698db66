"""
Per-requirement scoring: method dispatch, must-have policy and weighting.

``score_requirements`` fans one supplier's requirements out concurrently
(bounded by a semaphore) and returns fresh RequirementScores in catalog
order. Nothing here reads or writes stored scores; merging with prior
buyer overrides happens afterwards on the complete set.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from rfp_utils.core.clock import utc_timestamp
from rfp_utils.core.log import get_logger
from rfp_tools.auto_score.ai_scoring import AISemanticScorer
from rfp_tools.auto_score.auto_score_models import (
    AutoScore,
    MustHaveFailBehavior,
    RequirementDefinition,
    RequirementScore,
    ScoringMethod,
    ScoringSettings,
    ScoringType,
)
from rfp_tools.auto_score.rule_scoring import (
    score_qualitative_heuristic,
    score_rule_based,
)

REQUIREMENT_CONCURRENCY = 10
MUST_HAVE_THRESHOLD = 50


def apply_must_have(
    raw_score: float, must_have: bool, settings: ScoringSettings
) -> Tuple[float, bool]:
    """Return (raw_score, failed_must_have) after the must-have policy."""
    if not must_have or raw_score >= MUST_HAVE_THRESHOLD:
        return raw_score, False
    if settings.must_have_fail_behavior == MustHaveFailBehavior.ZERO_SCORE:
        return 0.0, True
    # disqualify is decided by the caller from failed_must_have
    return raw_score, True


def weighted_score(raw_score: float, weight_percent: float) -> float:
    return raw_score * weight_percent / 100


async def score_single_requirement(
    requirement: RequirementDefinition,
    answer_text: str,
    settings: ScoringSettings,
    ai_scorer: Optional[AISemanticScorer] = None,
    *,
    generated_at: Optional[str] = None,
    rfp_id: Optional[str] = None,
    supplier_response_id: Optional[str] = None,
) -> AutoScore:
    """
    Score one requirement.

    Qualitative answers go to the AI scorer when AI is enabled, an
    ``ai_scorer`` is supplied and the answer is not blank; otherwise they get
    the length heuristic recorded as pass_fail.
    """
    text = (answer_text or "").strip()
    ai_reasoning = None
    ai_confidence = None

    if requirement.scoring_type == ScoringType.QUALITATIVE:
        if settings.ai_enabled and text and ai_scorer is not None:
            result = await ai_scorer.score(
                requirement.question_text,
                text,
                rfp_id=rfp_id,
                supplier_response_id=supplier_response_id,
                requirement_id=requirement.id,
            )
            raw = result.raw_score
            method = ScoringMethod.AI_SEMANTIC
            ai_reasoning = result.reasoning
            ai_confidence = result.confidence
        else:
            raw = score_qualitative_heuristic(text)
            method = ScoringMethod.PASS_FAIL
    else:
        raw, method = score_rule_based(requirement.scoring_type, text, settings)

    raw, failed = apply_must_have(raw, requirement.must_have, settings)

    return AutoScore(
        raw_score=raw,
        weighted_score=weighted_score(raw, requirement.weight_percent),
        failed_must_have=failed,
        ai_reasoning=ai_reasoning,
        ai_confidence=ai_confidence,
        scoring_method=method,
        generated_at=generated_at or utc_timestamp(),
    )


async def score_requirements(
    catalog: List[RequirementDefinition],
    answers: Dict[str, str],
    settings: ScoringSettings,
    ai_scorer: Optional[AISemanticScorer] = None,
    *,
    generated_at: Optional[str] = None,
    concurrency: int = REQUIREMENT_CONCURRENCY,
    rfp_id: Optional[str] = None,
    supplier_response_id: Optional[str] = None,
) -> List[RequirementScore]:
    """Score every catalog requirement for one supplier; output keeps catalog order."""
    logger = get_logger()
    generated_at = generated_at or utc_timestamp()
    sem = asyncio.Semaphore(concurrency)

    async def worker(req: RequirementDefinition) -> RequirementScore:
        answer = answers.get(req.id, "")
        async with sem:
            auto = await score_single_requirement(
                req,
                answer,
                settings,
                ai_scorer,
                generated_at=generated_at,
                rfp_id=rfp_id,
                supplier_response_id=supplier_response_id,
            )
        return RequirementScore(
            requirement_id=req.id,
            question_text=req.question_text,
            scoring_type=req.scoring_type,
            weight=req.weight_percent,
            must_have=req.must_have,
            supplier_answer_text=answer,
            auto_score=auto,
        )

    scores = await asyncio.gather(*(worker(r) for r in catalog))
    failed = sum(1 for s in scores if s.auto_score.failed_must_have)
    logger.debug(f"Scored {len(scores)} requirements ({failed} must-have failures)")
    return list(scores)
