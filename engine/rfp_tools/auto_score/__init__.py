"""
Auto-score module - Supplier response scoring with buyer override preservation.
"""

from rfp_tools.auto_score.auto_score import AutoScoreEngine
from rfp_tools.auto_score.ai_scoring import AISemanticScorer, ModelAttempt
from rfp_tools.auto_score.auto_score_models import (
    DEFAULT_SCORING_SETTINGS,
    RequirementScore,
    ScoringSettings,
)
from rfp_tools.auto_score.override_merge import merge_with_existing_buyer_overrides
from rfp_tools.auto_score.score_summary import effective_score, summarize_scores

__all__ = [
    "AutoScoreEngine",
    "AISemanticScorer",
    "ModelAttempt",
    "DEFAULT_SCORING_SETTINGS",
    "RequirementScore",
    "ScoringSettings",
    "merge_with_existing_buyer_overrides",
    "effective_score",
    "summarize_scores",
]
