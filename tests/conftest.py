import os
import logging

import pytest

from rfp_utils.core.log import set_logger
from rfp_utils.core.activity import MemoryActivitySink
from rfp_utils.db.score_store import MockScoreStore
from rfp_tools.auto_score.auto_score_models import (
    AIScoreResult,
    AutoScore,
    BuyerOverride,
    RequirementScore,
    ScoringMethod,
    ScoringType,
)

GENERATED_AT = "2026-01-01T00:00:00.000Z"


@pytest.fixture(scope="session", autouse=True)
def tool_logger(tmp_path_factory):
    """Library code expects a tool logger in context; per-RFP files go to a tmp dir."""
    os.environ["PROCESS_LOG_DIR"] = str(tmp_path_factory.mktemp("process_logs"))
    set_logger(logging.getLogger("tests.auto_score"), tool_name="tests")


class FakeAIScorer:
    """Stands in for AISemanticScorer; grades by a callable and counts calls."""

    def __init__(self, grade=None, delay=0.0):
        self.grade = grade or (lambda question, answer: 80.0)
        self.delay = delay
        self.calls = []

    async def score(self, question_text, answer_text, **context):
        import asyncio

        self.calls.append((question_text, answer_text, context))
        if self.delay:
            await asyncio.sleep(self.delay)
        return AIScoreResult(
            raw_score=self.grade(question_text, answer_text),
            reasoning="Clear and specific answer with evidence.",
            confidence=0.9,
            model="fake",
        )


@pytest.fixture
def fake_ai():
    return FakeAIScorer()


@pytest.fixture
def activity():
    return MemoryActivitySink()


CATALOG = [
    {"id": "r1", "question": "Price per seat?", "scoringType": "numeric", "weight": 10},
    {
        "id": "r2",
        "question": "Is 24/7 support included?",
        "scoringType": "pass/fail",
        "weight": 20,
        "mustHave": True,
    },
    {"id": "r3", "question": "Describe your onboarding plan", "scoringType": "qualitative", "weight": 70},
]

ANSWERS = [
    {"requirementId": "r1", "response": "We propose $1,250 per seat"},
    {"requirementId": "r2", "response": "Yes, round-the-clock support is included"},
    {"requirementId": "r3", "response": "A dedicated onboarding manager for 90 days"},
]


@pytest.fixture
def store():
    s = MockScoreStore()
    s.add_rfp("rfp-1", "company-1", CATALOG)
    s.add_supplier_response("rfp-1", "supplier-1", ANSWERS)
    return s


def make_score(requirement_id, raw=40.0, override=None, answer="Some answer text"):
    return RequirementScore(
        requirement_id=requirement_id,
        question_text=f"Question {requirement_id}",
        scoring_type=ScoringType.NUMERIC,
        weight=10,
        must_have=False,
        supplier_answer_text=answer,
        auto_score=AutoScore(
            raw_score=raw,
            weighted_score=raw * 10 / 100,
            failed_must_have=False,
            scoring_method=ScoringMethod.NUMERIC,
            generated_at=GENERATED_AT,
        ),
        buyer_override=override,
    )


def make_override(score=75, reason="Reviewed on site", user="buyer-1"):
    return BuyerOverride(
        override_score=score,
        override_reason=reason,
        overridden_at=GENERATED_AT,
        overridden_by_user_id=user,
    )
