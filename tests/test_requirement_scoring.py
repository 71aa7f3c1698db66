import asyncio

import pytest

from conftest import FakeAIScorer, GENERATED_AT
from rfp_tools.auto_score.auto_score_models import (
    DEFAULT_SCORING_SETTINGS,
    MustHaveFailBehavior,
    RequirementDefinition,
    ScoringMethod,
    ScoringType,
    decode_catalog,
)
from rfp_tools.auto_score.requirement_scoring import (
    apply_must_have,
    score_requirements,
    score_single_requirement,
)

DISQUALIFY = DEFAULT_SCORING_SETTINGS.model_copy(
    update={"must_have_fail_behavior": MustHaveFailBehavior.DISQUALIFY}
)
AI_OFF = DEFAULT_SCORING_SETTINGS.model_copy(update={"ai_enabled": False})


def _req(scoring_type="numeric", weight=10, must_have=False, rid="r1"):
    (req,) = decode_catalog(
        [
            {
                "id": rid,
                "question": "Question text",
                "scoringType": scoring_type,
                "weight": weight,
                "mustHave": must_have,
            }
        ]
    )
    return req


# ---------------------------------------------------------------------------
# Worked examples
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_must_have_pass_fail_na_answer():
    score = await score_single_requirement(
        _req("pass/fail", weight=20, must_have=True), "N/A", DEFAULT_SCORING_SETTINGS
    )
    assert score.raw_score == 0
    assert score.weighted_score == 0
    assert score.failed_must_have is True
    assert score.scoring_method == ScoringMethod.PASS_FAIL


@pytest.mark.asyncio
async def test_numeric_price_clamps_then_weights():
    score = await score_single_requirement(
        _req("numeric", weight=10), "We propose $1,250 per seat", DEFAULT_SCORING_SETTINGS
    )
    assert score.raw_score == 100
    assert score.weighted_score == 10
    assert score.failed_must_have is False
    assert score.scoring_method == ScoringMethod.NUMERIC


# ---------------------------------------------------------------------------
# Must-have policy
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "scoring_type, answer",
    [
        ("numeric", "We can offer 30 units"),
        ("weighted", "Only 12 sites"),
        ("pass/fail", "no"),
        ("qualitative", "Not something we provide at this time"),
    ],
)
@pytest.mark.asyncio
async def test_zero_score_policy_forces_zero_for_every_type(scoring_type, answer):
    ai = FakeAIScorer(grade=lambda q, a: 20.0)
    score = await score_single_requirement(
        _req(scoring_type, weight=25, must_have=True), answer, DEFAULT_SCORING_SETTINGS, ai
    )
    assert score.raw_score == 0
    assert score.weighted_score == 0
    assert score.failed_must_have is True


@pytest.mark.asyncio
async def test_disqualify_policy_keeps_raw_score_and_flags():
    score = await score_single_requirement(
        _req("numeric", weight=50, must_have=True), "30 units", DISQUALIFY
    )
    assert score.raw_score == 30
    assert score.weighted_score == 15
    assert score.failed_must_have is True


def test_must_have_threshold_is_exclusive():
    assert apply_must_have(50, True, DEFAULT_SCORING_SETTINGS) == (50, False)
    assert apply_must_have(49.9, True, DEFAULT_SCORING_SETTINGS) == (0.0, True)
    assert apply_must_have(10, False, DEFAULT_SCORING_SETTINGS) == (10, False)


# ---------------------------------------------------------------------------
# Qualitative dispatch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_qualitative_uses_ai_when_enabled(fake_ai):
    score = await score_single_requirement(
        _req("qualitative", weight=40), "  A detailed onboarding plan  ", DEFAULT_SCORING_SETTINGS, fake_ai
    )
    assert score.scoring_method == ScoringMethod.AI_SEMANTIC
    assert score.raw_score == 80
    assert score.weighted_score == 32
    assert score.ai_confidence == 0.9
    assert score.ai_reasoning
    ((question, answer, context),) = fake_ai.calls
    assert answer == "A detailed onboarding plan"
    assert context["requirement_id"] == "r1"


@pytest.mark.asyncio
async def test_qualitative_heuristic_when_ai_disabled(fake_ai):
    score = await score_single_requirement(
        _req("qualitative"), "A detailed onboarding plan", AI_OFF, fake_ai
    )
    assert score.scoring_method == ScoringMethod.PASS_FAIL
    assert score.raw_score == 50
    assert score.ai_reasoning is None
    assert fake_ai.calls == []


@pytest.mark.asyncio
async def test_blank_qualitative_answer_skips_ai(fake_ai):
    score = await score_single_requirement(
        _req("qualitative"), "   ", DEFAULT_SCORING_SETTINGS, fake_ai
    )
    assert score.scoring_method == ScoringMethod.PASS_FAIL
    assert score.raw_score == 0
    assert fake_ai.calls == []


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_requirements_keep_catalog_order_and_timestamp():
    catalog = [
        RequirementDefinition(id=f"r{i}", question_text=f"Q{i}", scoring_type=ScoringType.QUALITATIVE, weight_percent=5)
        for i in range(12)
    ]
    answers = {f"r{i}": f"Answer number {i} with detail" for i in range(12)}

    # later requirements finish first
    class Staggered(FakeAIScorer):
        async def score(self, question_text, answer_text, **context):
            idx = int(context["requirement_id"][1:])
            await asyncio.sleep(0.001 * (12 - idx))
            return await super().score(question_text, answer_text, **context)

    scores = await score_requirements(
        catalog, answers, DEFAULT_SCORING_SETTINGS, Staggered(), generated_at=GENERATED_AT
    )
    assert [s.requirement_id for s in scores] == [r.id for r in catalog]
    assert {s.auto_score.generated_at for s in scores} == {GENERATED_AT}
    assert all(s.buyer_override is None for s in scores)


@pytest.mark.asyncio
async def test_requirement_fanout_is_bounded():
    active = 0
    peak = 0

    class Counting(FakeAIScorer):
        async def score(self, question_text, answer_text, **context):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await super().score(question_text, answer_text, **context)

    catalog = [
        RequirementDefinition(id=f"r{i}", scoring_type=ScoringType.QUALITATIVE) for i in range(25)
    ]
    answers = {r.id: "Long enough answer text" for r in catalog}
    await score_requirements(catalog, answers, DEFAULT_SCORING_SETTINGS, Counting(), concurrency=4)
    assert 1 < peak <= 4


@pytest.mark.asyncio
async def test_missing_answers_score_lowest():
    catalog = [_req("numeric", rid="a"), _req("pass/fail", rid="b"), _req("qualitative", rid="c")]
    scores = await score_requirements(catalog, {}, DEFAULT_SCORING_SETTINGS, FakeAIScorer())
    assert [s.auto_score.raw_score for s in scores] == [0, 0, 0]
    assert [s.supplier_answer_text for s in scores] == ["", "", ""]
