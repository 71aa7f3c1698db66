import pytest

from conftest import make_override, make_score
from rfp_tools.auto_score.auto_score_models import (
    DEFAULT_SCORING_SETTINGS,
    BuyerOverride,
    MustHaveFailBehavior,
)
from rfp_tools.auto_score.score_summary import (
    effective_score,
    summarize_scores,
    variance_level,
)

DISQUALIFY = DEFAULT_SCORING_SETTINGS.model_copy(
    update={"must_have_fail_behavior": MustHaveFailBehavior.DISQUALIFY}
)


def test_effective_score_prefers_override():
    assert effective_score(make_score("a", raw=40)) == 40
    assert effective_score(make_score("a", raw=40, override=make_override(75))) == 75
    assert effective_score(make_score("a", raw=40, override=make_override(0))) == 0


@pytest.mark.parametrize("stored, expected", [("85", 85), ("high", 40), (None, 40), (True, 40), (120, 120)])
def test_effective_score_reads_stored_override_values(stored, expected):
    override = BuyerOverride.from_stored({"overrideScore": stored, "overriddenByUserId": "u1"})
    assert effective_score(make_score("a", raw=40, override=override)) == expected


@pytest.mark.parametrize("variance, level", [(0, "low"), (1, "low"), (2.5, "medium"), (3, "medium"), (3.1, "high")])
def test_variance_levels(variance, level):
    assert variance_level(variance) == level


def test_summary_totals():
    scores = [
        make_score("a", raw=40, override=make_override(70)),
        make_score("b", raw=80),
        make_score("c", raw=0, answer="   "),
    ]
    summary = summarize_scores(scores)

    assert summary["requirementCount"] == 3
    assert summary["averageAutoScore"] == pytest.approx(40)
    assert summary["averageEffectiveScore"] == pytest.approx(50)
    # weight 10 on every requirement
    assert summary["totalWeightedAutoScore"] == pytest.approx(12)
    assert summary["totalWeightedEffectiveScore"] == pytest.approx(15)
    assert summary["overrideCount"] == 1
    assert summary["averageVariance"] == pytest.approx(30)
    assert summary["missingResponses"] == 1
    assert summary["mustHaveFailures"] == 0
    assert summary["disqualified"] is False
    assert summary["items"][0]["varianceLevel"] == "high"
    assert summary["items"][1]["variance"] == 0


def test_must_have_failures_use_effective_score():
    rescued = make_score("a", raw=0, override=make_override(60)).model_copy(update={"must_have": True})
    failing = make_score("b", raw=30).model_copy(update={"must_have": True})

    summary = summarize_scores([rescued, failing], DISQUALIFY)
    assert summary["mustHaveFailures"] == 1
    assert summary["disqualified"] is True
    assert [i["mustHaveViolation"] for i in summary["items"]] == [False, True]

    assert summarize_scores([rescued, failing])["disqualified"] is False


def test_empty_summary():
    summary = summarize_scores([])
    assert summary["requirementCount"] == 0
    assert summary["averageAutoScore"] == 0
    assert summary["averageVariance"] == 0
    assert summary["items"] == []
