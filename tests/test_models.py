import json

import pytest

from rfp_utils.core.errors import CatalogDecodeError
from rfp_tools.auto_score.auto_score_models import (
    DEFAULT_SCORING_SETTINGS,
    MustHaveFailBehavior,
    ScoringType,
    decode_catalog,
    decode_requirement_scores,
    decode_scoring_settings,
    decode_supplier_answers,
    scores_to_json,
)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def test_catalog_decodes_in_order_with_aliases():
    catalog = decode_catalog(
        [
            {"id": "a", "question": "Q1", "scoringType": "pass/fail", "weight": 20, "mustHave": True},
            {"id": "b", "questionText": "Q2", "scoring_type": "numeric", "weight_percent": 5},
        ]
    )
    assert [r.id for r in catalog] == ["a", "b"]
    assert catalog[0].scoring_type == ScoringType.PASS_FAIL
    assert catalog[0].must_have is True
    assert catalog[1].question_text == "Q2"
    assert catalog[1].weight_percent == 5


def test_catalog_defaults_and_nulls():
    (req,) = decode_catalog([{"id": "a", "scoringType": None, "weight": None, "extra": 1}])
    assert req.scoring_type == ScoringType.QUALITATIVE
    assert req.weight_percent == 0
    assert req.must_have is False
    assert req.question_text == ""


@pytest.mark.parametrize(
    "raw",
    [
        None,
        {"requirements": []},
        "not a list",
        [["a"]],
        [{"question": "no id"}],
        [{"id": 7}],
        [{"id": ""}],
        [{"id": "a", "scoringType": "fuzzy"}],
        [{"id": "a", "weight": 150}],
        [{"id": "a", "weight": -1}],
        [{"id": "a"}, {"id": "a"}],
    ],
)
def test_catalog_fails_closed(raw):
    with pytest.raises(CatalogDecodeError):
        decode_catalog(raw)


def test_empty_catalog_is_valid():
    assert decode_catalog([]) == []


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------


def test_answers_from_structured_list():
    answers = decode_supplier_answers(
        [
            {"requirementId": "a", "response": "Yes"},
            {"requirementId": "b", "response": None},
            {"requirementId": "c"},
        ]
    )
    assert answers == {"a": "Yes", "b": "", "c": ""}


def test_answers_from_mapping():
    assert decode_supplier_answers({"a": "x", "b": None}) == {"a": "x", "b": ""}


def test_answers_absent():
    assert decode_supplier_answers(None) == {}


@pytest.mark.parametrize(
    "raw",
    [
        "text",
        42,
        ["x"],
        [{"response": "orphan"}],
        [{"requirementId": "a", "response": 12}],
        [{"requirementId": "a", "response": "x"}, {"requirementId": "a", "response": "y"}],
    ],
)
def test_answers_fail_closed(raw):
    with pytest.raises(CatalogDecodeError):
        decode_supplier_answers(raw)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def test_absent_settings_use_injected_defaults():
    assert decode_scoring_settings(None) is DEFAULT_SCORING_SETTINGS
    custom = DEFAULT_SCORING_SETTINGS.model_copy(update={"ai_enabled": False})
    assert decode_scoring_settings(None, custom) is custom


def test_partial_settings_are_filled_from_defaults():
    settings = decode_scoring_settings({"mustHaveFailBehavior": "disqualify", "aiEnabled": None})
    assert settings.must_have_fail_behavior == MustHaveFailBehavior.DISQUALIFY
    assert settings.ai_enabled is True
    assert settings.scoring_scale == 100


def test_snake_case_settings_are_accepted():
    settings = decode_scoring_settings({"ai_enabled": False, "scoring_scale": 10})
    assert settings.ai_enabled is False
    assert settings.scoring_scale == 10


@pytest.mark.parametrize(
    "raw",
    [
        ["aiEnabled"],
        {"mustHaveFailBehavior": "warn"},
        {"scoringScale": 0},
        {"ruleWeighting": 1.5},
    ],
)
def test_settings_fail_closed(raw):
    with pytest.raises(CatalogDecodeError):
        decode_scoring_settings(raw)


# ---------------------------------------------------------------------------
# Stored score sets
# ---------------------------------------------------------------------------

STORED = [
    {
        "requirementId": "a",
        "question": "Q1",
        "scoringType": "pass/fail",
        "weight": 20,
        "mustHave": True,
        "supplierResponseText": "N/A",
        "autoScore": {
            "rawScore": 0,
            "weightedScore": 0,
            "failedMustHave": True,
            "scoringMethod": "pass_fail",
            "generatedAt": "2026-01-01T00:00:00.000Z",
        },
        "buyerOverride": {
            "overrideScore": 60,
            "overrideReason": "Clarified on call",
            "overriddenAt": "2026-01-02T00:00:00.000Z",
            "overriddenByUserId": "buyer-1",
            "reviewNote": "kept by other services",
        },
    }
]


def test_stored_scores_decode_and_encode_camel_case():
    (score,) = decode_requirement_scores(STORED)
    assert score.scoring_type == ScoringType.PASS_FAIL
    assert score.buyer_override.override_score == 60

    (out,) = scores_to_json([score])
    assert out["requirementId"] == "a"
    assert out["question"] == "Q1"
    assert out["supplierResponseText"] == "N/A"
    assert out["autoScore"]["failedMustHave"] is True
    assert "aiReasoning" not in out["autoScore"]
    assert out["buyerOverride"] == STORED[0]["buyerOverride"]


def test_stored_override_is_stable_across_decode_cycles():
    first = scores_to_json(decode_requirement_scores(STORED))
    second = scores_to_json(decode_requirement_scores(first))
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


@pytest.mark.parametrize(
    "override",
    [
        {"overrideScore": 80, "overrideReason": None, "overriddenAt": "2026-01-02", "overriddenByUserId": "u1"},
        {"overrideScore": "85", "overriddenByUserId": "u1"},
        {"overrideScore": 120, "overrideReason": "Imported", "source": {"system": "legacy"}},
        {},
    ],
)
def test_stored_override_is_carried_as_stored(override):
    (score,) = decode_requirement_scores([{**STORED[0], "buyerOverride": override}])
    (out,) = scores_to_json([score])
    assert json.dumps(out["buyerOverride"]) == json.dumps(override)


def test_never_scored_is_empty():
    assert decode_requirement_scores(None) == []


@pytest.mark.parametrize(
    "raw",
    [
        {"requirementId": "a"},
        [{"requirementId": "a"}],
        [STORED[0], STORED[0]],
        [{**STORED[0], "buyerOverride": "80"}],
    ],
)
def test_stored_scores_fail_closed(raw):
    with pytest.raises(CatalogDecodeError):
        decode_requirement_scores(raw)
