import json

import pytest
from hypothesis import given, strategies as st

from conftest import make_override, make_score
from rfp_utils.core.errors import InputError, RequirementNotFoundError
from rfp_tools.auto_score.override_merge import (
    apply_override,
    merge_with_existing_buyer_overrides,
    remove_override,
)

REQUIREMENT_IDS = [f"r{i}" for i in range(8)]

overrides = st.one_of(
    st.none(),
    st.builds(
        make_override,
        score=st.integers(min_value=0, max_value=100) | st.floats(min_value=0, max_value=100),
        reason=st.none() | st.text(max_size=30),
        user=st.sampled_from(["buyer-1", "buyer-2"]),
    ),
)


@st.composite
def score_sets(draw, with_overrides):
    ids = draw(st.lists(st.sampled_from(REQUIREMENT_IDS), unique=True, max_size=len(REQUIREMENT_IDS)))
    return [
        make_score(
            rid,
            raw=draw(st.integers(min_value=0, max_value=100)),
            override=draw(overrides) if with_overrides else None,
        )
        for rid in ids
    ]


def _dump(override):
    return json.dumps(override.model_dump(mode="json", by_alias=True), sort_keys=True)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


@given(score_sets(with_overrides=True), score_sets(with_overrides=False))
def test_overrides_survive_unchanged(old, new):
    merged = merge_with_existing_buyer_overrides(old, new)
    old_by_id = {s.requirement_id: s for s in old}
    for score in merged:
        prior = old_by_id.get(score.requirement_id)
        if prior is not None and prior.buyer_override is not None:
            assert score.buyer_override is prior.buyer_override
            assert _dump(score.buyer_override) == _dump(prior.buyer_override)


@given(score_sets(with_overrides=True), score_sets(with_overrides=False))
def test_output_covers_exactly_the_fresh_set(old, new):
    merged = merge_with_existing_buyer_overrides(old, new)
    assert [s.requirement_id for s in merged] == [s.requirement_id for s in new]


@given(score_sets(with_overrides=True), score_sets(with_overrides=False))
def test_no_override_is_fabricated(old, new):
    merged = merge_with_existing_buyer_overrides(old, new)
    had_override = {s.requirement_id for s in old if s.buyer_override is not None}
    for score in merged:
        if score.requirement_id not in had_override:
            assert score.buyer_override is None


@given(score_sets(with_overrides=True), score_sets(with_overrides=False))
def test_merge_is_deterministic(old, new):
    first = merge_with_existing_buyer_overrides(old, new)
    second = merge_with_existing_buyer_overrides(old, new)
    assert [s.to_dict() for s in first] == [s.to_dict() for s in second]


@given(score_sets(with_overrides=True), score_sets(with_overrides=False))
def test_auto_scores_come_from_the_fresh_run(old, new):
    merged = merge_with_existing_buyer_overrides(old, new)
    for fresh, out in zip(new, merged):
        assert out.auto_score is fresh.auto_score
        assert out.supplier_answer_text == fresh.supplier_answer_text


# ---------------------------------------------------------------------------
# Examples
# ---------------------------------------------------------------------------


def test_removed_requirement_drops_and_new_one_is_clean():
    old = [make_score("a", override=make_override()), make_score("b", override=make_override(10))]
    new = [make_score("b", raw=90), make_score("c", raw=55)]
    merged = merge_with_existing_buyer_overrides(old, new)

    assert [s.requirement_id for s in merged] == ["b", "c"]
    assert merged[0].buyer_override.override_score == 10
    assert merged[0].auto_score.raw_score == 90
    assert merged[1].buyer_override is None


def test_merge_against_empty_history():
    new = [make_score("a"), make_score("b")]
    assert merge_with_existing_buyer_overrides([], new) == new


# ---------------------------------------------------------------------------
# Buyer actions
# ---------------------------------------------------------------------------


def test_apply_override_sets_and_replaces():
    scores = [make_score("a", raw=30), make_score("b")]
    updated, before, after = apply_override(scores, "a", 70, "buyer-9", "Site visit")

    assert before.buyer_override is None
    assert after.buyer_override.override_score == 70
    assert after.buyer_override.override_reason == "Site visit"
    assert after.buyer_override.overridden_by_user_id == "buyer-9"
    assert after.buyer_override.overridden_at
    assert after.auto_score is before.auto_score
    assert updated[0] is after and updated[1] is scores[1]
    assert scores[0].buyer_override is None

    updated, before, after = apply_override(updated, "a", 65, "buyer-2")
    assert before.buyer_override.override_score == 70
    assert after.buyer_override.override_score == 65
    assert after.buyer_override.override_reason is None


@pytest.mark.parametrize("value", [-1, 100.5, True, "80", None])
def test_apply_override_rejects_invalid_scores(value):
    with pytest.raises(InputError):
        apply_override([make_score("a")], "a", value, "buyer-1")


def test_override_on_unknown_requirement():
    with pytest.raises(RequirementNotFoundError):
        apply_override([make_score("a")], "zzz", 50, "buyer-1")
    with pytest.raises(RequirementNotFoundError):
        remove_override([make_score("a")], "zzz")


def test_remove_override():
    scores = [make_score("a", override=make_override(90))]
    updated, before, after = remove_override(scores, "a")
    assert before.buyer_override.override_score == 90
    assert after.buyer_override is None
    assert updated == [after]

    # clearing again is harmless
    again, _, after2 = remove_override(updated, "a")
    assert after2.buyer_override is None
