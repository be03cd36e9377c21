from datetime import UTC, datetime, timedelta

import pytest

from newsrank.models import Interaction
from newsrank.preferences import ProfileState, apply_interaction, is_valid_action, replay


def test_is_valid_action():
    assert is_valid_action("thumbs_up")
    assert is_valid_action("share")
    assert not is_valid_action("love")


def test_weights_accumulate_per_category_and_source():
    state = ProfileState()
    apply_interaction(state, 1, "thumbs_up", "tech", "TechCrunch")
    apply_interaction(state, 2, "save", "tech", "Wired")
    apply_interaction(state, 3, "read", "sports", "ESPN")

    profile = state.profile
    assert profile.category_scores["tech"] == pytest.approx(1.8)
    assert profile.category_scores["sports"] == pytest.approx(0.5)
    assert profile.source_scores["Wired"] == pytest.approx(0.8)
    assert profile.interaction_count == 3


def test_like_after_dislike_retracts_the_dislike_once():
    state = ProfileState()
    apply_interaction(state, 7, "thumbs_down", "tech", "TechCrunch")
    assert state.profile.category_scores["tech"] == pytest.approx(-1.0)

    apply_interaction(state, 7, "thumbs_up", "tech", "TechCrunch")
    assert state.profile.category_scores["tech"] == pytest.approx(1.0)
    assert state.profile.source_scores["TechCrunch"] == pytest.approx(1.0)


def test_repeated_reaction_is_a_noop():
    state = ProfileState()
    assert apply_interaction(state, 7, "thumbs_up", "tech", "TechCrunch")
    assert not apply_interaction(state, 7, "thumbs_up", "tech", "TechCrunch")
    assert state.profile.category_scores["tech"] == pytest.approx(1.0)
    assert state.profile.interaction_count == 1


def test_retraction_uses_original_category():
    state = ProfileState()
    apply_interaction(state, 7, "thumbs_down", "gaming", "ESPN")
    # Article re-filed between the two reactions.
    apply_interaction(state, 7, "thumbs_up", "sports", "ESPN")
    assert state.profile.category_scores["gaming"] == pytest.approx(0.0)
    assert state.profile.category_scores["sports"] == pytest.approx(1.0)


def test_unknown_action_raises():
    with pytest.raises(ValueError):
        apply_interaction(ProfileState(), 1, "love", "tech", "TechCrunch")


def test_replay_orders_by_timestamp_and_skips_missing_articles():
    t0 = datetime(2026, 1, 1, tzinfo=UTC)
    log = [
        Interaction("u", 1, "thumbs_up", t0 + timedelta(minutes=5)),
        Interaction("u", 1, "thumbs_down", t0),
        Interaction("u", 99, "save", t0),
    ]
    state = replay(log, {1: ("tech", "TechCrunch")})
    # thumbs_down then thumbs_up: net +1
    assert state.profile.category_scores == {"tech": pytest.approx(1.0)}
    assert state.reactions["1"]["action"] == "thumbs_up"
    assert state.profile.interaction_count == 2
