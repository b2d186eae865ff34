from datetime import datetime, timedelta

import pytest

from backend.schemas import CardWithProgress, ProgressResponse
from client.state import ProgressState

NOW = datetime(2025, 3, 10, 12, 0, 0)


def _card(card_id, **progress):
    return CardWithProgress(id=card_id, set_id="s1", term=f"term {card_id}", definition="def", next_due_date=NOW, **progress)


@pytest.fixture
def state():
    state = ProgressState()
    state.load("s1", [_card("a"), _card("b")])
    return state


def test_load(state):
    assert state.set_id == "s1"
    assert state.card_ids() == ["a", "b"]
    assert state.effective("a") is state.authoritative("a")
    assert state.effective("missing") is None


def test_local_rating_overrides_without_touching_server_data(state):
    override = state.apply_local("a", 5, NOW)
    assert override.repetitions == 1
    assert override.easiness_factor == pytest.approx(2.6)
    assert override.next_due_date == NOW + timedelta(days=1)
    assert override.last_review_date == NOW
    assert override.mastery == "learning"

    assert state.has_override("a")
    assert state.overridden_ids() == ["a"]
    assert state.authoritative("a").repetitions == 0
    assert state.effective("a") is override
    assert [c.repetitions for c in state.cards()] == [1, 0]


def test_local_ratings_chain(state):
    state.apply_local("a", 5, NOW)
    second = state.apply_local("a", 5, NOW + timedelta(days=1))
    assert second.repetitions == 2
    assert second.interval == 6


def test_confirm_replaces_override_with_server_record(state):
    state.apply_local("a", 5, NOW)
    state.confirm("a", ProgressResponse(
        user_id="alice",
        card_id="a",
        easiness_factor=2.6,
        interval=1,
        repetitions=1,
        last_review_date=NOW,
        next_due_date=NOW + timedelta(days=1),
    ))
    assert not state.has_override("a")
    assert state.effective("a").repetitions == 1
    assert state.effective("a").term == "term a"
    assert state.authoritative("a").mastery == "learning"


def test_revert_falls_back_to_server_data(state):
    state.apply_local("b", 1, NOW)
    state.revert("b")
    assert not state.has_override("b")
    assert state.effective("b").repetitions == 0


def test_unknown_card(state):
    with pytest.raises(KeyError):
        state.apply_local("zzz", 4)


def test_reload_keeps_overrides(state):
    state.apply_local("a", 4, NOW)
    state.load("s1", [_card("a"), _card("b"), _card("c")])
    assert state.has_override("a")
    assert state.card_ids() == ["a", "b", "c"]


def test_clear(state):
    state.apply_local("a", 4, NOW)
    state.clear()
    assert state.set_id is None
    assert state.card_ids() == []
    assert state.overridden_ids() == []
