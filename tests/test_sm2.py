from datetime import datetime, timedelta

import pytest

from backend.errors import CorruptProgressError, InvalidRatingError
from backend.sm2 import (
    DEFAULT_EASINESS_FACTOR,
    MIN_EASINESS_FACTOR,
    SM2Algorithm,
    _round_half_up,
    get_mastery_level,
    utcnow,
    validate_quality,
)

NOW = datetime(2025, 3, 10, 12, 0, 0)


def test_first_perfect_review():
    result = SM2Algorithm.calculate_next_review(2.5, 1, 0, 5, reference_time=NOW)
    assert result.easiness_factor == pytest.approx(2.6)
    assert result.interval == 1
    assert result.repetitions == 1
    assert result.next_due_date == NOW + timedelta(days=1)


def test_second_success_uses_six_days():
    result = SM2Algorithm.calculate_next_review(2.6, 1, 1, 5, reference_time=NOW)
    assert result.easiness_factor == pytest.approx(2.7)
    assert result.interval == 6
    assert result.repetitions == 2
    assert result.next_due_date == NOW + timedelta(days=6)


def test_third_success_multiplies_by_easiness():
    result = SM2Algorithm.calculate_next_review(2.7, 6, 2, 4, reference_time=NOW)
    # quality 4 leaves EF unchanged; 6 * 2.7 = 16.2
    assert result.easiness_factor == pytest.approx(2.7)
    assert result.interval == 16
    assert result.repetitions == 3


def test_hard_recall_lowers_easiness():
    result = SM2Algorithm.calculate_next_review(2.5, 1, 0, 3, reference_time=NOW)
    assert result.easiness_factor == pytest.approx(2.36)
    assert result.repetitions == 1


@pytest.mark.parametrize("quality", [0, 1, 2])
def test_failure_resets_but_keeps_easiness(quality):
    result = SM2Algorithm.calculate_next_review(2.2, 16, 4, quality, reference_time=NOW)
    assert result.repetitions == 0
    assert result.interval == 1
    assert result.easiness_factor == 2.2
    assert result.next_due_date == NOW + timedelta(days=1)


def test_easiness_never_drops_below_floor():
    result = SM2Algorithm.calculate_next_review(MIN_EASINESS_FACTOR, 6, 2, 3, reference_time=NOW)
    assert result.easiness_factor == MIN_EASINESS_FACTOR

    ef = DEFAULT_EASINESS_FACTOR
    interval, reps = 1, 0
    for _ in range(20):
        ef, interval, reps, _due = SM2Algorithm.calculate_next_review(ef, interval, reps, 3, reference_time=NOW)
        assert ef >= MIN_EASINESS_FACTOR


def test_better_quality_never_yields_lower_easiness():
    results = [
        SM2Algorithm.calculate_next_review(2.0, 6, 2, q, reference_time=NOW).easiness_factor
        for q in (3, 4, 5)
    ]
    assert results == sorted(results)


@pytest.mark.parametrize("repetitions", [2, 3, 5, 10])
def test_better_quality_never_yields_shorter_interval(repetitions):
    for ef in (1.3, 1.5, 1.9, 2.3, 2.5, 2.8, 3.2):
        for interval in (1, 2, 6, 15, 40, 120):
            hard = SM2Algorithm.calculate_next_review(ef, interval, repetitions, 3, reference_time=NOW)
            perfect = SM2Algorithm.calculate_next_review(ef, interval, repetitions, 5, reference_time=NOW)
            assert perfect.interval >= hard.interval, (ef, interval, repetitions)
            assert perfect.next_due_date >= hard.next_due_date


def test_interval_rounds_half_up():
    assert _round_half_up(12.5) == 13
    assert _round_half_up(2.5) == 3
    assert _round_half_up(16.2) == 16
    assert _round_half_up(15.6) == 16


def test_defaults_to_current_time():
    before = utcnow()
    result = SM2Algorithm.calculate_next_review(2.5, 1, 0, 4)
    assert result.next_due_date >= before + timedelta(days=1)
    assert result.next_due_date.tzinfo is None


@pytest.mark.parametrize("quality", [-1, 6, 2.5, "3", None, True])
def test_invalid_quality_rejected(quality):
    with pytest.raises(InvalidRatingError):
        SM2Algorithm.calculate_next_review(2.5, 1, 0, quality, reference_time=NOW)


def test_invalid_rating_is_a_value_error():
    with pytest.raises(ValueError):
        validate_quality(9)
    assert validate_quality(0) == 0


@pytest.mark.parametrize("ef, interval, reps", [
    (1.2, 1, 0),
    (2.5, 0, 0),
    (2.5, 1, -1),
    (None, 1, 0),
])
def test_corrupt_state_rejected(ef, interval, reps):
    with pytest.raises(CorruptProgressError):
        SM2Algorithm.calculate_next_review(ef, interval, reps, 4, reference_time=NOW)


def test_initialize_card_is_due_now():
    ef, interval, reps, due = SM2Algorithm.initialize_card(NOW)
    assert (ef, interval, reps) == (2.5, 1, 0)
    assert due == NOW
    assert SM2Algorithm.is_due_for_review(due, NOW)


def test_due_and_overdue():
    assert SM2Algorithm.is_due_for_review(NOW - timedelta(seconds=1), NOW)
    assert not SM2Algorithm.is_due_for_review(NOW + timedelta(seconds=1), NOW)
    assert SM2Algorithm.get_days_overdue(NOW - timedelta(days=3), NOW) == 3
    assert SM2Algorithm.get_days_overdue(NOW + timedelta(days=3), NOW) == 0


@pytest.mark.parametrize("reps, ef, interval, level", [
    (0, 2.5, 1, "new"),
    (2, 2.6, 6, "learning"),
    (3, 2.5, 30, "review"),
    (4, 2.7, 15, "review"),
    (5, 2.8, 21, "mastered"),
])
def test_mastery_levels(reps, ef, interval, level):
    assert get_mastery_level(reps, ef, interval) == level
