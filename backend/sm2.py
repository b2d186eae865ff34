import math
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from backend.errors import CorruptProgressError, InvalidRatingError

DEFAULT_EASINESS_FACTOR = 2.5
MIN_EASINESS_FACTOR = 1.3
DEFAULT_INTERVAL = 1
PASSING_QUALITY = 3

QUALITY_LABELS = {
    0: ("Blackout", "Complete blackout"),
    1: ("Wrong", "Wrong, but recognized"),
    2: ("Familiar", "Wrong, but familiar"),
    3: ("Hard", "Correct with difficulty"),
    4: ("Good", "Correct with hesitation"),
    5: ("Perfect", "Perfect, instant recall"),
}


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SM2Result(NamedTuple):
    easiness_factor: float
    interval: int
    repetitions: int
    next_due_date: datetime


def validate_quality(quality) -> int:
    """Reject anything that is not an integer rating in 0-5"""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidRatingError(f"Quality must be an integer, got {quality!r}")
    if quality < 0 or quality > 5:
        raise InvalidRatingError(f"Quality must be between 0 and 5, got {quality}")
    return quality


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; other SM-2 clients round .5 up
    return int(math.floor(value + 0.5))


class SM2Algorithm:
    """
    SM-2 spaced repetition algorithm for calculating review intervals.
    Based on SuperMemo 2 algorithm by Piotr Wozniak.
    """

    @staticmethod
    def calculate_next_review(
        easiness_factor: float,
        interval: int,
        repetitions: int,
        quality: int,
        reference_time: Optional[datetime] = None
    ) -> SM2Result:
        """
        Calculate next review date and update SM-2 parameters.

        Args:
            easiness_factor: Current EF, never below 1.3
            interval: Current interval in days, at least 1
            repetitions: Consecutive successful reviews since the last lapse
            quality: Response quality (0-5). 0=total blackout, 5=perfect
            reference_time: Optional "now" (defaults to current UTC time)

        Returns:
            SM2Result(easiness_factor, interval, repetitions, next_due_date)

        Raises:
            InvalidRatingError: quality is not an integer in 0-5
            CorruptProgressError: the current state breaks its documented minimums
        """
        quality = validate_quality(quality)
        SM2Algorithm.check_state(easiness_factor, interval, repetitions)

        new_ef = easiness_factor

        # If quality < 3, reset repetitions (failed recall). EF is left alone.
        if quality < PASSING_QUALITY:
            new_repetitions = 0
            new_interval = 1
        else:
            new_ef = easiness_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
            if new_ef < MIN_EASINESS_FACTOR:
                new_ef = MIN_EASINESS_FACTOR

            new_repetitions = repetitions + 1

            # Calculate new interval based on repetition count
            if new_repetitions == 1:
                new_interval = 1
            elif new_repetitions == 2:
                new_interval = 6
            else:
                new_interval = _round_half_up(interval * new_ef)

        base_time = reference_time if reference_time else utcnow()
        next_due_date = base_time + timedelta(days=new_interval)

        return SM2Result(new_ef, new_interval, new_repetitions, next_due_date)

    @staticmethod
    def check_state(easiness_factor, interval, repetitions) -> None:
        """Raise CorruptProgressError for state the scheduler must not consume"""
        if easiness_factor is None or interval is None or repetitions is None:
            raise CorruptProgressError("Progress record has null scheduling fields")
        if easiness_factor < MIN_EASINESS_FACTOR:
            raise CorruptProgressError(f"Easiness factor {easiness_factor} is below {MIN_EASINESS_FACTOR}")
        if interval < 1:
            raise CorruptProgressError(f"Interval {interval} is below 1 day")
        if repetitions < 0:
            raise CorruptProgressError(f"Repetitions {repetitions} is negative")

    @staticmethod
    def initialize_card(reference_time: Optional[datetime] = None) -> SM2Result:
        """Default state for a card never seen by this user: due immediately"""
        base_time = reference_time if reference_time else utcnow()
        return SM2Result(DEFAULT_EASINESS_FACTOR, DEFAULT_INTERVAL, 0, base_time)

    @staticmethod
    def is_due_for_review(next_due_date: datetime, now: Optional[datetime] = None) -> bool:
        """Check if a card is due for review"""
        return next_due_date <= (now or utcnow())

    @staticmethod
    def get_days_overdue(next_due_date: datetime, now: Optional[datetime] = None) -> int:
        """Calculate how many whole calendar days overdue a review is"""
        now = now or utcnow()
        if now < next_due_date:
            return 0
        return (now.date() - next_due_date.date()).days


def get_mastery_level(repetitions: int, easiness_factor: float, interval: int) -> str:
    """Classify a card as new, learning, review or mastered"""
    if repetitions == 0:
        return "new"
    if repetitions < 3:
        return "learning"
    if easiness_factor > 2.5 and interval >= 21:
        return "mastered"
    return "review"
