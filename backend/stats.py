from datetime import datetime
from typing import NamedTuple, Optional

from backend.sm2 import PASSING_QUALITY


class StreakUpdate(NamedTuple):
    current_streak: int
    longest_streak: int


class StatsAggregator:
    """
    Streak and accuracy arithmetic for confirmed ratings.

    Streaks count consecutive calendar days (UTC) with at least one review.
    """

    @staticmethod
    def calendar_days_between(earlier: datetime, later: datetime) -> int:
        """Whole calendar days from earlier to later, ignoring time of day"""
        return (later.date() - earlier.date()).days

    @staticmethod
    def update_streak(
        current_streak: int,
        longest_streak: int,
        last_review_date: Optional[datetime],
        now: datetime
    ) -> StreakUpdate:
        """
        Streak after a review made at `now`.

        Args:
            current_streak: Streak before this review
            longest_streak: Longest streak before this review
            last_review_date: Previous review time, None if never reviewed
            now: Time of this review

        Returns:
            StreakUpdate(current_streak, longest_streak)
        """
        if last_review_date is None:
            new_streak = 1
        else:
            diff_days = StatsAggregator.calendar_days_between(last_review_date, now)
            if diff_days == 1:
                new_streak = current_streak + 1
            elif diff_days >= 2:
                new_streak = 1
            else:
                # Same day (or a clock that went backwards)
                new_streak = current_streak

        return StreakUpdate(new_streak, max(longest_streak, new_streak))

    @staticmethod
    def is_correct(quality: int) -> bool:
        return quality >= PASSING_QUALITY

    @staticmethod
    def accuracy(correct_reviews: int, total_reviews: int) -> int:
        """Percentage of correct reviews, rounded; 0 when nothing was reviewed"""
        if not total_reviews:
            return 0
        return round(correct_reviews / total_reviews * 100)
