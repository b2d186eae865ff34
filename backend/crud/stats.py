import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, MultipleResultsFound
from sqlalchemy.orm import Session

from backend.errors import ConcurrencyError
from backend.identity import is_guest_id
from backend.models import UserStats
from backend.stats import StatsAggregator

logger = logging.getLogger(__name__)


def _stats_query(db: Session, user_id: str):
    return db.query(UserStats).filter(UserStats.user_id == user_id)


def get_stats(db: Session, user_id: str) -> Optional[UserStats]:
    """Get stats for a user, None if the user never had a confirmed rating"""
    try:
        return _stats_query(db, user_id).one_or_none()
    except MultipleResultsFound:
        logger.error("Duplicate stats rows for user %s", user_id)
        raise ConcurrencyError(f"Duplicate stats rows for user {user_id}")


def get_or_create_stats(db: Session, user_id: str) -> UserStats:
    """Get the stats row for a signed-in user, creating a zeroed one if needed"""
    if is_guest_id(user_id):
        raise ValueError("Stats are not tracked for guest users")

    stats = get_stats(db, user_id)
    if stats:
        return stats

    stats = UserStats(
        user_id=user_id,
        total_reviews=0,
        correct_reviews=0,
        current_streak=0,
        longest_streak=0
    )
    db.add(stats)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Stats for %s were created concurrently, using existing row", user_id)
        stats = get_stats(db, user_id)
        if stats is None:
            raise ConcurrencyError(f"Could not create stats for user {user_id}")
        return stats
    db.refresh(stats)
    return stats


def lock_stats(db: Session, user_id: str) -> UserStats:
    """Re-read the stats row with a row lock for read-modify-write"""
    return _stats_query(db, user_id).with_for_update().populate_existing().one()


def apply_review(stats: UserStats, quality: int, now: datetime) -> UserStats:
    """Fold one confirmed rating into the counters. Does not commit."""
    stats.total_reviews = (stats.total_reviews or 0) + 1
    if StatsAggregator.is_correct(quality):
        stats.correct_reviews = (stats.correct_reviews or 0) + 1

    streak = StatsAggregator.update_streak(
        stats.current_streak or 0,
        stats.longest_streak or 0,
        stats.last_review_date,
        now
    )
    stats.current_streak = streak.current_streak
    stats.longest_streak = streak.longest_streak
    stats.last_review_date = now
    return stats
