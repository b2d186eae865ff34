import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, MultipleResultsFound
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.crud.flashcard import get_cards_by_set
from backend.crud.stats import apply_review, get_or_create_stats, lock_stats
from backend.errors import ConcurrencyError, CorruptProgressError, NotFoundError
from backend.identity import is_guest_id
from backend.models import CardProgress, Flashcard
from backend.sm2 import SM2Algorithm, utcnow, validate_quality

logger = logging.getLogger(__name__)


def _progress_query(db: Session, user_id: str, card_id: str):
    return db.query(CardProgress).filter(
        CardProgress.user_id == user_id,
        CardProgress.card_id == card_id
    )


def get_progress(db: Session, user_id: str, card_id: str) -> Optional[CardProgress]:
    """Get the progress row for a (user, card) pair if one exists"""
    try:
        return _progress_query(db, user_id, card_id).one_or_none()
    except MultipleResultsFound:
        logger.error("Duplicate progress rows for user %s card %s", user_id, card_id)
        raise ConcurrencyError(f"Duplicate progress rows for user {user_id} card {card_id}")


def get_or_create_progress(
    db: Session,
    user_id: str,
    card_id: str,
    now: Optional[datetime] = None
) -> CardProgress:
    """
    Get progress for a (user, card) pair, creating the default state on first access.

    Concurrent first access is resolved by the unique (user_id, card_id)
    constraint: the loser of the insert race rolls back and reads the
    winner's row, so exactly one record ever exists.
    """
    progress = get_progress(db, user_id, card_id)
    if progress:
        return progress

    ef, interval, reps, next_due = SM2Algorithm.initialize_card(now)
    progress = CardProgress(
        user_id=user_id,
        card_id=card_id,
        easiness_factor=ef,
        interval=interval,
        repetitions=reps,
        next_due_date=next_due
    )
    db.add(progress)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        progress = get_progress(db, user_id, card_id)
        if progress is None:
            # Not the unique constraint: the card itself is missing
            if db.get(Flashcard, card_id) is None:
                raise NotFoundError(f"Card {card_id} does not exist")
            raise ConcurrencyError(f"Could not create progress for user {user_id} card {card_id}")
        logger.info("Progress for user %s card %s was created concurrently, using existing row", user_id, card_id)
        return progress

    db.refresh(progress)
    logger.debug("Created progress for user %s card %s", user_id, card_id)
    return progress


def get_progress_for_set(
    db: Session,
    user_id: str,
    set_id: str,
    now: Optional[datetime] = None
) -> List[Tuple[Flashcard, CardProgress]]:
    """All cards of a set paired with the user's progress, created lazily"""
    cards = get_cards_by_set(db, set_id)
    if not cards:
        return []

    existing = {
        p.card_id: p
        for p in db.query(CardProgress).filter(
            CardProgress.user_id == user_id,
            CardProgress.card_id.in_([c.id for c in cards])
        ).all()
    }

    pairs = []
    for card in cards:
        progress = existing.get(card.id)
        if progress is None:
            progress = get_or_create_progress(db, user_id, card.id, now)
        pairs.append((card, progress))
    return pairs


def get_due_progress(db: Session, user_id: str, now: Optional[datetime] = None) -> List[CardProgress]:
    """All of a user's progress rows that are due, hardest first"""
    return db.query(CardProgress).filter(
        CardProgress.user_id == user_id,
        CardProgress.next_due_date <= (now or utcnow())
    ).order_by(CardProgress.easiness_factor, CardProgress.next_due_date).all()


def get_user_progress(db: Session, user_id: str) -> List[CardProgress]:
    return db.query(CardProgress).filter(CardProgress.user_id == user_id).all()


def apply_rating(
    db: Session,
    user_id: str,
    card_id: str,
    quality: int,
    now: Optional[datetime] = None
) -> CardProgress:
    """
    Apply one rating: the only code path that changes scheduling fields.

    Reads the current state under a row lock, runs SM-2, stores the result
    and, for signed-in users, updates stats in the same transaction.

    Raises:
        InvalidRatingError: quality outside 0-5
        NotFoundError: unknown card
        CorruptProgressError: stored state is unusable; nothing is written
        ConcurrencyError: the row changed underneath this update
    """
    quality = validate_quality(quality)
    now = now or utcnow()

    if db.get(Flashcard, card_id) is None:
        raise NotFoundError(f"Card {card_id} does not exist")

    get_or_create_progress(db, user_id, card_id, now)
    track_stats = not is_guest_id(user_id)
    if track_stats:
        get_or_create_stats(db, user_id)

    progress = _progress_query(db, user_id, card_id).with_for_update().populate_existing().one()

    try:
        result = SM2Algorithm.calculate_next_review(
            progress.easiness_factor,
            progress.interval,
            progress.repetitions,
            quality,
            reference_time=now
        )
    except CorruptProgressError:
        db.rollback()
        logger.error("Refusing to schedule corrupt progress row %s (user %s card %s)", progress.id, user_id, card_id)
        raise

    progress.easiness_factor = result.easiness_factor
    progress.interval = result.interval
    progress.repetitions = result.repetitions
    progress.last_review_date = now
    progress.next_due_date = result.next_due_date

    if track_stats:
        apply_review(lock_stats(db, user_id), quality, now)

    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("Concurrent update lost for user %s card %s", user_id, card_id)
        raise ConcurrencyError(f"Progress for card {card_id} was modified concurrently")

    db.refresh(progress)
    logger.info(
        "Rated card %s for %s: quality=%d interval=%d ef=%.2f",
        card_id, user_id, quality, progress.interval, progress.easiness_factor
    )
    return progress
