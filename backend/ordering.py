"""
Review ordering policy.

Decides which cards a study session presents and in what order. Works on any
objects exposing ``easiness_factor`` and ``next_due_date`` attributes, so the
same code orders server-side ORM rows and client-side card snapshots.
"""

from __future__ import annotations

import random
from datetime import datetime
from typing import Hashable, Optional, Sequence, TypeVar

from backend.sm2 import SM2Algorithm, utcnow

T = TypeVar("T")


def partition_due(cards: Sequence[T], now: Optional[datetime] = None) -> tuple[list[T], list[T]]:
    """Split cards into (due, not_due) preserving input order."""
    now = now or utcnow()
    due: list[T] = []
    not_due: list[T] = []
    for card in cards:
        if SM2Algorithm.is_due_for_review(card.next_due_date, now):
            due.append(card)
        else:
            not_due.append(card)
    return due, not_due


def order_for_review(
    cards: Sequence[T],
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> list[T]:
    """
    Due cards first, hardest (lowest easiness factor) first; then the
    remaining cards in a per-call random order.
    """
    due, not_due = partition_due(cards, now)
    due.sort(key=lambda card: card.easiness_factor)
    (rng or random).shuffle(not_due)
    return due + not_due


def shuffle_working_set(cards: Sequence[T], rng: Optional[random.Random] = None) -> list[T]:
    """Return a shuffled copy; the input is left untouched."""
    shuffled = list(cards)
    (rng or random).shuffle(shuffled)
    return shuffled


def card_set_key(set_id: Optional[str], card_ids: Sequence[Hashable]) -> tuple:
    """
    Identity of a card set as seen by a session.

    Changes when another set is selected or cards are added or removed, but
    not when the same cards come back with refreshed progress.
    """
    return (set_id, frozenset(card_ids))


def count_due(cards: Sequence[T], now: Optional[datetime] = None) -> int:
    due, _ = partition_due(cards, now)
    return len(due)
