from backend.crud.flashcard import create_set, get_sets, get_set, get_cards_by_set, delete_set
from backend.crud.progress import (
    get_progress,
    get_or_create_progress,
    get_progress_for_set,
    get_due_progress,
    get_user_progress,
    apply_rating
)
from backend.crud.stats import get_stats, get_or_create_stats

__all__ = [
    "create_set",
    "get_sets",
    "get_set",
    "get_cards_by_set",
    "delete_set",
    "get_progress",
    "get_or_create_progress",
    "get_progress_for_set",
    "get_due_progress",
    "get_user_progress",
    "apply_rating",
    "get_stats",
    "get_or_create_stats",
]
