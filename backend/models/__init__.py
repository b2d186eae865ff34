from backend.models.flashcard_set import FlashcardSet
from backend.models.flashcard import Flashcard
from backend.models.card_progress import CardProgress
from backend.models.user_stats import UserStats

__all__ = [
    "FlashcardSet",
    "Flashcard",
    "CardProgress",
    "UserStats",
]
