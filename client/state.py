"""
Two-layer progress state for the study client.

The authoritative layer holds what the server last returned. The override
layer holds optimistic results computed locally by the same SM-2 code the
server runs. A card's override is removed exactly when the server confirms a
write for that card, at which point the server's record becomes the value.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from backend.schemas import CardWithProgress, ProgressResponse
from backend.sm2 import SM2Algorithm, get_mastery_level, utcnow


class ProgressState:
    def __init__(self):
        self.set_id: Optional[str] = None
        self._authoritative: Dict[str, CardWithProgress] = {}
        self._order: List[str] = []
        self._overrides: Dict[str, CardWithProgress] = {}

    def load(self, set_id: str, cards: Iterable[CardWithProgress]) -> None:
        """Replace the authoritative layer with freshly fetched cards"""
        cards = list(cards)
        self.set_id = set_id
        self._authoritative = {card.id: card for card in cards}
        self._order = [card.id for card in cards]

    def card_ids(self) -> List[str]:
        return list(self._order)

    def authoritative(self, card_id: str) -> Optional[CardWithProgress]:
        return self._authoritative.get(card_id)

    def effective(self, card_id: str) -> Optional[CardWithProgress]:
        """The value to display right now: override if any, else server data"""
        return self._overrides.get(card_id) or self._authoritative.get(card_id)

    def cards(self) -> List[CardWithProgress]:
        return [self.effective(card_id) for card_id in self._order]

    def has_override(self, card_id: str) -> bool:
        return card_id in self._overrides

    def overridden_ids(self) -> List[str]:
        return list(self._overrides)

    def apply_local(self, card_id: str, quality: int, now: Optional[datetime] = None) -> CardWithProgress:
        """
        Run SM-2 on the card's effective state and store the result as an
        override. Repeated local ratings chain on top of each other.
        """
        current = self.effective(card_id)
        if current is None:
            raise KeyError(f"Card {card_id} is not loaded")

        now = now or utcnow()
        result = SM2Algorithm.calculate_next_review(
            current.easiness_factor,
            current.interval,
            current.repetitions,
            quality,
            reference_time=now
        )
        override = current.model_copy(update={
            "easiness_factor": result.easiness_factor,
            "interval": result.interval,
            "repetitions": result.repetitions,
            "last_review_date": now,
            "next_due_date": result.next_due_date,
            "mastery": get_mastery_level(result.repetitions, result.easiness_factor, result.interval),
        })
        self._overrides[card_id] = override
        return override

    def confirm(self, card_id: str, progress: ProgressResponse) -> None:
        """Trust the server's record for a card and drop its override"""
        base = self._authoritative.get(card_id)
        if base is not None:
            self._authoritative[card_id] = base.model_copy(update={
                "easiness_factor": progress.easiness_factor,
                "interval": progress.interval,
                "repetitions": progress.repetitions,
                "last_review_date": progress.last_review_date,
                "next_due_date": progress.next_due_date,
                "mastery": get_mastery_level(progress.repetitions, progress.easiness_factor, progress.interval),
            })
        self._overrides.pop(card_id, None)

    def revert(self, card_id: str) -> None:
        """Drop an override the server will never confirm"""
        self._overrides.pop(card_id, None)

    def clear(self) -> None:
        """Forget everything, e.g. when another user signs in"""
        self.set_id = None
        self._authoritative = {}
        self._order = []
        self._overrides = {}
