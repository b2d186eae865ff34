"""
Offline durable queue for ratings the server has not confirmed yet.

Delivery is at-least-once; the server-side effect is idempotent per queued
entry because an entry is only removed after the server confirmed it, and a
newer rating for the same card replaces the older entry (last rating wins).
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from pydantic import BaseModel, TypeAdapter, ValidationError

from backend.sm2 import validate_quality
from client.api import ConnectivityError, RequestRejectedError
from client.storage import LocalStorage

logger = logging.getLogger(__name__)

QUEUE_KEY = "flashcards_offline_queue"


class QueuedRating(BaseModel):
    card_id: str
    quality: int
    user_id: str
    timestamp: int  # epoch milliseconds
    rating_id: str


_queue_adapter = TypeAdapter(List[QueuedRating])

SubmitFn = Callable[[str, int], Awaitable[Any]]


@dataclass
class DrainResult:
    synced: List[Tuple[QueuedRating, Any]] = field(default_factory=list)
    rejected: List[QueuedRating] = field(default_factory=list)
    skipped: List[QueuedRating] = field(default_factory=list)
    stopped: bool = False  # a connectivity failure ended the drain early


def _new_rating_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}"


class OfflineQueue:
    """
    Per-user queue of unconfirmed ratings stored in LocalStorage.

    At most one entry per (user, card). In-flight markers live in memory
    only: they guard against double submission within this process and must
    not outlive it.
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self._pending: Set[Tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _read(self) -> List[QueuedRating]:
        raw = self.storage.get_item(QUEUE_KEY)
        if not raw:
            return []
        try:
            return _queue_adapter.validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning("Offline queue is corrupted, treating it as empty: %s", e)
            return []

    def _write(self, queue: List[QueuedRating]) -> None:
        self.storage.set_item(QUEUE_KEY, _queue_adapter.dump_json(queue).decode("utf-8"))

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------
    def entries(self) -> List[QueuedRating]:
        return self._read()

    def entries_for_user(self, user_id: str) -> List[QueuedRating]:
        return [q for q in self._read() if q.user_id == user_id]

    def get(self, card_id: str, user_id: str) -> Optional[QueuedRating]:
        for q in self._read():
            if q.card_id == card_id and q.user_id == user_id:
                return q
        return None

    def enqueue(self, card_id: str, quality: int, user_id: str) -> str:
        """
        Queue a rating, replacing any earlier one for the same card.

        The replacement keeps the earlier entry's position in the queue but
        always gets a fresh rating id.
        """
        quality = validate_quality(quality)
        entry = QueuedRating(
            card_id=card_id,
            quality=quality,
            user_id=user_id,
            timestamp=int(time.time() * 1000),
            rating_id=_new_rating_id(),
        )
        queue = self._read()
        for i, existing in enumerate(queue):
            if existing.card_id == card_id and existing.user_id == user_id:
                queue[i] = entry
                break
        else:
            queue.append(entry)
        self._write(queue)
        logger.info("Queued rating %d for card %s (%d queued)", quality, card_id, len(queue))
        return entry.rating_id

    def dequeue(self, card_id: str, user_id: str, rating_id: Optional[str] = None) -> bool:
        """
        Remove the entry for a card. With a rating_id, only remove it if it is
        still that exact entry (a newer rating may have replaced it meanwhile).
        """
        queue = self._read()
        kept = [
            q for q in queue
            if not (q.card_id == card_id and q.user_id == user_id and (rating_id is None or q.rating_id == rating_id))
        ]
        if len(kept) == len(queue):
            return False
        self._write(kept)
        return True

    def clear_user(self, user_id: str) -> None:
        self._write([q for q in self._read() if q.user_id != user_id])
        self._pending = {p for p in self._pending if p[0] != user_id}

    # ------------------------------------------------------------------
    # In-flight markers
    # ------------------------------------------------------------------
    def mark_pending(self, card_id: str, user_id: str) -> None:
        self._pending.add((user_id, card_id))

    def unmark_pending(self, card_id: str, user_id: str) -> None:
        self._pending.discard((user_id, card_id))

    def is_pending(self, card_id: str, user_id: str) -> bool:
        return (user_id, card_id) in self._pending

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------
    async def drain_for_user(self, user_id: str, submit: SubmitFn) -> DrainResult:
        """
        Replay queued ratings for a user, one at a time, in queue order.

        Stops at the first ConnectivityError. Entries the server rejects
        outright are dropped since they can never succeed.
        """
        result = DrainResult()
        for entry in self.entries_for_user(user_id):
            if self.is_pending(entry.card_id, user_id):
                result.skipped.append(entry)
                continue

            self.mark_pending(entry.card_id, user_id)
            try:
                confirmed = await submit(entry.card_id, entry.quality)
            except ConnectivityError as e:
                logger.info("Replay stopped, server unreachable: %s", e)
                result.stopped = True
                break
            except RequestRejectedError as e:
                logger.warning("Server rejected queued rating for card %s, dropping it: %s", entry.card_id, e)
                self.dequeue(entry.card_id, user_id, entry.rating_id)
                result.rejected.append(entry)
                continue
            finally:
                self.unmark_pending(entry.card_id, user_id)

            self.dequeue(entry.card_id, user_id, entry.rating_id)
            result.synced.append((entry, confirmed))

        if result.synced or result.rejected:
            logger.info(
                "Replayed %d queued ratings for %s (%d rejected, %d still queued)",
                len(result.synced), user_id, len(result.rejected), len(self.entries_for_user(user_id))
            )
        return result
