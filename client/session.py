import logging
import random
from enum import Enum
from typing import List, Optional, Set

from backend.identity import is_guest_id
from backend.ordering import card_set_key, order_for_review, shuffle_working_set
from backend.schemas import CardWithProgress, StatsResponse
from backend.sm2 import validate_quality
from client.api import ConnectivityError, FlashcardsApi, RequestRejectedError
from client.offline_queue import DrainResult, OfflineQueue
from client.state import ProgressState

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"          # no set selected yet
    EMPTY = "empty"        # the selected set has no cards: nothing to study
    ACTIVE = "active"
    COMPLETE = "complete"  # every card of the working set has been rated


class RatingOutcome(str, Enum):
    SYNCED = "synced"
    QUEUED = "queued"


class ReviewSession:
    """
    One user's study session against one card set.

    Every rating is applied to local state first; delivery to the server
    happens afterwards, directly when online or through the offline queue.
    """

    def __init__(
        self,
        api: FlashcardsApi,
        queue: OfflineQueue,
        user_id: str,
        state: Optional[ProgressState] = None,
        rng: Optional[random.Random] = None,
        batch_size: int = 0,
        online: bool = True,
    ):
        self.api = api
        self.queue = queue
        self.user_id = user_id
        self.api.user_id = user_id
        self.state = state or ProgressState()
        self.rng = rng or random.Random()
        self.batch_size = batch_size
        self.online = online

        self.stats: Optional[StatsResponse] = None
        self.working_set: List[str] = []
        self.position = 0
        self.reviewed: Set[str] = set()
        self._set_key: Optional[tuple] = None

    # ------------------------------------------------------------------
    # Lifecycle and connectivity
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Replay anything left over from an earlier offline session"""
        if self.online:
            await self.sync()

    async def set_online(self, online: bool) -> None:
        was_online = self.online
        self.online = online
        if online and not was_online:
            logger.info("Connection restored, replaying queued ratings")
            await self.sync()
        elif was_online and not online:
            logger.info("Connection lost, ratings will be queued")

    async def check_connectivity(self) -> bool:
        try:
            reachable = await self.api.health()
        except ConnectivityError:
            reachable = False
        await self.set_online(reachable)
        return reachable

    def _go_offline(self, reason: Exception) -> None:
        if self.online:
            logger.info("Going offline: %s", reason)
        self.online = False

    def switch_user(self, user_id: str) -> None:
        """Tear down everything that belonged to the previous user"""
        self.user_id = user_id
        self.api.user_id = user_id
        self.state.clear()
        self.stats = None
        self.working_set = []
        self.position = 0
        self.reviewed = set()
        self._set_key = None

    # ------------------------------------------------------------------
    # Card set and working set
    # ------------------------------------------------------------------
    async def select_set(self, set_id: str) -> None:
        """
        Load a set's cards. Offline, a set that was already loaded keeps its
        known state; a set never loaded cannot be studied.
        """
        cards = None
        if self.online:
            try:
                cards = await self.api.get_cards(set_id, self.user_id)
            except ConnectivityError as e:
                self._go_offline(e)

        if cards is not None:
            self.state.load(set_id, cards)
        elif self.state.set_id != set_id:
            raise ConnectivityError(f"Set {set_id} is not available offline")

        self._rebuild_working_set()

    def _rebuild_working_set(self, force: bool = False) -> bool:
        """Reshuffle only when the set identity changed (or when forced)"""
        key = card_set_key(self.state.set_id, self.state.card_ids())
        if key == self._set_key and not force:
            return False

        ordered = order_for_review(self.state.cards(), rng=self.rng)
        if self.batch_size:
            ordered = ordered[:self.batch_size]
        self.working_set = [card.id for card in shuffle_working_set(ordered, self.rng)]
        self.position = 0
        self.reviewed = set()
        self._set_key = key
        return True

    def restart(self) -> None:
        """Study the same set again with a fresh shuffle"""
        self._rebuild_working_set(force=True)

    @property
    def status(self) -> SessionStatus:
        if self.state.set_id is None:
            return SessionStatus.IDLE
        if not self.state.card_ids():
            return SessionStatus.EMPTY
        if self.position >= len(self.working_set):
            return SessionStatus.COMPLETE
        return SessionStatus.ACTIVE

    @property
    def current_card(self) -> Optional[CardWithProgress]:
        if self.status != SessionStatus.ACTIVE:
            return None
        return self.state.effective(self.working_set[self.position])

    @property
    def reviewed_count(self) -> int:
        return len(self.reviewed)

    @property
    def remaining(self) -> int:
        return max(len(self.working_set) - self.position, 0)

    # ------------------------------------------------------------------
    # Rating
    # ------------------------------------------------------------------
    async def rate(self, quality: int) -> RatingOutcome:
        """Rate the current card and move on to the next one"""
        quality = validate_quality(quality)
        card = self.current_card
        if card is None:
            raise RuntimeError(f"No card to rate, session is {self.status.value}")

        self.state.apply_local(card.id, quality)
        self.reviewed.add(card.id)
        self.position += 1
        return await self._submit(card.id, quality)

    async def _submit(self, card_id: str, quality: int) -> RatingOutcome:
        if not self.online or self.queue.is_pending(card_id, self.user_id):
            self.queue.enqueue(card_id, quality, self.user_id)
            return RatingOutcome.QUEUED

        # This rating supersedes anything still queued for the card
        self.queue.dequeue(card_id, self.user_id)
        self.queue.mark_pending(card_id, self.user_id)
        try:
            progress = await self.api.rate(card_id, quality)
        except ConnectivityError as e:
            self._go_offline(e)
            self.queue.enqueue(card_id, quality, self.user_id)
            return RatingOutcome.QUEUED
        except RequestRejectedError:
            self.state.revert(card_id)
            raise
        finally:
            self.queue.unmark_pending(card_id, self.user_id)

        self.state.confirm(card_id, progress)
        await self.refresh_stats()
        return RatingOutcome.SYNCED

    # ------------------------------------------------------------------
    # Server reconciliation
    # ------------------------------------------------------------------
    async def sync(self) -> DrainResult:
        """Replay queued ratings and reconcile confirmed ones"""
        result = await self.queue.drain_for_user(self.user_id, self.api.rate)
        if result.stopped:
            self._go_offline(ConnectivityError("replay interrupted"))

        for entry, progress in result.synced:
            # A newer local rating queued meanwhile keeps its override
            if self.queue.get(entry.card_id, self.user_id) is None:
                self.state.confirm(entry.card_id, progress)
        for entry in result.rejected:
            if self.queue.get(entry.card_id, self.user_id) is None:
                self.state.revert(entry.card_id)

        if result.synced:
            await self.refresh()
        return result

    async def refresh(self) -> None:
        """Refetch server-derived state: progress of the current set and stats"""
        if not self.online:
            return
        if self.state.set_id is not None:
            try:
                cards = await self.api.get_cards(self.state.set_id, self.user_id)
            except ConnectivityError as e:
                self._go_offline(e)
                return
            self.state.load(self.state.set_id, cards)
            self._rebuild_working_set()
        await self.refresh_stats()

    async def refresh_stats(self) -> Optional[StatsResponse]:
        if not self.online or is_guest_id(self.user_id):
            return self.stats
        try:
            self.stats = await self.api.get_stats(self.user_id)
        except ConnectivityError as e:
            self._go_offline(e)
        return self.stats
