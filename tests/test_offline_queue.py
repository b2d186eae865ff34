import logging

import pytest

from backend.errors import InvalidRatingError
from client.api import ConnectivityError, RequestRejectedError
from client.offline_queue import QUEUE_KEY, OfflineQueue
from client.storage import LocalStorage


class FakeServer:
    """Records submissions; fails the ones listed in `failures`."""

    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []

    async def submit(self, card_id, quality):
        self.calls.append((card_id, quality))
        error = self.failures.get(card_id)
        if error:
            raise error
        return {"card_id": card_id, "quality": quality}


def test_enqueue_and_read_back(queue):
    rating_id = queue.enqueue("c1", 4, "alice")
    [entry] = queue.entries()
    assert entry.card_id == "c1"
    assert entry.quality == 4
    assert entry.user_id == "alice"
    assert entry.rating_id == rating_id
    assert entry.timestamp > 0


def test_newer_rating_replaces_older_in_place(queue):
    first_id = queue.enqueue("c1", 3, "alice")
    queue.enqueue("c2", 4, "alice")
    second_id = queue.enqueue("c1", 5, "alice")

    entries = queue.entries()
    assert [(e.card_id, e.quality) for e in entries] == [("c1", 5), ("c2", 4)]
    assert second_id != first_id
    assert queue.get("c1", "alice").rating_id == second_id


def test_users_are_kept_apart(queue):
    queue.enqueue("c1", 3, "alice")
    queue.enqueue("c1", 5, "bob")
    assert len(queue.entries()) == 2
    assert [e.quality for e in queue.entries_for_user("bob")] == [5]

    queue.clear_user("alice")
    assert [e.user_id for e in queue.entries()] == ["bob"]


def test_invalid_quality_is_not_queued(queue):
    with pytest.raises(InvalidRatingError):
        queue.enqueue("c1", 9, "alice")
    assert queue.entries() == []


def test_queue_survives_restart(tmp_path):
    path = tmp_path / "storage.json"
    OfflineQueue(LocalStorage(path)).enqueue("c1", 2, "alice")
    [entry] = OfflineQueue(LocalStorage(path)).entries()
    assert (entry.card_id, entry.quality) == ("c1", 2)


@pytest.mark.parametrize("raw", ["not json", '{"card_id": "c1"}', '[{"card_id": "c1"}]'])
def test_corrupted_queue_reads_as_empty(storage, queue, raw):
    storage.set_item(QUEUE_KEY, raw)
    assert queue.entries() == []

    queue.enqueue("c1", 4, "alice")
    assert len(queue.entries()) == 1


def test_dequeue_only_matching_rating(queue):
    old_id = queue.enqueue("c1", 3, "alice")
    queue.enqueue("c1", 4, "alice")

    assert not queue.dequeue("c1", "alice", old_id)
    assert queue.get("c1", "alice").quality == 4
    assert queue.dequeue("c1", "alice")
    assert queue.get("c1", "alice") is None
    assert not queue.dequeue("c1", "alice")


def test_pending_markers_are_not_persisted(storage, queue):
    queue.mark_pending("c1", "alice")
    assert queue.is_pending("c1", "alice")
    assert not queue.is_pending("c1", "bob")
    assert not OfflineQueue(storage).is_pending("c1", "alice")

    queue.unmark_pending("c1", "alice")
    assert not queue.is_pending("c1", "alice")


@pytest.mark.asyncio
async def test_drain_submits_in_order(queue):
    queue.enqueue("c1", 3, "alice")
    queue.enqueue("c2", 5, "alice")
    queue.enqueue("c3", 1, "bob")
    server = FakeServer()

    result = await queue.drain_for_user("alice", server.submit)

    assert server.calls == [("c1", 3), ("c2", 5)]
    assert [entry.card_id for entry, _ in result.synced] == ["c1", "c2"]
    assert result.synced[0][1] == {"card_id": "c1", "quality": 3}
    assert not result.stopped
    assert [e.user_id for e in queue.entries()] == ["bob"]
    assert not queue.is_pending("c1", "alice")


@pytest.mark.asyncio
async def test_drain_stops_when_server_unreachable(queue):
    for card_id in ("c1", "c2", "c3"):
        queue.enqueue(card_id, 4, "alice")
    server = FakeServer({"c2": ConnectivityError("connection refused")})

    result = await queue.drain_for_user("alice", server.submit)

    assert result.stopped
    assert server.calls == [("c1", 4), ("c2", 4)]
    assert [e.card_id for e in queue.entries()] == ["c2", "c3"]
    assert not queue.is_pending("c2", "alice")


@pytest.mark.asyncio
async def test_drain_drops_rejected_ratings(queue):
    queue.enqueue("gone", 4, "alice")
    queue.enqueue("c2", 4, "alice")
    server = FakeServer({"gone": RequestRejectedError(404, "Not found")})

    result = await queue.drain_for_user("alice", server.submit)

    assert [e.card_id for e in result.rejected] == ["gone"]
    assert [e.card_id for e, _ in result.synced] == ["c2"]
    assert queue.entries() == []


@pytest.mark.asyncio
async def test_drain_skips_ratings_in_flight(queue):
    queue.enqueue("c1", 4, "alice")
    queue.enqueue("c2", 4, "alice")
    queue.mark_pending("c1", "alice")
    server = FakeServer()

    result = await queue.drain_for_user("alice", server.submit)

    assert server.calls == [("c2", 4)]
    assert [e.card_id for e in result.skipped] == ["c1"]
    assert [e.card_id for e in queue.entries()] == ["c1"]


@pytest.mark.asyncio
async def test_rating_made_during_submit_is_kept(queue):
    queue.enqueue("c1", 2, "alice")

    async def submit(card_id, quality):
        # The user rates the card again while the old rating is on the wire
        queue.enqueue(card_id, 5, "alice")
        return {}

    result = await queue.drain_for_user("alice", submit)

    assert len(result.synced) == 1
    assert queue.get("c1", "alice").quality == 5


@pytest.mark.asyncio
async def test_drain_empty_queue(queue):
    server = FakeServer()
    result = await queue.drain_for_user("alice", server.submit)
    assert server.calls == []
    assert result.synced == [] and not result.stopped


def test_corrupted_queue_is_logged(storage, queue, caplog):
    storage.set_item(QUEUE_KEY, "not json")
    with caplog.at_level(logging.WARNING, logger="client.offline_queue"):
        assert queue.entries() == []

    [record] = caplog.records
    assert record.msg == "Offline queue is corrupted, treating it as empty: %s"
    assert "treating it as empty" in record.getMessage()
