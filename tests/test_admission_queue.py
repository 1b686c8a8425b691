# SPDX-License-Identifier: MIT
"""Tests for the FIFO admission queue."""

from __future__ import annotations

import pytest

from dispatch import AdmissionQueue
from dispatch.models import DUPLICATE_MESSAGE, POSITION_UPDATE, payload
from utils import CollectingErrorHandler


@pytest.fixture()
def queue(channels) -> AdmissionQueue:
    channels.open("A", "B", "C")
    return AdmissionQueue(channels)


@pytest.mark.asyncio()
async def test_enqueue_preserves_submission_order(queue):
    results = [
        await queue.enqueue(f"user-{name}", name, f"code {name}") for name in "ABC"
    ]

    assert [r.id for r in results] == [1, 2, 3]
    assert [r.position for r in results] == [1, 2, 3]
    assert [r.queue_length for r in results] == [1, 2, 3]
    assert [item.id for item in queue.stats().items] == [1, 2, 3]
    assert [queue.status_for(name).position for name in "ABC"] == [1, 2, 3]


@pytest.mark.asyncio()
async def test_resubmission_returns_existing_item(queue):
    first = await queue.enqueue("u1", "A", "x = 1")
    await queue.enqueue("u2", "B", "y = 2")

    again = await queue.enqueue("u1", "A", "x = 2")

    assert again.id == first.id
    assert again.position == 1
    assert again.duplicate is True
    assert again.message == DUPLICATE_MESSAGE
    assert len(queue) == 2
    assert queue.total_admitted == 2
    assert "duplicate" not in payload(again)


@pytest.mark.asyncio()
async def test_estimated_wait_is_three_seconds_per_position(queue):
    for name in "ABC":
        await queue.enqueue("u", name, "pass")

    status = queue.status_for("C")

    assert status.in_queue is True
    assert status.estimated_wait_time == 9
    assert payload(status) == {
        "inQueue": True,
        "position": 3,
        "queueLength": 3,
        "estimatedWaitTime": 9,
        "requestId": 3,
    }


@pytest.mark.asyncio()
async def test_status_for_absent_channel(queue):
    await queue.enqueue("u", "A", "pass")

    status = queue.status_for("missing")

    assert payload(status) == {
        "inQueue": False,
        "position": 0,
        "queueLength": 1,
        "estimatedWaitTime": 0,
    }


@pytest.mark.asyncio()
async def test_enqueue_broadcasts_positions(queue, channels):
    await queue.enqueue("u", "A", "pass")
    await queue.enqueue("u", "B", "pass")

    assert channels.of("A")[-1] == (
        POSITION_UPDATE,
        {"position": 1, "queueLength": 2, "estimatedWaitTime": 3, "requestId": 1},
    )
    assert channels.of("B")[-1][1]["position"] == 2


@pytest.mark.asyncio()
async def test_duplicate_does_not_broadcast(queue, channels):
    await queue.enqueue("u", "A", "pass")
    before = len(channels.events)

    await queue.enqueue("u", "A", "pass")

    assert len(channels.events) == before


@pytest.mark.asyncio()
async def test_cancel_shifts_later_positions(queue, channels):
    for name in "ABC":
        await queue.enqueue("u", name, "pass")

    assert await queue.dequeue_by_channel("B") is True

    assert len(queue) == 2
    assert queue.status_for("B").in_queue is False
    assert queue.status_for("C").position == 2
    assert channels.of("C")[-1][1] == {
        "position": 2,
        "queueLength": 2,
        "estimatedWaitTime": 6,
        "requestId": 3,
    }


@pytest.mark.asyncio()
async def test_cancel_unknown_channel_changes_nothing(queue, channels):
    await queue.enqueue("u", "A", "pass")
    before = len(channels.events)

    assert await queue.dequeue_by_channel("nobody") is False

    assert len(queue) == 1
    assert len(channels.events) == before


@pytest.mark.asyncio()
async def test_next_item_is_single_flight(queue):
    await queue.enqueue("u", "A", "pass")
    await queue.enqueue("u", "B", "pass")

    item = await queue.next_item()

    assert item is not None and item.channel_id == "A"
    assert item.status == "processing"
    assert queue.is_processing is True
    assert await queue.next_item() is None

    await queue.complete(item)

    assert queue.is_processing is False
    following = await queue.next_item()
    assert following is not None and following.channel_id == "B"


@pytest.mark.asyncio()
async def test_cancelling_in_flight_item_marks_it(queue):
    await queue.enqueue("u", "A", "pass")
    item = await queue.next_item()

    assert await queue.dequeue_by_channel("A") is True
    assert item.cancelled is True
    assert await queue.dequeue_by_channel("A") is False


@pytest.mark.asyncio()
async def test_stats_snapshot(queue):
    await queue.enqueue("user-1", "A", "pass")
    await queue.enqueue("user-2", "B", "pass")

    stats = payload(queue.stats())

    assert stats["queueLength"] == 2
    assert stats["isProcessing"] is False
    assert stats["totalEverAdmitted"] == 2
    assert [entry["userId"] for entry in stats["items"]] == ["user-1", "user-2"]
    assert {entry["status"] for entry in stats["items"]} == {"queued"}


@pytest.mark.asyncio()
async def test_clear_drops_items_silently(queue, channels):
    for name in "ABC":
        await queue.enqueue("u", name, "pass")
    await queue.next_item()
    before = len(channels.events)

    removed = await queue.clear()

    assert removed == 2
    assert len(queue) == 0
    assert queue.is_processing is False
    assert len(channels.events) == before
    assert queue.total_admitted == 3
    assert (await queue.enqueue("u", "A", "pass")).id == 4


@pytest.mark.asyncio()
async def test_failed_position_update_is_reported(channels):
    def _broken(event, data):
        raise ConnectionError("socket gone")

    channels.connect("A", _broken)
    channels.open("B")
    errors = CollectingErrorHandler()
    queue = AdmissionQueue(channels, error_handler=errors)

    await queue.enqueue("u", "A", "pass")
    result = await queue.enqueue("u", "B", "pass")

    assert result.position == 2
    assert len(errors.reports) == 2
    assert isinstance(errors.reports[0][1], ConnectionError)
    assert channels.of("B")[-1][0] == POSITION_UPDATE


@pytest.mark.asyncio()
async def test_wait_idle_tracks_pending_work(queue):
    await queue.wait_idle()
    await queue.enqueue("u", "A", "pass")

    assert queue._idle.is_set() is False

    item = await queue.next_item()
    await queue.complete(item)

    assert queue._idle.is_set() is True


def test_negative_eta_constant_is_rejected(channels):
    with pytest.raises(ValueError):
        AdmissionQueue(channels, seconds_per_item=-1)
