"""Tests for the live update broadcaster."""

import json
import asyncio
import threading

import pytest

from taskdesk.errors import InvalidIdentifier
from taskdesk.realtime.broadcaster import Broadcaster, SinkFull, HEARTBEAT_EVENT


def drain(sink):
    frames = []
    while not sink.queue.empty():
        frame = sink.queue.get_nowait()
        if frame is not None:
            frames.append(frame)
    return frames


async def test_publish_to_everyone(broadcaster):
    alice = broadcaster.subscribe("alice")
    bob = broadcaster.subscribe("bob")

    delivered = broadcaster.publish("task_created", {"id": "t1"})

    assert delivered == 2
    for sink in (alice, bob):
        (frame,) = drain(sink)
        assert frame["event"] == "task_created"
        assert json.loads(frame["data"]) == {"id": "t1"}


async def test_targeted_publish(broadcaster):
    alice = broadcaster.subscribe("alice")
    bob = broadcaster.subscribe("bob")

    assert broadcaster.publish("task_updated", {"id": "t1"}, target_recipient_id="bob") == 1
    assert drain(alice) == []
    assert len(drain(bob)) == 1


async def test_publish_to_absent_recipient_is_noop(broadcaster):
    broadcaster.subscribe("alice")

    assert broadcaster.publish("task_created", {"id": "t1"}, target_recipient_id="nobody") == 0
    assert broadcaster.is_connected("alice")


def test_publish_with_no_subscribers(broadcaster):
    assert broadcaster.publish("task_created", {"id": "t1"}) == 0


async def test_failing_sink_is_pruned_and_others_still_receive(broadcaster):
    broken = broadcaster.subscribe("broken")
    healthy = broadcaster.subscribe("healthy")

    def fail(frame):
        raise SinkFull("buffer full")

    broken.write = fail

    delivered = broadcaster.publish("task_created", {"id": "t1"})

    assert delivered == 1
    assert not broadcaster.is_connected("broken")
    assert broadcaster.is_connected("healthy")
    assert broken.closed
    assert len(drain(healthy)) == 1


async def test_full_buffer_prunes_sink():
    broadcaster = Broadcaster(heartbeat_interval=0, queue_size=2)
    sink = broadcaster.subscribe("slow")

    assert broadcaster.publish("e", 1) == 1
    assert broadcaster.publish("e", 2) == 1
    assert broadcaster.publish("e", 3) == 0

    assert not broadcaster.is_connected("slow")
    assert sink.closed


async def test_resubscribe_replaces_previous_sink(broadcaster):
    old = broadcaster.subscribe("alice")
    new = broadcaster.subscribe("alice")

    assert old.closed
    assert len(broadcaster) == 1

    # Stale connection cleanup must not drop the newer sink
    assert broadcaster.unsubscribe("alice", old) is False
    assert broadcaster.is_connected("alice")

    broadcaster.publish("task_created", {"id": "t1"})
    assert len(drain(new)) == 1

    assert broadcaster.unsubscribe("alice", new) is True
    assert len(broadcaster) == 0


async def test_closed_sink_stream_ends(broadcaster):
    sink = broadcaster.subscribe("alice")
    broadcaster.publish("task_created", {"id": "t1"})
    broadcaster.unsubscribe("alice")

    frames = [frame async for frame in sink.frames()]

    assert [f["event"] for f in frames] == ["task_created"]


async def test_publish_from_worker_thread(broadcaster):
    sink = broadcaster.subscribe("alice")
    results = []

    thread = threading.Thread(target=lambda: results.append(broadcaster.publish("task_created", {"id": "t1"})))
    thread.start()
    thread.join()

    frame = await asyncio.wait_for(sink.queue.get(), timeout=1.0)
    assert results == [1]
    assert frame["event"] == "task_created"


async def test_heartbeat_frames():
    broadcaster = Broadcaster(heartbeat_interval=0.01, queue_size=10)
    sink = broadcaster.subscribe("alice")

    frame = await asyncio.wait_for(sink.queue.get(), timeout=1.0)

    assert frame["event"] == HEARTBEAT_EVENT
    broadcaster.close_all()


async def test_failed_heartbeat_deregisters():
    broadcaster = Broadcaster(heartbeat_interval=0.01, queue_size=1)
    broadcaster.subscribe("alice")

    # Nobody drains the queue, so the second heartbeat overflows it
    for _ in range(100):
        if not broadcaster.is_connected("alice"):
            break
        await asyncio.sleep(0.01)

    assert not broadcaster.is_connected("alice")


def test_heartbeat_event_is_reserved(broadcaster):
    with pytest.raises(ValueError):
        broadcaster.publish(HEARTBEAT_EVENT, {})


async def test_blank_recipient_rejected(broadcaster):
    with pytest.raises(InvalidIdentifier):
        broadcaster.subscribe("  ")
