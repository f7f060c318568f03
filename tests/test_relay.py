"""
Tests for the relay queue and the broadcast fan-out.
"""

import asyncio

import pytest

from conftest import make_event
from hookrelay.errors import RelayClosed, RelayFull
from hookrelay.relay import Broadcaster, RelayQueue


# ============================================================================
# RELAY QUEUE
# ============================================================================


@pytest.mark.asyncio
async def test_dequeue_preserves_enqueue_order():
    queue = RelayQueue(capacity=50)
    events = [make_event(n) for n in range(50)]

    for event in events:
        queue.enqueue(event)

    received = [await queue.dequeue() for _ in events]
    assert received == events
    assert queue.qsize() == 0


@pytest.mark.asyncio
async def test_enqueue_beyond_capacity_raises_without_losing_events():
    queue = RelayQueue(capacity=3)
    accepted = [make_event(n) for n in range(3)]
    for event in accepted:
        queue.enqueue(event)

    with pytest.raises(RelayFull):
        queue.enqueue(make_event(99))

    assert queue.qsize() == 3
    assert [await queue.dequeue() for _ in range(3)] == accepted
    assert queue.qsize() == 0


@pytest.mark.asyncio
async def test_capacity_frees_up_after_dequeue():
    queue = RelayQueue(capacity=1)
    queue.enqueue(make_event(1))
    assert queue.full()

    await queue.dequeue()
    queue.enqueue(make_event(2))

    assert (await queue.dequeue()).id == "delivery-2"


@pytest.mark.asyncio
async def test_dequeue_waits_for_enqueue():
    queue = RelayQueue(capacity=2)
    waiter = asyncio.create_task(queue.dequeue())
    await asyncio.sleep(0)
    assert not waiter.done()

    queue.enqueue(make_event(7))

    event = await asyncio.wait_for(waiter, timeout=1)
    assert event.id == "delivery-7"


@pytest.mark.asyncio
async def test_close_wakes_blocked_dequeue():
    queue = RelayQueue(capacity=2)
    waiter = asyncio.create_task(queue.dequeue())
    await asyncio.sleep(0)

    queue.close()

    with pytest.raises(RelayClosed):
        await asyncio.wait_for(waiter, timeout=1)


@pytest.mark.asyncio
async def test_close_drops_undelivered_events():
    queue = RelayQueue(capacity=5)
    queue.enqueue(make_event(1))
    queue.enqueue(make_event(2))

    queue.close()

    assert queue.closed
    assert queue.qsize() == 0
    with pytest.raises(RelayClosed):
        await queue.dequeue()


def test_enqueue_after_close_raises():
    queue = RelayQueue(capacity=5)
    queue.close()

    with pytest.raises(RelayClosed):
        queue.enqueue(make_event(1))


@pytest.mark.parametrize("capacity", [0, -1])
def test_capacity_must_be_positive(capacity):
    with pytest.raises(ValueError):
        RelayQueue(capacity)


def test_queue_is_its_own_subscription():
    queue = RelayQueue(capacity=1)
    assert queue.subscribe() is queue


# ============================================================================
# BROADCASTER
# ============================================================================


@pytest.mark.asyncio
async def test_every_subscriber_receives_every_event():
    broadcaster = Broadcaster(capacity=10)
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()
    events = [make_event(n) for n in range(3)]

    for event in events:
        broadcaster.enqueue(event)

    assert [await first.dequeue() for _ in events] == events
    assert [await second.dequeue() for _ in events] == events


@pytest.mark.asyncio
async def test_late_subscriber_sees_no_earlier_events():
    broadcaster = Broadcaster(capacity=10)
    early = broadcaster.subscribe()
    broadcaster.enqueue(make_event(1))

    late = broadcaster.subscribe()
    broadcaster.enqueue(make_event(2))

    assert early.qsize() == 2
    assert late.qsize() == 1
    assert (await late.dequeue()).id == "delivery-2"


@pytest.mark.asyncio
async def test_lagging_subscriber_misses_events_others_still_get():
    broadcaster = Broadcaster(capacity=1)
    slow = broadcaster.subscribe()
    fast = broadcaster.subscribe()

    broadcaster.enqueue(make_event(1))
    await fast.dequeue()
    broadcaster.enqueue(make_event(2))

    assert (await slow.dequeue()).id == "delivery-1"
    assert (await fast.dequeue()).id == "delivery-2"


def test_all_subscribers_full_signals_backpressure():
    broadcaster = Broadcaster(capacity=1)
    broadcaster.subscribe()
    broadcaster.subscribe()
    broadcaster.enqueue(make_event(1))

    with pytest.raises(RelayFull):
        broadcaster.enqueue(make_event(2))


def test_no_subscribers_signals_backpressure():
    broadcaster = Broadcaster(capacity=5)

    with pytest.raises(RelayFull):
        broadcaster.enqueue(make_event(1))


@pytest.mark.asyncio
async def test_unsubscribe_closes_subscription():
    broadcaster = Broadcaster(capacity=5)
    subscription = broadcaster.subscribe()

    broadcaster.unsubscribe(subscription)

    assert broadcaster.subscriber_count == 0
    with pytest.raises(RelayClosed):
        await subscription.dequeue()


@pytest.mark.asyncio
async def test_broadcaster_close_wakes_subscribers():
    broadcaster = Broadcaster(capacity=5)
    subscription = broadcaster.subscribe()
    waiter = asyncio.create_task(subscription.dequeue())
    await asyncio.sleep(0)

    broadcaster.close()

    with pytest.raises(RelayClosed):
        await asyncio.wait_for(waiter, timeout=1)
    with pytest.raises(RelayClosed):
        broadcaster.enqueue(make_event(1))
    with pytest.raises(RelayClosed):
        broadcaster.subscribe()
