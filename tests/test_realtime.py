"""Tests for the broadcast hub and its subscriptions."""

import asyncio
import json

import pytest

from blueguard.errors import SubscriberDeliveryFailure
from blueguard.realtime import BroadcastHub
from blueguard.schemas import Envelope, WaveData


async def drain(subscription):
    return [message async for message in subscription.messages()]


@pytest.mark.asyncio
async def test_every_subscriber_receives_each_message():
    hub = BroadcastHub()
    first, second = hub.subscribe(), hub.subscribe()

    assert hub.broadcast({"n": 1}) == 2

    assert first.queue.get_nowait() == {"n": 1}
    assert second.queue.get_nowait() == {"n": 1}


@pytest.mark.asyncio
async def test_closed_subscriber_is_evicted_and_others_still_receive():
    hub = BroadcastHub()
    gone, alive = hub.subscribe(), hub.subscribe()
    gone.closed = True

    assert hub.broadcast({"n": 1}) == 1

    assert gone not in hub.subscribers
    assert alive in hub.subscribers
    assert alive.queue.get_nowait() == {"n": 1}


@pytest.mark.asyncio
async def test_slow_subscriber_is_dropped_without_blocking():
    hub = BroadcastHub(queue_size=2)
    slow, fast = hub.subscribe(), hub.subscribe()

    for n in range(3):
        hub.broadcast({"n": n})
        fast.queue.get_nowait()

    assert slow not in hub.subscribers
    assert fast in hub.subscribers
    # Whatever was queued before the drop can still be read, then the stream ends
    received = await asyncio.wait_for(drain(slow), timeout=1)
    assert received == [{"n": 1}]


@pytest.mark.asyncio
async def test_deliver_raises_on_closed_subscription():
    hub = BroadcastHub()
    subscription = hub.subscribe()
    hub.unsubscribe(subscription)

    with pytest.raises(SubscriberDeliveryFailure):
        subscription.deliver({"n": 1})


@pytest.mark.asyncio
async def test_subscribing_during_broadcast_is_safe():
    hub = BroadcastHub()
    subscription = hub.subscribe()
    original = subscription.deliver

    def deliver_and_subscribe(message):
        original(message)
        hub.subscribe()

    subscription.deliver = deliver_and_subscribe
    assert hub.broadcast({"n": 1}) == 1
    assert len(hub.subscribers) == 2


@pytest.mark.asyncio
async def test_close_ends_every_stream():
    hub = BroadcastHub()
    subscription = hub.subscribe()
    hub.broadcast({"n": 1})

    hub.close()

    assert hub.subscribers == set()
    assert await asyncio.wait_for(drain(subscription), timeout=1) == [{"n": 1}]


@pytest.mark.asyncio
async def test_publish_wraps_envelope(make_reading):
    hub = BroadcastHub()
    subscription = hub.subscribe()
    envelope = Envelope(reading=make_reading(WaveData(height=1.0, period=8.0, direction=90.0, energy=10.0)))

    hub.publish(envelope)

    message = subscription.queue.get_nowait()
    assert message["kind"] == "reading"
    assert message["payload"]["reading"]["data"]["kind"] == "wave"
    assert message["payload"]["alerts"] == []


@pytest.mark.asyncio
async def test_sse_stream_format():
    hub = BroadcastHub()
    subscription = hub.subscribe()
    hub.broadcast({"n": 1})
    hub.unsubscribe(subscription)

    chunks = [chunk async for chunk in hub.stream(subscription)]

    assert chunks == [f"data: {json.dumps({'n': 1})}\n\n"]
