from __future__ import annotations

import asyncio

import pytest
from conftest import dt

from mottuguard._constants import EVENT_POSITION_UPDATE, EVENT_STATUS_UPDATE
from mottuguard.live import LiveChannel, LiveUpdate


@pytest.mark.asyncio
async def test_publish_fans_out_to_every_subscriber() -> None:
    live = LiveChannel()

    async with live.subscribe() as first, live.subscribe() as second:
        assert live.subscriber_count == 2
        delivered = live.publish(EVENT_POSITION_UPDATE, "00AABBCCDDEEFF01", 1.0, 2.0, dt())

        assert delivered == 2
        for subscription in (first, second):
            update = await asyncio.wait_for(subscription.get(), timeout=1)
            assert update.event == EVENT_POSITION_UPDATE
            assert update.args == ("00AABBCCDDEEFF01", 1.0, 2.0, dt())

    assert live.subscriber_count == 0
    assert live.published == 1


@pytest.mark.asyncio
async def test_publish_without_listeners_is_a_no_op() -> None:
    live = LiveChannel()

    assert live.publish(EVENT_STATUS_UPDATE, "00AABBCCDDEEFF01", {}) == 0
    assert live.published == 1


@pytest.mark.asyncio
async def test_full_buffer_drops_for_that_listener_only() -> None:
    live = LiveChannel(queue_size=2)
    slow = live.open()
    fast = live.open()

    for i in range(3):
        live.publish(EVENT_STATUS_UPDATE, i)
        fast.drain()

    assert slow.dropped == 1
    assert [update.args for update in slow.drain()] == [(0,), (1,)]
    assert fast.dropped == 0


@pytest.mark.asyncio
async def test_subscription_iterates_in_publish_order() -> None:
    live = LiveChannel()
    received: list[int] = []

    async with live.subscribe() as subscription:
        for i in range(3):
            live.publish(EVENT_STATUS_UPDATE, i)
        async for update in subscription:
            received.append(update.args[0])
            if len(received) == 3:
                break

    assert received == [0, 1, 2]


def test_update_json_uses_iso_timestamps() -> None:
    update = LiveUpdate(
        event="ReceiveRangingUpdate",
        args=("00AABBCCDDEEFF01", {"A1": {"distance": 3.0, "rssi": -70}}, dt(1.5)),
    )

    assert update.to_json_dict() == {
        "event": "ReceiveRangingUpdate",
        "args": ["00AABBCCDDEEFF01", {"A1": {"distance": 3.0, "rssi": -70}}, "2026-01-01T00:00:01.500000+00:00"],
    }
