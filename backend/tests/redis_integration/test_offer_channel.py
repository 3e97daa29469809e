import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from offernav.domain.offers.exceptions import ChannelError
from offernav.domain.offers.models import ChangeFilter
from offernav.domain.offers.realtime import RedisRealtimeChannel, channel_key, publish_offer_change

TOPIC = "customer-offers-updates-user-a"


def _filter(user_id="user-a"):
    return ChangeFilter(table="service_offers", column="customer_id", value=user_id)


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


def test_channel_key_is_owner_scoped():
    assert channel_key(_filter(), prefix="rt") == "rt:public:service_offers:customer_id=eq.user-a"


@pytest.mark.asyncio
async def test_subscription_only_sees_owner_updates(fake_redis):
    received = []
    channel = RedisRealtimeChannel(fake_redis, poll_timeout=0.05)
    subscription = await channel.subscribe(TOPIC, _filter(), received.append)
    try:
        await publish_offer_change("user-b", {"id": "o2", "customer_id": "user-b", "status": "accepted"}, client=fake_redis)
        await publish_offer_change(
            "user-a", {"id": "o3", "customer_id": "user-a", "status": "pending"}, event="INSERT", client=fake_redis
        )
        await publish_offer_change(
            "user-a",
            {"id": "o1", "customer_id": "user-a", "status": "rejected"},
            {"id": "o1", "status": "pending"},
            client=fake_redis,
        )
        await _wait_for(lambda: received)
    finally:
        await subscription.unsubscribe()

    assert len(received) == 1
    payload = received[0]
    assert payload["eventType"] == "UPDATE"
    assert payload["table"] == "service_offers"
    assert payload["new"]["status"] == "rejected"
    assert payload["old"]["status"] == "pending"


@pytest.mark.asyncio
async def test_unsubscribe_removes_listener(fake_redis):
    channel = RedisRealtimeChannel(fake_redis, poll_timeout=0.05)
    subscription = await channel.subscribe(TOPIC, _filter(), lambda payload: None)
    await subscription.unsubscribe()
    await subscription.unsubscribe()

    receivers = await publish_offer_change("user-a", {"customer_id": "user-a", "status": "accepted"}, client=fake_redis)
    assert receivers == 0
    assert subscription.closed


@pytest.mark.asyncio
async def test_subscribe_failure_raises_channel_error():
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock(side_effect=ConnectionError("redis down"))
    pubsub.aclose = AsyncMock()
    client = MagicMock()
    client.pubsub.return_value = pubsub

    with pytest.raises(ChannelError):
        await RedisRealtimeChannel(client).subscribe(TOPIC, _filter(), lambda payload: None)
    pubsub.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_read_failure_reports_to_error_callback():
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.get_message = AsyncMock(side_effect=ConnectionResetError("connection reset"))
    client = MagicMock()
    client.pubsub.return_value = pubsub
    errors = []

    subscription = await RedisRealtimeChannel(client, poll_timeout=0.01).subscribe(
        TOPIC, _filter(), lambda payload: None, on_error=errors.append
    )
    await _wait_for(lambda: errors)
    await subscription.unsubscribe()

    assert isinstance(errors[0], ConnectionResetError)
    pubsub.unsubscribe.assert_awaited_once()
    pubsub.aclose.assert_awaited_once()


class _StalledPubSub:
    def __init__(self):
        self.entered = asyncio.Event()
        self.closed = False

    async def subscribe(self, *channels):
        self.entered.set()
        await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_cancelled_subscribe_closes_pubsub():
    pubsub = _StalledPubSub()
    client = MagicMock()
    client.pubsub.return_value = pubsub

    task = asyncio.create_task(RedisRealtimeChannel(client).subscribe(TOPIC, _filter(), lambda payload: None))
    await asyncio.wait_for(pubsub.entered.wait(), timeout=1.0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert pubsub.closed
