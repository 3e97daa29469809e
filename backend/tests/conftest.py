import asyncio
import sys
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from offernav.domain.offers.models import Offer
from offernav.infra import postgres
from offernav.main import app
from offernav.settings import settings


class FakeChannelSubscription:
	def __init__(self, channel, topic, change_filter, on_event, on_error):
		self.channel = channel
		self.topic = topic
		self.change_filter = change_filter
		self.on_event = on_event
		self.on_error = on_error
		self.unsubscribed = False

	async def unsubscribe(self):
		self.unsubscribed = True
		self.channel.log.append(("unsubscribe", self.topic))

	def deliver(self, payload):
		"""Hand a payload to the subscriber even if it was already unsubscribed (in flight)."""
		self.on_event(payload)

	def fail(self, exc: Optional[BaseException] = None):
		self.on_error(exc or ConnectionResetError("channel dropped"))


class FakeRealtimeChannel:
	"""In-memory realtime channel recording subscribe/unsubscribe order."""

	def __init__(self, *, fail_times: int = 0):
		self.fail_times = fail_times
		self.subscriptions: list[FakeChannelSubscription] = []
		self.log: list[tuple[str, str]] = []
		self.subscribe_calls = 0

	async def subscribe(self, topic, change_filter, on_event, *, on_error=None):
		self.subscribe_calls += 1
		if self.fail_times > 0:
			self.fail_times -= 1
			raise ConnectionRefusedError("channel unavailable")
		subscription = FakeChannelSubscription(self, topic, change_filter, on_event, on_error)
		self.subscriptions.append(subscription)
		self.log.append(("subscribe", topic))
		return subscription

	@property
	def live(self) -> list[FakeChannelSubscription]:
		return [sub for sub in self.subscriptions if not sub.unsubscribed]

	def push(self, new: dict, old: Optional[dict] = None, *, event: str = "UPDATE"):
		payload = {"eventType": event, "table": "service_offers", "new": new, "old": old or {}}
		for subscription in self.live:
			subscription.deliver(payload)


class FakeSnapshotClient:
	def __init__(self):
		self.offers: dict[str, list[Offer]] = {}
		self.calls: list[str] = []
		self.error: Optional[BaseException] = None

	def set_statuses(self, user_id: str, *statuses: str) -> None:
		self.offers[user_id] = [
			Offer(id=f"{user_id}-offer-{idx}", owner_id=user_id, status=status)
			for idx, status in enumerate(statuses)
		]

	async def get_offers_for_user(self, user_id):
		self.calls.append(user_id)
		await asyncio.sleep(0)
		if self.error is not None:
			raise self.error
		return list(self.offers.get(user_id, []))


class GatedSnapshotClient:
	"""Snapshot client whose fetches complete only when the test resolves them."""

	def __init__(self):
		self.pending: list[asyncio.Future] = []

	async def get_offers_for_user(self, user_id):
		future = asyncio.get_running_loop().create_future()
		self.pending.append(future)
		return await future

	def complete(self, index: int, *statuses: str) -> None:
		self.pending[index].set_result(
			[Offer(id=f"gated-{index}-{n}", owner_id="gated", status=s) for n, s in enumerate(statuses)]
		)

	def fail(self, index: int, exc: BaseException) -> None:
		self.pending[index].set_exception(exc)


class RecordingSink:
	def __init__(self):
		self.shown = []

	def show(self, notification):
		self.shown.append(notification)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from offernav.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep retries off and timeouts short regardless of the local environment."""
	original_env = settings.environment
	original_retries = settings.offers_channel_open_retries
	original_poll = settings.offers_channel_poll_timeout_seconds
	settings.environment = "dev"
	settings.offers_channel_open_retries = 0
	settings.offers_channel_poll_timeout_seconds = 0.05
	try:
		yield
	finally:
		settings.environment = original_env
		settings.offers_channel_open_retries = original_retries
		settings.offers_channel_poll_timeout_seconds = original_poll


@pytest.fixture
def channel():
	return FakeRealtimeChannel()


@pytest.fixture
def make_channel():
	return FakeRealtimeChannel


@pytest.fixture
def snapshots():
	return FakeSnapshotClient()


@pytest.fixture
def gated_snapshots():
	return GatedSnapshotClient()


@pytest.fixture
def sink():
	return RecordingSink()


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
