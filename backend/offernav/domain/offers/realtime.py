"""Realtime offer change channel on Redis pub/sub.

Each subscription is filtered on the server side: producers publish a row change to
one Redis channel per owner (``<prefix>:<schema>:<table>:<column>=eq.<value>``), so a
subscriber only ever receives its own owner's changes. A reader task per
subscription decodes the JSON payload and hands it to the subscriber callback.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

from offernav.domain.offers.exceptions import ChannelError
from offernav.domain.offers.models import ChangeFilter
from offernav.infra.redis import redis_client
from offernav.obs import metrics as obs_metrics
from offernav.settings import settings

logger = logging.getLogger(__name__)

OnEvent = Callable[[dict], None]
OnError = Callable[[BaseException], None]


class ChannelSubscription(Protocol):
	async def unsubscribe(self) -> None:
		...


class RealtimeChannel(Protocol):
	async def subscribe(
		self,
		topic: str,
		change_filter: ChangeFilter,
		on_event: OnEvent,
		*,
		on_error: Optional[OnError] = None,
	) -> ChannelSubscription:
		...


def channel_key(change_filter: ChangeFilter, *, prefix: Optional[str] = None) -> str:
	prefix = prefix or settings.offers_channel_prefix
	return f"{prefix}:{change_filter.schema}:{change_filter.table}:{change_filter.expression()}"


def _decode(data: Any) -> Optional[dict]:
	if isinstance(data, bytes):
		data = data.decode("utf-8", errors="replace")
	if not isinstance(data, str):
		return None
	try:
		payload = json.loads(data)
	except ValueError:
		return None
	return payload if isinstance(payload, dict) else None


def _matches(payload: Mapping[str, Any], change_filter: ChangeFilter) -> bool:
	if not change_filter.matches_event(payload.get("eventType")):
		return False
	table = payload.get("table")
	return table is None or table == change_filter.table


class RedisChannelSubscription:
	"""A live pub/sub subscription plus the task that reads from it."""

	def __init__(
		self,
		topic: str,
		key: str,
		pubsub,
		change_filter: ChangeFilter,
		on_event: OnEvent,
		*,
		on_error: Optional[OnError] = None,
		poll_timeout: float = 1.0,
	) -> None:
		self.topic = topic
		self.key = key
		self._pubsub = pubsub
		self._filter = change_filter
		self._on_event = on_event
		self._on_error = on_error
		self._poll_timeout = poll_timeout
		self._task: Optional[asyncio.Task] = None
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	async def start(self) -> None:
		await self._pubsub.subscribe(self.key)
		self._task = asyncio.create_task(self._read_loop(), name=f"offers-channel:{self.topic}")

	async def _read_loop(self) -> None:
		try:
			while not self._closed:
				message = await self._pubsub.get_message(
					ignore_subscribe_messages=True,
					timeout=self._poll_timeout,
				)
				if message is None:
					await asyncio.sleep(0.01)
					continue
				if self._closed:
					break
				payload = _decode(message.get("data"))
				if payload is None or not _matches(payload, self._filter):
					obs_metrics.channel_event("filtered")
					continue
				self._on_event(payload)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			logger.error("offers.channel.read_failed", extra={"topic": self.topic}, exc_info=True)
			if self._on_error is not None and not self._closed:
				self._on_error(exc)

	async def unsubscribe(self) -> None:
		if self._closed:
			return
		self._closed = True
		task = self._task
		if task is not None and task is not asyncio.current_task():
			task.cancel()
			with suppress(asyncio.CancelledError):
				await task
		try:
			await self._pubsub.unsubscribe(self.key)
		finally:
			await self._pubsub.aclose()


class RedisRealtimeChannel:
	"""Realtime channel backed by the shared Redis client."""

	def __init__(self, client=redis_client, *, prefix: Optional[str] = None, poll_timeout: Optional[float] = None) -> None:
		self._client = client
		self._prefix = prefix
		self._poll_timeout = poll_timeout

	async def subscribe(
		self,
		topic: str,
		change_filter: ChangeFilter,
		on_event: OnEvent,
		*,
		on_error: Optional[OnError] = None,
	) -> RedisChannelSubscription:
		poll_timeout = self._poll_timeout
		if poll_timeout is None:
			poll_timeout = settings.offers_channel_poll_timeout_seconds
		pubsub = self._client.pubsub()
		subscription = RedisChannelSubscription(
			topic,
			channel_key(change_filter, prefix=self._prefix),
			pubsub,
			change_filter,
			on_event,
			on_error=on_error,
			poll_timeout=poll_timeout,
		)
		try:
			await subscription.start()
		except BaseException as exc:
			with suppress(Exception):
				await pubsub.aclose()
			if isinstance(exc, Exception):
				raise ChannelError() from exc
			raise
		return subscription


async def publish_offer_change(
	owner_id: str,
	new: Mapping[str, Any],
	old: Optional[Mapping[str, Any]] = None,
	*,
	event: str = "UPDATE",
	client=redis_client,
) -> int:
	"""Fan an offer row change out to the owner's channel; returns receiver count."""
	change_filter = ChangeFilter(
		schema=settings.offers_schema,
		table=settings.offers_table,
		column=settings.offers_owner_column,
		value=str(owner_id),
		event=event,
	)
	payload = {
		"eventType": event.upper(),
		"schema": change_filter.schema,
		"table": change_filter.table,
		"commit_timestamp": datetime.now(timezone.utc).isoformat(),
		"new": dict(new),
		"old": dict(old or {}),
	}
	return await client.publish(channel_key(change_filter), json.dumps(payload, default=str))
