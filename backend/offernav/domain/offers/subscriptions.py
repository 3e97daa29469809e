"""Lifecycle of the per-user offer update subscription."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Awaitable, Callable, List, Optional

from offernav.domain.offers.exceptions import LifecycleMisuseError
from offernav.domain.offers.models import ChangeEvent, ChangeFilter, SubscriptionHandle, SubscriptionState
from offernav.domain.offers.realtime import RealtimeChannel
from offernav.obs import metrics as obs_metrics
from offernav.settings import settings

logger = logging.getLogger(__name__)

Listener = Callable[[ChangeEvent], None]


def topic_for(user_id: str) -> str:
	return f"customer-offers-updates-{user_id}"


class SubscriptionManager:
	"""Owns at most one active subscription and fans its events out to listeners.

	Listeners are called synchronously, in registration order, as each event
	arrives. Closing a handle flips it to ``closed`` before any I/O happens, so an
	event already read from the transport is dropped rather than delivered.
	"""

	def __init__(
		self,
		channel: RealtimeChannel,
		*,
		schema: Optional[str] = None,
		table: Optional[str] = None,
		owner_column: Optional[str] = None,
		open_retries: Optional[int] = None,
		retry_base_seconds: Optional[float] = None,
		retry_max_seconds: Optional[float] = None,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self._channel = channel
		self.schema = schema or settings.offers_schema
		self.table = table or settings.offers_table
		self.owner_column = owner_column or settings.offers_owner_column
		self.open_retries = max(0, settings.offers_channel_open_retries if open_retries is None else open_retries)
		self.retry_base_seconds = (
			settings.offers_channel_retry_base_seconds if retry_base_seconds is None else retry_base_seconds
		)
		self.retry_max_seconds = (
			settings.offers_channel_retry_max_seconds if retry_max_seconds is None else retry_max_seconds
		)
		self._sleep = sleep
		self._listeners: List[Listener] = []
		self._current: Optional[SubscriptionHandle] = None
		self._lock = asyncio.Lock()
		self._cleanup: set[asyncio.Task] = set()

	@property
	def active(self) -> Optional[SubscriptionHandle]:
		current = self._current
		if current is not None and current.is_active:
			return current
		return None

	def add_listener(self, listener: Listener) -> None:
		self._listeners.append(listener)

	def remove_listener(self, listener: Listener) -> None:
		try:
			self._listeners.remove(listener)
		except ValueError:
			pass

	def change_filter(self, user_id: str) -> ChangeFilter:
		return ChangeFilter(
			schema=self.schema,
			table=self.table,
			column=self.owner_column,
			value=user_id,
			event="UPDATE",
		)

	def backoff_delay(self, attempt: int) -> float:
		return min(self.retry_max_seconds, self.retry_base_seconds * (2 ** attempt))

	async def open(self, user_id: str) -> SubscriptionHandle:
		"""Open the subscription for ``user_id``.

		Re-opening for the user that is already subscribed returns the existing
		handle. Asking for a different user while a handle is still active raises
		``LifecycleMisuseError``: callers must close first. Transport failures are
		logged and yield a ``closed`` handle instead of raising.
		"""
		async with self._lock:
			current = self._current
			if current is not None and current.is_active:
				if current.user_id == user_id:
					return current
				raise LifecycleMisuseError(f"subscription for {current.user_id} still active")

			handle = SubscriptionHandle(user_id=user_id, topic=topic_for(user_id))
			self._current = handle
			attempts = 1 + self.open_retries
			for attempt in range(attempts):
				try:
					transport = await self._channel.subscribe(
						handle.topic,
						self.change_filter(user_id),
						partial(self._deliver, handle),
						on_error=partial(self._on_channel_error, handle),
					)
				except asyncio.CancelledError:
					self._abandon(handle)
					raise
				except Exception:
					obs_metrics.subscription_opened("error")
					logger.warning(
						"offers.subscription.open_failed",
						extra={"topic": handle.topic, "attempt": attempt + 1, "attempts": attempts},
						exc_info=True,
					)
					if attempt + 1 >= attempts or handle.state is SubscriptionState.CLOSED:
						self._abandon(handle)
						return handle
					await self._sleep(self.backoff_delay(attempt))
					continue

				if handle.state is SubscriptionState.CLOSED:
					# closed while the transport was still opening
					await self._release(transport)
					return handle
				handle.transport = transport
				handle.state = SubscriptionState.ACTIVE
				handle.opened_at = datetime.now(timezone.utc)
				obs_metrics.subscription_opened("ok")
				logger.info("offers.subscription.opened", extra={"topic": handle.topic})
				return handle
			return handle

	async def close(self, handle: Optional[SubscriptionHandle]) -> None:
		"""Stop delivery for ``handle`` and release its transport."""
		if handle is None:
			return
		transport = self._detach(handle)
		if transport is not None:
			await self._release(transport)

	async def shutdown(self) -> None:
		await self.close(self._current)
		if self._cleanup:
			await asyncio.gather(*list(self._cleanup), return_exceptions=True)

	def _abandon(self, handle: SubscriptionHandle) -> None:
		handle.state = SubscriptionState.CLOSED
		handle.closed_at = datetime.now(timezone.utc)
		if self._current is handle:
			self._current = None

	def _detach(self, handle: SubscriptionHandle):
		was_active = handle.is_active
		self._abandon(handle)
		transport, handle.transport = handle.transport, None
		if was_active:
			obs_metrics.subscription_closed()
			logger.info("offers.subscription.closed", extra={"topic": handle.topic})
		return transport

	async def _release(self, transport) -> None:
		try:
			await transport.unsubscribe()
		except Exception:
			logger.warning("offers.subscription.release_failed", exc_info=True)

	def _deliver(self, handle: SubscriptionHandle, payload: dict) -> None:
		if not handle.is_active or handle is not self._current:
			obs_metrics.channel_event("dropped")
			return
		event = ChangeEvent.from_payload(payload, owner_column=self.owner_column)
		obs_metrics.channel_event("delivered")
		for listener in list(self._listeners):
			try:
				listener(event)
			except Exception:
				logger.exception("offers.subscription.listener_failed", extra={"topic": handle.topic})

	def _on_channel_error(self, handle: SubscriptionHandle, exc: BaseException) -> None:
		logger.error(
			"offers.subscription.channel_lost",
			extra={"topic": handle.topic, "error": type(exc).__name__},
		)
		transport = self._detach(handle)
		if transport is None:
			return
		task = asyncio.get_running_loop().create_task(self._release(transport))
		self._cleanup.add(task)
		task.add_done_callback(self._cleanup.discard)
