"""Session-scoped wiring of subscription, reconciliation and notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from offernav.domain.offers.models import ChangeEvent, SubscriptionHandle
from offernav.domain.offers.notifications import NotificationDispatcher, NotificationSink
from offernav.domain.offers.realtime import RealtimeChannel, RedisRealtimeChannel
from offernav.domain.offers.reconciler import PendingCountReconciler
from offernav.domain.offers.session import SessionProvider
from offernav.domain.offers.snapshot import OfferSnapshotClient, PostgresOfferSnapshotClient
from offernav.domain.offers.subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)


class OfferNavCoordinator:
	"""Follows the session and keeps exactly one subscription for the current user.

	On session acquired: open the subscription and refresh the count. On each
	change event: refresh the count and dispatch a notification. On session lost
	or ``dispose``: close the subscription before anything else happens.
	"""

	def __init__(
		self,
		session: SessionProvider,
		sink: NotificationSink,
		*,
		snapshot_client: Optional[OfferSnapshotClient] = None,
		channel: Optional[RealtimeChannel] = None,
		manager: Optional[SubscriptionManager] = None,
		reconciler: Optional[PendingCountReconciler] = None,
		dispatcher: Optional[NotificationDispatcher] = None,
		on_count: Optional[Callable[[int], None]] = None,
	) -> None:
		self._session = session
		self.manager = manager or SubscriptionManager(channel or RedisRealtimeChannel())
		self.reconciler = reconciler or PendingCountReconciler(
			snapshot_client or PostgresOfferSnapshotClient(),
			on_change=on_count,
		)
		self.dispatcher = dispatcher or NotificationDispatcher(sink)
		self._handle: Optional[SubscriptionHandle] = None
		self._user_id: Optional[str] = None
		self._lock = asyncio.Lock()
		self._unwatch: Optional[Callable[[], None]] = None
		self._session_tasks: set[asyncio.Task] = set()
		self._started = False
		self._disposed = False

	@property
	def handle(self) -> Optional[SubscriptionHandle]:
		return self._handle

	@property
	def user_id(self) -> Optional[str]:
		return self._user_id

	@property
	def pending_count(self) -> int:
		return self.reconciler.count

	@property
	def disposed(self) -> bool:
		return self._disposed

	async def start(self) -> None:
		if self._started or self._disposed:
			return
		self._started = True
		self.manager.add_listener(self._refresh_on_event)
		self.manager.add_listener(self.dispatcher.on_event)
		self._unwatch = self._session.watch(self._schedule_session_change)
		await self.on_session_changed(self._session.user_id)

	async def on_session_changed(self, user_id: Optional[str]) -> None:
		async with self._lock:
			if self._disposed:
				return
			handle = self._handle
			if handle is not None and handle.is_active and user_id == self._user_id:
				return
			if handle is not None:
				self._handle = None
				await self.manager.close(handle)
				self.reconciler.reset()
			self._user_id = user_id
			if user_id is None:
				logger.info("offers.session.cleared")
				return
			handle = await self.manager.open(user_id)
			if self._disposed:
				await self.manager.close(handle)
				return
			self._handle = handle
			if not handle.is_active:
				logger.warning("offers.session.subscription_unavailable", extra={"topic": handle.topic})
			self.reconciler.trigger(user_id)

	async def dispose(self) -> None:
		"""Tear down the context; no listener fires once this returns."""
		if self._disposed:
			return
		self._disposed = True
		if self._unwatch is not None:
			self._unwatch()
			self._unwatch = None
		self.manager.remove_listener(self._refresh_on_event)
		self.manager.remove_listener(self.dispatcher.on_event)
		self.reconciler.reset(notify=False)
		handle, self._handle = self._handle, None
		await self.manager.close(handle)
		for task in list(self._session_tasks):
			task.cancel()
		await self.manager.shutdown()

	async def wait_idle(self) -> None:
		"""Wait for queued session changes and in-flight refreshes to settle."""
		while self._session_tasks:
			await asyncio.gather(*list(self._session_tasks), return_exceptions=True)
		await self.reconciler.drain()

	def _refresh_on_event(self, event: ChangeEvent) -> None:
		user_id = self._user_id
		if user_id is None:
			return
		self.reconciler.trigger(user_id)

	def _schedule_session_change(self, user_id: Optional[str]) -> None:
		if self._disposed:
			return
		task = asyncio.get_running_loop().create_task(
			self.on_session_changed(user_id),
			name=f"offers-session-change:{user_id}",
		)
		self._session_tasks.add(task)
		task.add_done_callback(self._session_tasks.discard)
