"""Socket.IO namespace that keeps each connected client's nav badge live."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Dict, Optional

import socketio

from offernav.domain.navigation.presenter import badge_label, build_nav, handle_logout
from offernav.domain.offers.coordinator import OfferNavCoordinator
from offernav.domain.offers.models import Notification
from offernav.domain.offers.realtime import RealtimeChannel, RedisRealtimeChannel
from offernav.domain.offers.session import SessionState
from offernav.domain.offers.snapshot import OfferSnapshotClient, PostgresOfferSnapshotClient
from offernav.obs import logging as obs_logging
from offernav.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_namespace: "NavNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


class SocketNotificationSink:
	"""Pushes notifications to one connected client as ``toast:show``."""

	def __init__(self, namespace: "NavNamespace", sid: str) -> None:
		self._namespace = namespace
		self._sid = sid

	def show(self, notification: Notification) -> None:
		self._namespace.spawn(self._namespace.emit_to(self._sid, "toast:show", notification.to_dict()))


@dataclass
class NavContext:
	session: SessionState
	sink: SocketNotificationSink
	coordinator: OfferNavCoordinator
	path: str = "/"


class NavNamespace(socketio.AsyncNamespace):
	"""One coordinator per connected client; disconnect disposes it."""

	def __init__(
		self,
		*,
		snapshot_client: Optional[OfferSnapshotClient] = None,
		channel: Optional[RealtimeChannel] = None,
	) -> None:
		super().__init__("/nav")
		self._snapshot_client = snapshot_client or PostgresOfferSnapshotClient()
		self._channel = channel or RedisRealtimeChannel()
		self._contexts: Dict[str, NavContext] = {}
		self._tasks: set[asyncio.Task] = set()

	@property
	def contexts(self) -> Dict[str, NavContext]:
		return self._contexts

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		user_id = auth_payload.get("userId") or _header(scope, "x-user-id")
		if not user_id:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("missing user id")
		user_id = str(user_id)
		with obs_logging.log_context(user_id=user_id, sid=sid, route=self.namespace):
			session = SessionState(user_id)
			sink = SocketNotificationSink(self, sid)
			coordinator = OfferNavCoordinator(
				session,
				sink,
				snapshot_client=self._snapshot_client,
				channel=self._channel,
				on_count=partial(self._push_badge, sid),
			)
			context = NavContext(session=session, sink=sink, coordinator=coordinator, path=auth_payload.get("path") or "/")
			self._contexts[sid] = context
			await coordinator.start()
			await self.emit("nav:ack", {"ok": True}, room=sid)
			await self._push_items(sid, context)

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		context = self._contexts.pop(sid, None)
		if context is not None:
			with obs_logging.log_context(user_id=context.session.user_id, sid=sid, route=self.namespace):
				await context.coordinator.dispose()

	async def on_session_set(self, sid: str, payload: Optional[dict] = None) -> dict:
		obs_metrics.socket_event(self.namespace, "session_set")
		context = self._require(sid)
		user_id = (payload or {}).get("userId")
		if not user_id:
			return {"ok": False, "error": "missing_user_id"}
		user_id = str(user_id)
		with obs_logging.log_context(user_id=user_id, sid=sid, route=self.namespace):
			context.session.set_user(user_id)
		return {"ok": True}

	async def on_session_clear(self, sid: str, payload: Optional[dict] = None) -> dict:
		obs_metrics.socket_event(self.namespace, "session_clear")
		context = self._require(sid)
		with obs_logging.log_context(user_id=context.session.user_id, sid=sid, route=self.namespace):
			context.session.set_user(None)
		return {"ok": True}

	async def on_logout(self, sid: str, payload: Optional[dict] = None) -> dict:
		obs_metrics.socket_event(self.namespace, "logout")
		context = self._require(sid)
		with obs_logging.log_context(user_id=context.session.user_id, sid=sid, route=self.namespace):
			redirect = await handle_logout(context.session, context.sink)
		return {"ok": redirect is not None, "redirect": redirect}

	async def on_navigate(self, sid: str, payload: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "navigate")
		context = self._require(sid)
		context.path = str((payload or {}).get("path") or "/")
		await self._push_items(sid, context)

	async def emit_to(self, sid: str, event: str, payload: dict) -> None:
		if sid not in self._contexts:
			return
		obs_metrics.socket_event(self.namespace, event)
		await self.emit(event, payload, room=sid)

	def spawn(self, coro: Awaitable[None]) -> None:
		task = asyncio.ensure_future(coro)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	async def drain(self) -> None:
		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	async def shutdown(self) -> None:
		contexts = list(self._contexts.values())
		self._contexts.clear()
		for context in contexts:
			await context.coordinator.dispose()
		await self.drain()

	def _require(self, sid: str) -> NavContext:
		context = self._contexts.get(sid)
		if context is None:
			raise ConnectionRefusedError("unauthenticated")
		return context

	def _push_badge(self, sid: str, count: int) -> None:
		self.spawn(self.emit_to(sid, "nav:badge", {"count": count, "label": badge_label(count)}))

	async def _push_items(self, sid: str, context: NavContext) -> None:
		items = build_nav(context.path, context.coordinator.pending_count)
		await self.emit_to(sid, "nav:items", {"items": [item.to_dict() for item in items]})


def set_namespace(ns: NavNamespace) -> None:
	global _namespace
	_namespace = ns


def get_namespace() -> Optional[NavNamespace]:
	return _namespace
