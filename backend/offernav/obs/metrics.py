"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

SOCKET_CLIENTS = Gauge(
	"offernav_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"offernav_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

OFFER_SUBSCRIPTIONS_ACTIVE = Gauge(
	"offernav_offer_subscriptions_active",
	"Offer update subscriptions currently active",
)

OFFER_SUBSCRIPTION_OPENS = Counter(
	"offernav_offer_subscription_open_total",
	"Offer update subscription open attempts",
	["result"],
)

OFFER_CHANNEL_EVENTS = Counter(
	"offernav_offer_channel_events_total",
	"Offer change events received from the realtime channel",
	["outcome"],
)

OFFER_REFRESHES = Counter(
	"offernav_offer_refresh_total",
	"Pending count refreshes by outcome",
	["result"],
)

OFFER_NOTIFICATIONS = Counter(
	"offernav_offer_notifications_total",
	"User-facing offer notifications dispatched",
	["status"],
)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def subscription_opened(result: str) -> None:
	OFFER_SUBSCRIPTION_OPENS.labels(result=result).inc()
	if result == "ok":
		OFFER_SUBSCRIPTIONS_ACTIVE.inc()


def subscription_closed() -> None:
	OFFER_SUBSCRIPTIONS_ACTIVE.dec()


def channel_event(outcome: str) -> None:
	OFFER_CHANNEL_EVENTS.labels(outcome=outcome).inc()


def inc_refresh(result: str) -> None:
	OFFER_REFRESHES.labels(result=result).inc()


def inc_notification(status: str) -> None:
	OFFER_NOTIFICATIONS.labels(status=status).inc()
