"""User-facing notifications for offer status transitions."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from offernav.domain.offers.models import ChangeEvent, Notification, OfferStatus
from offernav.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

NOTIFICATIONS_BY_STATUS: Dict[str, Notification] = {
	OfferStatus.ACCEPTED.value: Notification(
		title="Offer Accepted!",
		body="A freelancer has accepted your service offer",
	),
	OfferStatus.REJECTED.value: Notification(
		title="Offer Rejected",
		body="A freelancer has rejected your service offer",
	),
	OfferStatus.COMPLETED.value: Notification(
		title="Service Completed",
		body="A service has been marked as completed",
	),
}


class NotificationSink(Protocol):
	def show(self, notification: Notification) -> None:
		...


def notification_for(status: Optional[str]) -> Optional[Notification]:
	if status is None:
		return None
	return NOTIFICATIONS_BY_STATUS.get(status)


class NotificationDispatcher:
	"""Shows one notification per change event whose new status is mapped."""

	def __init__(self, sink: NotificationSink) -> None:
		self._sink = sink

	def on_event(self, event: ChangeEvent) -> Optional[Notification]:
		notification = notification_for(event.new_status)
		if notification is None:
			return None
		try:
			self._sink.show(notification)
		except Exception:
			logger.exception("offers.notification.show_failed", extra={"status": event.new_status})
			return None
		obs_metrics.inc_notification(event.new_status or "")
		return notification
