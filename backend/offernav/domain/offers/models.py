"""Domain models for service offers and their change events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional


class OfferStatus(str, Enum):
	"""Statuses an offer moves through on the server."""

	PENDING = "pending"
	ACCEPTED = "accepted"
	REJECTED = "rejected"
	COMPLETED = "completed"


# Offers a counterpart has answered; the badge counts every one of them
PENDING_RESPONSE_STATUSES = frozenset({OfferStatus.ACCEPTED.value, OfferStatus.REJECTED.value})


class SubscriptionState(str, Enum):
	UNOPENED = "unopened"
	ACTIVE = "active"
	CLOSED = "closed"


def _status_value(value: Any) -> Optional[str]:
	if value is None:
		return None
	if isinstance(value, OfferStatus):
		return value.value
	return str(value)


@dataclass(slots=True)
class Offer:
	"""Read-only view of a server-owned offer row."""

	id: str
	owner_id: str
	status: str

	@classmethod
	def from_record(cls, record: Mapping[str, Any], *, owner_column: str = "customer_id") -> "Offer":
		owner = record.get(owner_column, record.get("owner_id"))
		return cls(
			id=str(record["id"]),
			owner_id=str(owner) if owner is not None else "",
			status=_status_value(record.get("status")) or "",
		)


@dataclass(frozen=True, slots=True)
class ChangeEvent:
	"""A single update to a single offer as delivered by the realtime channel."""

	new_status: Optional[str]
	owner_id: Optional[str]
	previous_status: Optional[str] = None
	offer_id: Optional[str] = None

	@classmethod
	def from_payload(cls, payload: Mapping[str, Any], *, owner_column: str = "customer_id") -> "ChangeEvent":
		"""Build an event from a row-change payload (``{"new": {...}, "old": {...}}``).

		Rows without a ``status`` key still produce an event with ``new_status=None``
		so listeners that react to any change keep working.
		"""
		new = payload.get("new") or {}
		old = payload.get("old") or {}
		if not isinstance(new, Mapping):
			new = {}
		if not isinstance(old, Mapping):
			old = {}
		owner = new.get(owner_column, old.get(owner_column))
		offer_id = new.get("id", old.get("id"))
		return cls(
			new_status=_status_value(new.get("status")),
			owner_id=str(owner) if owner is not None else None,
			previous_status=_status_value(old.get("status")),
			offer_id=str(offer_id) if offer_id is not None else None,
		)


@dataclass(frozen=True, slots=True)
class ChangeFilter:
	"""Server-side filter restricting a channel to one owner's row updates."""

	table: str
	column: str
	value: str
	schema: str = "public"
	event: str = "UPDATE"

	def expression(self) -> str:
		return f"{self.column}=eq.{self.value}"

	def matches_event(self, event_type: Optional[str]) -> bool:
		if self.event == "*":
			return True
		return (event_type or "").upper() == self.event.upper()


@dataclass(frozen=True, slots=True)
class Notification:
	title: str
	body: str
	variant: str = "default"

	def to_dict(self) -> dict:
		return {"title": self.title, "body": self.body, "variant": self.variant}


@dataclass(eq=False)
class SubscriptionHandle:
	"""One realtime subscription scoped to a single user."""

	user_id: str
	topic: str
	state: SubscriptionState = SubscriptionState.UNOPENED
	opened_at: Optional[datetime] = None
	closed_at: Optional[datetime] = None
	transport: Any = field(default=None, repr=False)

	@property
	def is_active(self) -> bool:
		return self.state is SubscriptionState.ACTIVE


def count_pending_responses(offers: Iterable[Offer]) -> int:
	"""Number of offers whose status is accepted or rejected."""
	return sum(1 for offer in offers if offer.status in PENDING_RESPONSE_STATUSES)
