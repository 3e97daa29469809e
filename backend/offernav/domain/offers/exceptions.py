"""Domain-level exceptions for offer tracking."""

from __future__ import annotations


class OffersError(Exception):
	"""Base class for offer tracking errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class TransportError(OffersError):
	reason = "transport"


class SnapshotFetchError(TransportError):
	reason = "snapshot_fetch_failed"


class ChannelError(TransportError):
	reason = "channel_failed"


class StaleResultError(OffersError):
	"""A refresh finished after its session was superseded; the result is dropped."""

	reason = "stale_result"


class LifecycleMisuseError(OffersError):
	"""A second subscription was requested while another user's is still active."""

	reason = "lifecycle_misuse"
