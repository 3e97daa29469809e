"""Pending-count reconciliation from full offer snapshots."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from offernav.domain.offers.exceptions import StaleResultError
from offernav.domain.offers.models import count_pending_responses
from offernav.domain.offers.snapshot import OfferSnapshotClient
from offernav.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class PendingCountReconciler:
	"""Keeps the pending count equal to the most recently completed snapshot.

	Every fetch is tagged with a generation number. Within one session the last
	fetch to complete wins, whatever order the fetches were started in. ``reset``
	starts a new epoch; fetches started before it are discarded when they land.
	"""

	def __init__(
		self,
		snapshot_client: OfferSnapshotClient,
		*,
		on_change: Optional[Callable[[int], None]] = None,
	) -> None:
		self._client = snapshot_client
		self._on_change = on_change
		self._count = 0
		self._generation = 0
		self._completed_generation = 0
		self._epoch = 0
		self._tasks: set[asyncio.Task] = set()

	@property
	def count(self) -> int:
		return self._count

	@property
	def generation(self) -> int:
		return self._generation

	@property
	def completed_generation(self) -> int:
		return self._completed_generation

	@property
	def in_flight(self) -> int:
		return len(self._tasks)

	async def refresh(self, user_id: str) -> int:
		"""Fetch a fresh snapshot for ``user_id`` and recompute the count.

		Returns the count derived from this fetch. On failure the held count is kept
		and returned.
		"""
		self._generation += 1
		generation = self._generation
		epoch = self._epoch
		try:
			offers = await self._client.get_offers_for_user(user_id)
		except asyncio.CancelledError:
			raise
		except Exception:
			obs_metrics.inc_refresh("error")
			logger.warning(
				"offers.refresh.failed",
				extra={"owner": user_id, "generation": generation},
				exc_info=True,
			)
			return self._count
		count = count_pending_responses(offers)
		try:
			self._apply(count, generation, epoch)
		except StaleResultError:
			obs_metrics.inc_refresh("stale")
			logger.debug("offers.refresh.stale", extra={"owner": user_id, "generation": generation})
			return count
		obs_metrics.inc_refresh("ok")
		return count

	def trigger(self, user_id: str) -> asyncio.Task:
		"""Start a refresh without waiting for it."""
		task = asyncio.get_running_loop().create_task(self.refresh(user_id), name=f"offers-refresh:{user_id}")
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)
		return task

	def reset(self, *, notify: bool = True) -> None:
		"""Forget the held count and discard any fetch still in flight."""
		self._epoch += 1
		previous = self._count
		self._count = 0
		if notify and previous != 0:
			self._emit(0)

	async def drain(self) -> None:
		if self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	def _apply(self, count: int, generation: int, epoch: int) -> None:
		if epoch != self._epoch:
			raise StaleResultError()
		self._completed_generation = generation
		previous = self._count
		self._count = count
		if count != previous:
			self._emit(count)

	def _emit(self, count: int) -> None:
		if self._on_change is None:
			return
		try:
			self._on_change(count)
		except Exception:
			logger.exception("offers.refresh.on_change_failed")
