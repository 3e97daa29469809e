"""Point-in-time offer snapshots read from Postgres."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional, Protocol

import asyncpg

from offernav.domain.offers.exceptions import SnapshotFetchError
from offernav.domain.offers.models import Offer
from offernav.infra.postgres import get_pool
from offernav.settings import settings

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class OfferSnapshotClient(Protocol):
	async def get_offers_for_user(self, user_id: str) -> List[Offer]:
		...


def _identifier(name: str) -> str:
	if not _IDENTIFIER.match(name):
		raise ValueError(f"invalid sql identifier: {name!r}")
	return f'"{name}"'


class PostgresOfferSnapshotClient:
	"""Reads every offer owned by a user in a single query."""

	def __init__(
		self,
		*,
		schema: Optional[str] = None,
		table: Optional[str] = None,
		owner_column: Optional[str] = None,
	) -> None:
		self.schema = schema or settings.offers_schema
		self.table = table or settings.offers_table
		self.owner_column = owner_column or settings.offers_owner_column
		owner = _identifier(self.owner_column)
		self._query = (
			f"SELECT id, {owner}, status "
			f"FROM {_identifier(self.schema)}.{_identifier(self.table)} "
			f"WHERE {owner} = $1"
		)

	async def get_offers_for_user(self, user_id: str) -> List[Offer]:
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				rows = await conn.fetch(self._query, user_id)
		except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
			logger.warning("offers.snapshot.fetch_failed", extra={"owner": user_id, "table": self.table})
			raise SnapshotFetchError() from exc
		return [Offer.from_record(dict(row), owner_column=self.owner_column) for row in rows]
