"""Publish an offer status change to the owner's realtime channel.

Handy for exercising a connected nav client locally without a database trigger.
"""

from __future__ import annotations

import argparse
import asyncio

from offernav.domain.offers.models import OfferStatus
from offernav.domain.offers.realtime import publish_offer_change
from offernav.infra.redis import redis_client
from offernav.settings import settings


def _parse_args() -> argparse.Namespace:
	parser = argparse.ArgumentParser(description="Publish an offer status change")
	parser.add_argument("owner_id", help="Customer id that owns the offer")
	parser.add_argument("status", choices=[status.value for status in OfferStatus])
	parser.add_argument("--offer-id", default="local-offer", help="Offer id to put on the row")
	parser.add_argument("--previous", choices=[status.value for status in OfferStatus], default=None)
	return parser.parse_args()


async def publish(owner_id: str, status: str, offer_id: str, previous: str | None) -> None:
	new = {"id": offer_id, settings.offers_owner_column: owner_id, "status": status}
	old = {"id": offer_id, "status": previous} if previous else None
	receivers = await publish_offer_change(owner_id, new, old)
	print(f"published {status} for {owner_id} to {receivers} subscriber(s)")
	await redis_client.aclose()


if __name__ == "__main__":
	args = _parse_args()
	asyncio.run(publish(args.owner_id, args.status, args.offer_id, args.previous))
