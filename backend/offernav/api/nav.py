"""HTTP snapshot of the navigation bar for clients that are not on the socket."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel

from offernav.domain.navigation.presenter import ACCOUNT_MENU, badge_label, build_nav
from offernav.domain.offers.reconciler import PendingCountReconciler
from offernav.domain.offers.snapshot import OfferSnapshotClient, PostgresOfferSnapshotClient
from offernav.obs import logging as obs_logging

router = APIRouter(prefix="/nav", tags=["nav"])


class NavItemOut(BaseModel):
	key: str
	label: str
	path: str
	icon: str
	active: bool
	badge: Optional[str] = None


class NavResponse(BaseModel):
	items: List[NavItemOut]
	account_menu: List[NavItemOut]
	pending_count: int
	badge: Optional[str] = None


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
	user_id = (x_user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_user")
	return user_id


def get_snapshot_client() -> OfferSnapshotClient:
	return PostgresOfferSnapshotClient()


@router.get("", response_model=NavResponse)
async def read_nav(
	path: str = "/",
	user_id: str = Depends(get_current_user_id),
	snapshot_client: OfferSnapshotClient = Depends(get_snapshot_client),
) -> NavResponse:
	with obs_logging.log_context(user_id=user_id, route="/nav"):
		count = await PendingCountReconciler(snapshot_client).refresh(user_id)
	items = build_nav(path, count)
	return NavResponse(
		items=[NavItemOut(**item.to_dict()) for item in items],
		account_menu=[NavItemOut(**item.to_dict()) for item in ACCOUNT_MENU],
		pending_count=count,
		badge=badge_label(count),
	)
