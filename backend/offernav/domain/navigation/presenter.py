"""Bottom navigation items and the account menu logout flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from offernav.domain.offers.models import Notification
from offernav.domain.offers.notifications import NotificationSink
from offernav.domain.offers.session import SessionProvider
from offernav.settings import settings

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
OFFERS_KEY = "offers"
ACCOUNT_KEY = "account"

LOGOUT_SUCCESS = Notification(title="Success", body="You have been logged out successfully")
LOGOUT_FAILURE = Notification(title="Error", body="There was a problem logging out", variant="destructive")


@dataclass(frozen=True, slots=True)
class NavItem:
	key: str
	label: str
	path: str
	icon: str
	active: bool = False
	badge: Optional[str] = None

	def to_dict(self) -> dict:
		return {
			"key": self.key,
			"label": self.label,
			"path": self.path,
			"icon": self.icon,
			"active": self.active,
			"badge": self.badge,
		}


NAV_ITEMS: Tuple[NavItem, ...] = (
	NavItem(key="home", label="Home", path="/", icon="home"),
	NavItem(key="quickhire", label="QuickHire", path="/quickhire", icon="search"),
	NavItem(key="jobs", label="Jobs", path="/customer/jobs", icon="briefcase"),
	NavItem(key=OFFERS_KEY, label="Offers", path="/customer/offers", icon="mail"),
	# the account entry opens a menu; it highlights on the profile page
	NavItem(key=ACCOUNT_KEY, label="Account", path="/profile", icon="user"),
)

ACCOUNT_MENU: Tuple[NavItem, ...] = (
	NavItem(key="profile", label="Profile", path="/profile", icon="user"),
	NavItem(key="dashboard", label="Dashboard", path="/customer/dashboard", icon="layout"),
	NavItem(key="logout", label="Logout", path=LOGIN_PATH, icon="log-out"),
)


def badge_label(count: int, cap: Optional[int] = None) -> Optional[str]:
	"""Badge text for a pending count: hidden at zero, capped as ``"<cap>+"``."""
	cap = settings.nav_badge_cap if cap is None else cap
	if count <= 0:
		return None
	if count > cap:
		return f"{cap}+"
	return str(count)


def build_nav(path: str, pending_count: int = 0) -> List[NavItem]:
	items: List[NavItem] = []
	badge = badge_label(pending_count)
	for item in NAV_ITEMS:
		items.append(
			replace(
				item,
				active=item.path == path,
				badge=badge if item.key == OFFERS_KEY else None,
			)
		)
	return items


async def handle_logout(session: SessionProvider, sink: NotificationSink) -> Optional[str]:
	"""Log the user out and report the outcome; returns the redirect path on success."""
	try:
		await session.logout()
	except Exception:
		logger.exception("nav.logout.failed")
		sink.show(LOGOUT_FAILURE)
		return None
	sink.show(LOGOUT_SUCCESS)
	return LOGIN_PATH
