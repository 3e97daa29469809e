"""Navigation domain exports."""

from .presenter import ACCOUNT_MENU, NAV_ITEMS, NavItem, badge_label, build_nav, handle_logout  # noqa: F401
