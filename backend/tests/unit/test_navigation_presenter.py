from unittest.mock import AsyncMock

import pytest

from offernav.domain.navigation.presenter import (
    ACCOUNT_MENU,
    LOGOUT_FAILURE,
    LOGOUT_SUCCESS,
    badge_label,
    build_nav,
    handle_logout,
)
from offernav.domain.offers.session import SessionState


@pytest.mark.parametrize(
    "count,label",
    [(0, None), (-1, None), (1, "1"), (9, "9"), (10, "9+"), (250, "9+")],
)
def test_badge_label(count, label):
    assert badge_label(count) == label


def test_badge_label_custom_cap():
    assert badge_label(100, cap=99) == "99+"


def test_build_nav_highlights_exact_path_and_badges_offers():
    items = {item.key: item for item in build_nav("/customer/offers", 3)}
    assert list(items) == ["home", "quickhire", "jobs", "offers", "account"]
    assert items["offers"].active
    assert items["offers"].badge == "3"
    assert not items["home"].active
    assert all(item.badge is None for key, item in items.items() if key != "offers")


def test_build_nav_account_active_on_profile():
    items = {item.key: item for item in build_nav("/profile")}
    assert items["account"].active
    assert items["offers"].badge is None


def test_account_menu_entries():
    assert [(item.label, item.path) for item in ACCOUNT_MENU] == [
        ("Profile", "/profile"),
        ("Dashboard", "/customer/dashboard"),
        ("Logout", "/login"),
    ]


@pytest.mark.asyncio
async def test_logout_success_redirects_to_login(sink):
    handler = AsyncMock()
    session = SessionState("user-a", logout_handler=handler)
    assert await handle_logout(session, sink) == "/login"
    assert session.user_id is None
    assert sink.shown == [LOGOUT_SUCCESS]


@pytest.mark.asyncio
async def test_logout_failure_shows_destructive_toast(sink):
    handler = AsyncMock(side_effect=RuntimeError("session store down"))
    session = SessionState("user-a", logout_handler=handler)
    assert await handle_logout(session, sink) is None
    assert session.user_id == "user-a"
    assert sink.shown == [LOGOUT_FAILURE]
    assert sink.shown[0].variant == "destructive"
