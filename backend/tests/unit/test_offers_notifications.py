import pytest

from offernav.domain.offers.models import ChangeEvent, Notification
from offernav.domain.offers.notifications import NOTIFICATIONS_BY_STATUS, NotificationDispatcher


@pytest.mark.parametrize(
    "status,title,body",
    [
        ("accepted", "Offer Accepted!", "A freelancer has accepted your service offer"),
        ("rejected", "Offer Rejected", "A freelancer has rejected your service offer"),
        ("completed", "Service Completed", "A service has been marked as completed"),
    ],
)
def test_mapped_status_shows_exactly_one_notification(sink, status, title, body):
    dispatcher = NotificationDispatcher(sink)
    result = dispatcher.on_event(ChangeEvent(new_status=status, owner_id="user-a"))
    assert sink.shown == [Notification(title=title, body=body)]
    assert result == sink.shown[0]


@pytest.mark.parametrize("status", ["pending", "withdrawn", "", None])
def test_unmapped_status_shows_nothing(sink, status):
    dispatcher = NotificationDispatcher(sink)
    assert dispatcher.on_event(ChangeEvent(new_status=status, owner_id="user-a")) is None
    assert sink.shown == []


def test_each_event_is_dispatched_independently(sink):
    dispatcher = NotificationDispatcher(sink)
    event = ChangeEvent(new_status="accepted", owner_id="user-a")
    dispatcher.on_event(event)
    dispatcher.on_event(event)
    assert len(sink.shown) == 2


def test_sink_failure_does_not_propagate():
    class BrokenSink:
        def show(self, notification):
            raise RuntimeError("toast queue closed")

    dispatcher = NotificationDispatcher(BrokenSink())
    assert dispatcher.on_event(ChangeEvent(new_status="completed", owner_id="user-a")) is None


def test_table_only_maps_terminal_transitions():
    assert set(NOTIFICATIONS_BY_STATUS) == {"accepted", "rejected", "completed"}
