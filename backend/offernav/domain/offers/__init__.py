"""Offer tracking exports."""

from .coordinator import OfferNavCoordinator  # noqa: F401
from .exceptions import (  # noqa: F401
	ChannelError,
	LifecycleMisuseError,
	OffersError,
	SnapshotFetchError,
	StaleResultError,
	TransportError,
)
from .models import (  # noqa: F401
	ChangeEvent,
	ChangeFilter,
	Notification,
	Offer,
	OfferStatus,
	SubscriptionHandle,
	SubscriptionState,
	count_pending_responses,
)
from .notifications import NOTIFICATIONS_BY_STATUS, NotificationDispatcher  # noqa: F401
from .reconciler import PendingCountReconciler  # noqa: F401
from .session import SessionState  # noqa: F401
from .subscriptions import SubscriptionManager  # noqa: F401
