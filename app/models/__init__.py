"""SQLAlchemy models for the subscriber sync service."""

from app.models.subscriber import Subscriber, Subscription
from app.models.sync_report import SyncReport
from app.models.action_item import ActionItem

__all__ = [
    "Subscriber",
    "Subscription",
    "SyncReport",
    "ActionItem",
]
