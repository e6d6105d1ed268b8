"""Source supplier: loads subscribers with their subscriptions."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.core.logging import get_logger
from app.models.subscriber import Subscriber
from app.schemas.subscriber import SourceSubscriberRow

logger = get_logger(__name__)


def fetch_source_rows(db: Session) -> list[SourceSubscriberRow]:
    """Return every source subscriber that has a subscription.

    Subscribers without a subscription cannot be billed through any
    channel and are left out.
    """
    stmt = (
        select(Subscriber)
        .options(joinedload(Subscriber.subscription))
        .order_by(Subscriber.id)
    )
    subscribers = db.execute(stmt).unique().scalars().all()

    rows: list[SourceSubscriberRow] = []
    skipped = 0
    for subscriber in subscribers:
        if subscriber.subscription is None:
            skipped += 1
            logger.debug("Subscriber %s has no subscription, skipping", subscriber.id)
            continue
        rows.append(SourceSubscriberRow.model_validate(subscriber))

    logger.info(
        "Loaded %d source subscribers (%d without subscription)", len(rows), skipped
    )
    return rows
