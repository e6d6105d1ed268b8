"""Source-system subscriber tables: the authoritative side of the sync."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class Subscription(Base):
    """A subscription plan as recorded in the source system.

    ``payment_method`` decides whether the subscriber is billed through
    the vendor; ``subscription_type`` marks special contracts such as
    ``"locked"`` ones that are suspended instead of cancelled.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_method: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
    )
    status: Mapped[Optional[str]] = mapped_column(
        String(20),
        comment=(
            "active | on_hold | cancelled | pending_cancel | pending "
            "| expired | inactive | suspended"
        ),
    )
    subscription_type: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
    )
    end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    subscribers: Mapped[list[Subscriber]] = relationship(
        "Subscriber",
        back_populates="subscription",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id!r}, status={self.status!r}, "
            f"payment_method={self.payment_method!r})>"
        )


class Subscriber(Base):
    """A subscriber in the source system, keyed by personal number."""

    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    personal_number: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        index=True,
    )
    subscription_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subscriptions.id"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    subscription: Mapped[Optional[Subscription]] = relationship(
        "Subscription",
        back_populates="subscribers",
        lazy="joined",
    )

    def __repr__(self) -> str:
        return (
            f"<Subscriber(id={self.id!r}, "
            f"subscription_id={self.subscription_id!r})>"
        )
