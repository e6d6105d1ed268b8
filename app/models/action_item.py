"""Action item model: one trackable task produced by a sync run."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class ActionItem(Base):
    """A single action to take on one subscriber.

    All items written by the same run share its ``sync_report_id`` so
    they can be processed and audited together.
    """

    __tablename__ = "action_items"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    action: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment=(
            "create | remove | suspend | unsuspend | cancel "
            "| cancel_contract | update_reference"
        ),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending | completed | failed",
    )
    national_id: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    source_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    target_ref: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    sync_report_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("sync_reports.id"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    # -- Relationships --
    sync_report: Mapped[Optional[SyncReport]] = relationship(
        "SyncReport",
        back_populates="action_items",
        lazy="select",
    )

    __table_args__ = (
        Index("ix_action_items_action_status", "action", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActionItem(action={self.action!r}, status={self.status!r}, "
            f"source_id={self.source_id!r})>"
        )
