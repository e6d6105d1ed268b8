"""Sync report model: tracks each reconciliation run."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class SyncReport(Base):
    """Aggregated result of one source/vendor reconciliation run.

    A report in status ``partial`` was built from an incomplete vendor
    dataset; ``failed_workers`` lists which fetch ranges are missing.
    A ``failed`` report carries the error and no partition counts, so a
    failed fetch can never be read as "no discrepancies".
    """

    __tablename__ = "sync_reports"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    duration_ms: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    duration_formatted: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    status: Mapped[Optional[str]] = mapped_column(
        String(20),
        comment="running | completed | partial | failed",
    )
    total_source: Mapped[int] = mapped_column(Integer, default=0)
    total_target: Mapped[int] = mapped_column(Integer, default=0)
    target_rows_expected: Mapped[int] = mapped_column(Integer, default=0)
    create_count: Mapped[int] = mapped_column(Integer, default=0)
    remove_count: Mapped[int] = mapped_column(Integer, default=0)
    existing_in_both_count: Mapped[int] = mapped_column(Integer, default=0)
    plan_change_count: Mapped[int] = mapped_column(Integer, default=0)
    reference_update_count: Mapped[int] = mapped_column(Integer, default=0)
    suspend_count: Mapped[int] = mapped_column(Integer, default=0)
    cancel_count: Mapped[int] = mapped_column(Integer, default=0)
    unsuspend_count: Mapped[int] = mapped_column(Integer, default=0)
    suspend_threshold: Mapped[int] = mapped_column(Integer, default=2)
    failed_workers: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON,
        nullable=True,
    )
    error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    summary: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    action_items: Mapped[list[ActionItem]] = relationship(
        "ActionItem",
        back_populates="sync_report",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<SyncReport(id={self.id!r}, status={self.status!r}, "
            f"create={self.create_count}, remove={self.remove_count})>"
        )
