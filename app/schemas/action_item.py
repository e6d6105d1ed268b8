"""Pydantic schemas for action items and summary views."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.subscriber import ActionStatus


class ActionItemResponse(BaseModel):
    """Full action item record returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str = Field(
        ...,
        description=(
            "create | remove | suspend | unsuspend | cancel "
            "| cancel_contract | update_reference"
        ),
    )
    status: str = Field(
        ...,
        description="pending | completed | failed",
    )
    national_id: Optional[str] = None
    source_id: Optional[int] = None
    target_ref: Optional[int] = None
    reason: Optional[str] = None
    sync_report_id: Optional[UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ActionItemUpdate(BaseModel):
    """Request body to move an action item to a new status."""

    status: ActionStatus


class ActionItemSummary(BaseModel):
    """Aggregated action item statistics for dashboards / reports."""

    total_count: int = Field(
        ...,
        description="Total number of action items",
    )
    by_action: dict[str, int] = Field(
        default_factory=dict,
        description="Count of action items grouped by action type",
    )
    by_status: dict[str, int] = Field(
        default_factory=dict,
        description="Count of action items grouped by status",
    )
