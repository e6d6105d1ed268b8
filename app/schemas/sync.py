"""Pydantic schemas for sync runs and report responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SyncRunRequest(BaseModel):
    """Optional overrides for a single sync run."""

    worker_count: Optional[int] = Field(
        None,
        ge=1,
        le=8,
        description="Number of parallel fetch workers; None = configured default",
    )
    suspend_threshold: Optional[int] = Field(
        None,
        ge=1,
        description="Collections threshold for suspend/cancel; None = configured default",
    )
    max_pages: Optional[int] = Field(
        None,
        ge=0,
        description="Cap the vendor fetch at this many 100-row pages; 0 = unlimited",
    )


class SyncReportResponse(BaseModel):
    """Sync report as returned by the API (includes the summary JSON blob)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: int = 0
    duration_formatted: Optional[str] = None
    status: Optional[str] = None
    total_source: int = 0
    total_target: int = 0
    target_rows_expected: int = 0
    create_count: int = 0
    remove_count: int = 0
    existing_in_both_count: int = 0
    plan_change_count: int = 0
    reference_update_count: int = 0
    suspend_count: int = 0
    cancel_count: int = 0
    unsuspend_count: int = 0
    suspend_threshold: int = 2
    failed_workers: Optional[list[dict[str, Any]]] = None
    error: Optional[str] = None
    summary: Optional[dict[str, Any]] = None
    created_at: datetime
