"""Action item endpoints.

Query the action items produced by sync runs with filtering and
pagination, get summary statistics, and move items through their
lifecycle (pending -> completed / failed).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.logging import get_logger
from app.models.action_item import ActionItem
from app.schemas.action_item import (
    ActionItemResponse,
    ActionItemSummary,
    ActionItemUpdate,
)
from app.schemas.subscriber import ActionStatus, ActionType

logger = get_logger(__name__)

router = APIRouter()


@router.get("/action-items", response_model=list[ActionItemResponse])
def list_action_items(
    action: Optional[ActionType] = Query(None, description="Filter by action type"),
    status: Optional[ActionStatus] = Query(None, description="Filter by status"),
    report_id: Optional[UUID] = Query(None, description="Filter by sync report"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_db),
) -> list:
    """List action items with optional filters and pagination."""
    query = db.query(ActionItem)

    if action is not None:
        query = query.filter(ActionItem.action == action.value)
    if status is not None:
        query = query.filter(ActionItem.status == status.value)
    if report_id is not None:
        query = query.filter(ActionItem.sync_report_id == report_id)

    total = query.count()
    offset = (page - 1) * limit
    items = (
        query.order_by(ActionItem.created_at.desc(), ActionItem.action)
        .offset(offset)
        .limit(limit)
        .all()
    )

    logger.info(
        "Action items query: total=%d page=%d limit=%d returned=%d",
        total,
        page,
        limit,
        len(items),
    )
    return items


@router.get("/action-items/summary", response_model=ActionItemSummary)
def action_item_summary(db: Session = Depends(get_db)) -> ActionItemSummary:
    """Summary statistics: total count, by_action, by_status."""
    total_count = db.query(ActionItem).count()

    by_action_rows = (
        db.query(ActionItem.action, func.count(ActionItem.id))
        .group_by(ActionItem.action)
        .all()
    )
    by_status_rows = (
        db.query(ActionItem.status, func.count(ActionItem.id))
        .group_by(ActionItem.status)
        .all()
    )

    return ActionItemSummary(
        total_count=total_count,
        by_action={row[0]: row[1] for row in by_action_rows},
        by_status={row[0]: row[1] for row in by_status_rows},
    )


@router.patch("/action-items/{item_id}", response_model=ActionItemResponse)
def update_action_item(
    item_id: UUID,
    body: ActionItemUpdate,
    db: Session = Depends(get_db),
) -> ActionItem:
    """Set the status of a single action item."""
    item = db.query(ActionItem).filter(ActionItem.id == item_id).first()
    if item is None:
        raise HTTPException(status_code=404, detail="Action item not found")

    item.status = body.status.value
    item.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(item)

    logger.info("Action item %s -> %s", item.id, item.status)
    return item
