"""Recurring deal router - FastAPI endpoints for recurring series"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_team_id, get_current_user
from ...config import DEFAULT_PAGE_SIZE, DEFAULT_UPCOMING_LIMIT, MAX_PAGE_SIZE, MAX_UPCOMING_LIMIT
from ...database import get_db
from ...models import DealRecurring, User
from ...services.notification_service import (
    RECURRING_SERIES_STARTED,
    Notifications,
    get_notifications,
)
from ..jobs.coordinator import JobCoordinator, get_job_coordinator
from .schemas import (
    DealRecurringCreate,
    DealRecurringListResponse,
    DealRecurringResponse,
    DealRecurringUpdate,
    DeleteResponse,
    SeriesStatus,
    UpcomingResponse,
)
from .service import DealRecurringService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/deal-recurring", tags=["Recurring Deals"])


def get_deal_recurring_service(db: Session = Depends(get_db)) -> DealRecurringService:
    """Dependency injection for DealRecurringService"""
    return DealRecurringService(db)


def to_response(series: DealRecurring) -> DealRecurringResponse:
    return DealRecurringResponse(
        id=series.id,
        teamId=series.team_id,
        merchantId=series.merchant_id,
        merchantName=series.merchant_name,
        sourceDealId=series.source_deal_id,
        frequency=series.frequency,
        frequencyDay=series.frequency_day,
        frequencyWeek=series.frequency_week,
        frequencyInterval=series.frequency_interval,
        timezone=series.timezone,
        endType=series.end_type,
        endDate=series.end_date,
        endCount=series.end_count,
        status=series.status,
        dealsGenerated=series.deals_generated,
        nextScheduledAt=series.next_scheduled_at,
        lastGeneratedAt=series.last_generated_at,
        dueDateOffset=series.due_date_offset,
        amount=series.amount,
        currency=series.currency,
        createdAt=series.created_at,
        updatedAt=series.updated_at,
    )


# ============================================================================
# QUERIES
# ============================================================================


@router.get("", response_model=DealRecurringListResponse)
async def list_recurring_series(
    cursor: Optional[str] = Query(None),
    pageSize: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[list[SeriesStatus]] = Query(None),
    merchantId: Optional[str] = Query(None),
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
):
    """List recurring series for the team, newest first"""
    page = service.list_series(team_id, cursor, pageSize, status, merchantId)
    return DealRecurringListResponse(
        meta=page["meta"],
        data=[to_response(s) for s in page["data"]],
    )


@router.get("/{series_id}", response_model=DealRecurringResponse)
async def get_recurring_series(
    series_id: str,
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
):
    return to_response(service.get_series(series_id, team_id))


@router.get("/{series_id}/upcoming", response_model=UpcomingResponse)
async def get_upcoming_deals(
    series_id: str,
    limit: int = Query(DEFAULT_UPCOMING_LIMIT, ge=1, le=MAX_UPCOMING_LIMIT),
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
):
    """Preview the next deals the series will produce"""
    upcoming = service.get_upcoming(series_id, team_id, limit)
    summary = upcoming["summary"]
    return UpcomingResponse(
        id=upcoming["id"],
        deals=upcoming["deals"],
        summary={
            "hasEndDate": summary["has_end_date"],
            "totalCount": summary["total_count"],
            "totalAmount": summary["total_amount"],
            "currency": summary["currency"],
        },
    )


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("", response_model=DealRecurringResponse)
async def create_recurring_series(
    data: DealRecurringCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
    notifications: Notifications = Depends(get_notifications),
):
    """Create a recurring series, optionally linked to an existing deal"""
    series, created = service.create_series(data, team_id, current_user.id)

    if created:
        background_tasks.add_task(
            notifications.create,
            RECURRING_SERIES_STARTED,
            team_id,
            {
                "recurringId": series.id,
                "dealId": series.source_deal_id,
                "merchantName": series.merchant_name,
                "frequency": series.frequency,
                "endType": series.end_type,
                "endDate": series.end_date.isoformat() if series.end_date else None,
                "endCount": series.end_count,
            },
        )

    return to_response(series)


@router.patch("/{series_id}", response_model=DealRecurringResponse)
async def update_recurring_series(
    series_id: str,
    data: DealRecurringUpdate,
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
):
    return to_response(service.update_series(series_id, data, team_id))


@router.post("/{series_id}/pause", response_model=DealRecurringResponse)
async def pause_recurring_series(
    series_id: str,
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
    coordinator: JobCoordinator = Depends(get_job_coordinator),
):
    """Pause a series and withdraw its scheduled deals"""
    series, plan = service.pause_series(series_id, team_id)
    await coordinator.run(plan)
    return to_response(series)


@router.post("/{series_id}/resume", response_model=DealRecurringResponse)
async def resume_recurring_series(
    series_id: str,
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
):
    return to_response(service.resume_series(series_id, team_id))


@router.delete("/{series_id}", response_model=DeleteResponse)
async def delete_recurring_series(
    series_id: str,
    team_id: str = Depends(get_current_team_id),
    service: DealRecurringService = Depends(get_deal_recurring_service),
    coordinator: JobCoordinator = Depends(get_job_coordinator),
):
    """Cancel a series and withdraw its scheduled deals"""
    deleted_id, plan = service.delete_series(series_id, team_id)
    await coordinator.run(plan)
    return DeleteResponse(id=deleted_id)
