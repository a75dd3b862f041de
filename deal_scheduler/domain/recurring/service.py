"""Recurring deal service - Series lifecycle and deal linking"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from dateutil import tz
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import DEFAULT_DUE_DATE_OFFSET
from ...models import DealRecurring, Merchant
from .repository import DealRecurringRepository
from .rules import (
    calculate_first_scheduled_date,
    calculate_upcoming_dates,
    ensure_utc,
    is_date_in_future_utc,
    next_occurrence,
    rule_from_fields,
    should_mark_completed,
)
from .schemas import DealRecurringCreate, DealRecurringUpdate
from .validation import validate_update

logger = logging.getLogger(__name__)

MERCHANT_EMAIL_REQUIRED = (
    "Merchant must have an email address to receive recurring deals. "
    "Please add an email to the merchant profile."
)

# Changing any of these moves the schedule
RULE_FIELDS = ("frequency", "frequency_day", "frequency_week", "frequency_interval")

TEMPLATE_FIELDS = {
    "amount": "amount",
    "currency": "currency",
    "lineItems": "line_items",
    "template": "template",
    "paymentDetails": "payment_details",
    "fromDetails": "from_details",
    "noteDetails": "note_details",
    "discount": "discount",
    "subtotal": "subtotal",
    "topBlock": "top_block",
    "bottomBlock": "bottom_block",
    "templateId": "template_id",
}


def utcnow() -> datetime:
    return datetime.now(tz.UTC)


def series_rule(series: DealRecurring):
    return rule_from_fields(
        series.frequency,
        series.frequency_day,
        series.frequency_week,
        series.frequency_interval,
    )


class DealRecurringService:
    """Service layer for recurring series business logic"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = DealRecurringRepository()
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_series(self, series_id: str, team_id: str) -> DealRecurring:
        series = self.repo.get_series(self.db, series_id, team_id)
        if not series:
            raise HTTPException(status_code=404, detail="Recurring deal series not found")
        return series

    def _require_merchant_email(self, merchant_id: str, team_id: str) -> Merchant:
        """Recurring deals are sent automatically, so the merchant needs somewhere to send them"""
        merchant = self.repo.get_merchant(self.db, merchant_id, team_id)
        if not merchant:
            raise HTTPException(status_code=404, detail="Merchant not found")
        if not merchant.delivery_email:
            logger.warning(f"⚠️ Merchant {merchant_id} has no email, refusing recurring series")
            raise HTTPException(status_code=400, detail=MERCHANT_EMAIL_REQUIRED)
        return merchant

    def list_series(
        self,
        team_id: str,
        cursor: Optional[str] = None,
        page_size: int = 25,
        statuses: Optional[list[str]] = None,
        merchant_id: Optional[str] = None,
    ) -> dict:
        """Offset-cursor page of series, newest first"""
        try:
            offset = int(cursor) if cursor else 0
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid cursor")
        if offset < 0:
            raise HTTPException(status_code=400, detail="Invalid cursor")

        rows = self.repo.list_series(self.db, team_id, offset, page_size, statuses, merchant_id)
        has_next = len(rows) > page_size

        return {
            "meta": {
                "cursor": str(offset + page_size) if has_next else None,
                "hasPreviousPage": offset > 0,
                "hasNextPage": has_next,
            },
            "data": rows[:page_size],
        }

    # ------------------------------------------------------------------
    # Create (idempotent on the linked deal)
    # ------------------------------------------------------------------

    def create_series(
        self, data: DealRecurringCreate, team_id: str, user_id: Optional[str] = None
    ) -> tuple[DealRecurring, bool]:
        """
        Create a series and link the source deal to it in one transaction.

        Returns:
            (series, created) - created is False when the deal was already linked
        """
        deal = None
        if data.dealId:
            deal = self.repo.get_deal(self.db, data.dealId, team_id)
            if not deal:
                raise HTTPException(status_code=404, detail="Deal not found")

            existing = self.repo.get_series_by_source_deal(self.db, deal.id, team_id)
            if existing:
                logger.info(f"Deal {deal.id} already linked to series {existing.id}, returning it")
                return existing, False

        merchant = self._require_merchant_email(data.merchantId, team_id)

        now = self.clock()
        issue_date = (deal.issue_date if deal else None) or data.issueDate
        frequency = data.frequency

        fields: dict[str, Any] = {
            "user_id": user_id,
            "merchant_id": merchant.id,
            "merchant_name": data.merchantName or merchant.name,
            "source_deal_id": deal.id if deal else None,
            "frequency": frequency,
            "frequency_day": data.frequencyDay if frequency != "custom" else None,
            "frequency_week": data.frequencyWeek if frequency == "monthly_weekday" else None,
            "frequency_interval": data.frequencyInterval if frequency == "custom" else None,
            "timezone": data.timezone,
            "end_type": data.endType,
            "end_date": data.endDate if data.endType == "on_date" else None,
            "end_count": data.endCount if data.endType == "after_count" else None,
            "status": "active",
            "deals_generated": 0,
            "next_scheduled_at": calculate_first_scheduled_date(issue_date, now),
            "due_date_offset": (
                data.dueDateOffset if data.dueDateOffset is not None else DEFAULT_DUE_DATE_OFFSET
            ),
        }
        for attr, column in TEMPLATE_FIELDS.items():
            fields[column] = getattr(data, attr)
        if deal:
            fields["amount"] = fields["amount"] if fields["amount"] is not None else deal.amount
            fields["currency"] = fields["currency"] or deal.currency

        try:
            series = self.repo.add_series(self.db, team_id, **fields)

            if deal:
                deal.deal_recurring_id = series.id
                deal.recurring_sequence = 1

                anchor = issue_date or now
                if not is_date_in_future_utc(anchor, now):
                    # The linked deal is the first occurrence
                    series.deals_generated = 1
                    series.next_scheduled_at = ensure_utc(
                        next_occurrence(series_rule(series), anchor, series.timezone)
                    )
                    series.last_generated_at = now
                    if should_mark_completed(
                        series.end_type,
                        series.end_date,
                        series.end_count,
                        series.deals_generated,
                        series.next_scheduled_at,
                    ):
                        series.status = "completed"
                        series.next_scheduled_at = None

            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = deal and self.repo.get_series_by_source_deal(self.db, deal.id, team_id)
            if existing:
                logger.info(f"Concurrent create for deal {deal.id}, returning series {existing.id}")
                return existing, False
            logger.error(f"❌ Failed to create recurring series for team {team_id}")
            raise HTTPException(status_code=500, detail="Failed to create recurring deal series")
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create recurring series for team {team_id}: {str(e)}")
            raise HTTPException(status_code=500, detail="Failed to create recurring deal series")

        self.db.refresh(series)
        logger.info(
            f"✅ Created recurring series {series.id} ({series.frequency}) "
            f"for team {team_id}, deals_generated={series.deals_generated}"
        )
        return series, True

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_series(self, series_id: str, data: DealRecurringUpdate, team_id: str) -> DealRecurring:
        """Apply a partial update after reconciling it with the stored series"""
        changes = data.to_changes()
        existing = validate_update(changes, lambda: self.get_series(series_id, team_id))
        series = existing or self.get_series(series_id, team_id)

        if "merchant_id" in changes:
            merchant = self._require_merchant_email(changes["merchant_id"], team_id)
            changes.setdefault("merchant_name", merchant.name)

        # Clear fields the new frequency / end type no longer uses
        if "frequency" in changes:
            if changes["frequency"] != "monthly_weekday":
                changes["frequency_week"] = None
            if changes["frequency"] != "custom":
                changes["frequency_interval"] = None
        if "end_type" in changes:
            if changes["end_type"] != "on_date":
                changes["end_date"] = None
            if changes["end_type"] != "after_count":
                changes["end_count"] = None

        rule_changed = any(field in changes for field in RULE_FIELDS)

        try:
            self.repo.update_series(self.db, series, **changes)

            if rule_changed and series.status == "active" and "next_scheduled_at" not in changes:
                series.next_scheduled_at = ensure_utc(
                    next_occurrence(series_rule(series), self.clock(), series.timezone)
                )

            self.db.commit()
        except ValueError as e:
            self.db.rollback()
            raise HTTPException(status_code=400, detail=str(e))
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(series)
        logger.info(f"✏️ Updated recurring series {series.id}: {sorted(changes)}")
        return series

    # ------------------------------------------------------------------
    # Pause / resume / delete
    # ------------------------------------------------------------------

    def _revert_scheduled_deals(self, series: DealRecurring, team_id: str) -> list[int]:
        """
        Move the series' scheduled deals back to draft and queue their jobs
        for cancellation. Must run inside the caller's transaction.

        Returns:
            JobCancellation ids to drain after commit
        """
        plan = []
        for deal in self.repo.get_scheduled_deals(self.db, series.id, team_id):
            job_reference = deal.scheduled_job_id
            deal.status = "draft"
            deal.scheduled_at = None
            deal.scheduled_job_id = None
            if job_reference:
                row = self.repo.add_job_cancellation(
                    self.db, team_id, job_reference, series.id, deal.id
                )
                plan.append(row.id)
        return plan

    def pause_series(self, series_id: str, team_id: str) -> tuple[DealRecurring, list[int]]:
        series = self.get_series(series_id, team_id)
        if series.status in ("canceled", "completed"):
            raise HTTPException(status_code=400, detail=f"Cannot pause a {series.status} series")

        try:
            series.status = "paused"
            plan = self._revert_scheduled_deals(series, team_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(series)
        logger.info(f"⏸️ Paused recurring series {series.id}, {len(plan)} job(s) to cancel")
        return series, plan

    def resume_series(self, series_id: str, team_id: str) -> DealRecurring:
        """Reactivate a paused series. The schedule pointer is left as it was."""
        series = self.repo.get_series(self.db, series_id, team_id)
        if not series or series.status != "paused":
            raise HTTPException(status_code=404, detail="Recurring deal series not found or not paused")

        try:
            series.status = "active"
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(series)
        logger.info(f"▶️ Resumed recurring series {series.id}")
        return series

    def delete_series(self, series_id: str, team_id: str) -> tuple[str, list[int]]:
        """Cancel a series. The row is kept so generated deals keep their link."""
        series = self.get_series(series_id, team_id)
        if series.status == "completed":
            raise HTTPException(status_code=400, detail="Cannot cancel a completed series")
        if series.status == "canceled":
            return series.id, []

        try:
            series.status = "canceled"
            series.next_scheduled_at = None
            plan = self._revert_scheduled_deals(series, team_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Canceled recurring series {series.id}, {len(plan)} job(s) to cancel")
        return series.id, plan

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def get_upcoming(self, series_id: str, team_id: str, limit: int = 10) -> dict:
        """Projected occurrences of a series; read only"""
        series = self.get_series(series_id, team_id)

        try:
            rule = series_rule(series)
        except ValueError as e:
            logger.error(f"❌ Series {series.id} has an invalid rule: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))

        projection = calculate_upcoming_dates(
            rule,
            start_date=series.next_scheduled_at or self.clock(),
            timezone=series.timezone,
            amount=series.amount,
            currency=series.currency,
            end_type=series.end_type,
            end_date=series.end_date,
            end_count=series.end_count,
            already_generated=series.deals_generated,
            limit=limit,
        )
        return {"id": series.id, **projection}
