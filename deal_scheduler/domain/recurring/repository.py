"""Recurring deal repository - Database operations for recurring series"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Deal, DealRecurring, JobCancellation, Merchant


class DealRecurringRepository:
    """
    Repository for recurring series database operations.
    Nothing here commits; the service owns the transaction.
    """

    @staticmethod
    def get_series(db: Session, series_id: str, team_id: str) -> Optional[DealRecurring]:
        return (
            db.query(DealRecurring)
            .filter(DealRecurring.id == series_id, DealRecurring.team_id == team_id)
            .first()
        )

    @staticmethod
    def get_series_by_source_deal(db: Session, deal_id: str, team_id: str) -> Optional[DealRecurring]:
        """Series already linked to a deal, either as its source or via the deal's link"""
        series = (
            db.query(DealRecurring)
            .filter(DealRecurring.source_deal_id == deal_id, DealRecurring.team_id == team_id)
            .first()
        )
        if series:
            return series

        deal = DealRecurringRepository.get_deal(db, deal_id, team_id)
        if deal and deal.deal_recurring_id:
            return DealRecurringRepository.get_series(db, deal.deal_recurring_id, team_id)
        return None

    @staticmethod
    def get_deal(db: Session, deal_id: str, team_id: str) -> Optional[Deal]:
        return db.query(Deal).filter(Deal.id == deal_id, Deal.team_id == team_id).first()

    @staticmethod
    def get_merchant(db: Session, merchant_id: str, team_id: str) -> Optional[Merchant]:
        return (
            db.query(Merchant)
            .filter(Merchant.id == merchant_id, Merchant.team_id == team_id)
            .first()
        )

    @staticmethod
    def list_series(
        db: Session,
        team_id: str,
        offset: int,
        page_size: int,
        statuses: Optional[list[str]] = None,
        merchant_id: Optional[str] = None,
    ) -> list[DealRecurring]:
        """Newest first. Fetches one extra row so the caller can tell if a next page exists."""
        query = db.query(DealRecurring).filter(DealRecurring.team_id == team_id)

        if statuses:
            query = query.filter(DealRecurring.status.in_(statuses))
        if merchant_id:
            query = query.filter(DealRecurring.merchant_id == merchant_id)

        return (
            query.order_by(DealRecurring.created_at.desc(), DealRecurring.id.desc())
            .offset(offset)
            .limit(page_size + 1)
            .all()
        )

    @staticmethod
    def add_series(db: Session, team_id: str, **fields) -> DealRecurring:
        series = DealRecurring(team_id=team_id, **fields)
        db.add(series)
        db.flush()
        return series

    @staticmethod
    def update_series(db: Session, series: DealRecurring, **updates) -> DealRecurring:
        """Apply updates as given; None values clear the column"""
        for key, value in updates.items():
            if hasattr(series, key):
                setattr(series, key, value)
        db.flush()
        return series

    @staticmethod
    def get_scheduled_deals(db: Session, series_id: str, team_id: str) -> list[Deal]:
        return (
            db.query(Deal)
            .filter(
                Deal.deal_recurring_id == series_id,
                Deal.team_id == team_id,
                Deal.status == "scheduled",
            )
            .all()
        )

    @staticmethod
    def add_job_cancellation(
        db: Session, team_id: str, job_reference: str, series_id: str, deal_id: str
    ) -> JobCancellation:
        row = JobCancellation(
            team_id=team_id,
            job_reference=job_reference,
            deal_recurring_id=series_id,
            deal_id=deal_id,
            status="pending",
            attempts=0,
        )
        db.add(row)
        db.flush()
        return row
