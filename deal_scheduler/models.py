import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID primary key"""
    return str(uuid.uuid4())


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    users = relationship("User", back_populates="team")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    # Tenant scope - every recurring operation is filtered by this team
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    team = relationship("Team", back_populates="users")


class Merchant(Base):
    """Payee of a deal. Recurring deals auto-send, so one of the emails must be set."""

    __tablename__ = "merchants"

    id = Column(String(36), primary_key=True, default=generate_id)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    billing_email = Column(String(255), nullable=True)  # Preferred over email when present
    website = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    @property
    def delivery_email(self):
        return self.billing_email or self.email


class DealRecurring(Base):
    """Recurring series configuration that produces deals over time"""

    __tablename__ = "deal_recurring"
    __table_args__ = (
        # At most one series per linked source deal
        UniqueConstraint("source_deal_id", name="uq_deal_recurring_source_deal"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    merchant_id = Column(String(36), ForeignKey("merchants.id"), nullable=True, index=True)
    merchant_name = Column(String(255), nullable=True)
    source_deal_id = Column(String(36), nullable=True)

    # Rule
    # weekly, biweekly, monthly_weekday, monthly_date, quarterly, semi_annual, annual, custom
    frequency = Column(String(30), nullable=False)
    frequency_day = Column(Integer, nullable=True)  # 0-6 weekday or 1-31 day of month
    frequency_week = Column(Integer, nullable=True)  # 1-5, monthly_weekday only
    frequency_interval = Column(Integer, nullable=True)  # Days, custom only
    timezone = Column(String(64), nullable=False, default="UTC")

    # End condition
    end_type = Column(String(20), nullable=False, default="never")  # never, on_date, after_count
    end_date = Column(DateTime(timezone=True), nullable=True)
    end_count = Column(Integer, nullable=True)

    # Scheduling state
    status = Column(String(20), nullable=False, default="active", index=True)  # active, paused, canceled, completed
    deals_generated = Column(Integer, nullable=False, default=0)
    next_scheduled_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_generated_at = Column(DateTime(timezone=True), nullable=True)

    # Deal template carried onto every generated deal
    due_date_offset = Column(Integer, nullable=False, default=30)
    amount = Column(Float, nullable=True)
    currency = Column(String(10), nullable=True)
    line_items = Column(JSON, nullable=True)
    template = Column(JSON, nullable=True)
    payment_details = Column(JSON, nullable=True)
    from_details = Column(JSON, nullable=True)
    note_details = Column(JSON, nullable=True)
    discount = Column(Float, nullable=True)
    subtotal = Column(Float, nullable=True)
    top_block = Column(JSON, nullable=True)
    bottom_block = Column(JSON, nullable=True)
    template_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    merchant = relationship("Merchant")
    deals = relationship("Deal", back_populates="recurring")


class Deal(Base):
    """Financial document instance (invoice-like)"""

    __tablename__ = "deals"

    id = Column(String(36), primary_key=True, default=generate_id)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    merchant_id = Column(String(36), ForeignKey("merchants.id"), nullable=True)
    deal_number = Column(String(50), nullable=True)

    # draft, scheduled, unpaid, overdue, paid, canceled
    status = Column(String(20), nullable=False, default="draft", index=True)
    amount = Column(Float, nullable=True)
    currency = Column(String(10), nullable=True)
    issue_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    # Only set while status == "scheduled"
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    scheduled_job_id = Column(String(255), nullable=True)  # Encoded "<queue>:<job id>"

    deal_recurring_id = Column(
        String(36), ForeignKey("deal_recurring.id"), nullable=True, index=True
    )
    recurring_sequence = Column(Integer, nullable=True)  # 1-based position in the series

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    recurring = relationship("DealRecurring", back_populates="deals")


class JobCancellation(Base):
    """
    Outbox row for a queue job that must be removed once the owning
    transaction has committed. Written in the same transaction as the
    deal revert, drained afterwards (in-process and by the worker cron).
    """

    __tablename__ = "job_cancellations"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String(36), nullable=False)
    deal_recurring_id = Column(String(36), nullable=True)
    deal_id = Column(String(36), nullable=True)
    job_reference = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, done, failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    processed_at = Column(DateTime, nullable=True)


class Notification(Base):
    """Activity notification written by the notification sink"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String(36), nullable=False, index=True)
    event_type = Column(String(100), nullable=False)  # recurring_series_started, ...
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
