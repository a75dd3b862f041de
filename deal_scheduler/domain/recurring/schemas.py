"""Recurring deal schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_currency, validate_timezone
from .rules import DAY_OF_MONTH_FREQUENCIES, DAY_OF_WEEK_FREQUENCIES

Frequency = Literal[
    "weekly",
    "biweekly",
    "monthly_weekday",
    "monthly_date",
    "quarterly",
    "semi_annual",
    "annual",
    "custom",
]
EndType = Literal["never", "on_date", "after_count"]
SeriesStatus = Literal["active", "paused", "completed", "canceled"]

# Request field -> DealRecurring column
FIELD_MAP = {
    "merchantId": "merchant_id",
    "merchantName": "merchant_name",
    "frequency": "frequency",
    "frequencyDay": "frequency_day",
    "frequencyWeek": "frequency_week",
    "frequencyInterval": "frequency_interval",
    "timezone": "timezone",
    "endType": "end_type",
    "endDate": "end_date",
    "endCount": "end_count",
    "nextScheduledAt": "next_scheduled_at",
    "dueDateOffset": "due_date_offset",
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


class DealTemplateFields(BaseModel):
    """Deal content copied onto every deal the series generates"""

    merchantName: Optional[str] = None
    dueDateOffset: Optional[int] = Field(None, ge=0, le=365)
    amount: Optional[float] = None
    currency: Optional[str] = None
    lineItems: Optional[list[dict[str, Any]]] = None
    template: Optional[dict[str, Any]] = None
    paymentDetails: Optional[Any] = None
    fromDetails: Optional[Any] = None
    noteDetails: Optional[Any] = None
    discount: Optional[float] = None
    subtotal: Optional[float] = None
    topBlock: Optional[Any] = None
    bottomBlock: Optional[Any] = None
    templateId: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def validate_currency_code(cls, v):
        return validate_currency(v)


class DealRecurringCreate(DealTemplateFields):
    """Schema for creating a recurring series, optionally linked to an existing deal"""

    dealId: Optional[str] = None
    merchantId: str
    frequency: Frequency
    frequencyDay: Optional[int] = None
    frequencyWeek: Optional[int] = None
    frequencyInterval: Optional[int] = Field(None, ge=1, le=365)
    timezone: str = "UTC"
    endType: EndType = "never"
    endDate: Optional[datetime] = None
    endCount: Optional[int] = Field(None, ge=1, le=500)
    issueDate: Optional[datetime] = None

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)

    @model_validator(mode="after")
    def validate_rule_fields(self):
        day = self.frequencyDay
        if self.frequency in DAY_OF_WEEK_FREQUENCIES and (day is None or not 0 <= day <= 6):
            raise ValueError(
                f"frequencyDay is required for {self.frequency} frequency (0-6, Sunday-Saturday)"
            )
        if self.frequency in DAY_OF_MONTH_FREQUENCIES and (day is None or not 1 <= day <= 31):
            raise ValueError(f"frequencyDay is required for {self.frequency} frequency (1-31)")

        if self.frequency == "monthly_weekday":
            if self.frequencyWeek is None or not 1 <= self.frequencyWeek <= 5:
                raise ValueError("frequencyWeek is required for monthly_weekday frequency (1-5)")
        elif self.frequencyWeek is not None:
            raise ValueError("frequencyWeek is only valid for monthly_weekday frequency")

        if self.frequency == "custom" and self.frequencyInterval is None:
            raise ValueError("frequencyInterval is required when frequency is 'custom'")

        if self.endType == "on_date" and self.endDate is None:
            raise ValueError("endDate is required when endType is 'on_date'")
        if self.endType == "after_count" and self.endCount is None:
            raise ValueError("endCount is required when endType is 'after_count'")
        return self


class DealRecurringUpdate(DealTemplateFields):
    """
    Partial update. Absent fields are left untouched; an explicit null
    clears the stored value, so callers read `model_dump(exclude_unset=True)`.
    """

    merchantId: Optional[str] = None
    frequency: Optional[Frequency] = None
    frequencyDay: Optional[int] = Field(None, ge=0, le=31)
    frequencyWeek: Optional[int] = Field(None, ge=1, le=5)
    frequencyInterval: Optional[int] = Field(None, ge=1, le=365)
    timezone: Optional[str] = None
    endType: Optional[EndType] = None
    endDate: Optional[datetime] = None
    endCount: Optional[int] = Field(None, ge=1, le=500)
    nextScheduledAt: Optional[datetime] = None

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)

    @model_validator(mode="after")
    def reject_required_nulls(self):
        for name in ("merchantId", "frequency", "timezone", "endType", "dueDateOffset"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def to_changes(self) -> dict[str, Any]:
        """Fields the caller actually sent, keyed by column name"""
        return {FIELD_MAP[key]: value for key, value in self.model_dump(exclude_unset=True).items()}


class DealRecurringResponse(BaseModel):
    """Schema for recurring series response"""

    id: str
    teamId: str
    merchantId: Optional[str]
    merchantName: Optional[str] = None
    sourceDealId: Optional[str] = None
    frequency: str
    frequencyDay: Optional[int]
    frequencyWeek: Optional[int]
    frequencyInterval: Optional[int]
    timezone: str
    endType: str
    endDate: Optional[datetime]
    endCount: Optional[int]
    status: str
    dealsGenerated: int
    nextScheduledAt: Optional[datetime]
    lastGeneratedAt: Optional[datetime]
    dueDateOffset: int
    amount: Optional[float] = None
    currency: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class PageMeta(BaseModel):
    cursor: Optional[str]
    hasPreviousPage: bool
    hasNextPage: bool


class DealRecurringListResponse(BaseModel):
    meta: PageMeta
    data: list[DealRecurringResponse]


class UpcomingDeal(BaseModel):
    date: datetime
    amount: Optional[float]


class UpcomingSummary(BaseModel):
    hasEndDate: bool
    totalCount: Optional[int]
    totalAmount: Optional[float]
    currency: Optional[str]


class UpcomingResponse(BaseModel):
    id: str
    deals: list[UpcomingDeal]
    summary: UpcomingSummary


class DeleteResponse(BaseModel):
    id: str
