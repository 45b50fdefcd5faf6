"""Pydantic schemas for renewals."""

from datetime import datetime

from pydantic import BaseModel


class RenewalSummary(BaseModel):
    id: str
    student_id: str | None = None
    student_name: str
    vertical: str
    room: str
    type: str = "SEMESTER"
    status: str
    days_remaining: int
    documents_uploaded: int = 0
    documents_required: int
    allocated_at: datetime
    renewal_due_date: datetime


class FeeItem(BaseModel):
    id: str
    name: str
    amount: int
    paid_amount: int = 0


class FeeBreakdown(BaseModel):
    items: list[FeeItem]
    total: int


class TrackerStep(BaseModel):
    key: str
    label: str
    state: str
