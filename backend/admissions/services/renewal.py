"""Six-month stay renewal: due dates, urgency buckets and the status tracker.

Every active allocation falls due six calendar months after it was
made. Urgency buckets by days remaining:

  > 60       NOT_DUE
  31 .. 60   UPCOMING
  1 .. 30    DUE_SOON
  <= 0       OVERDUE
"""

import calendar
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable

from admissions.schemas.renewal import FeeItem, RenewalSummary, TrackerStep

logger = logging.getLogger(__name__)

RENEWAL_PERIOD_MONTHS = 6
UPCOMING_DAYS = 60
DUE_SOON_DAYS = 30
DOCUMENTS_REQUIRED = 3


class RenewalDueStatus(str, Enum):
    NOT_DUE = "NOT_DUE"
    UPCOMING = "UPCOMING"
    DUE_SOON = "DUE_SOON"
    OVERDUE = "OVERDUE"


class RenewalStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    DOCUMENTS_PENDING = "DOCUMENTS_PENDING"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    CONSENT_PENDING = "CONSENT_PENDING"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


FEE_BREAKDOWN = (
    FeeItem(id="hostel_fee", name="Hostel Fee (Next 6 Months)", amount=60000),
    FeeItem(id="security_deposit", name="Security Deposit (Top-up)", amount=5000),
    FeeItem(id="mess_advance", name="Mess Advance", amount=5000),
)


def fee_total(items: Iterable[FeeItem] = FEE_BREAKDOWN) -> int:
    return sum(item.amount for item in items)


# ── Due dates ────────────────────────────────────────────────

def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-month addition; the day is clamped to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _as_aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return _as_aware(value)
    # fromisoformat on older interpreters rejects a trailing Z
    return _as_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))


def renewal_due_date(allocated_at: datetime) -> datetime:
    return add_months(_as_aware(allocated_at), RENEWAL_PERIOD_MONTHS)


@dataclass
class RenewalClassification:
    due_date: datetime
    days_remaining: int
    status: RenewalDueStatus


def classify_renewal(allocated_at: datetime, now: datetime | None = None) -> RenewalClassification:
    now = _as_aware(now or datetime.now(timezone.utc))
    due = renewal_due_date(allocated_at)
    days_remaining = math.ceil((due - now) / timedelta(days=1))

    if days_remaining <= 0:
        status = RenewalDueStatus.OVERDUE
    elif days_remaining <= DUE_SOON_DAYS:
        status = RenewalDueStatus.DUE_SOON
    elif days_remaining <= UPCOMING_DAYS:
        status = RenewalDueStatus.UPCOMING
    else:
        status = RenewalDueStatus.NOT_DUE
    return RenewalClassification(due_date=due, days_remaining=days_remaining, status=status)


def summarize_allocation(allocation: dict, now: datetime | None = None) -> RenewalSummary:
    allocated_at = parse_timestamp(allocation["allocated_at"])
    result = classify_renewal(allocated_at, now)
    user = allocation.get("users") or {}
    room = allocation.get("rooms") or {}
    return RenewalSummary(
        id=str(allocation["id"]),
        student_id=str(allocation["student_user_id"]) if allocation.get("student_user_id") else None,
        student_name=user.get("full_name") or "Unknown Student",
        vertical=user.get("vertical") or room.get("vertical") or "BOYS",
        room=room.get("room_number") or "Unassigned",
        status=result.status.value,
        days_remaining=result.days_remaining,
        documents_required=DOCUMENTS_REQUIRED,
        allocated_at=allocated_at,
        renewal_due_date=result.due_date,
    )


def list_renewals(
    allocations: Iterable[dict],
    status: str | None = None,
    vertical: str | None = None,
    now: datetime | None = None,
) -> list[RenewalSummary]:
    """Summaries for active allocations, filtered and most urgent first.

    ``status`` and ``vertical`` compare case-insensitively; ``"all"`` or
    None disables a filter. Rows with a missing or unparseable
    ``allocated_at`` are logged and left out.
    """
    renewals = []
    for allocation in allocations:
        try:
            renewals.append(summarize_allocation(allocation, now))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(
                f"Skipping allocation with unreadable data: {e}",
                extra={"allocation_id": allocation.get("id") if isinstance(allocation, dict) else None},
            )

    if status and status.lower() != "all":
        renewals = [r for r in renewals if r.status == status.upper()]
    if vertical and vertical.lower() != "all":
        renewals = [r for r in renewals if r.vertical.upper() == vertical.upper()]

    renewals.sort(key=lambda r: r.days_remaining)
    return renewals


# ── Status tracker ───────────────────────────────────────────

TRACKER_STEPS = (
    (RenewalStatus.NOT_STARTED, "Not Started"),
    (RenewalStatus.IN_PROGRESS, "In Progress"),
    (RenewalStatus.SUBMITTED, "Submitted"),
    (RenewalStatus.UNDER_REVIEW, "Under Review"),
    (RenewalStatus.APPROVED, "Approved"),
)

REJECTED_TRACKER_STEPS = (
    (RenewalStatus.IN_PROGRESS, "In Progress"),
    (RenewalStatus.SUBMITTED, "Submitted"),
    (RenewalStatus.REJECTED, "Rejected"),
)

PENDING_SUB_STATES = {
    RenewalStatus.DOCUMENTS_PENDING,
    RenewalStatus.PAYMENT_PENDING,
    RenewalStatus.CONSENT_PENDING,
}


def tracker_steps(current: RenewalStatus) -> list[TrackerStep]:
    """Stepper rows for a renewal; pending sub-states show as In Progress."""
    steps = REJECTED_TRACKER_STEPS if current == RenewalStatus.REJECTED else TRACKER_STEPS
    position = RenewalStatus.IN_PROGRESS if current in PENDING_SUB_STATES else current

    keys = [key for key, _ in steps]
    current_index = keys.index(position) if position in keys else 0

    rows = []
    for index, (key, label) in enumerate(steps):
        if index < current_index:
            state = "completed"
        elif index == current_index:
            state = "current"
        else:
            state = "pending"
        rows.append(TrackerStep(key=key.value, label=label, state=state))
    return rows
