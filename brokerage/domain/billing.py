"""
Billing predicates and projections shared by the closing run and the summary.

effective_due_date and is_overdue are the single source for "is this charge
late"; nothing else re-implements the first_due_date/due_date fallback.
"""
from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Protocol, Sequence
from uuid import UUID

from brokerage.core.errors import ValidationError
from brokerage.domain.commission import HUNDRED, to_decimal
from brokerage.domain.enums import BillingStatus

_PERIOD_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

OUTSTANDING_STATUSES = (BillingStatus.PENDING.value, BillingStatus.OVERDUE.value)


class DueDated(Protocol):
    status: str
    due_date: Optional[date]
    first_due_date: Optional[date]


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, BillingStatus) else str(status)


# PUBLIC_INTERFACE
def effective_due_date(record: DueDated) -> Optional[date]:
    """First due date, falling back to the legacy due_date column."""
    return record.first_due_date or record.due_date


# PUBLIC_INTERFACE
def is_outstanding(record: DueDated) -> bool:
    """Unpaid and not cancelled."""
    return _status_value(record.status) in OUTSTANDING_STATUSES


# PUBLIC_INTERFACE
def is_overdue(record: DueDated, as_of: date) -> bool:
    """
    A charge is overdue when it is still pending and its effective due date is
    strictly before as_of, or when a closing run already stored it as overdue.
    Paid and cancelled charges are never overdue.
    """
    status = _status_value(record.status)
    if status == BillingStatus.OVERDUE.value:
        return True
    if status != BillingStatus.PENDING.value:
        return False
    due = effective_due_date(record)
    return due is not None and due < as_of


# PUBLIC_INTERFACE
def surcharge_due(record: Any, as_of: date, surcharge_pct: Decimal | float) -> Optional[Decimal]:
    """
    Late surcharge to apply to a record, or None when nothing should change.

    Applies once: only outstanding records past their second due date with no
    surcharge yet.
    """
    if not is_outstanding(record) or record.second_due_date is None:
        return None
    if as_of <= record.second_due_date:
        return None
    if record.surcharge_amount and to_decimal(record.surcharge_amount) != 0:
        return None
    base = record.original_amount if record.original_amount is not None else record.amount
    return to_decimal(base) * to_decimal(surcharge_pct) / HUNDRED


# PUBLIC_INTERFACE
def parse_period(period: str) -> tuple[int, int]:
    """Split 'YYYY-MM' into (year, month); ValidationError when malformed."""
    match = _PERIOD_RE.match(period or "")
    if not match:
        raise ValidationError("period must look like YYYY-MM", details={"period": period})
    return int(match.group(1)), int(match.group(2))


# PUBLIC_INTERFACE
def current_period(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


# PUBLIC_INTERFACE
def previous_period(today: date) -> str:
    """The month before `today`'s, as 'YYYY-MM'."""
    if today.month == 1:
        return f"{today.year - 1:04d}-12"
    return f"{today.year:04d}-{today.month - 1:02d}"


# PUBLIC_INTERFACE
def period_bounds(period: str) -> tuple[date, date]:
    """Inclusive first and last calendar day of a period."""
    year, month = parse_period(period)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


# PUBLIC_INTERFACE
def royalty_due_dates(period: str, first_day: int, second_day: int) -> tuple[date, date]:
    """Due and escalation dates for a period's royalty, both in the following month."""
    year, month = parse_period(period)
    if month == 12:
        year, month = year + 1, 1
    else:
        month += 1
    return date(year, month, first_day), date(year, month, second_day)


@dataclass(frozen=True)
class OrganizationBillingSummary:
    organization_id: UUID
    name: str
    status: str
    royalty_percentage: Decimal
    total_debt: Decimal
    overdue_count: int
    pending_count: int


# PUBLIC_INTERFACE
def summarize_organizations(
    organizations: Iterable[Any],
    records: Sequence[Any],
    as_of: date,
) -> list[OrganizationBillingSummary]:
    """
    Per-organization debt projection.

    Cancelled records never count; total_debt sums amount + surcharge over
    outstanding records; overdue_count uses is_overdue.
    """
    by_org: dict[Any, list[Any]] = {}
    for record in records:
        if _status_value(record.status) == BillingStatus.CANCELLED.value:
            continue
        by_org.setdefault(record.organization_id, []).append(record)

    summaries: list[OrganizationBillingSummary] = []
    for org in organizations:
        outstanding = [r for r in by_org.get(org.id, []) if is_outstanding(r)]
        total = sum(
            (to_decimal(r.amount) + to_decimal(r.surcharge_amount or 0) for r in outstanding),
            Decimal("0"),
        )
        summaries.append(
            OrganizationBillingSummary(
                organization_id=org.id,
                name=org.name,
                status=org.status or "active",
                royalty_percentage=to_decimal(org.royalty_percentage or 0),
                total_debt=total,
                overdue_count=sum(1 for r in outstanding if is_overdue(r, as_of)),
                pending_count=len(outstanding),
            )
        )
    return summaries
