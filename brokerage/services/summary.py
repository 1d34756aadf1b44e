from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.settings import AppSettings
from brokerage.domain.billing import OrganizationBillingSummary, summarize_organizations
from brokerage.repositories.billing import BillingRecordReader
from brokerage.repositories.organizations import OrganizationRepository
from brokerage.services.base import BaseService


class BillingSummaryAggregator(BaseService):
    """Read-side debt projection per organization. Never writes."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.organizations = OrganizationRepository(session)
        self.records = BillingRecordReader(session)

    # PUBLIC_INTERFACE
    async def summarize(self, as_of: Optional[date] = None) -> List[OrganizationBillingSummary]:
        """
        One row per organization: outstanding debt including surcharges, how
        many outstanding charges it has and how many of those are overdue as of
        `as_of` (default today).
        """
        organizations = await self.organizations.list()
        records = await self.records.list_not_cancelled()
        return summarize_organizations(organizations, records, as_of or date.today())
