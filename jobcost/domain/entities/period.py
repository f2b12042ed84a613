"""
Forecast Period Entity - a calendar month of a job backed by an approved report.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Optional

from .budget_group import GroupKey


@dataclass
class ResolvedPeriod:
    """
    Everything needed to compute a forecast for one period.

    Attributes:
        label: Display label, e.g. 'Month 3'
        month_number: 1-based month counted from the job start month
        year_month: Calendar month as 'YYYY-MM'
        progress_report: Approved report backing the period
        cutoff: End of the report date; costs after it are excluded
        previous_report: Immediately preceding approved report, if any
        previous_cutoff: Cutoff of the previous report, if any
        previous_approved: Approved CTD per group from the previous report
    """
    label: str
    month_number: int
    year_month: str
    progress_report: object
    cutoff: datetime
    previous_report: Optional[object] = None
    previous_cutoff: Optional[datetime] = None
    previous_approved: Dict[GroupKey, int] = field(default_factory=dict)

    @property
    def report_date(self) -> date:
        return self.progress_report.report_date

    def previous_amount(self, key: GroupKey) -> int:
        return self.previous_approved.get(key, 0)
