"""
Cost-to-Complete Report Entity - one fresh computation for one period.
"""
from dataclasses import dataclass, field
from typing import Dict, List

from .metrics import CostMap, ProjectMetrics
from .period import ResolvedPeriod


@dataclass
class CostToCompleteReport:
    """
    Line items, project metrics and summary for a period.

    Nothing here is persisted; forecasts copy line items and summary.
    """
    job_id: int
    period: ResolvedPeriod
    line_items: List[dict]
    project: ProjectMetrics
    summary: dict
    cost_map: CostMap
    cost_this_period: int = 0
    earned_this_period: int = 0
    contract_value: int = 0
    match_statistics: Dict[str, int] = field(default_factory=dict)

    def line_item(self, group_key: str):
        for item in self.line_items:
            if item['group_key'] == group_key:
                return item
        return None

    def to_dict(self) -> dict:
        report = self.period.progress_report
        return {
            'job_id': self.job_id,
            'forecast_period': self.period.label,
            'month_number': self.period.month_number,
            'year_month': self.period.year_month,
            'cutoff': self.period.cutoff.isoformat(),
            'progress_report': {
                'id': report.id,
                'report_number': report.report_number,
                'report_date': report.report_date.isoformat(),
            },
            'line_items': self.line_items,
            'summary': self.summary,
            'match_statistics': self.match_statistics,
        }
