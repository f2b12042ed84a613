"""
Progress Report Repository - Approved completion snapshots.
"""
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
import logging
from sqlalchemy.orm import Session, selectinload

from jobcost.models import (
    FORECASTABLE_REPORT_STATUSES,
    ProgressReport,
    ProgressReportLine,
    ProgressReportStatus,
)
from jobcost.domain.entities import GroupKey
from jobcost.domain.exceptions import ProgressReportNotFoundError, ValidationError
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def validate_report_lines(report: ProgressReport) -> List[str]:
    """
    Check that approved CTD never exceeds the assigned budget value.

    Soft rule: violations are returned for logging, data is not rejected.
    """
    violations = []
    for line in report.lines:
        budget = line.budget_value_cents or 0
        if line.approved_amount_cents > budget:
            violations.append(
                f"{line.area or '?'} / {line.system or '?'}: approved CTD "
                f"{line.approved_amount_cents} exceeds budget value {budget}"
            )
    return violations


def previous_ctd_by_group(report: Optional[ProgressReport]) -> Dict[GroupKey, Tuple[int, float]]:
    """Approved CTD amount and percent per group of a report, for copying forward."""
    amounts: Dict[GroupKey, int] = {}
    budgets: Dict[GroupKey, int] = {}
    if report is None:
        return {}
    for line in report.lines:
        key = GroupKey.of(line.area, line.system)
        amounts[key] = amounts.get(key, 0) + line.approved_amount_cents
        budgets[key] = budgets.get(key, 0) + (line.budget_value_cents or 0)
    return {
        key: (amount, amount / budgets[key] * 100 if budgets[key] > 0 else 0.0)
        for key, amount in amounts.items()
    }


class ProgressReportRepository(BaseRepository[ProgressReport]):
    """Repository for progress reports and their (Area, System) lines."""

    def __init__(self, session: Session):
        super().__init__(session, ProgressReport)

    def get_or_raise(self, report_id: int) -> ProgressReport:
        report = self.get_by_id(report_id)
        if not report:
            raise ProgressReportNotFoundError(report_id)
        return report

    def get_by_job(self, job_id: int) -> List[ProgressReport]:
        """Every report of a job, newest first."""
        return self.session.query(ProgressReport).filter(
            ProgressReport.job_id == job_id
        ).order_by(ProgressReport.report_date.desc(), ProgressReport.id.desc()).all()

    def get_for_job(self, job_id: int, report_id: int) -> ProgressReport:
        report = self.get_by_id(report_id)
        if not report or report.job_id != job_id:
            raise ProgressReportNotFoundError(report_id)
        return report

    def get_approved_by_job(self, job_id: int) -> List[ProgressReport]:
        """Approved and invoiced reports of a job, oldest first."""
        return self.session.query(ProgressReport).options(
            selectinload(ProgressReport.lines)
        ).filter(
            ProgressReport.job_id == job_id,
            ProgressReport.status.in_(FORECASTABLE_REPORT_STATUSES),
        ).order_by(ProgressReport.report_date, ProgressReport.id).all()

    def get_latest_approved(self, job_id: int, before: Optional[date] = None) -> Optional[ProgressReport]:
        """Latest approved or invoiced report, optionally dated strictly before a date."""
        query = self.session.query(ProgressReport).options(
            selectinload(ProgressReport.lines)
        ).filter(
            ProgressReport.job_id == job_id,
            ProgressReport.status.in_(FORECASTABLE_REPORT_STATUSES),
        )
        if before is not None:
            query = query.filter(ProgressReport.report_date < before)
        return query.order_by(ProgressReport.report_date.desc(), ProgressReport.id.desc()).first()

    def create(
        self,
        job_id: int,
        report_number: str,
        report_date: date,
        lines: List[dict],
        status: str = ProgressReportStatus.DRAFT.value,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        approved_by: Optional[str] = None,
    ) -> ProgressReport:
        """
        Create a progress report.

        Lines that carry neither previous_ctd_cents nor previous_ctd_percent
        take the approved CTD of the job's latest approved report dated
        before this one, matched by (Area, System).

        Args:
            lines: Dicts with area, system, budget_value_cents and any of
                submitted_ctd_cents/percent, approved_ctd_cents/percent,
                previous_ctd_cents/percent
        """
        if status not in {s.value for s in ProgressReportStatus}:
            raise ValidationError("status", f"unknown progress report status '{status}'")

        previous = previous_ctd_by_group(self.get_latest_approved(job_id, before=report_date))

        report_lines = []
        for line in lines:
            previous_cents = line.get("previous_ctd_cents")
            previous_percent = line.get("previous_ctd_percent")
            if previous_cents is None and previous_percent is None:
                previous_cents, previous_percent = previous.get(
                    GroupKey.of(line.get("area"), line.get("system")), (0, 0.0)
                )
            report_lines.append(ProgressReportLine(
                area=line.get("area"),
                system=line.get("system"),
                budget_value_cents=line.get("budget_value_cents", 0),
                submitted_ctd_cents=line.get("submitted_ctd_cents", 0),
                submitted_ctd_percent=line.get("submitted_ctd_percent", 0.0),
                approved_ctd_cents=line.get("approved_ctd_cents"),
                approved_ctd_percent=line.get("approved_ctd_percent", 0.0),
                previous_ctd_cents=previous_cents or 0,
                previous_ctd_percent=previous_percent or 0.0,
            ))

        report = ProgressReport(
            uuid=str(uuid.uuid4()),
            job_id=job_id,
            report_number=report_number,
            report_date=report_date,
            period_start=period_start,
            period_end=period_end,
            status=status,
            lines=report_lines,
        )
        if status == ProgressReportStatus.APPROVED.value:
            report.approved_by = approved_by
            report.approved_at = datetime.utcnow()

        for violation in validate_report_lines(report):
            logger.warning(f"Progress report {report_number}: {violation}")

        self.add(report)
        return report

    def delete(self, report: ProgressReport) -> None:
        self.session.delete(report)
