"""
Progress Report Service - Entry and approval of progress reports.

Lifecycle: draft -> submitted -> reviewed -> approved -> invoiced.
Approved and invoiced reports drive forecasting; only drafts may be deleted.
"""
from datetime import date, datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from jobcost.models import ProgressReport, ProgressReportStatus
from jobcost.domain.exceptions import InvalidStatusTransitionError
from jobcost.infrastructure.repositories import JobRepository, ProgressReportRepository

logger = logging.getLogger(__name__)

# target status -> status it is reached from
REPORT_TRANSITIONS = {
    ProgressReportStatus.SUBMITTED.value: ProgressReportStatus.DRAFT.value,
    ProgressReportStatus.REVIEWED.value: ProgressReportStatus.SUBMITTED.value,
    ProgressReportStatus.APPROVED.value: ProgressReportStatus.REVIEWED.value,
    ProgressReportStatus.INVOICED.value: ProgressReportStatus.APPROVED.value,
}


def report_to_dict(report: ProgressReport, include_lines: bool = True) -> dict:
    result = {
        'id': report.id,
        'uuid': report.uuid,
        'job_id': report.job_id,
        'report_number': report.report_number,
        'report_date': report.report_date.isoformat(),
        'period_start': report.period_start.isoformat() if report.period_start else None,
        'period_end': report.period_end.isoformat() if report.period_end else None,
        'status': report.status,
        'summary': report.summary,
    }
    for stage in REPORT_TRANSITIONS:
        stamped_at = getattr(report, f"{stage}_at")
        result[f"{stage}_by"] = getattr(report, f"{stage}_by")
        result[f"{stage}_at"] = stamped_at.isoformat() if stamped_at else None
    if include_lines:
        result['lines'] = [
            {
                'id': line.id,
                'area': line.area,
                'system': line.system,
                'budget_value_cents': line.budget_value_cents,
                'submitted_ctd_cents': line.submitted_ctd_cents,
                'submitted_ctd_percent': line.submitted_ctd_percent,
                'approved_ctd_cents': line.approved_ctd_cents,
                'approved_ctd_percent': line.approved_ctd_percent,
                'approved_amount_cents': line.approved_amount_cents,
                'previous_ctd_cents': line.previous_ctd_cents,
                'previous_ctd_percent': line.previous_ctd_percent,
            }
            for line in report.lines
        ]
    return result


class ProgressReportService:
    """Creates progress reports and walks them through approval."""

    def __init__(self, session: Session):
        self.session = session
        self.repo = ProgressReportRepository(session)
        self.job_repo = JobRepository(session)

    def list(self, job_id: int) -> List[ProgressReport]:
        """Reports of a job, newest first."""
        self.job_repo.get_or_raise(job_id)
        return self.repo.get_by_job(job_id)

    def get(self, job_id: int, report_id: int) -> ProgressReport:
        self.job_repo.get_or_raise(job_id)
        return self.repo.get_for_job(job_id, report_id)

    def create(
        self,
        job_id: int,
        report_number: str,
        report_date: date,
        lines: List[dict],
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> ProgressReport:
        """Create a draft report; previous approved CTD is copied forward per group."""
        self.job_repo.get_or_raise(job_id)
        report = self.repo.create(
            job_id, report_number, report_date, lines,
            period_start=period_start, period_end=period_end,
        )
        self.repo.commit()
        logger.info(f"Created progress report {report_number} for job {job_id} ({len(lines)} lines)")
        return report

    def delete(self, job_id: int, report_id: int) -> None:
        report = self.get(job_id, report_id)
        if report.status != ProgressReportStatus.DRAFT.value:
            raise InvalidStatusTransitionError(report_id, report.status, "deleted", entity="Progress report")
        report_number = report.report_number
        self.repo.delete(report)
        self.repo.commit()
        logger.info(f"Deleted draft progress report {report_number} of job {job_id}")

    # =========================================================================
    # Transitions
    # =========================================================================

    def _transition(self, job_id: int, report_id: int, target: str, actor: Optional[str]) -> ProgressReport:
        report = self.get(job_id, report_id)
        if report.status != REPORT_TRANSITIONS[target]:
            raise InvalidStatusTransitionError(report_id, report.status, target, entity="Progress report")

        report.status = target
        setattr(report, f"{target}_by", actor)
        setattr(report, f"{target}_at", datetime.utcnow())
        self.repo.commit()
        logger.info(f"Progress report {report.report_number} {target} by {actor or 'unknown'}")
        return report

    def submit(self, job_id: int, report_id: int, actor: Optional[str] = None) -> ProgressReport:
        return self._transition(job_id, report_id, ProgressReportStatus.SUBMITTED.value, actor)

    def review(self, job_id: int, report_id: int, actor: Optional[str] = None) -> ProgressReport:
        return self._transition(job_id, report_id, ProgressReportStatus.REVIEWED.value, actor)

    def approve(self, job_id: int, report_id: int, actor: Optional[str] = None) -> ProgressReport:
        return self._transition(job_id, report_id, ProgressReportStatus.APPROVED.value, actor)

    def invoice(self, job_id: int, report_id: int, actor: Optional[str] = None) -> ProgressReport:
        return self._transition(job_id, report_id, ProgressReportStatus.INVOICED.value, actor)
