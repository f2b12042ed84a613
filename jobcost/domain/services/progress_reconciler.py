"""
Progress Reconciler - Map forecast periods to approved progress reports.

A period is a calendar month of the job, numbered from the job's start
month (Month 1). A period is valid only when an approved progress report
is dated inside it; months without one are skipped, never interpolated.
"""
from collections import OrderedDict
from datetime import date, datetime, time
from typing import Dict, List, Optional, Tuple, Union
import logging
import re

from sqlalchemy.orm import Session

from jobcost.config import get_config
from jobcost.models import Job, ProgressReport
from jobcost.domain.entities import GroupKey, ProgressInput, ResolvedPeriod
from jobcost.domain.exceptions import InvalidPeriodError, ProgressReportNotFoundError
from jobcost.infrastructure.repositories import JobRepository, ProgressReportRepository

logger = logging.getLogger(__name__)

_MONTH_LABEL = re.compile(r"^month\s*(\d+)$", re.IGNORECASE)
_MONTH_NUMBER = re.compile(r"^\d+$")
_YEAR_MONTH = re.compile(r"^(\d{4})-(\d{1,2})$")

PeriodIdentifier = Union[int, str]


def _month_index(d: date) -> int:
    return d.year * 12 + d.month - 1


def _year_month(index: int) -> str:
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def end_of_day(d: date) -> datetime:
    """Cutoff for a report date: the last instant of that day."""
    return datetime.combine(d, time(23, 59, 59, 999999))


def approved_amounts_by_group(report: Optional[ProgressReport]) -> Dict[GroupKey, int]:
    """Approved CTD amount per (Area, System) group, zero-based when no report."""
    amounts: Dict[GroupKey, int] = {}
    if report is None:
        return amounts
    for line in report.lines:
        key = GroupKey.of(line.area, line.system)
        amounts[key] = amounts.get(key, 0) + line.approved_amount_cents
    return amounts


def progress_inputs(report: Optional[ProgressReport], previous: Dict[GroupKey, int]) -> Dict[GroupKey, ProgressInput]:
    """
    Convert a report's lines into calculator inputs keyed by group.

    A percent of zero next to an explicit amount is treated as unset so the
    calculator derives it from the amount.
    """
    inputs: Dict[GroupKey, ProgressInput] = {}
    if report is None:
        return inputs
    totals = approved_amounts_by_group(report)
    for line in report.lines:
        key = GroupKey.of(line.area, line.system)
        percent = line.approved_ctd_percent
        if line.approved_ctd_cents is not None and not percent:
            percent = None
        existing = inputs.get(key)
        if existing is None:
            inputs[key] = ProgressInput(
                approved_amount=line.approved_ctd_cents,
                approved_percent=percent,
                previous_amount=previous.get(key, 0),
            )
        else:
            # Duplicate rows for a group: every row's resolved amount counts
            existing.approved_amount = totals[key]
            existing.approved_percent = None
    return inputs


class ProgressReconciler:
    """Resolves forecast periods against a job's approved progress reports."""

    def __init__(self, session: Session, config=None):
        self.session = session
        self.config = config or get_config()
        self.job_repo = JobRepository(session)
        self.report_repo = ProgressReportRepository(session)

    # =========================================================================
    # Job Calendar
    # =========================================================================

    def _bounds(self, job: Job, approved: List[ProgressReport]) -> Tuple[int, int]:
        """First and last month index of the job."""
        if job.start_date:
            first = _month_index(job.start_date)
        elif approved:
            first = _month_index(approved[0].report_date)
        else:
            first = _month_index(date.today())

        if job.end_date:
            last = _month_index(job.end_date)
        elif approved:
            last = max(first, _month_index(approved[-1].report_date))
        else:
            last = first
        return first, last

    def _label(self, month_number: int) -> str:
        return self.config.period_label_format.format(month_number=month_number)

    def _valid_range(self, first: int, last: int) -> str:
        return (
            f"{self._label(1)} ({_year_month(first)}) to "
            f"{self._label(last - first + 1)} ({_year_month(last)})"
        )

    def parse_period(self, period: PeriodIdentifier, first_month_index: int) -> int:
        """
        Convert 'Month N', N or 'YYYY-MM' into a month number.

        Raises:
            InvalidPeriodError: If the identifier cannot be parsed
        """
        if isinstance(period, bool):
            raise InvalidPeriodError(period, "unrecognized period format")
        if isinstance(period, int):
            return period

        text = str(period).strip()
        match = _MONTH_LABEL.match(text)
        if match:
            return int(match.group(1))
        if _MONTH_NUMBER.match(text):
            return int(text)
        match = _YEAR_MONTH.match(text)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            if not 1 <= month <= 12:
                raise InvalidPeriodError(period, f"month {month} is not a calendar month")
            return year * 12 + month - 1 - first_month_index + 1
        raise InvalidPeriodError(period, "expected 'Month N', a month number, or 'YYYY-MM'")

    # =========================================================================
    # Period Resolution
    # =========================================================================

    def _build(
        self,
        month_number: int,
        first: int,
        report: ProgressReport,
        approved: List[ProgressReport],
    ) -> ResolvedPeriod:
        position = approved.index(report)
        previous = approved[position - 1] if position > 0 else None
        return ResolvedPeriod(
            label=self._label(month_number),
            month_number=month_number,
            year_month=_year_month(first + month_number - 1),
            progress_report=report,
            cutoff=end_of_day(report.report_date),
            previous_report=previous,
            previous_cutoff=end_of_day(previous.report_date) if previous else None,
            previous_approved=approved_amounts_by_group(previous),
        )

    def resolve_period(self, job_id: int, period: PeriodIdentifier) -> ResolvedPeriod:
        """
        Locate the approved report, cutoff and previous amounts for a period.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidPeriodError: If the period is outside the job's duration
                or has no approved progress report
        """
        job = self.job_repo.get_or_raise(job_id)
        approved = self.report_repo.get_approved_by_job(job_id)
        first, last = self._bounds(job, approved)
        duration = last - first + 1

        month_number = self.parse_period(period, first)
        if month_number < 1 or month_number > duration:
            raise InvalidPeriodError(
                period, "outside the job's duration", self._valid_range(first, last)
            )

        target = first + month_number - 1
        in_month = [r for r in approved if _month_index(r.report_date) == target]
        if not in_month:
            raise InvalidPeriodError(
                period,
                f"no approved progress report dated in {_year_month(target)}",
                self._valid_range(first, last),
            )
        if len(in_month) > 1:
            logger.info(
                f"Job {job_id}: {len(in_month)} approved reports in {_year_month(target)}; "
                f"using {in_month[-1].report_number}"
            )
        return self._build(month_number, first, in_month[-1], approved)

    def resolve_report(self, job_id: int, report_id: int) -> ResolvedPeriod:
        """
        Resolve the period backed by a specific approved report.

        Raises:
            ProgressReportNotFoundError: If the report does not exist for the job
            InvalidPeriodError: If the report is not approved or falls outside the job
        """
        job = self.job_repo.get_or_raise(job_id)
        report = self.report_repo.get_or_raise(report_id)
        if report.job_id != job_id:
            raise ProgressReportNotFoundError(report_id)

        approved = self.report_repo.get_approved_by_job(job_id)
        if report not in approved:
            raise InvalidPeriodError(
                report.report_number, f"progress report is '{report.status}', not approved"
            )
        first, last = self._bounds(job, approved)
        month_number = _month_index(report.report_date) - first + 1
        if month_number < 1 or month_number > last - first + 1:
            raise InvalidPeriodError(
                report.report_number, "report date is outside the job's duration",
                self._valid_range(first, last),
            )
        return self._build(month_number, first, report, approved)

    def list_periods(self, job_id: int) -> List[ResolvedPeriod]:
        """Every valid period of the job, oldest first."""
        job = self.job_repo.get_or_raise(job_id)
        approved = self.report_repo.get_approved_by_job(job_id)
        first, last = self._bounds(job, approved)

        latest_by_month: "OrderedDict[int, ProgressReport]" = OrderedDict()
        for report in approved:
            index = _month_index(report.report_date)
            if first <= index <= last:
                latest_by_month[index] = report
            else:
                logger.info(
                    f"Job {job_id}: approved report {report.report_number} dated "
                    f"{report.report_date} is outside the job's duration"
                )

        return [
            self._build(index - first + 1, first, report, approved)
            for index, report in latest_by_month.items()
        ]

    def latest_period(self, job_id: int) -> Optional[ResolvedPeriod]:
        periods = self.list_periods(job_id)
        return periods[-1] if periods else None

    def latest_approved_report(self, job_id: int) -> Optional[ProgressReport]:
        self.job_repo.get_or_raise(job_id)
        return self.report_repo.get_latest_approved(job_id)
