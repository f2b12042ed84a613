"""
Progress Report API Endpoints.

Implements:
- GET /api/v1/jobs/{job_id}/progress-reports - Reports of a job, newest first
- POST /api/v1/jobs/{job_id}/progress-reports - Create a draft report
- GET/DELETE /api/v1/jobs/{job_id}/progress-reports/{id}
- POST /api/v1/jobs/{job_id}/progress-reports/{id}/submit|review|approve|invoice
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from jobcost.models import get_db
from jobcost.domain.exceptions import DomainError
from jobcost.domain.services import ProgressReportService, report_to_dict
from .errors import to_http_exception

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================

class ProgressReportLineIn(BaseModel):
    """
    One (Area, System) row. Previous CTD is copied forward from the latest
    approved report when both previous fields are omitted.
    """
    area: Optional[str] = Field(None, max_length=100)
    system: Optional[str] = Field(None, max_length=100)
    budget_value_cents: int = Field(0, ge=0)
    submitted_ctd_cents: int = Field(0, ge=0)
    submitted_ctd_percent: float = Field(0.0, ge=0)
    approved_ctd_cents: Optional[int] = Field(None, ge=0)
    approved_ctd_percent: float = Field(0.0, ge=0)
    previous_ctd_cents: Optional[int] = Field(None, ge=0)
    previous_ctd_percent: Optional[float] = Field(None, ge=0)


class ProgressReportCreate(BaseModel):
    report_number: str = Field(..., min_length=1, max_length=50)
    report_date: date
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    lines: List[ProgressReportLineIn] = Field(default_factory=list)


class ReportTransitionRequest(BaseModel):
    actor: Optional[str] = Field(None, max_length=100)


class ProgressReportResponse(BaseModel):
    id: int
    uuid: str
    job_id: int
    report_number: str
    report_date: str
    period_start: Optional[str]
    period_end: Optional[str]
    status: str
    summary: dict
    submitted_by: Optional[str] = None
    submitted_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    invoiced_by: Optional[str] = None
    invoiced_at: Optional[str] = None
    lines: Optional[List[dict]] = None


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    "/{job_id}/progress-reports",
    response_model=List[ProgressReportResponse],
    summary="List progress reports",
    description="Every progress report of the job, newest report date first"
)
def list_progress_reports(job_id: int, db: Session = Depends(get_db)):
    try:
        reports = ProgressReportService(db).list(job_id)
        return [report_to_dict(r, include_lines=False) for r in reports]
    except DomainError as e:
        raise to_http_exception(e)


@router.post(
    "/{job_id}/progress-reports",
    response_model=ProgressReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create progress report",
    description="Creates a draft report; previous approved CTD is copied forward per (Area, System)."
)
def create_progress_report(job_id: int, data: ProgressReportCreate, db: Session = Depends(get_db)):
    try:
        report = ProgressReportService(db).create(
            job_id,
            data.report_number,
            data.report_date,
            [line.model_dump() for line in data.lines],
            period_start=data.period_start,
            period_end=data.period_end,
        )
        return report_to_dict(report)
    except DomainError as e:
        raise to_http_exception(e)


@router.get(
    "/{job_id}/progress-reports/{report_id}",
    response_model=ProgressReportResponse,
    summary="Get progress report by ID"
)
def get_progress_report(job_id: int, report_id: int, db: Session = Depends(get_db)):
    try:
        return report_to_dict(ProgressReportService(db).get(job_id, report_id))
    except DomainError as e:
        raise to_http_exception(e)


@router.delete(
    "/{job_id}/progress-reports/{report_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete draft progress report"
)
def delete_progress_report(job_id: int, report_id: int, db: Session = Depends(get_db)):
    try:
        ProgressReportService(db).delete(job_id, report_id)
    except DomainError as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _transition(db: Session, action: str, job_id: int, report_id: int, data: Optional[ReportTransitionRequest]):
    try:
        actor = data.actor if data else None
        service = ProgressReportService(db)
        return report_to_dict(getattr(service, action)(job_id, report_id, actor))
    except DomainError as e:
        raise to_http_exception(e)


@router.post(
    "/{job_id}/progress-reports/{report_id}/submit",
    response_model=ProgressReportResponse,
    summary="Submit progress report"
)
def submit_progress_report(
    job_id: int,
    report_id: int,
    data: Optional[ReportTransitionRequest] = None,
    db: Session = Depends(get_db),
):
    return _transition(db, "submit", job_id, report_id, data)


@router.post(
    "/{job_id}/progress-reports/{report_id}/review",
    response_model=ProgressReportResponse,
    summary="Mark progress report reviewed"
)
def review_progress_report(
    job_id: int,
    report_id: int,
    data: Optional[ReportTransitionRequest] = None,
    db: Session = Depends(get_db),
):
    return _transition(db, "review", job_id, report_id, data)


@router.post(
    "/{job_id}/progress-reports/{report_id}/approve",
    response_model=ProgressReportResponse,
    summary="Approve progress report",
    description="Approved reports become forecast periods."
)
def approve_progress_report(
    job_id: int,
    report_id: int,
    data: Optional[ReportTransitionRequest] = None,
    db: Session = Depends(get_db),
):
    return _transition(db, "approve", job_id, report_id, data)


@router.post(
    "/{job_id}/progress-reports/{report_id}/invoice",
    response_model=ProgressReportResponse,
    summary="Mark progress report invoiced"
)
def invoice_progress_report(
    job_id: int,
    report_id: int,
    data: Optional[ReportTransitionRequest] = None,
    db: Session = Depends(get_db),
):
    return _transition(db, "invoice", job_id, report_id, data)
