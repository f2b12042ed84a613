"""
Cost-to-Complete API Endpoints.

Implements:
- GET /api/v1/jobs/{job_id}/cost-to-complete - Fresh report for a period
- GET /api/v1/jobs/{job_id}/cost-to-complete/periods - Valid forecast periods
- POST /api/v1/jobs/{job_id}/cost-to-complete/forecasts - Create or update a forecast
- GET /api/v1/jobs/{job_id}/cost-to-complete/forecasts - Saved and generated forecasts
- GET /api/v1/jobs/{job_id}/cost-to-complete/forecasts/analytics - Forecast trends
- GET/PUT/DELETE /api/v1/jobs/{job_id}/cost-to-complete/forecasts/{id}
- POST /api/v1/jobs/{job_id}/cost-to-complete/forecasts/{id}/submit
- POST /api/v1/jobs/{job_id}/cost-to-complete/forecasts/{id}/approve
"""
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from jobcost.models import get_db
from jobcost.domain.exceptions import DomainError
from jobcost.domain.services import (
    CostToCompleteService,
    ForecastLifecycleService,
    forecast_to_dict,
)
from .errors import to_http_exception

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================

class ForecastLineItemIn(BaseModel):
    """Caller-supplied line item; only the forecast overrides are trusted."""
    group_key: Optional[str] = Field(None, description="'Area / System' group label")
    area: Optional[str] = None
    system: Optional[str] = None
    forecasted_final_cost: Optional[int] = Field(None, description="Override in cents")
    forecasted_final_value: Optional[int] = Field(None, description="Override in cents")

    model_config = ConfigDict(extra="allow")


class ForecastCreate(BaseModel):
    """Request model for saving a forecast."""
    forecast_period: Optional[Union[int, str]] = Field(
        None, description="'Month N', N or 'YYYY-MM'; latest period when omitted"
    )
    progress_report_id: Optional[int] = Field(None, description="Approved report backing the forecast")
    line_items: Optional[List[ForecastLineItemIn]] = None
    summary: Optional[dict] = None
    notes: Optional[str] = Field(None, max_length=5000)
    actor: Optional[str] = Field(None, max_length=100, description="User saving the forecast")


class ForecastUpdate(BaseModel):
    """Request model for updating forecast overrides or notes."""
    line_items: Optional[List[ForecastLineItemIn]] = None
    summary: Optional[dict] = None
    notes: Optional[str] = Field(None, max_length=5000)


class TransitionRequest(BaseModel):
    actor: Optional[str] = Field(None, max_length=100)


class ProgressReportRef(BaseModel):
    id: int
    report_number: str
    report_date: str


class CostToCompleteResponse(BaseModel):
    """Fresh cost-to-complete report; nothing is persisted."""
    job_id: int
    forecast_period: str
    month_number: int
    year_month: str
    cutoff: str
    progress_report: ProgressReportRef
    line_items: List[dict]
    summary: dict
    match_statistics: dict


class PeriodResponse(BaseModel):
    forecast_period: str
    month_number: int
    year_month: str
    progress_report: ProgressReportRef
    cutoff: str


class ForecastResponse(BaseModel):
    """Saved forecast, or a generated one with status 'not_created'."""
    id: Optional[int]
    uuid: Optional[str]
    job_id: int
    forecast_period: str
    month_number: int
    progress_report_id: Optional[int]
    progress_report_number: Optional[str]
    progress_report_date: Optional[str]
    line_items: List[dict]
    summary: dict
    status: str
    notes: Optional[str]
    created_by: Optional[str] = None
    submitted_by: Optional[str] = None
    submitted_at: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    archived_by: Optional[str] = None
    archived_at: Optional[str] = None
    version_id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ForecastAnalyticsResponse(BaseModel):
    job_id: int
    forecast_count: int
    status_counts: dict
    trends: dict
    averages: dict
    latest: Optional[dict]


def _dump_items(items: Optional[List[ForecastLineItemIn]]) -> Optional[List[dict]]:
    if items is None:
        return None
    # Every forecast value a client sends is an override
    return [
        {key: value for key, value in item.model_dump().items() if key != 'overrides'}
        for item in items
    ]


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    "/{job_id}/cost-to-complete",
    response_model=CostToCompleteResponse,
    summary="Compute cost to complete",
    description="Run cost aggregation, progress reconciliation and EVM math for a period. Nothing is saved."
)
def get_cost_to_complete(
    job_id: int,
    period: Optional[str] = Query(None, description="'Month N', N or 'YYYY-MM'"),
    db: Session = Depends(get_db),
):
    try:
        return CostToCompleteService(db).build_report(job_id, period).to_dict()
    except DomainError as e:
        raise to_http_exception(e)


@router.get(
    "/{job_id}/cost-to-complete/periods",
    response_model=List[PeriodResponse],
    summary="List forecast periods",
    description="Months of the job backed by an approved progress report"
)
def list_periods(job_id: int, db: Session = Depends(get_db)):
    try:
        periods = CostToCompleteService(db).reconciler.list_periods(job_id)
    except DomainError as e:
        raise to_http_exception(e)

    return [
        {
            'forecast_period': p.label,
            'month_number': p.month_number,
            'year_month': p.year_month,
            'cutoff': p.cutoff.isoformat(),
            'progress_report': {
                'id': p.progress_report.id,
                'report_number': p.progress_report.report_number,
                'report_date': p.progress_report.report_date.isoformat(),
            },
        }
        for p in periods
    ]


@router.post(
    "/{job_id}/cost-to-complete/forecasts",
    response_model=ForecastResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create or update a forecast",
    description="Saves the forecast for a period. Cost to date, earned to date and CPI are re-derived."
)
def save_forecast(job_id: int, data: ForecastCreate, db: Session = Depends(get_db)):
    try:
        forecast = ForecastLifecycleService(db).create_or_update(
            job_id,
            period=data.forecast_period,
            line_items=_dump_items(data.line_items),
            summary=data.summary,
            actor=data.actor,
            progress_report_id=data.progress_report_id,
            notes=data.notes,
        )
        return forecast_to_dict(forecast)
    except DomainError as e:
        raise to_http_exception(e)


@router.get(
    "/{job_id}/cost-to-complete/forecasts",
    response_model=List[ForecastResponse],
    summary="List forecasts",
    description="Saved forecasts plus generated, unsaved ones for every other valid period"
)
def list_forecasts(job_id: int, db: Session = Depends(get_db)):
    try:
        return ForecastLifecycleService(db).list_or_generate(job_id)
    except DomainError as e:
        raise to_http_exception(e)


@router.get(
    "/{job_id}/cost-to-complete/forecasts/analytics",
    response_model=ForecastAnalyticsResponse,
    summary="Forecast trends",
    description="CPI, cost, earned value and forecast trends across saved forecasts"
)
def forecast_analytics(job_id: int, db: Session = Depends(get_db)):
    try:
        return ForecastLifecycleService(db).analytics(job_id)
    except DomainError as e:
        raise to_http_exception(e)


@router.get(
    "/{job_id}/cost-to-complete/forecasts/{forecast_id}",
    response_model=ForecastResponse,
    summary="Get forecast by ID"
)
def get_forecast(job_id: int, forecast_id: int, db: Session = Depends(get_db)):
    try:
        return forecast_to_dict(ForecastLifecycleService(db).get(job_id, forecast_id))
    except DomainError as e:
        raise to_http_exception(e)


@router.put(
    "/{job_id}/cost-to-complete/forecasts/{forecast_id}",
    response_model=ForecastResponse,
    summary="Update forecast overrides",
    description="Replace forecast overrides or notes; derived fields are rebuilt from live data."
)
def update_forecast(job_id: int, forecast_id: int, data: ForecastUpdate, db: Session = Depends(get_db)):
    try:
        forecast = ForecastLifecycleService(db).update(
            job_id, forecast_id,
            line_items=_dump_items(data.line_items),
            summary=data.summary,
            notes=data.notes,
        )
        return forecast_to_dict(forecast)
    except DomainError as e:
        raise to_http_exception(e)


@router.delete(
    "/{job_id}/cost-to-complete/forecasts/{forecast_id}",
    response_model=ForecastResponse,
    summary="Archive forecast",
    description="Soft delete: the forecast is archived and leaves all active queries."
)
def archive_forecast(
    job_id: int,
    forecast_id: int,
    actor: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
):
    try:
        return forecast_to_dict(ForecastLifecycleService(db).archive(job_id, forecast_id, actor))
    except DomainError as e:
        raise to_http_exception(e)


@router.post(
    "/{job_id}/cost-to-complete/forecasts/{forecast_id}/submit",
    response_model=ForecastResponse,
    summary="Submit forecast"
)
def submit_forecast(
    job_id: int,
    forecast_id: int,
    data: Optional[TransitionRequest] = None,
    db: Session = Depends(get_db),
):
    try:
        actor = data.actor if data else None
        return forecast_to_dict(ForecastLifecycleService(db).submit(job_id, forecast_id, actor))
    except DomainError as e:
        raise to_http_exception(e)


@router.post(
    "/{job_id}/cost-to-complete/forecasts/{forecast_id}/approve",
    response_model=ForecastResponse,
    summary="Approve forecast"
)
def approve_forecast(
    job_id: int,
    forecast_id: int,
    data: Optional[TransitionRequest] = None,
    db: Session = Depends(get_db),
):
    try:
        actor = data.actor if data else None
        return forecast_to_dict(ForecastLifecycleService(db).approve(job_id, forecast_id, actor))
    except DomainError as e:
        raise to_http_exception(e)
