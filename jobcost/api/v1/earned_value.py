"""
Earned Value API Endpoints.

Implements:
- GET /api/v1/jobs/{job_id}/earned-vs-burned - EVM rollup by area, system or group
- GET /api/v1/jobs/{job_id}/cost-breakdown - Monthly cost pivot
- GET /api/v1/jobs/{job_id}/monthly-cost-report - Cost and earned value by month
"""
from datetime import date
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from jobcost.models import get_db
from jobcost.domain.exceptions import DomainError
from jobcost.domain.services import CostBreakdownService, CostToCompleteService
from .errors import to_http_exception

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================

class EarnedVsBurnedResponse(BaseModel):
    """EV from the latest approved report; AC bounded by as_of_date."""
    job_id: int
    as_of_date: str
    group_by: str
    progress_report: Optional[dict]
    rows: List[dict]
    totals: dict
    match_statistics: Dict[str, int]


class CostBreakdownResponse(BaseModel):
    job_id: int
    group_by: str
    as_of_date: str
    periods: List[str]
    labor_costs: List[dict]
    invoice_costs: List[dict]
    pivot: Dict[str, Dict[str, int]]
    totals_by_period: Dict[str, int]


class MonthlyCostReportResponse(BaseModel):
    """One row per month from the first cost or approved report through as_of_date."""
    job_id: int
    as_of_date: str
    months: List[dict]
    totals: dict


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    "/{job_id}/earned-vs-burned",
    response_model=EarnedVsBurnedResponse,
    summary="Earned vs burned",
    description=(
        "Earned value against actual cost. EV always uses the latest approved "
        "progress report; as_of_date bounds actual cost only."
    )
)
def earned_vs_burned(
    job_id: int,
    as_of_date: Optional[date] = Query(None, description="Inclusive cost cutoff (YYYY-MM-DD)"),
    group_by: str = Query("flat", pattern="^(flat|area|system)$"),
    db: Session = Depends(get_db),
):
    try:
        return CostToCompleteService(db).earned_vs_burned(job_id, as_of_date, group_by)
    except DomainError as e:
        raise to_http_exception(e)


@router.get(
    "/{job_id}/cost-breakdown",
    response_model=CostBreakdownResponse,
    summary="Monthly cost breakdown",
    description="Labor and invoice cost per month by cost code, area, system or phase"
)
def cost_breakdown(
    job_id: int,
    group_by: str = Query("cost_code", pattern="^(cost_code|area|system|phase)$"),
    as_of_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        return CostBreakdownService(db).breakdown(job_id, group_by, as_of_date)
    except DomainError as e:
        raise to_http_exception(e)


@router.get(
    "/{job_id}/monthly-cost-report",
    response_model=MonthlyCostReportResponse,
    summary="Monthly cost report",
    description=(
        "Labor, invoice and cumulative cost per month next to the approved "
        "progress earned by each month's end"
    )
)
def monthly_cost_report(
    job_id: int,
    as_of_date: Optional[date] = Query(None, description="Inclusive cutoff (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
):
    try:
        return CostBreakdownService(db).monthly_cost_report(job_id, as_of_date)
    except DomainError as e:
        raise to_http_exception(e)
