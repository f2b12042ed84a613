"""
API v1 - REST endpoints for job cost forecasting.

- Cost-to-complete reports and forecast lifecycle
- Earned vs burned analysis
- Monthly cost breakdown and monthly cost report
- Progress report entry and approval
"""
from fastapi import APIRouter

from .cost_to_complete import router as cost_to_complete_router
from .earned_value import router as earned_value_router
from .progress_reports import router as progress_reports_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(cost_to_complete_router, prefix="/jobs", tags=["Cost to Complete"])
api_router.include_router(earned_value_router, prefix="/jobs", tags=["Earned Value"])
api_router.include_router(progress_reports_router, prefix="/jobs", tags=["Progress Reports"])
