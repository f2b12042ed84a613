"""
Forecast Repository - Persisted cost-to-complete forecasts.

Archived forecasts are soft-deleted and excluded from every active query.
"""
import uuid
from typing import List, Optional
from sqlalchemy.orm import Session

from jobcost.models import CostToCompleteForecast, ForecastStatus
from jobcost.domain.exceptions import ForecastNotFoundError
from .base_repository import BaseRepository


class ForecastRepository(BaseRepository[CostToCompleteForecast]):
    """Repository for CostToCompleteForecast entities."""

    def __init__(self, session: Session):
        super().__init__(session, CostToCompleteForecast)

    def _active(self, job_id: int):
        return self.session.query(CostToCompleteForecast).filter(
            CostToCompleteForecast.job_id == job_id,
            CostToCompleteForecast.status != ForecastStatus.ARCHIVED.value,
        )

    def get_for_job(self, job_id: int, forecast_id: int) -> CostToCompleteForecast:
        """
        Get a forecast belonging to a job, archived or not.

        Raises:
            ForecastNotFoundError: If absent or owned by another job
        """
        forecast = self.get_by_id(forecast_id)
        if not forecast or forecast.job_id != job_id:
            raise ForecastNotFoundError(forecast_id)
        return forecast

    def get_active_by_job(self, job_id: int) -> List[CostToCompleteForecast]:
        """Non-archived forecasts of a job, by month."""
        return self._active(job_id).order_by(
            CostToCompleteForecast.month_number
        ).all()

    def get_active_for_period(self, job_id: int, month_number: int) -> Optional[CostToCompleteForecast]:
        return self._active(job_id).filter(
            CostToCompleteForecast.month_number == month_number
        ).first()

    def get_active_by_progress_report(
        self,
        job_id: int,
        progress_report_id: int,
        exclude_forecast_id: Optional[int] = None,
    ) -> Optional[CostToCompleteForecast]:
        """Active forecast already linked to a progress report, if any."""
        query = self._active(job_id).filter(
            CostToCompleteForecast.progress_report_id == progress_report_id
        )
        if exclude_forecast_id is not None:
            query = query.filter(CostToCompleteForecast.id != exclude_forecast_id)
        return query.first()

    def create(
        self,
        job_id: int,
        forecast_period: str,
        month_number: int,
        line_items: list,
        summary: dict,
        progress_report=None,
        created_by: Optional[str] = None,
        notes: Optional[str] = None,
        status: str = ForecastStatus.DRAFT.value,
    ) -> CostToCompleteForecast:
        forecast = CostToCompleteForecast(
            uuid=str(uuid.uuid4()),
            job_id=job_id,
            forecast_period=forecast_period,
            month_number=month_number,
            progress_report_id=progress_report.id if progress_report is not None else None,
            progress_report_number=progress_report.report_number if progress_report is not None else None,
            progress_report_date=progress_report.report_date if progress_report is not None else None,
            line_items=line_items,
            summary=summary,
            status=status,
            created_by=created_by,
            notes=notes,
        )
        self.add(forecast)
        return forecast
