"""
Repository implementations for data access layer.
"""
from .base_repository import BaseRepository
from .job_repository import JobRepository, BudgetLineRepository
from .cost_record_repository import LaborCostRepository, InvoiceRepository
from .progress_report_repository import (
    ProgressReportRepository, previous_ctd_by_group, validate_report_lines,
)
from .forecast_repository import ForecastRepository

__all__ = [
    'BaseRepository',
    'JobRepository',
    'BudgetLineRepository',
    'LaborCostRepository',
    'InvoiceRepository',
    'ProgressReportRepository',
    'validate_report_lines',
    'previous_ctd_by_group',
    'ForecastRepository',
]
