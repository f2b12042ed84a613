"""
Domain Exceptions for Job Cost Forecasting.

Custom exceptions enforcing business rules:
- Entity existence (jobs, progress reports, forecasts)
- Forecast period validity
- One forecast per progress report
- Forecast lifecycle transitions
- Invoice allocation integrity
"""
from typing import Optional


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


# =============================================================================
# Not Found Exceptions
# =============================================================================

class JobNotFoundError(DomainError):
    """Raised when a job cannot be found."""

    def __init__(self, job_id):
        message = f"Job with id '{job_id}' not found"
        super().__init__(message, code="JOB_NOT_FOUND")
        self.job_id = job_id


class ProgressReportNotFoundError(DomainError):
    """Raised when a progress report cannot be found."""

    def __init__(self, report_id):
        message = f"Progress report with id '{report_id}' not found"
        super().__init__(message, code="PROGRESS_REPORT_NOT_FOUND")
        self.report_id = report_id


class ForecastNotFoundError(DomainError):
    """Raised when a cost-to-complete forecast cannot be found."""

    def __init__(self, forecast_id):
        message = f"Forecast with id '{forecast_id}' not found"
        super().__init__(message, code="FORECAST_NOT_FOUND")
        self.forecast_id = forecast_id


# =============================================================================
# Forecast Exceptions
# =============================================================================

class InvalidPeriodError(DomainError):
    """Raised when a forecast period is outside the job or has no approved report."""

    def __init__(self, period, reason: str, valid_range: Optional[str] = None):
        message = f"Invalid forecast period '{period}': {reason}"
        if valid_range:
            message += f". Valid range: {valid_range}"
        super().__init__(message, code="INVALID_PERIOD")
        self.period = period
        self.reason = reason
        self.valid_range = valid_range


class ForecastConflictError(DomainError):
    """Raised when a progress report is already linked to another active forecast."""

    def __init__(self, progress_report_id: int, forecast_id: int, forecast_period: str):
        message = (
            f"Progress report '{progress_report_id}' is already used by forecast "
            f"'{forecast_id}' ({forecast_period}). Archive that forecast first."
        )
        super().__init__(message, code="FORECAST_CONFLICT")
        self.progress_report_id = progress_report_id
        self.forecast_id = forecast_id
        self.forecast_period = forecast_period


class InvalidStatusTransitionError(DomainError):
    """Raised when a forecast or progress report lifecycle transition is not allowed."""

    def __init__(self, entity_id, current_status: str, target_status: str, entity: str = "Forecast"):
        message = (
            f"{entity} '{entity_id}' cannot move from "
            f"'{current_status}' to '{target_status}'"
        )
        super().__init__(message, code="INVALID_STATUS_TRANSITION")
        self.entity_id = entity_id
        self.entity = entity
        self.current_status = current_status
        self.target_status = target_status


# =============================================================================
# Cost Record Exceptions
# =============================================================================

class InvoiceAllocationMismatchError(DomainError):
    """Raised when invoice allocations do not sum to the invoice total."""

    def __init__(self, invoice_number: str, total_cents: int, allocated_cents: int):
        message = (
            f"Invoice '{invoice_number}' allocations ({allocated_cents:,} cents) "
            f"do not match invoice total ({total_cents:,} cents)"
        )
        super().__init__(message, code="INVOICE_ALLOCATION_MISMATCH")
        self.invoice_number = invoice_number
        self.total_cents = total_cents
        self.allocated_cents = allocated_cents


class CostAggregationError(DomainError):
    """Raised when cost aggregation fails. The forecast computation is aborted."""

    def __init__(self, job_id, reason: str):
        message = f"Cost aggregation failed for job '{job_id}': {reason}"
        super().__init__(message, code="COST_AGGREGATION_FAILED")
        self.job_id = job_id
        self.reason = reason


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationError(DomainError):
    """Raised when data validation fails."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Validation failed for '{field}': {message}", code="VALIDATION_ERROR")
        self.field = field


class ConcurrencyError(DomainError):
    """Raised when optimistic locking fails (version mismatch)."""

    def __init__(self, entity_type: str, entity_id):
        message = (
            f"Concurrent modification detected for {entity_type} '{entity_id}'. "
            f"Please refresh and try again."
        )
        super().__init__(message, code="CONCURRENCY_ERROR")
        self.entity_type = entity_type
        self.entity_id = entity_id
