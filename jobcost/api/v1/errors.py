"""
Domain error to HTTP status translation for v1 endpoints.
"""
import logging

from fastapi import HTTPException, status

from jobcost.domain.exceptions import (
    DomainError,
    JobNotFoundError,
    ProgressReportNotFoundError,
    ForecastNotFoundError,
    InvalidPeriodError,
    ForecastConflictError,
    InvalidStatusTransitionError,
    InvoiceAllocationMismatchError,
    ValidationError,
    ConcurrencyError,
    CostAggregationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
    ProgressReportNotFoundError: status.HTTP_404_NOT_FOUND,
    ForecastNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidPeriodError: status.HTTP_400_BAD_REQUEST,
    ForecastConflictError: status.HTTP_400_BAD_REQUEST,
    InvalidStatusTransitionError: status.HTTP_400_BAD_REQUEST,
    InvoiceAllocationMismatchError: status.HTTP_400_BAD_REQUEST,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ConcurrencyError: status.HTTP_409_CONFLICT,
    CostAggregationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_http_exception(error: DomainError) -> HTTPException:
    """Map a domain error to an HTTPException carrying its message and code."""
    status_code = STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error(f"{error.code}: {error.message}")
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )
