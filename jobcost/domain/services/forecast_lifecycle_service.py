"""
Forecast Lifecycle Service - Persisted cost-to-complete forecasts.

Lifecycle: draft -> submitted -> approved; any active state -> archived.
Archived forecasts are terminal and excluded from active queries.

Cost to date, earned to date and CPI are never taken from the caller: they
are re-derived from live cost records and the linked progress report before
every write. A forecasted final cost/value supplied by a caller is a human
override: it is recorded in the line's 'overrides' list and kept across
re-derivation. Every other forecast value is recomputed.
"""
from collections import OrderedDict
import copy
from datetime import datetime
from typing import Callable, List, Optional
import logging

import pandas as pd
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from jobcost.config import get_config
from jobcost.models import CostToCompleteForecast, ForecastStatus
from jobcost.domain.entities import CostToCompleteReport, GroupKey, ResolvedPeriod
from jobcost.domain.exceptions import (
    ConcurrencyError,
    ForecastConflictError,
    InvalidPeriodError,
    InvalidStatusTransitionError,
    ValidationError,
)
from jobcost.infrastructure.repositories import ForecastRepository, JobRepository
from .cost_to_complete_service import (
    CostToCompleteService,
    apply_forecast_values,
    build_summary,
)

logger = logging.getLogger(__name__)

# target status -> statuses it may be reached from
TRANSITIONS = {
    ForecastStatus.SUBMITTED.value: {ForecastStatus.DRAFT.value},
    ForecastStatus.APPROVED.value: {ForecastStatus.SUBMITTED.value},
    ForecastStatus.ARCHIVED.value: {
        ForecastStatus.DRAFT.value,
        ForecastStatus.SUBMITTED.value,
        ForecastStatus.APPROVED.value,
    },
}

TREND_FIELDS = [
    'forecast_final_cost',
    'forecast_final_value',
    'margin_at_completion',
    'cpi',
    'cost_to_date',
    'earned_to_date',
]


OVERRIDE_FIELDS = ('forecasted_final_cost', 'forecasted_final_value')


def _item_key(item: dict) -> str:
    if item.get('group_key'):
        return item['group_key']
    return GroupKey.of(item.get('area'), item.get('system')).label


def _override_fields(item: dict) -> List[str]:
    """
    Forecast fields of a line that are human overrides.

    Stored lines list them under 'overrides'; on a caller-supplied line
    (no 'overrides' key) every forecast value present is an override.
    """
    candidates = (item['overrides'] or []) if 'overrides' in item else OVERRIDE_FIELDS
    return [f for f in OVERRIDE_FIELDS if f in candidates and item.get(f) is not None]


def merge_line_items(stored: Optional[List[dict]], supplied: Optional[List[dict]]) -> List[dict]:
    """Stored lines, with caller-supplied lines replacing them group by group."""
    merged = OrderedDict((_item_key(item), item) for item in stored or [])
    for item in supplied or []:
        merged[_item_key(item)] = item
    return list(merged.values())


# =============================================================================
# Volatile Field Derivation (pure)
# =============================================================================

def derive_volatile_fields(document: dict, live: CostToCompleteReport) -> dict:
    """
    Rebuild a forecast document's derived fields from a live report.

    Args:
        document: {'line_items': [...], 'summary': {...}} as supplied or stored
        live: Fresh report for the forecast's period

    Returns:
        New document. Every line takes its cost, earned value, indices and
        computed forecast from the live report; only override fields (see
        _override_fields) are kept from the document and recorded under
        'overrides'. Lines for groups absent from the live report are
        dropped. Extra summary keys supplied by the caller are kept.
    """
    supplied = {_item_key(item): item for item in document.get('line_items') or []}

    line_items = []
    for live_item in live.line_items:
        item = copy.deepcopy(live_item)
        item['overrides'] = []
        caller = supplied.pop(item['group_key'], None)
        if caller:
            for key, value in caller.items():
                item.setdefault(key, value)
            item['overrides'] = _override_fields(caller)
        overrides = item['overrides']
        if overrides:
            apply_forecast_values(
                item,
                caller['forecasted_final_cost'] if 'forecasted_final_cost' in overrides
                else item['forecasted_final_cost'],
                caller['forecasted_final_value'] if 'forecasted_final_value' in overrides
                else item['forecasted_final_value'],
            )
            if item['forecasted_final_cost'] < item['cost_to_date']:
                logger.warning(
                    f"Forecast override for {item['group_key']} "
                    f"({item['forecasted_final_cost']}) is below cost to date "
                    f"({item['cost_to_date']})"
                )
        line_items.append(item)

    for key in supplied:
        logger.warning(f"Dropping forecast line '{key}': no matching budget group")

    summary = dict(document.get('summary') or {})
    summary.update(build_summary(
        line_items, live.project, live.cost_this_period,
        live.earned_this_period, live.contract_value,
    ))
    return {'line_items': line_items, 'summary': summary}


def forecast_to_dict(forecast: CostToCompleteForecast) -> dict:
    def iso(value):
        return value.isoformat() if value else None

    return {
        'id': forecast.id,
        'uuid': forecast.uuid,
        'job_id': forecast.job_id,
        'forecast_period': forecast.forecast_period,
        'month_number': forecast.month_number,
        'progress_report_id': forecast.progress_report_id,
        'progress_report_number': forecast.progress_report_number,
        'progress_report_date': iso(forecast.progress_report_date),
        'line_items': forecast.line_items or [],
        'summary': forecast.summary or {},
        'status': forecast.status,
        'notes': forecast.notes,
        'created_by': forecast.created_by,
        'submitted_by': forecast.submitted_by,
        'submitted_at': iso(forecast.submitted_at),
        'approved_by': forecast.approved_by,
        'approved_at': iso(forecast.approved_at),
        'archived_by': forecast.archived_by,
        'archived_at': iso(forecast.archived_at),
        'version_id': forecast.version_id,
        'created_at': iso(forecast.created_at),
        'updated_at': iso(forecast.updated_at),
    }


class ForecastLifecycleService:
    """Creates, lists and transitions cost-to-complete forecasts."""

    def __init__(self, session: Session, config=None):
        self.session = session
        self.config = config or get_config()
        self.repo = ForecastRepository(session)
        self.job_repo = JobRepository(session)
        self.reports = CostToCompleteService(session, self.config)

    # =========================================================================
    # Write Helpers
    # =========================================================================

    def _with_retry(self, operation: Callable[[], CostToCompleteForecast], entity_id) -> CostToCompleteForecast:
        """
        Run a write and commit, retrying after a lost race.

        A race shows up as a unique-index violation (two writers creating the
        same period) or a stale version_id (two writers updating one row).
        """
        attempts = self.config.write_retry_attempts + 1
        for attempt in range(1, attempts + 1):
            try:
                forecast = operation()
                self.repo.commit()
                return forecast
            except (IntegrityError, StaleDataError) as e:
                self.repo.rollback()
                if attempt >= attempts:
                    logger.error(f"Forecast write for {entity_id} failed after {attempt} attempts: {e}")
                    raise ConcurrencyError("CostToCompleteForecast", entity_id) from e
                logger.warning(f"Forecast write conflict for {entity_id}, retrying ({attempt}/{attempts - 1})")

    def _live_for(self, forecast: CostToCompleteForecast) -> CostToCompleteReport:
        job = self.job_repo.get_or_raise(forecast.job_id)
        if forecast.progress_report_id is not None:
            resolved = self.reports.reconciler.resolve_report(forecast.job_id, forecast.progress_report_id)
        else:
            resolved = self.reports.reconciler.resolve_period(forecast.job_id, forecast.month_number)
        return self.reports.build_for_period(job, resolved)

    def _rederive(self, forecast: CostToCompleteForecast) -> None:
        document = derive_volatile_fields(
            {'line_items': forecast.line_items, 'summary': forecast.summary},
            self._live_for(forecast),
        )
        forecast.line_items = document['line_items']
        forecast.summary = document['summary']

    # =========================================================================
    # Create / Update
    # =========================================================================

    def _resolve_for_save(self, job_id: int, period, progress_report_id: Optional[int]) -> ResolvedPeriod:
        resolved = self.reports.resolve(job_id, period)
        if progress_report_id is None or progress_report_id == resolved.progress_report.id:
            return resolved

        linked = self.reports.reconciler.resolve_report(job_id, progress_report_id)
        if linked.month_number != resolved.month_number:
            raise ValidationError(
                "progress_report_id",
                f"report {linked.progress_report.report_number} belongs to "
                f"{linked.label}, not {resolved.label}",
            )
        return linked

    def create_or_update(
        self,
        job_id: int,
        period=None,
        line_items: Optional[List[dict]] = None,
        summary: Optional[dict] = None,
        actor: Optional[str] = None,
        progress_report_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> CostToCompleteForecast:
        """
        Save the forecast for a period, creating it or updating the active one.

        Raises:
            JobNotFoundError, ProgressReportNotFoundError, InvalidPeriodError
            ForecastConflictError: If the progress report backs another active forecast
            ConcurrencyError: If the write keeps losing races
        """
        job = self.job_repo.get_or_raise(job_id)
        resolved = self._resolve_for_save(job_id, period, progress_report_id)
        report = resolved.progress_report

        def save() -> CostToCompleteForecast:
            existing = self.repo.get_active_for_period(job_id, resolved.month_number)
            conflict = self.repo.get_active_by_progress_report(
                job_id, report.id, exclude_forecast_id=existing.id if existing else None
            )
            if conflict:
                raise ForecastConflictError(report.id, conflict.id, conflict.forecast_period)

            base_lines = merge_line_items(existing.line_items if existing else [], line_items)
            base_summary = summary if summary is not None else (existing.summary if existing else {})
            document = derive_volatile_fields(
                {'line_items': base_lines, 'summary': base_summary},
                self.reports.build_for_period(job, resolved),
            )

            if existing:
                existing.line_items = document['line_items']
                existing.summary = document['summary']
                existing.progress_report_id = report.id
                existing.progress_report_number = report.report_number
                existing.progress_report_date = report.report_date
                existing.forecast_period = resolved.label
                if notes is not None:
                    existing.notes = notes
                logger.info(f"Updated forecast {existing.id} for job {job_id} {resolved.label}")
                return existing

            forecast = self.repo.create(
                job_id=job_id,
                forecast_period=resolved.label,
                month_number=resolved.month_number,
                line_items=document['line_items'],
                summary=document['summary'],
                progress_report=report,
                created_by=actor,
                notes=notes,
            )
            logger.info(f"Created forecast for job {job_id} {resolved.label} by {actor or 'unknown'}")
            return forecast

        return self._with_retry(save, f"job {job_id} {resolved.label}")

    def update(
        self,
        job_id: int,
        forecast_id: int,
        line_items: Optional[List[dict]] = None,
        summary: Optional[dict] = None,
        notes: Optional[str] = None,
    ) -> CostToCompleteForecast:
        """Update overrides or notes of an active forecast; derived fields are rebuilt."""

        def save() -> CostToCompleteForecast:
            forecast = self.repo.get_for_job(job_id, forecast_id)
            if forecast.status == ForecastStatus.ARCHIVED.value:
                raise InvalidStatusTransitionError(forecast_id, forecast.status, "updated")
            if line_items is not None:
                forecast.line_items = merge_line_items(forecast.line_items, line_items)
            if summary is not None:
                forecast.summary = summary
            if notes is not None:
                forecast.notes = notes
            self._rederive(forecast)
            return forecast

        return self._with_retry(save, forecast_id)

    # =========================================================================
    # Transitions
    # =========================================================================

    def _transition(self, job_id: int, forecast_id: int, target: str, actor: Optional[str]) -> CostToCompleteForecast:
        def save() -> CostToCompleteForecast:
            forecast = self.repo.get_for_job(job_id, forecast_id)
            if forecast.status not in TRANSITIONS[target]:
                raise InvalidStatusTransitionError(forecast_id, forecast.status, target)

            if target == ForecastStatus.ARCHIVED.value:
                try:
                    self._rederive(forecast)
                except InvalidPeriodError as e:
                    # The backing report may have been un-approved since
                    logger.warning(f"Archiving forecast {forecast_id} without re-derivation: {e.message}")
            else:
                self._rederive(forecast)

            now = datetime.utcnow()
            forecast.status = target
            setattr(forecast, f"{target}_by", actor)
            setattr(forecast, f"{target}_at", now)
            logger.info(f"Forecast {forecast_id} {target} by {actor or 'unknown'}")
            return forecast

        return self._with_retry(save, forecast_id)

    def submit(self, job_id: int, forecast_id: int, actor: Optional[str] = None) -> CostToCompleteForecast:
        return self._transition(job_id, forecast_id, ForecastStatus.SUBMITTED.value, actor)

    def approve(self, job_id: int, forecast_id: int, actor: Optional[str] = None) -> CostToCompleteForecast:
        return self._transition(job_id, forecast_id, ForecastStatus.APPROVED.value, actor)

    def archive(self, job_id: int, forecast_id: int, actor: Optional[str] = None) -> CostToCompleteForecast:
        return self._transition(job_id, forecast_id, ForecastStatus.ARCHIVED.value, actor)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, job_id: int, forecast_id: int) -> CostToCompleteForecast:
        self.job_repo.get_or_raise(job_id)
        return self.repo.get_for_job(job_id, forecast_id)

    def list_or_generate(self, job_id: int) -> List[dict]:
        """
        Every valid period with its forecast.

        Periods without a saved forecast are computed on the fly, tagged
        'not_created' and not persisted.
        """
        job = self.job_repo.get_or_raise(job_id)
        persisted = {f.month_number: f for f in self.repo.get_active_by_job(job_id)}

        results = {month: forecast_to_dict(f) for month, f in persisted.items()}
        for resolved in self.reports.reconciler.list_periods(job_id):
            if resolved.month_number in results:
                continue
            live = self.reports.build_for_period(job, resolved)
            report = resolved.progress_report
            results[resolved.month_number] = {
                'id': None,
                'uuid': None,
                'job_id': job_id,
                'forecast_period': resolved.label,
                'month_number': resolved.month_number,
                'progress_report_id': report.id,
                'progress_report_number': report.report_number,
                'progress_report_date': report.report_date.isoformat(),
                'line_items': live.line_items,
                'summary': live.summary,
                'status': ForecastStatus.NOT_CREATED.value,
                'notes': None,
            }
        return [results[month] for month in sorted(results)]

    def analytics(self, job_id: int) -> dict:
        """Trends and averages over the job's active forecasts."""
        self.job_repo.get_or_raise(job_id)
        forecasts = self.repo.get_active_by_job(job_id)
        if not forecasts:
            return {
                'job_id': job_id,
                'forecast_count': 0,
                'status_counts': {},
                'trends': {'months': [], **{field: [] for field in TREND_FIELDS}},
                'averages': {},
                'latest': None,
            }

        df = pd.DataFrame([
            {
                'month': f.forecast_period,
                'month_number': f.month_number,
                'status': f.status,
                **{field: (f.summary or {}).get(field, 0) for field in TREND_FIELDS},
            }
            for f in forecasts
        ]).sort_values('month_number')
        df[TREND_FIELDS] = df[TREND_FIELDS].fillna(0)

        latest = df.iloc[-1]
        return {
            'job_id': job_id,
            'forecast_count': int(len(df)),
            'status_counts': {k: int(v) for k, v in df['status'].value_counts().items()},
            'trends': {
                'months': df['month'].tolist(),
                **{field: df[field].tolist() for field in TREND_FIELDS},
            },
            'averages': {
                'cpi': float(df['cpi'].mean()),
                'forecast_final_cost': float(df['forecast_final_cost'].mean()),
                'margin_at_completion': float(df['margin_at_completion'].mean()),
            },
            'latest': {
                'forecast_period': latest['month'],
                **{field: latest[field].item() if hasattr(latest[field], 'item') else latest[field]
                   for field in TREND_FIELDS},
            },
        }
