"""
EVM Calculator - Earned value metrics and bounded cost-to-complete forecast.

Pure functions, no database access. Formulas:
- EV = approved CTD amount (or approved % x BAC)
- PV = BAC x approved %
- CV = EV - AC,  SV = EV - PV
- CPI = EV / AC,  SPI = EV / PV  (0 when the denominator is 0)
- EAC = BAC / CPI (BAC when CPI is 0),  ETC = EAC - AC,  VAC = BAC - EAC
- TCPI = (BAC - EV) / (BAC - AC)

Forecast final cost extrapolates remaining budget at the current CPI and is
clamped: floor at AC x floor_factor, overrun override when AC > BAC, and a
ceiling at BAC x ceiling_factor that never drops below AC.
"""
import logging
from typing import Iterable, Optional

from jobcost.domain.entities import (
    EVMParameters,
    GroupInfo,
    LineCost,
    LineMetrics,
    ProgressInput,
    ProjectMetrics,
)

logger = logging.getLogger(__name__)

DEFAULT_PARAMETERS = EVMParameters()

STATUS_ON_BUDGET = "on_budget"
STATUS_AT_RISK = "at_risk"
STATUS_OVER_BUDGET = "over_budget"


def _ratio(numerator: float, denominator: float) -> float:
    """Division guarded against zero; 0 means 'no data'."""
    if denominator == 0:
        return 0.0
    return numerator / denominator


def _cents(value: float) -> int:
    return int(round(value))


# =============================================================================
# Building Blocks
# =============================================================================

def percent_complete(bac: int, progress: Optional[ProgressInput]) -> float:
    """Approved percent complete; derived from the amount when only that is present."""
    if progress is None:
        return 0.0
    if progress.approved_percent is not None:
        return float(progress.approved_percent)
    if progress.approved_amount is not None:
        return _ratio(progress.approved_amount, bac) * 100
    return 0.0


def earned_value(bac: int, progress: Optional[ProgressInput]) -> int:
    """Approved CTD amount, falling back to percent x BAC."""
    if progress is None:
        return 0
    if progress.approved_amount is not None:
        return int(progress.approved_amount)
    return _cents(percent_complete(bac, progress) / 100 * bac)


def classify_status(cv: int, bac: int, params: EVMParameters = DEFAULT_PARAMETERS) -> str:
    """
    Classify a cost variance.

    over_budget: CV < 0 and |CV| beyond the threshold share of BAC
    at_risk: CV < 0 within the threshold
    on_budget: otherwise
    """
    if cv < 0:
        if abs(cv) > bac * params.over_budget_threshold_percent / 100:
            return STATUS_OVER_BUDGET
        return STATUS_AT_RISK
    return STATUS_ON_BUDGET


def forecast_final_cost(
    bac: int,
    ac: int,
    percent: float,
    cpi: float,
    params: EVMParameters = DEFAULT_PARAMETERS,
) -> int:
    """
    Extrapolate final cost from progress and cost performance.

    Args:
        bac: Budget at completion in cents
        ac: Actual cost to date in cents
        percent: Approved percent complete (0-100)
        cpi: Cost performance index
        params: Clamp factors

    Returns:
        Forecast final cost in cents
    """
    # No information yet: assume on budget
    if percent <= 0 or ac <= 0:
        return bac

    remaining = bac - bac * (percent / 100)
    if cpi > 0:
        forecast = ac + remaining / cpi
    else:
        forecast = ac / (percent / 100)

    forecast = max(forecast, ac * params.floor_factor)

    if bac > 0 and ac > bac:
        overrun_fraction = ac / bac - 1
        forecast = ac + remaining * (1 + overrun_fraction)

    forecast = min(forecast, bac * params.ceiling_factor)
    # Ceiling cannot undercut money already spent
    return _cents(max(forecast, ac))


def _indices(bac: int, ev: int, ac: int, pv: int) -> dict:
    cpi = _ratio(ev, ac) if ac > 0 else 0.0
    spi = _ratio(ev, pv) if pv > 0 else 0.0
    eac = _cents(bac / cpi) if cpi > 0 else bac
    return {
        'cv': ev - ac,
        'sv': ev - pv,
        'cpi': cpi,
        'spi': spi,
        'eac': eac,
        'etc': eac - ac,
        'vac': bac - eac,
        'tcpi': _ratio(bac - ev, bac - ac),
    }


# =============================================================================
# Line and Project Metrics
# =============================================================================

def compute_line_metrics(
    group: GroupInfo,
    cost_data: Optional[LineCost],
    progress: Optional[ProgressInput],
    params: EVMParameters = DEFAULT_PARAMETERS,
) -> LineMetrics:
    """
    Compute earned value metrics for one (Area, System) group.

    Args:
        group: Budget group (BAC = total budget value)
        cost_data: Attributed cost for the group, None when nothing was attributed
        progress: Approved progress for the group, None when not reported
        params: Clamp factors and status threshold

    Returns:
        LineMetrics
    """
    cost_data = cost_data or LineCost()
    bac = group.total_budget_value
    ac = cost_data.total_cost
    pct = percent_complete(bac, progress)
    ev = earned_value(bac, progress)
    pv = _cents(bac * pct / 100)
    idx = _indices(bac, ev, ac, pv)

    return LineMetrics(
        key=group.key,
        budget_cost=group.total_budget_cost,
        bac=bac,
        ev=ev,
        ac=ac,
        pv=pv,
        percent_complete=pct,
        forecast_final_cost=forecast_final_cost(bac, ac, pct, idx['cpi'], params),
        status=classify_status(idx['cv'], bac, params),
        labor_cost=cost_data.labor_cost,
        invoice_cost=cost_data.invoice_cost,
        total_hours=cost_data.total_hours,
        **idx,
    )


def roll_up(
    line_metrics: Iterable[LineMetrics],
    params: EVMParameters = DEFAULT_PARAMETERS,
    flat_total: Optional[int] = None,
) -> ProjectMetrics:
    """
    Roll group metrics up to the project.

    BAC, EV, AC and PV are summed and every ratio is recomputed from the sums.
    When a flat total is given, project AC is the larger of it and the
    attributed sum, and the unattributed difference is added to the forecast.
    """
    lines = list(line_metrics)
    bac = sum(m.bac for m in lines)
    budget_cost = sum(m.budget_cost for m in lines)
    ev = sum(m.ev for m in lines)
    pv = sum(m.pv for m in lines)
    attributed = sum(m.ac for m in lines)

    ac = attributed
    if flat_total is not None:
        ac = max(flat_total, attributed)
    unattributed = ac - attributed
    if unattributed:
        logger.debug(f"Rollup includes {unattributed} cents of unattributed cost")

    idx = _indices(bac, ev, ac, pv)
    forecast = sum(m.forecast_final_cost for m in lines) + unattributed

    return ProjectMetrics(
        budget_cost=budget_cost,
        bac=bac,
        ev=ev,
        ac=ac,
        pv=pv,
        percent_complete=_ratio(ev, bac) * 100,
        forecast_final_cost=forecast,
        status=classify_status(idx['cv'], bac, params),
        attributed_cost=attributed,
        flat_cost=flat_total if flat_total is not None else attributed,
        unattributed_cost=unattributed,
        lines_over_budget=sum(1 for m in lines if m.status == STATUS_OVER_BUDGET),
        lines_at_risk=sum(1 for m in lines if m.status == STATUS_AT_RISK),
        **idx,
    )
