"""
Cost and Earned Value Entities.

Amounts are integer cents. Ratios (CPI, SPI, TCPI, percentages) are floats.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

from .budget_group import GroupKey
from .cost_record import CostRecord, MatchResult


# =============================================================================
# Aggregated Cost
# =============================================================================

@dataclass
class LineCost:
    """Cost attributed to one SOV line (or group) up to a cutoff."""
    labor_cost: int = 0
    invoice_cost: int = 0
    total_hours: float = 0.0
    record_count: int = 0

    @property
    def total_cost(self) -> int:
        return self.labor_cost + self.invoice_cost

    def add_record(self, record: CostRecord) -> None:
        if record.is_labor:
            self.labor_cost += record.amount_cents
            self.total_hours += record.hours
        else:
            self.invoice_cost += record.amount_cents
        self.record_count += 1

    def merge(self, other: "LineCost") -> None:
        self.labor_cost += other.labor_cost
        self.invoice_cost += other.invoice_cost
        self.total_hours += other.total_hours
        self.record_count += other.record_count

    def to_dict(self) -> dict:
        return {
            'labor_cost': self.labor_cost,
            'invoice_cost': self.invoice_cost,
            'total_cost': self.total_cost,
            'total_hours': self.total_hours,
            'record_count': self.record_count,
        }


@dataclass
class CostMap:
    """
    Line-level cost attribution plus the independent flat total.

    The flat total counts every qualifying record whether or not it could
    be attributed to a budget line.
    """
    cutoff: Optional[datetime] = None
    lines: Dict[int, LineCost] = field(default_factory=dict)
    flat_labor: int = 0
    flat_invoice: int = 0
    flat_hours: float = 0.0
    unmatched: List[CostRecord] = field(default_factory=list)
    matches: List[MatchResult] = field(default_factory=list)
    strategy_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def flat_total(self) -> int:
        return self.flat_labor + self.flat_invoice

    @property
    def attributed_total(self) -> int:
        return sum(cost.total_cost for cost in self.lines.values())

    @property
    def unattributed_cost(self) -> int:
        return max(0, self.flat_total - self.attributed_total)

    @property
    def project_cost_to_date(self) -> int:
        """Project cost to date: never lower than line-level attribution."""
        return max(self.flat_total, self.attributed_total)

    def get(self, budget_line_id: int) -> LineCost:
        return self.lines.get(budget_line_id, LineCost())


# =============================================================================
# Earned Value
# =============================================================================

@dataclass(frozen=True)
class EVMParameters:
    """Clamp factors and status threshold for the extrapolation."""
    floor_factor: float = 1.05
    ceiling_factor: float = 2.0
    over_budget_threshold_percent: float = 10.0

    @classmethod
    def from_config(cls, config) -> "EVMParameters":
        return cls(
            floor_factor=config.forecast_floor_factor,
            ceiling_factor=config.forecast_ceiling_factor,
            over_budget_threshold_percent=config.over_budget_threshold_percent,
        )


@dataclass
class ProgressInput:
    """Approved complete-to-date for one group, as read from a progress report."""
    approved_amount: Optional[int] = None
    approved_percent: Optional[float] = None
    previous_amount: int = 0


@dataclass
class LineMetrics:
    """Earned value metrics for one (Area, System) group."""
    key: GroupKey
    budget_cost: int
    bac: int
    ev: int
    ac: int
    pv: int
    cv: int
    sv: int
    cpi: float
    spi: float
    percent_complete: float
    forecast_final_cost: int
    eac: int
    etc: int
    vac: int
    tcpi: float
    status: str
    labor_cost: int = 0
    invoice_cost: int = 0
    total_hours: float = 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data['key'] = self.key.label
        data['area'] = self.key.area
        data['system'] = self.key.system
        return data


@dataclass
class ProjectMetrics:
    """Earned value metrics recomputed at project level from summed inputs."""
    budget_cost: int
    bac: int
    ev: int
    ac: int
    pv: int
    cv: int
    sv: int
    cpi: float
    spi: float
    percent_complete: float
    forecast_final_cost: int
    eac: int
    etc: int
    vac: int
    tcpi: float
    status: str
    attributed_cost: int = 0
    flat_cost: int = 0
    unattributed_cost: int = 0
    lines_over_budget: int = 0
    lines_at_risk: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
