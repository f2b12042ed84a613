"""
Cost Record Entity - Normalized view of a labor or invoice cost.

Both cost streams are reduced to the same shape before matching so the
attribution chain never needs to know where a record came from.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional


class CostSource(Enum):
    LABOR = "labor"
    INVOICE = "invoice"


@dataclass(frozen=True)
class CostRecord:
    """
    A single attributable cost.

    Attributes:
        source: Labor time entry or invoice allocation
        record_id: Identifier of the source row (labor record or allocation)
        record_date: Work date or invoice date
        amount_cents: Cost including burden (labor) or allocated amount (invoice)
        cost_code: Cost code as entered, possibly blank
        budget_line_id: Direct SOV reference when the source carries one
        area: Optional area hint
        system: Optional system hint
        hours: Labor hours, zero for invoices
        reference: Human-readable reference for logs (worker or invoice number)
    """
    source: CostSource
    record_id: int
    record_date: date
    amount_cents: int
    cost_code: Optional[str] = None
    budget_line_id: Optional[int] = None
    area: Optional[str] = None
    system: Optional[str] = None
    hours: float = 0.0
    reference: str = ""

    @property
    def normalized_cost_code(self) -> Optional[str]:
        if not self.cost_code:
            return None
        code = self.cost_code.strip().upper()
        return code or None

    @property
    def is_labor(self) -> bool:
        return self.source is CostSource.LABOR


@dataclass(frozen=True)
class MatchResult:
    """Outcome of the attribution chain for one record."""
    record: CostRecord
    budget_line_id: Optional[int] = None
    strategy: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.budget_line_id is not None
