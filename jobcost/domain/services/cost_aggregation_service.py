"""
Cost Aggregation Service - Labor and invoice cost up to a cutoff date.

Aggregation rules:
- Labor: approved time entries with work date <= cutoff (burdened cost)
- Invoices: every allocation of invoices dated <= cutoff
- Each record is attributed to an SOV line through the matching chain
- A flat total of every qualifying record is kept independently, so
  project cost to date never depends on attribution succeeding
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobcost.config import get_config
from jobcost.domain.entities import CostMap, CostRecord, CostSource, LineCost
from jobcost.domain.exceptions import CostAggregationError
from jobcost.infrastructure.repositories import (
    BudgetLineRepository,
    InvoiceRepository,
    LaborCostRepository,
)
from .budget_grouping import BudgetGroupIndex, build_group_index
from .cost_matching import CostMatchResolver

logger = logging.getLogger(__name__)


class CostAggregationService:
    """
    Aggregates both cost streams into a line-level CostMap.

    Invariant: CostMap.project_cost_to_date >= CostMap.attributed_total
    """

    def __init__(self, session: Session, config=None):
        self.session = session
        self.config = config or get_config()
        self.budget_repo = BudgetLineRepository(session)
        self.labor_repo = LaborCostRepository(session)
        self.invoice_repo = InvoiceRepository(session)

    def load_group_index(self, job_id: int) -> BudgetGroupIndex:
        """Build the grouping index from the job's current SOV."""
        try:
            return build_group_index(self.budget_repo.get_by_job(job_id))
        except SQLAlchemyError as e:
            raise CostAggregationError(job_id, f"could not load schedule of values: {e}") from e

    # =========================================================================
    # Record Loading
    # =========================================================================

    def labor_records(self, job_id: int, cutoff: datetime) -> List[CostRecord]:
        return [
            CostRecord(
                source=CostSource.LABOR,
                record_id=r.id,
                record_date=r.work_date,
                amount_cents=r.total_cost_cents or 0,
                cost_code=r.cost_code,
                budget_line_id=r.budget_line_id,
                area=r.area,
                system=r.system,
                hours=r.total_hours or 0.0,
                reference=r.worker_name,
            )
            for r in self.labor_repo.get_approved_through(job_id, cutoff)
        ]

    def invoice_records(self, job_id: int, cutoff: datetime) -> List[CostRecord]:
        return [
            CostRecord(
                source=CostSource.INVOICE,
                record_id=allocation.id,
                record_date=invoice.invoice_date,
                amount_cents=allocation.amount_cents or 0,
                cost_code=allocation.cost_code,
                budget_line_id=allocation.budget_line_id,
                area=allocation.area,
                system=allocation.system,
                reference=invoice.invoice_number,
            )
            for allocation, invoice in self.invoice_repo.get_allocations_through(job_id, cutoff)
        ]

    # =========================================================================
    # Aggregation
    # =========================================================================

    def aggregate_costs(
        self,
        job_id: int,
        cutoff: datetime,
        index: Optional[BudgetGroupIndex] = None,
    ) -> CostMap:
        """
        Aggregate labor and invoice cost through the cutoff.

        Args:
            job_id: Job identifier
            cutoff: Inclusive cutoff; records dated after it are excluded
            index: Grouping index to reuse within one request

        Returns:
            CostMap keyed by SOV line id

        Raises:
            CostAggregationError: If any query fails; no partial map is returned
        """
        if index is None:
            index = self.load_group_index(job_id)

        try:
            records = self.labor_records(job_id, cutoff) + self.invoice_records(job_id, cutoff)
        except SQLAlchemyError as e:
            logger.error(f"Cost aggregation failed for job {job_id} at {cutoff}: {e}")
            raise CostAggregationError(job_id, str(e)) from e

        resolver = CostMatchResolver(index, self.config.matching_strategies)
        cost_map = CostMap(cutoff=cutoff)

        for record in records:
            if record.is_labor:
                cost_map.flat_labor += record.amount_cents
                cost_map.flat_hours += record.hours
            else:
                cost_map.flat_invoice += record.amount_cents

            result = resolver.resolve(record)
            cost_map.matches.append(result)
            if result.matched:
                cost_map.lines.setdefault(result.budget_line_id, LineCost()).add_record(record)
            else:
                cost_map.unmatched.append(record)

        cost_map.strategy_counts = dict(resolver.stats)

        if cost_map.unmatched:
            logger.warning(
                f"Job {job_id}: {len(cost_map.unmatched)} cost records "
                f"({cost_map.unattributed_cost} cents) not attributed to any SOV line "
                f"through {cutoff:%Y-%m-%d}; included in project total only"
            )
        logger.debug(f"Job {job_id} match statistics: {cost_map.strategy_counts}")
        return cost_map

    def cost_to_date(self, job_id: int, cutoff: datetime, index: Optional[BudgetGroupIndex] = None) -> int:
        """Project cost to date: max(flat total, attributed total)."""
        return self.aggregate_costs(job_id, cutoff, index).project_cost_to_date
