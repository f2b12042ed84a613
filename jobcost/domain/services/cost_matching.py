"""
Cost Matching - Attribute cost records to Schedule of Values lines.

Matching Strategy (configurable order, first hit wins):
1. ByDirectReference - the record's own SOV line reference
2. ByCostCode - first SOV line sharing the record's cost code
3. ByAreaSystemGroup - first SOV line of the record's (Area, System) hint

Each strategy is stateless; the resolver records which one matched so
attribution can be audited.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence
import logging

from jobcost.domain.entities import CostRecord, GroupKey, MatchResult
from .budget_grouping import BudgetGroupIndex

logger = logging.getLogger(__name__)


class MatchingStrategy(ABC):
    """A single attribution rule returning an SOV line id or None."""

    name: str = ""

    @abstractmethod
    def match(self, record: CostRecord, index: BudgetGroupIndex) -> Optional[int]:
        pass


class ByDirectReference(MatchingStrategy):
    """Use the record's SOV reference when it belongs to this job's SOV."""

    name = "direct_reference"

    def match(self, record: CostRecord, index: BudgetGroupIndex) -> Optional[int]:
        if record.budget_line_id is None:
            return None
        if not index.has_line(record.budget_line_id):
            logger.warning(
                f"{record.source.value} record {record.record_id} references "
                f"SOV line {record.budget_line_id} outside the job's SOV"
            )
            return None
        return record.budget_line_id


class ByCostCode(MatchingStrategy):
    """
    First SOV line sharing the cost code.

    When several lines share a code the full amount goes to the first one
    in SOV order; there is no proportional split.
    """

    name = "cost_code"

    def match(self, record: CostRecord, index: BudgetGroupIndex) -> Optional[int]:
        candidates = index.lines_for_cost_code(record.normalized_cost_code)
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.debug(
                f"Cost code {record.cost_code} matches {len(candidates)} SOV lines; "
                f"attributing {record.source.value} record {record.record_id} "
                f"to line {candidates[0].id}"
            )
        return candidates[0].id


class ByAreaSystemGroup(MatchingStrategy):
    """First SOV line of the (Area, System) group named by the record's hints."""

    name = "area_system_group"

    def match(self, record: CostRecord, index: BudgetGroupIndex) -> Optional[int]:
        if not record.area or not record.system:
            return None
        group = index.get(GroupKey.of(record.area, record.system))
        if group is None or not group.lines:
            return None
        return group.lines[0].id


STRATEGIES: Dict[str, type] = {
    ByDirectReference.name: ByDirectReference,
    ByCostCode.name: ByCostCode,
    ByAreaSystemGroup.name: ByAreaSystemGroup,
}


class CostMatchResolver:
    """
    Runs matching strategies in order and keeps per-strategy statistics.

    Scoped to one computation; build a new resolver per request.
    """

    def __init__(self, index: BudgetGroupIndex, strategy_names: Optional[Sequence[str]] = None):
        self.index = index
        names = list(strategy_names) if strategy_names else list(STRATEGIES)
        self.strategies: List[MatchingStrategy] = [STRATEGIES[name]() for name in names]
        self.stats: Dict[str, int] = {s.name: 0 for s in self.strategies}
        self.stats['unmatched'] = 0

    def resolve(self, record: CostRecord) -> MatchResult:
        for strategy in self.strategies:
            line_id = strategy.match(record, self.index)
            if line_id is not None:
                self.stats[strategy.name] += 1
                return MatchResult(record=record, budget_line_id=line_id, strategy=strategy.name)

        self.stats['unmatched'] += 1
        logger.warning(
            f"Unattributed {record.source.value} cost: record {record.record_id} "
            f"({record.reference or 'no reference'}), cost code {record.cost_code!r}, "
            f"{record.amount_cents} cents"
        )
        return MatchResult(record=record)
