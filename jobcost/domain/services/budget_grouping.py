"""
Budget Grouping Index - SOV lines grouped by (Area, System).

Built once per request from the job's SOV and passed by reference to the
matching chain and the earned value calculation.
"""
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from jobcost.domain.entities import CostMap, GroupInfo, GroupKey, LineCost, SOVLine


class BudgetGroupIndex:
    """
    Lookup tables over a job's Schedule of Values.

    - groups: (Area, System) -> GroupInfo, in SOV order of first appearance
    - line id -> group key
    - cost code -> SOV lines sharing it, in SOV order
    """

    def __init__(self, lines: Iterable[SOVLine]):
        self.groups: "OrderedDict[GroupKey, GroupInfo]" = OrderedDict()
        self._lines_by_id: Dict[int, SOVLine] = {}
        self._group_by_line: Dict[int, GroupKey] = {}
        self._lines_by_code: Dict[str, List[SOVLine]] = {}

        for line in lines:
            key = line.group_key
            if key not in self.groups:
                self.groups[key] = GroupInfo(key=key)
            self.groups[key].add(line)
            self._lines_by_id[line.id] = line
            self._group_by_line[line.id] = key
            code = line.normalized_cost_code
            if code:
                self._lines_by_code.setdefault(code, []).append(line)

    def __len__(self) -> int:
        return len(self.groups)

    def __iter__(self):
        return iter(self.groups.values())

    def __contains__(self, key: GroupKey) -> bool:
        return key in self.groups

    def get(self, key: GroupKey) -> Optional[GroupInfo]:
        return self.groups.get(key)

    def has_line(self, line_id: int) -> bool:
        return line_id in self._lines_by_id

    def line(self, line_id: int) -> Optional[SOVLine]:
        return self._lines_by_id.get(line_id)

    def group_for_line(self, line_id: int) -> Optional[GroupKey]:
        return self._group_by_line.get(line_id)

    def lines_for_cost_code(self, cost_code: Optional[str]) -> List[SOVLine]:
        """SOV lines sharing a cost code (case-insensitive), in SOV order."""
        if not cost_code:
            return []
        return list(self._lines_by_code.get(cost_code.strip().upper(), []))

    def groups_for_cost_code(self, cost_code: Optional[str]) -> List[GroupKey]:
        keys: List[GroupKey] = []
        for line in self.lines_for_cost_code(cost_code):
            if line.group_key not in keys:
                keys.append(line.group_key)
        return keys

    @property
    def total_budget_cost(self) -> int:
        return sum(g.total_budget_cost for g in self.groups.values())

    @property
    def total_budget_value(self) -> int:
        return sum(g.total_budget_value for g in self.groups.values())

    def summarize_costs(self, cost_map: CostMap) -> Dict[GroupKey, LineCost]:
        """
        Sum a line-level cost map into group granularity.

        Every group is present in the result, with zero cost when nothing
        was attributed to any of its lines.
        """
        totals: Dict[GroupKey, LineCost] = {key: LineCost() for key in self.groups}
        for line_id, cost in cost_map.lines.items():
            key = self._group_by_line.get(line_id)
            if key is None:
                continue
            totals[key].merge(cost)
        return totals


def build_group_index(budget_lines: Iterable) -> BudgetGroupIndex:
    """
    Build the grouping index from SOV lines.

    Args:
        budget_lines: SOVLine values or BudgetLine models

    Returns:
        BudgetGroupIndex
    """
    lines = [
        line if isinstance(line, SOVLine) else SOVLine.from_model(line)
        for line in budget_lines
    ]
    return BudgetGroupIndex(lines)
