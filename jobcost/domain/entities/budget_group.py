"""
Budget Group Entities - SOV lines grouped to progress-report granularity.

Progress reports are submitted per (Area, System). SOV lines are finer,
so every earned-value computation happens on these groups.
"""
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional

UNASSIGNED = "Unassigned"


def _clean_label(value: Optional[str]) -> str:
    if value is None:
        return UNASSIGNED
    value = value.strip()
    return value or UNASSIGNED


class GroupKey(NamedTuple):
    """(Area, System) identity of a budget group."""
    area: str
    system: str

    @classmethod
    def of(cls, area: Optional[str], system: Optional[str]) -> "GroupKey":
        return cls(_clean_label(area), _clean_label(system))

    @property
    def label(self) -> str:
        return f"{self.area} / {self.system}"


@dataclass(frozen=True)
class SOVLine:
    """Immutable copy of a Schedule of Values line used during one computation."""
    id: int
    cost_code: str
    area: Optional[str] = None
    system: Optional[str] = None
    phase: Optional[str] = None
    budget_cost_cents: int = 0
    budget_value_cents: int = 0
    line_number: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_model(cls, line) -> "SOVLine":
        return cls(
            id=line.id,
            cost_code=line.cost_code,
            area=line.area,
            system=line.system,
            phase=line.phase,
            budget_cost_cents=line.budget_cost_cents or 0,
            budget_value_cents=line.budget_value_cents or 0,
            line_number=line.line_number,
            description=line.description,
        )

    @property
    def group_key(self) -> GroupKey:
        return GroupKey.of(self.area, self.system)

    @property
    def normalized_cost_code(self) -> str:
        return (self.cost_code or "").strip().upper()


@dataclass
class GroupInfo:
    """Budget totals and contributing lines for one (Area, System) group."""
    key: GroupKey
    total_budget_cost: int = 0
    total_budget_value: int = 0
    lines: List[SOVLine] = field(default_factory=list)

    def add(self, line: SOVLine) -> None:
        self.lines.append(line)
        self.total_budget_cost += line.budget_cost_cents
        self.total_budget_value += line.budget_value_cents

    @property
    def line_ids(self) -> List[int]:
        return [line.id for line in self.lines]
