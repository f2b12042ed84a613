"""
Domain Entities - Value objects passed between forecasting stages.
"""

from .cost_record import CostRecord, CostSource, MatchResult
from .budget_group import GroupKey, GroupInfo, SOVLine, UNASSIGNED
from .metrics import (
    LineCost, CostMap, EVMParameters, ProgressInput, LineMetrics, ProjectMetrics,
)
from .period import ResolvedPeriod
from .report import CostToCompleteReport

__all__ = [
    'CostRecord', 'CostSource', 'MatchResult',
    'GroupKey', 'GroupInfo', 'SOVLine', 'UNASSIGNED',
    'LineCost', 'CostMap', 'EVMParameters', 'ProgressInput', 'LineMetrics', 'ProjectMetrics',
    'ResolvedPeriod',
    'CostToCompleteReport',
]
