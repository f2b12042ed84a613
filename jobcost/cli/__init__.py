"""
CLI Module - Command-line interface for job cost forecasting.

Provides management commands for:
- Cost-to-complete reports and forecast periods
- Forecast lifecycle (save, submit, approve, archive)
- Earned vs burned analysis
"""

from .forecast_commands import forecast, register_commands

__all__ = ['forecast', 'register_commands']
