"""
Configuration loader for the Job Cost Forecasting engine.

Loads settings from jobcost_config.yaml and provides typed access
to all configuration sections.
"""
import os
from pathlib import Path
from typing import Any, Optional
from functools import lru_cache

import yaml


# Default config path relative to project root
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "jobcost_config.yaml"

CONFIG_PATH_ENV = "JOBCOST_CONFIG"
DATABASE_URL_ENV = "JOBCOST_DATABASE_URL"

DEFAULT_MATCHING_STRATEGIES = ["direct_reference", "cost_code", "area_system_group"]


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


class JobCostConfig:
    """
    Configuration manager for the forecasting engine.

    Loads YAML configuration and provides typed access to all sections.
    Use get_config() to obtain the singleton instance.
    """

    def __init__(self, config_path: Optional[Path] = None):
        env_path = os.environ.get(CONFIG_PATH_ENV)
        self._config_path = config_path or (Path(env_path) if env_path else DEFAULT_CONFIG_PATH)
        self._config: dict = {}
        self._load()

    def _load(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            raise ConfigurationError(f"Config file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r') as f:
                self._config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self._config, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

        self._validate()

    def _validate(self) -> None:
        unknown = set(self.matching_strategies) - set(DEFAULT_MATCHING_STRATEGIES)
        if unknown:
            raise ConfigurationError(
                f"Unknown matching strategies: {', '.join(sorted(unknown))}"
            )
        if self.forecast_floor_factor < 1.0:
            raise ConfigurationError("evm.forecast_floor_factor must be >= 1.0")
        if self.forecast_ceiling_factor < self.forecast_floor_factor:
            raise ConfigurationError(
                "evm.forecast_ceiling_factor must be >= evm.forecast_floor_factor"
            )

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load()
        get_config.cache_clear()

    @property
    def version(self) -> str:
        """Configuration file version."""
        return self._config.get("version", "unknown")

    # =========================================================================
    # Database
    # =========================================================================

    @property
    def database(self) -> dict:
        return self._config.get("database", {})

    @property
    def database_url(self) -> str:
        """Database URL; JOBCOST_DATABASE_URL takes precedence."""
        return os.environ.get(DATABASE_URL_ENV) or self.database.get(
            "url", "sqlite:///./jobcost.db"
        )

    # =========================================================================
    # Earned Value
    # =========================================================================

    @property
    def evm(self) -> dict:
        """Earned value calculation settings."""
        return self._config.get("evm", {})

    @property
    def forecast_floor_factor(self) -> float:
        """Minimum forecast as a multiple of cost to date."""
        return float(self.evm.get("forecast_floor_factor", 1.05))

    @property
    def forecast_ceiling_factor(self) -> float:
        """Maximum forecast as a multiple of budget at completion."""
        return float(self.evm.get("forecast_ceiling_factor", 2.0))

    @property
    def over_budget_threshold_percent(self) -> float:
        """Cost variance (percent of BAC) beyond which a group is over budget."""
        return float(self.evm.get("over_budget_threshold_percent", 10.0))

    # =========================================================================
    # Cost Matching
    # =========================================================================

    @property
    def matching(self) -> dict:
        return self._config.get("matching", {})

    @property
    def matching_strategies(self) -> list[str]:
        """Ordered matching strategy names tried for each cost record."""
        return list(self.matching.get("strategies", DEFAULT_MATCHING_STRATEGIES))

    # =========================================================================
    # Cost Records
    # =========================================================================

    @property
    def invoice_allocation_tolerance_cents(self) -> int:
        """Allowed difference between allocation sum and invoice total."""
        return int(self._config.get("invoices", {}).get("allocation_tolerance_cents", 1))

    @property
    def default_burden_rate(self) -> float:
        """Labor burden applied when a time entry carries no explicit rate."""
        return float(self._config.get("labor", {}).get("default_burden_rate", 0.35))

    # =========================================================================
    # Forecasts
    # =========================================================================

    @property
    def forecasts(self) -> dict:
        return self._config.get("forecasts", {})

    @property
    def period_label_format(self) -> str:
        """Format string for period labels; receives ``month_number``."""
        return self.forecasts.get("period_label_format", "Month {month_number}")

    @property
    def write_retry_attempts(self) -> int:
        """Retries after a lost write race on a forecast row."""
        return int(self.forecasts.get("write_retry_attempts", 1))

    # =========================================================================
    # Logging
    # =========================================================================

    @property
    def logging(self) -> dict:
        return self._config.get("logging", {})

    @property
    def log_level(self) -> str:
        return self.logging.get("level", "INFO")

    @property
    def log_format(self) -> str:
        return self.logging.get(
            "format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    # =========================================================================
    # Raw Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Get a top-level config value by key."""
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        return key in self._config


@lru_cache(maxsize=1)
def get_config(config_path: Optional[str] = None) -> JobCostConfig:
    """
    Get the singleton configuration instance.

    Args:
        config_path: Optional path to config file. Only used on first call.

    Returns:
        JobCostConfig singleton instance
    """
    path = Path(config_path) if config_path else None
    return JobCostConfig(path)


def reload_config() -> JobCostConfig:
    """Reload configuration from disk and return new instance."""
    get_config.cache_clear()
    return get_config()
