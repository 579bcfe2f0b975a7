"""
Configuration loading and logging setup.

Settings live in ``config.yaml`` at the project root and are validated into
pydantic models. API credentials are read from environment variables (see
``.env.example``) by the Binance adapters, never from the YAML file.
"""

import sys
from pathlib import Path
from typing import List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from .core.models import PartitionPlan, RiskConfig


PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config.yaml"


class ConfigError(Exception):
    """
    Raised when configuration is missing or invalid.

    This exception indicates a problem with config.yaml that must be
    resolved before the trader can start.
    """
    pass


class EntryConfig(BaseModel):
    """
    Parameters snapshot for one entry trigger.

    The weight and take-profit lists are paired by position; their lengths
    are checked when the partition plan is built so that a mismatch aborts
    the entry instead of the configuration load.

    Examples:
        >>> EntryConfig().weights
        [60.0, 15.0, 15.0, 10.0]
        >>> EntryConfig().take_profits
        [30.0, 50.0, 100.0, 0.0]
    """

    model_config = {"frozen": True}

    scale_factor: float = Field(default=2.0, gt=0)
    risk_percent: float = Field(default=1.0, gt=0, le=100)
    weights: List[float] = Field(default_factory=lambda: [60.0, 15.0, 15.0, 10.0], min_length=1)
    take_profits: List[float] = Field(default_factory=lambda: [30.0, 50.0, 100.0, 0.0], min_length=1)

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, weights: List[float]) -> List[float]:
        for weight in weights:
            if not 0 <= weight <= 100:
                raise ValueError(f"partition weight must be within 0-100%, got {weight}")
        return weights

    @field_validator("take_profits")
    @classmethod
    def validate_take_profits(cls, take_profits: List[float]) -> List[float]:
        for take_profit in take_profits:
            if take_profit < 0:
                raise ValueError(f"take-profit distance must be non-negative, got {take_profit}")
        return take_profits

    def risk(self) -> RiskConfig:
        return RiskConfig(scale_factor=self.scale_factor, risk_percent=self.risk_percent)

    def plan(self) -> PartitionPlan:
        """
        Raises:
            PartitionArityMismatch: If weights and take_profits differ in length
        """
        return PartitionPlan.from_parallel(self.weights, self.take_profits)


class AppConfig(BaseModel):
    """Top-level trader configuration (config.yaml)."""

    symbol: str = Field(default="BTCUSDT", min_length=1)
    use_testnet: bool = True
    sizing_timeframe: str = Field(default="15m", min_length=1)
    label_timeframes: List[str] = Field(default_factory=lambda: ["15m", "1h"], min_length=1)
    atr_period: int = Field(default=14, gt=0)
    pip_size: float = Field(default=1.0, gt=0)
    skip_zero_volume: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = "logs/atr_trader.log"
    entry: EntryConfig = Field(default_factory=EntryConfig)

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, symbol: str) -> str:
        return symbol.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, level: str) -> str:
        level = level.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {level!r}")
        return level

    @property
    def timeframes(self) -> List[str]:
        """Every timeframe that needs an ATR reading, sizing timeframe first."""
        ordered = [self.sizing_timeframe]
        for timeframe in self.label_timeframes:
            if timeframe not in ordered:
                ordered.append(timeframe)
        return ordered


def load_config(config_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Path to the YAML file (default: project root config.yaml)

    Raises:
        ConfigError: If the file is missing, empty, unparsable or invalid
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, 'r') as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration file: {e}") from e

    if raw is None:
        raise ConfigError("Configuration file is empty")
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Configuration file must contain a mapping, got {type(raw).__name__}"
        )

    try:
        config = AppConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.debug(f"Loaded configuration from {path}")
    return config


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure loguru sinks: stderr, plus a rotating file when requested.

    Relative log file paths are resolved against the project root.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
               "<cyan>{name}</cyan> - <level>{message}</level>"
    )

    if log_file:
        path = Path(log_file)
        if not path.is_absolute():
            path = PROJECT_ROOT / path
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=level, rotation="10 MB", retention=5, enqueue=True)
