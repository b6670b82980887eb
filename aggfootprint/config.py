"""Configuration management for the aggregated footprint engine."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AggregationModel(str, Enum):
    """How price levels from different instruments are merged."""

    DIRECT = "direct"
    NORMALIZED = "normalized"


class ResetPeriod(str, Enum):
    """Recompute / reset period for POC and CVD (UTC)."""

    DAILY = "daily"
    WEEKLY = "weekly"


def _split_list(value: str) -> list[str]:
    return [s.strip().upper() for s in (value or "").split(",") if s.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    debug: bool = Field(default=False)

    # Instruments
    symbols: str = Field(
        default="BTCUSDT",
        description="Comma-separated instrument ids merged into one footprint",
    )
    primary_symbol: str | None = Field(
        default=None,
        description="Chart (reference-time) series. Defaults to the first symbol.",
    )
    history_lookback_days: int = Field(default=30, ge=1)

    # Aggregation
    aggregation_model: AggregationModel = Field(default=AggregationModel.DIRECT)
    reference_symbol: str | None = Field(
        default=None,
        description="Price-range reference for the normalized model. Defaults to the primary symbol.",
    )
    tick_size: float = Field(default=0.1, gt=0)
    result_cache_ttl_sec: float = Field(default=60.0, gt=0)

    # Profile / delta
    poc_period: ResetPeriod = Field(default=ResetPeriod.DAILY)
    cvd_reset_period: ResetPeriod = Field(default=ResetPeriod.DAILY)
    value_area_pct: float = Field(
        default=70.0,
        gt=0,
        le=100,
        description="Value area share: a percentage above 1 (70) or a fraction at or below 1 (0.7); 1 means 100%",
    )

    # Heatmap intensity scale
    color_scale_max_samples: int = Field(default=1000, ge=1)
    color_scale_min_samples: int = Field(
        default=10,
        description="Bounds are recomputed once the sample buffer holds more than this many values",
    )
    color_scale_lower_quantile: float = Field(default=0.05, ge=0, le=1)
    color_scale_upper_quantile: float = Field(default=0.95, ge=0, le=1)
    color_scale_floor: float = Field(default=0.1, ge=0, le=1)

    # Derivatives status (open interest / funding)
    status_cache_ttl_sec: float = Field(default=30.0, gt=0)
    status_cache_max_entries: int = Field(default=1000, ge=1)
    status_update_interval_sec: float = Field(default=5.0, gt=0)
    derivatives_markers: str = Field(default="PERP,FUTURES,SWAP,PERPETUAL,USD-PERP,USDT-PERP")

    @property
    def symbol_list(self) -> list[str]:
        """Get symbols as list."""
        return _split_list(self.symbols)

    @property
    def primary_symbol_id(self) -> str | None:
        if self.primary_symbol:
            return self.primary_symbol.strip().upper()
        symbols = self.symbol_list
        return symbols[0] if symbols else None

    @property
    def reference_symbol_id(self) -> str | None:
        if self.reference_symbol:
            return self.reference_symbol.strip().upper()
        return self.primary_symbol_id

    @property
    def derivatives_marker_list(self) -> list[str]:
        return _split_list(self.derivatives_markers)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
