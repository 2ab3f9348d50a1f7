"""Configuration management for the str-aux engine."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from str_aux.indicators.idhr import IdhrConfig


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
    log_json: bool = Field(default=False, description="Render structlog output as JSON lines")

    # ------------------------------------------------------------------
    # IDHR histogram
    #
    # Default bin count is inner + 2*outer + 1 (never below 8). Set
    # IDHR_TOTAL_BINS to force an exact count (e.g. 128 for the UI strip).
    # ------------------------------------------------------------------
    idhr_inner_bins: int = Field(default=5, ge=0)
    idhr_outer_bins: int = Field(default=4, ge=0)
    idhr_alpha: float = Field(default=2.5, ge=0, description="Range half-width in sigmas")
    idhr_sigma_floor: float = Field(default=1e-6, gt=0)
    idhr_top_n: int = Field(default=3, ge=1, description="Nuclei kept per histogram")
    idhr_total_bins: int | None = Field(default=None, ge=1)

    # ------------------------------------------------------------------
    # Session thresholds (percent units: 0.2 means 0.2%)
    # ------------------------------------------------------------------
    session_eta_pct: float = Field(default=0.05, ge=0, description="Swap hysteresis band (%)")
    session_eps_shift_pct: float = Field(default=0.2, ge=0, description="Shift band around GFMr (%)")
    session_k_cycles: int = Field(default=32, ge=1, description="Consecutive out-of-band ticks to confirm a shift")
    session_anchor_policy: Literal["estimate", "price"] = Field(
        default="estimate",
        description="What GFMr re-anchors to on a confirmed shift: the live GFMc or the market price",
    )

    default_window: Literal["30m", "1h", "3h"] = Field(default="30m")
    default_app_session: str = Field(default="ui")

    def idhr_config(self) -> IdhrConfig:
        """Histogram configuration derived from the IDHR_* settings."""
        return IdhrConfig(
            inner_bins=self.idhr_inner_bins,
            outer_bins=self.idhr_outer_bins,
            alpha=self.idhr_alpha,
            sigma_floor=self.idhr_sigma_floor,
            top_n=self.idhr_top_n,
            total_bins=self.idhr_total_bins,
        )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
