from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnginePolicy(BaseModel):
    growth_floor: float = Field(-0.50, description="Lowest annual revenue growth used in a projection")
    growth_cap: float = Field(1.00, description="Highest annual revenue growth used in a projection")
    margin_floor: float = -0.20
    margin_cap: float = 0.50
    depreciation_rate: float = Field(0.02, description="Depreciation as a share of revenue")
    default_tax_rate: float = 0.25
    breakeven_years: int = Field(3, description="Years for a negative margin to reach breakeven")
    terminal_growth_spread: float = Field(0.01, description="Minimum gap kept between WACC and terminal growth")
    max_terminal_growth: float = 0.025
    sustainable_capex_rate: float = 0.03
    sustainable_wc_rate: float = 0.01
    dlom_established: float = 0.20
    dlom_early_stage: float = 0.30
    projection_years: int = 5
    early_stage_projection_years: int = 7
    baseline_wc_rate: float = 0.05
    early_stage_wc_rate: float = 0.08
    factor_floor: float = Field(0.5, description="Lower bound for blended multiple adjustment factors")
    factor_cap: float = Field(2.0, description="Upper bound for blended multiple adjustment factors")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VALUATION_", env_file=".env", extra="ignore")

    api_title: str = "Valuation Engine"
    log_level: str = "INFO"
    log_json: bool = False
    scenario_workers: int = Field(1, ge=1, description="Threads used to compute the three scenarios")


DEFAULT_POLICY = EnginePolicy()


@lru_cache
def get_settings() -> Settings:
    return Settings()
