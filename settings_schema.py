from typing import Optional

from pydantic import BaseModel, Field, ValidationError, model_validator


class EngineSettings(BaseModel):
    history_window: int = Field(10, ge=1)
    trend_margin: float = Field(5.0, ge=0)
    rest_tolerance: float = Field(0.2, ge=0, le=1)
    rpe_band_low: int = Field(7, ge=2, le=10)
    rpe_band_high: int = Field(9, ge=1, le=10)
    deload_rpe: float = 9
    overload_rpe: float = 6
    deload_percent: float = 10.0
    overload_percent: float = 5.0
    plateau_rep_percent: float = 20.0
    live_stats_ttl: float = Field(5.0, ge=0)
    log_level: str = "INFO"
    achievement_catalog: Optional[str] = None

    @model_validator(mode="after")
    def _check_band(self) -> "EngineSettings":
        if self.rpe_band_low > self.rpe_band_high:
            raise ValueError("rpe_band_low must not exceed rpe_band_high")
        return self


def validate_settings(data: dict) -> EngineSettings:
    try:
        return EngineSettings(**data)
    except ValidationError as e:
        raise ValueError(str(e))
