"""Central environment-driven settings for the matching/lifecycle engine.

The composition root loads this once at startup and hands the instance to every
component. Nothing reads the environment after that.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WEIGHT_TOLERANCE = 1e-6


class EngineSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "rentmatch-engine"
    log_level: str = "INFO"
    postgres_dsn: str
    api_key: str
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"

    category_weight: float = Field(default=0.4, ge=0.0)
    location_weight: float = Field(default=0.4, ge=0.0)
    price_weight: float = Field(default=0.2, ge=0.0)
    max_distance_km: float = Field(default=100.0, gt=0.0)
    candidate_page_size: int = Field(default=200, gt=0)
    max_matches: int = Field(default=20, gt=0)

    commission_rate_bps: int = Field(default=800, ge=0, le=10_000)
    transition_retry_limit: int = Field(default=3, ge=0)
    repository_timeout_seconds: float | None = Field(default=5.0, gt=0.0)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "EngineSettings":
        total = self.category_weight + self.location_weight + self.price_weight
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"match weights must sum to 1 (got {total:.6f})")
        return self
