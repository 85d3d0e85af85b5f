from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schedules import TripKind


class EngineSettings(BaseSettings):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["text", "json"] = "text"
    environment: str = "development"

    # Best-effort mirror of settled fares for reload recovery
    mirror_enabled: bool = Field(default=True)
    mirror_db_path: str = Field(
        default="data/fare_mirror.db",
        description="SQLite file holding the last settled fare per (trip kind, vehicle)",
    )

    model_config = SettingsConfigDict(env_prefix="FARE_")


class CacheSettings(BaseSettings):
    ttl_seconds: float = Field(
        default=300.0,
        ge=1.0,
        description="Lifetime of a fetched schedule before it is refetched",
    )
    bulk_ttl_seconds: float = Field(
        default=300.0,
        ge=1.0,
        description="Minimum age of the last bulk sync before another one hits the network",
    )

    model_config = SettingsConfigDict(env_prefix="FARE_CACHE_")


class FareAPISettings(BaseSettings):
    base_url: str = "http://localhost:8080"
    timeout_seconds: float = Field(default=5.0, gt=0.0, le=60.0)
    # Bounds all attempts of one request, backoff included
    deadline_seconds: float = Field(default=8.0, gt=0.0, le=120.0)

    max_retries: int = Field(default=2, ge=0, le=10)
    retry_base_delay: float = Field(default=0.25, ge=0.0, le=5.0)
    retry_multiplier: float = Field(default=2.0, ge=1.0, le=5.0)

    outstation_path: str = "/api/outstation-fares.php"
    local_path: str = "/api/local-fares.php"
    airport_path: str = "/api/airport-fares.php"
    outstation_update_path: str = "/api/admin/direct-outstation-fares.php"
    local_update_path: str = "/api/admin/direct-local-fares.php"
    airport_update_path: str = "/api/admin/direct-airport-fares.php"

    model_config = SettingsConfigDict(env_prefix="FARE_API_")

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Fare API base URL must start with http:// or https://")
        return v.rstrip("/")

    def fetch_path(self, trip_kind: TripKind) -> str:
        return {
            TripKind.OUTSTATION: self.outstation_path,
            TripKind.LOCAL: self.local_path,
            TripKind.AIRPORT: self.airport_path,
        }[trip_kind]

    def update_path(self, trip_kind: TripKind) -> str:
        return {
            TripKind.OUTSTATION: self.outstation_update_path,
            TripKind.LOCAL: self.local_update_path,
            TripKind.AIRPORT: self.airport_update_path,
        }[trip_kind]


class ReconciliationSettings(BaseSettings):
    """Timing and arbitration policy for per-consumer fare reconciliation."""

    debounce_seconds: float = Field(default=0.1, ge=0.0, le=5.0)
    throttle_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Window after a settlement during which new triggers are deferred",
    )
    max_attempts: int = Field(default=3, ge=1, le=20)
    reset_interval_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Period of the tick that zeroes the attempt counter",
    )
    significant_difference: float = Field(
        default=10.0,
        ge=0.0,
        description="Gap between computed and authoritative totals that is reported",
    )
    override_difference: float = Field(
        default=50.0,
        ge=0.0,
        description="Gap above which the computed total replaces the authoritative one",
    )
    override_trip_kinds: list[TripKind] = Field(default_factory=lambda: [TripKind.AIRPORT])

    model_config = SettingsConfigDict(env_prefix="RECON_")

    @model_validator(mode="after")
    def validate_thresholds(self) -> "ReconciliationSettings":
        if self.override_difference < self.significant_difference:
            raise ValueError(
                f"override_difference ({self.override_difference}) must not be below "
                f"significant_difference ({self.significant_difference})"
            )
        return self


class Settings(BaseSettings):
    engine: EngineSettings = Field(default_factory=EngineSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    api: FareAPISettings = Field(default_factory=FareAPISettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
