"""Configuration models for taskwarden."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

_RISK_LEVELS = ("low", "medium", "high", "critical")


class SchedulerConfig(BaseModel):
    """Recurring scheduler configuration."""

    load_on_start: bool = Field(default=True)
    default_timezone: str = Field(default="UTC")
    fallback_interval_seconds: int = Field(default=3600, ge=60)
    retention_days: int = Field(default=30, ge=1)
    maintenance_interval_seconds: int = Field(default=300, ge=1)
    recent_executions_limit: int = Field(default=5, ge=1, le=100)


class ExecutorConfig(BaseModel):
    """Executor runner retry and timeout defaults."""

    default_timeout_ms: int = Field(default=300_000, ge=1)
    default_max_retries: int = Field(default=3, ge=0, le=20)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)
    retry_max_delay_seconds: float = Field(default=60.0, ge=0.0)


def _default_ttls() -> dict[str, int]:
    return {
        "low": 24 * 3600,
        "medium": 12 * 3600,
        "high": 4 * 3600,
        "critical": 3600,
    }


class ApprovalConfig(BaseModel):
    """Approval gate configuration."""

    gated_risk_levels: list[str] = Field(default_factory=lambda: ["high", "critical"])
    ttl_seconds_by_risk: dict[str, int] = Field(default_factory=_default_ttls)
    stats_window_days: int = Field(default=30, ge=1)

    @field_validator("gated_risk_levels")
    @classmethod
    def _check_levels(cls, value: list[str]) -> list[str]:
        normalized = [v.strip().lower() for v in value]
        unknown = [v for v in normalized if v not in _RISK_LEVELS]
        if unknown:
            raise ValueError(f"unknown risk levels: {unknown}")
        return normalized

    @field_validator("ttl_seconds_by_risk")
    @classmethod
    def _check_ttls(cls, value: dict[str, int]) -> dict[str, int]:
        merged = _default_ttls()
        for level, seconds in value.items():
            key = level.strip().lower()
            if key not in _RISK_LEVELS:
                raise ValueError(f"unknown risk level: {level}")
            if seconds <= 0:
                raise ValueError("approval ttl must be positive")
            merged[key] = int(seconds)
        return merged


class TierConfig(BaseModel):
    """Features granted by one subscription tier."""

    features: list[str] = Field(default_factory=list)


def _default_tiers() -> dict[str, TierConfig]:
    return {
        "starter": TierConfig(features=[]),
        "professional": TierConfig(features=["scheduled_actions", "bulk_operations"]),
        "enterprise": TierConfig(
            features=["scheduled_actions", "bulk_operations", "custom_workflows"]
        ),
    }


class PermissionsConfig(BaseModel):
    """Tier-based permission oracle configuration."""

    automation_features: list[str] = Field(
        default_factory=lambda: ["scheduled_actions", "bulk_operations", "custom_workflows"]
    )
    tiers: dict[str, TierConfig] = Field(default_factory=_default_tiers)


class DatabaseConfig(BaseModel):
    """Durable store connection settings."""

    url: str = Field(default="")
    echo: bool = Field(default=False)
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=5, ge=0)
    pool_timeout_seconds: float = Field(default=30.0, gt=0.0)
    pool_recycle_seconds: int = Field(default=1800, ge=-1)


class LoggingConfig(BaseModel):
    """Process logging settings."""

    level: str = Field(default="INFO")
    format: str = Field(default="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s")


class TaskwardenConfig(BaseSettings):
    """Root configuration model for taskwarden."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="TASKWARDEN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """TASKWARDEN_* variables win over constructor values, which carry the YAML file."""
        return (env_settings, init_settings)
