"""hostmetrics configuration system using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RATE_POLICIES = {"clamp", "passthrough"}


class HostMetricsConfig(BaseSettings):
    """Main configuration class. Loads from .env file and HOSTMETRICS_* variables."""

    model_config = SettingsConfigDict(
        env_prefix="HOSTMETRICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "hostmetrics"
    debug: bool = False

    # Storage
    log_dir: Path = Path.home() / "logs" / "host-metrics"
    state_file_name: str = ".prev_network"

    # Attribution
    top_n: int = 10
    offender_limit: int = 15

    # Retention
    retention_days: int = 30
    aux_log_files: list[str] = ["monitor.log", "monitor-error.log"]
    aux_log_max_bytes: int = 1_048_576  # truncate above 1 MB
    aux_log_keep_bytes: int = 102_400  # keep the last 100 KB

    # Sampling
    source_timeout_seconds: float = 5.0
    network_rate_policy: str = "clamp"  # clamp / passthrough
    network_interfaces: list[str] = []
    disk_usage_path: str = "/"
    disk_sample_interval: float = 1.0
    cpu_sample_interval: float = 0.5
    process_sample_interval: float = 0.2

    # Operational log
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("network_rate_policy")
    @classmethod
    def validate_rate_policy(cls, v: str) -> str:
        if v not in RATE_POLICIES:
            raise ValueError(f"network_rate_policy must be one of {RATE_POLICIES}")
        return v

    @field_validator("top_n", "offender_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("retention_days")
    @classmethod
    def validate_retention(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retention_days cannot be negative")
        return v

    @field_validator("log_dir")
    @classmethod
    def expand_log_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @model_validator(mode="after")
    def validate_aux_log_sizes(self) -> "HostMetricsConfig":
        if self.aux_log_keep_bytes >= self.aux_log_max_bytes:
            raise ValueError("aux_log_keep_bytes must be smaller than aux_log_max_bytes")
        return self

    @property
    def state_file(self) -> Path:
        return self.log_dir / self.state_file_name


def get_config(**overrides) -> HostMetricsConfig:
    """Factory function to create config instance."""
    return HostMetricsConfig(**overrides)
