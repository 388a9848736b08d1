"""Acceptance settings with Pydantic validation and environment loading."""

from __future__ import annotations

import shlex
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Acceptance settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ACCEPTANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Target host
    target_host: str = Field(
        default="127.0.0.1", min_length=1, description="Host running the metrics stack"
    )
    dashboard_port: int = Field(
        default=3000, ge=1, le=65535, description="Grafana HTTP port"
    )
    database_port: int = Field(
        default=8086, ge=1, le=65535, description="InfluxDB HTTP port"
    )

    # InfluxDB
    database_name: str = Field(
        default="puppet_metrics", min_length=1, description="Database probed by write/query"
    )
    influxdb_user: str = Field(default="admin", min_length=1)
    influxdb_password: str = Field(default="puppetlabs")

    # Grafana
    grafana_user: str = Field(default="admin", min_length=1)
    grafana_password: str = Field(default="puppet")
    datasource_name: Optional[str] = Field(
        default=None,
        description="Grafana data source to look up (default: influxdb_<database_name>)",
    )

    # Timeouts (seconds)
    http_timeout_seconds: float = Field(default=10.0, gt=0)
    port_timeout_seconds: float = Field(default=2.0, gt=0)
    apply_timeout_seconds: float = Field(default=1800.0, gt=0)

    # Convergence engine
    engine_command: str = Field(
        default="puppet apply",
        min_length=1,
        description="Command that applies a manifest read from stdin",
    )
    command_prefix: str = Field(
        default="",
        description="Prefix for running the engine elsewhere, e.g. 'docker exec -i node'",
    )
    puppet_class: str = Field(
        default="puppet_metrics_dashboard", min_length=1, description="Class under test"
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="Log format: text or json")
    debug: bool = Field(default=False)

    # Reports
    report_dir: str = Field(default="test-results/acceptance-reports")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return lower

    @property
    def engine_argv(self) -> list[str]:
        """Full argv for the convergence engine, prefix included."""
        return shlex.split(self.command_prefix) + shlex.split(self.engine_command)

    @property
    def effective_datasource_name(self) -> str:
        return self.datasource_name or f"influxdb_{self.database_name}"

    @property
    def influxdb_url(self) -> str:
        return f"http://{self.target_host}:{self.database_port}"

    @property
    def grafana_url(self) -> str:
        return f"http://{self.target_host}:{self.dashboard_port}"


@lru_cache
def get_settings() -> Settings:
    """Cached settings factory."""
    return Settings()
