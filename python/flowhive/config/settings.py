"""
Configuration management using Pydantic Settings.
Every engine knob can be overridden through ``FLOWHIVE_``-prefixed environment
variables or a local ``.env`` file.
"""
import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings with validation and environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="FLOWHIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = Field(default="flowhive", description="Application name")
    environment: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Rotate log file after this size")
    log_backup_count: int = Field(default=5, ge=0, description="Rotated log files to keep")

    # Hive
    heartbeat_interval_seconds: float = Field(default=30.0, gt=0, description="Agent heartbeat period")
    message_history_limit: int = Field(default=10000, ge=1, description="Max messages kept in the bus-wide log")
    message_inbox_limit: int = Field(default=1000, ge=1, description="Max messages queued per agent inbox")

    # Adaptive coordination
    adaptive_max_iterations: int = Field(default=3, ge=1, le=20, description="Adaptive iteration budget")
    adaptive_quality_threshold: float = Field(default=0.8, ge=0.0, le=1.0, description="Quality needed to converge")
    adaptive_efficiency_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Efficiency needed to converge")
    adaptive_stage_budget_ms: float = Field(default=30000.0, gt=0, description="Expected per-stage latency budget")

    # Swarm coordination
    swarm_exploration_ratio: float = Field(default=0.3, gt=0.0, le=1.0, description="Share of agents exploring")
    swarm_top_k: int = Field(default=3, ge=1, description="Best approaches handed to exploiters")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of allowed values."""
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    def get_log_level(self) -> int:
        """Get logging level as integer."""
        return getattr(logging, self.log_level)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Engine settings
    """
    return Settings()
