"""Global configuration, loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

from procwarden.classifier import DEFAULT_TARGET_PATTERNS


class WardenSettings(BaseSettings):
    backend: str = "auto"  # auto|psutil|proc|ps
    log_level: str = "WARNING"

    # Timings, in seconds
    monitor_interval: float = 3.0
    graceful_timeout: float = 5.0
    settle_delay: float = 1.0  # Wait between a signal and its verification
    poll_interval: float = 0.5
    fingerprint_tolerance: float = 0.1

    # Regular expressions identifying target processes, JSON list in env
    target_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_TARGET_PATTERNS))

    model_config = {"env_prefix": "PROCWARDEN_"}
