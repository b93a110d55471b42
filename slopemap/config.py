"""Run configuration for slopemap."""

import os
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Safe bytes per GB of device memory per unit of grid width, found by trial
DEFAULT_BYTES_PER_GB_ALLOWANCE = 70_000_000


class ExecutionMode(str, Enum):
    CPU = "cpu"
    ACCELERATOR = "accelerator"


class Settings(BaseSettings):
    """Settings pulled from ``SLOPEMAP_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(env_prefix="SLOPEMAP_", env_file=".env",
                                      env_file_encoding="utf-8", extra="ignore")

    # Compute
    execution_mode: ExecutionMode = Field(default=ExecutionMode.CPU, description="cpu or accelerator (gpu)")
    device_memory_budget_bytes: Optional[int] = Field(default=None, gt=0,
                                                      description="Device memory budget; queried from the device if unset")
    bytes_per_gb_allowance: int = Field(default=DEFAULT_BYTES_PER_GB_ALLOWANCE, gt=0,
                                        description="Bytes of grid allowed per GB of device memory")
    cpu_workers: Optional[int] = Field(default=None, ge=1, description="Worker threads for the CPU path")
    device_id: int = Field(default=0, ge=0, description="CUDA device ordinal")
    iterations: int = Field(default=1, ge=1, description="Compute repetitions (benchmark mode when > 1)")

    # Rendering
    max_angle: float = Field(default=45.0, gt=0, description="Slope in degrees mapped to the high color")

    # External tools
    gdalinfo_path: Optional[str] = Field(default=None, description="gdalinfo executable for raster metadata")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Logging format (console or json)")

    @field_validator("execution_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "gpu":
                return ExecutionMode.ACCELERATOR
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    @property
    def workers(self) -> int:
        return self.cpu_workers or os.cpu_count() or 1


__all__ = ['ExecutionMode', 'Settings', 'DEFAULT_BYTES_PER_GB_ALLOWANCE']
