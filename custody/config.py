"""
Custody — Configuration System

All configuration is Pydantic-validated and loaded from:
1. A YAML file (defaults)
2. Environment variables (overrides)

Every tunable parameter of the registry lives here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class RegistryConfig(BaseModel):
    slot_count: int = Field(default=1, ge=1)
    # Empty means "every slot starts owned by the initializer".
    initial_owners: list[str] = Field(default_factory=list)
    audit_history_size: int = Field(default=1000, ge=1)
    event_buffer_size: int = Field(default=100, ge=1)

    @field_validator("initial_owners", mode="before")
    @classmethod
    def _split_owners(cls, value: Any) -> Any:
        # CUSTODY_INITIAL_OWNERS arrives as one comma-separated string
        if isinstance(value, str):
            return [p.strip() for p in value.split(",") if p.strip()]
        return value

    @model_validator(mode="after")
    def _check_owner_count(self) -> RegistryConfig:
        if self.initial_owners and len(self.initial_owners) != self.slot_count:
            raise ValueError(
                f"initial_owners has {len(self.initial_owners)} entries "
                f"but slot_count is {self.slot_count}"
            )
        return self


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class CustodyConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="CUSTODY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    instance_id: str = "custody-default"

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path | None = None) -> CustodyConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    if slot_count := os.environ.get("CUSTODY_REGISTRY__SLOT_COUNT"):
        raw.setdefault("registry", {})["slot_count"] = int(slot_count)
    if owners := os.environ.get("CUSTODY_INITIAL_OWNERS"):
        raw.setdefault("registry", {})["initial_owners"] = owners
    if log_level := os.environ.get("CUSTODY_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level
    if log_format := os.environ.get("CUSTODY_LOG_FORMAT"):
        raw.setdefault("logging", {})["format"] = log_format
    if instance_id := os.environ.get("CUSTODY_INSTANCE_ID"):
        raw["instance_id"] = instance_id

    return CustodyConfig(**raw)
