"""
Process-wide, versioned enrichment configuration.

The current ``AppConfig`` is loaded once at process start
(``app_config_service.load_app_config``) and swapped atomically when an
administrator publishes a new version. Readers never hit the database.
"""

from __future__ import annotations

import threading

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_COST_GROUP_PREFIXES = ("KGR",)
DEFAULT_LOCATION_PREFIX = "O-"


class AppConfig(BaseModel):
    """Immutable snapshot of the enrichment configuration."""

    model_config = ConfigDict(frozen=True)

    version: int = 0
    cost_group_prefixes: tuple[str, ...] = DEFAULT_COST_GROUP_PREFIXES
    location_prefix: str = DEFAULT_LOCATION_PREFIX
    public_email_addresses: tuple[str, ...] = ()

    @field_validator("cost_group_prefixes")
    @classmethod
    def _strip_prefixes(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(p.strip() for p in value if p and p.strip())

    @field_validator("public_email_addresses")
    @classmethod
    def _lower_emails(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(e.strip().lower() for e in value if e and e.strip())


class AppConfigUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""

    cost_group_prefixes: list[str] | None = Field(default=None, min_length=1)
    location_prefix: str | None = Field(default=None, min_length=1)
    public_email_addresses: list[str] | None = None


_lock = threading.Lock()
_current = AppConfig()


def get_app_config() -> AppConfig:
    return _current


def set_app_config(config: AppConfig) -> None:
    global _current
    with _lock:
        if config.version < _current.version:
            # Never replace a newer version
            return
        _current = config


def reset_app_config() -> None:
    """Drop back to defaults (used when the backing store is recreated)."""
    global _current
    with _lock:
        _current = AppConfig()
