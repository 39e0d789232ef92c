"""Versioned configuration service - load and publish AppConfig snapshots."""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from unified_index.core.app_config import AppConfig, AppConfigUpdate, set_app_config
from unified_index.db.models import AppConfigVersion

logger = logging.getLogger(__name__)


class AppConfigError(Exception):
    """Base exception for configuration operations."""

    pass


def _to_config(row: AppConfigVersion) -> AppConfig:
    return AppConfig(
        version=row.version,
        cost_group_prefixes=tuple(row.cost_group_prefixes or ()),
        location_prefix=row.location_prefix,
        public_email_addresses=tuple(row.public_email_addresses or ()),
    )


def get_latest_version(db: Session) -> AppConfigVersion | None:
    return db.execute(
        select(AppConfigVersion).order_by(AppConfigVersion.version.desc()).limit(1)
    ).scalar_one_or_none()


def load_app_config(db: Session) -> AppConfig:
    """Load the newest stored version (or defaults) and make it current."""
    row = get_latest_version(db)
    config = _to_config(row) if row else AppConfig()
    set_app_config(config)
    return config


def update_app_config(
    db: Session,
    changes: AppConfigUpdate,
    created_by: str | None = None,
) -> AppConfig:
    """
    Publish a new configuration version.

    Versions are append-only; the new row is ``max(version) + 1`` and becomes
    the process-wide config after commit.
    """
    current_row = get_latest_version(db)
    base = _to_config(current_row) if current_row else AppConfig()
    next_version = (db.execute(select(func.max(AppConfigVersion.version))).scalar() or 0) + 1

    updated = AppConfig(
        version=next_version,
        cost_group_prefixes=tuple(changes.cost_group_prefixes or base.cost_group_prefixes),
        location_prefix=changes.location_prefix or base.location_prefix,
        public_email_addresses=tuple(
            base.public_email_addresses
            if changes.public_email_addresses is None
            else changes.public_email_addresses
        ),
    )
    if not updated.cost_group_prefixes:
        raise AppConfigError("At least one cost group prefix is required")

    db.add(
        AppConfigVersion(
            version=updated.version,
            cost_group_prefixes=list(updated.cost_group_prefixes),
            location_prefix=updated.location_prefix,
            public_email_addresses=list(updated.public_email_addresses),
            created_by=created_by,
        )
    )
    db.commit()
    set_app_config(updated)
    logger.info("Published app config version %s", updated.version)
    return updated
