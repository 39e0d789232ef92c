"""FastAPI dependencies for database access, caller context and internal endpoints."""

import hmac
from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from unified_index.core.config import settings
from unified_index.db.session import SessionLocal
from unified_index.query.filters import AccessContext
from unified_index.utils.normalization import normalize_email

_TRUTHY = {"1", "true", "yes", "on"}


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_access_context(
    x_user_email: str | None = Header(default=None),
    x_user_is_admin: str | None = Header(default=None),
) -> AccessContext:
    """
    Caller identity as forwarded by the authenticating gateway.

    Without an email the caller only sees non-email items and public mail.
    """
    return AccessContext(
        email=normalize_email(x_user_email),
        is_admin=(x_user_is_admin or "").strip().lower() in _TRUTHY,
    )


def verify_internal_secret(x_internal_secret: str | None = Header(default=None)) -> None:
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not x_internal_secret or not hmac.compare_digest(x_internal_secret, expected):
        raise HTTPException(status_code=403, detail="Invalid internal secret")
