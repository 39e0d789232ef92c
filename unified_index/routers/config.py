"""Config router - read and publish the versioned enrichment configuration."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from unified_index.core.app_config import AppConfig, AppConfigUpdate, get_app_config
from unified_index.core.deps import get_access_context, get_db
from unified_index.query.filters import AccessContext
from unified_index.services import app_config_service

router = APIRouter(prefix="/config", tags=["config"])


@router.get("", response_model=AppConfig)
def read_config():
    return get_app_config()


@router.put("", response_model=AppConfig)
def update_config(
    body: AppConfigUpdate,
    db: Session = Depends(get_db),
    access: AccessContext = Depends(get_access_context),
):
    """Publish a new version; omitted fields keep their current value."""
    if not access.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    try:
        return app_config_service.update_app_config(db, body, created_by=access.email)
    except app_config_service.AppConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
