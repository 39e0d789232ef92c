"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from unified_index.core.config import settings
from unified_index.db.session import SessionLocal, engine
from unified_index.services import aggregation_service, app_config_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    with SessionLocal() as db:
        config = app_config_service.load_app_config(db)
        aggregation_service.ensure_refresh_status_rows(db)
        db.commit()
    logger.info("Loaded app config version %s", config.version)
    yield


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Unified Index API",
    description="Searchable index over tasks, email, documents and files",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "X-User-Email", "X-User-Is-Admin"],
)

# ============================================================================
# Routers
# ============================================================================

from unified_index.routers import autocomplete, config, internal, items, operations, queue  # noqa: E402

app.include_router(items.router)
app.include_router(autocomplete.router)
app.include_router(queue.router)
app.include_router(operations.router)
app.include_router(config.router)

# Internal endpoints (scheduled/cron jobs - protected by INTERNAL_SECRET)
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
