"""
Health endpoints.

/healthz is pure liveness. /readyz checks the entity store: the in-memory
store is always ready, the SQL store needs a live connection and its tables.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from threadspire.features.store import get_store

logger = logging.getLogger("threadspire")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = ["threads", "app_users"]


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: store backend reachable, tables present."""
    store = get_store()
    if store.backend != "sql":
        return {"status": "ok", "store": store.backend}

    from threadspire.core.database import check_connection, get_engine

    if not check_connection():
        logger.error("[readyz] database unreachable")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    inspector = inspect(get_engine())
    missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok", "store": store.backend}
