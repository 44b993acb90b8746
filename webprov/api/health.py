"""
Health check endpoint - no authentication required
"""

from datetime import datetime, timezone
from fastapi import APIRouter, Request

from ..db import check_connection

router = APIRouter()


@router.get("/health", include_in_schema=False)
def health(request: Request):
    db_ok = check_connection(getattr(request.app.state, "engine", None))
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "database": "ok" if db_ok else "unhealthy",
        "workers": "running" if _workers_running(request) else "stopped",
    }


def _workers_running(request: Request) -> bool:
    pool = getattr(request.app.state, "worker_pool", None)
    return bool(pool and pool.running)
