"""
Health check endpoints.

Liveness plus a readiness view of the counter store and the database.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request

from resumegate.core.limits import CounterStoreError
from resumegate.db.database import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
async def healthcheck(request: Request) -> dict[str, Any]:
    """
    Health check endpoint.

    The service stays "ok" when the counter store is down: rate limiting
    fails open, but quota-gated routes will answer 503 until it recovers.
    """
    state = request.app.state
    try:
        await state.counter_store.exists("health:probe")
        store_status = "ok"
    except CounterStoreError:
        store_status = "unavailable"

    start_time = getattr(state, "start_time", None)
    uptime = int((datetime.now(UTC) - start_time).total_seconds()) if start_time else None

    return {
        "status": "ok",
        "counter_store": store_status,
        "database": "ok" if verify_database_connection(state.engine) else "unavailable",
        "uptime_seconds": uptime,
    }
