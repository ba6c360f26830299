from datetime import UTC, datetime

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import text

from imgjobs.config.settings import Settings, SettingsDep
from imgjobs.core.exceptions import create_success_response
from imgjobs.infra.database import Database

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class WorkerHealth(BaseModel):
    """Consumer worker status."""

    running: bool
    halted: bool
    in_flight: int
    max_concurrency: int
    failures: dict[str, int] = {}
    fatal_error: str | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    request: Request, response: Response, settings: Settings = SettingsDep
):
    """Health check with worker and metadata database status.

    Answers 503 when unhealthy so liveness probes restart a halted worker.
    """

    timestamp = datetime.now(UTC).isoformat()
    overall_ok = True

    worker = getattr(request.app.state, "worker", None)
    worker_health = None
    if worker is not None:
        worker_health = WorkerHealth(**worker.health())
        # A halted worker needs an operator
        if worker_health.halted:
            overall_ok = False

    db_health = None
    if worker is not None and worker.database is not None:
        db_health = await _check_database_health(worker.database)
        if not db_health.connected:
            overall_ok = False

    health_data = {
        "ok": overall_ok,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump() if db_health else None,
        "worker": worker_health.model_dump() if worker_health else None,
    }

    if not overall_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return create_success_response(data=health_data)


async def _check_database_health(database: Database) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        async with database.SessionLocal() as session:
            await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))
