from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from services.common import ServiceSettings, ping_database

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
async def healthcheck() -> dict[str, str]:
    """Return a simple health status payload."""

    return {"status": "ok"}


@router.get("/database")
async def database_health(request: Request) -> JSONResponse:
    """Ping the database and report connectivity with the round-trip time."""

    settings: ServiceSettings = request.app.state.settings
    database = await ping_database(request.app.state.engine, expose_errors=settings.exposes_internal_errors)
    connected = database["status"] == "connected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if connected else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "message": "Application is healthy." if connected else "Application is unhealthy.",
            "database": database,
        },
    )
