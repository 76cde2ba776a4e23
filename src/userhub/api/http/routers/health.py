"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from src.userhub.api.http.app_data import ApplicationDependencies
from src.userhub.api.http.deps import get_app_dependencies, get_kv_store
from src.userhub.core.storage import InMemoryKeyValueStore, KeyValueStore
from src.userhub.runtime.context import get_config

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness probe: 200 as long as the process is running."""
    config = get_config()
    return {
        "status": "healthy",
        "service": config.app.name,
        "version": config.app.version,
    }


@router.get("/ready", response_model=None)
async def readiness(
    store: KeyValueStore = Depends(get_kv_store),
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> dict[str, Any] | JSONResponse:
    """Readiness probe: 503 when the user store cannot be reached.

    A Redis-backed store also reports server details for monitoring.
    """
    config = get_config()

    try:
        store_healthy = await store.ping()
        store_check: dict[str, Any] = {
            "status": "healthy" if store_healthy else "unhealthy",
            "type": "in-memory" if isinstance(store, InMemoryKeyValueStore) else "redis",
        }
    except Exception as e:
        store_healthy = False
        store_check = {"status": "unhealthy", "error": str(e)}

    redis_service = app_deps.store_handle.redis_service
    if store_healthy and redis_service is not None:
        info = await redis_service.get_info()
        if info is not None:
            store_check["info"] = info

    response = {
        "status": "ready" if store_healthy else "not_ready",
        "environment": config.app.environment,
        "checks": {"store": store_check},
    }

    if not store_healthy:
        return JSONResponse(status_code=503, content=response)

    return response
