"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from src.userhub.api.http.app_data import ApplicationDependencies
from src.userhub.api.http.routers import health, users
from src.userhub.api.utils.app_startup import configure_logging
from src.userhub.core.services.user import UserService, UserServiceError
from src.userhub.core.storage import create_kv_store
from src.userhub.entities.core.user import UserRepository
from src.userhub.runtime.config.config_data import ConfigData
from src.userhub.runtime.context import get_config

__all__ = ["create_app", "startup", "shutdown"]


# --- Security middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )
        # HSTS only in prod
        if get_config().app.environment == "production":
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains; preload",
            )
        return response


# --- Request logging middleware ---
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    xff = request.headers.get("x-forwarded-for")
    client_ip = (
        xff.split(",")[0].strip()
        if xff
        else request.client.host
        if request.client
        else "unknown"
    )

    base_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": client_ip,
        "user_agent": request.headers.get("user-agent", "unknown"),
    }

    start = time.perf_counter()

    # Everything that logs within this block inherits base_ctx
    with logger.contextualize(**base_ctx):
        try:
            logger.info("request.start")
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=response.status_code,
                duration_ms=round(duration_ms, 1),
            ).info("request.end")

            response.headers.setdefault("X-Request-ID", request_id)
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=500,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return JSONResponse(
                status_code=500,
                content={"message": "Internal error", "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and query strings are client errors (400)."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


# --- Lifecycle hooks ---
async def startup(app: FastAPI, config: ConfigData) -> None:
    store_handle = await create_kv_store(config)
    repository = UserRepository(
        store_handle.store,
        users_table=config.store.users_table,
        email_lookup_table=config.store.email_lookup_table,
    )
    app.state.app_dependencies = ApplicationDependencies(
        store_handle=store_handle,
        user_service=UserService(repository),
    )
    logger.bind(environment=config.app.environment).info("Application startup complete")


async def shutdown(app: FastAPI) -> None:
    app_deps: ApplicationDependencies | None = getattr(
        app.state, "app_dependencies", None
    )
    if app_deps is not None:
        await app_deps.store_handle.close()
    logger.info("Application shutdown complete")


def create_app(config: ConfigData | None = None) -> FastAPI:
    """Build the API application.

    Args:
        config: configuration to run with; defaults to the active context config
    """
    config = config or get_config()
    configure_logging(config)

    # Allow FastAPI to run startup/shutdown routines once per process
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await startup(app, config)
        try:
            yield
        finally:
            await shutdown(app)

    is_production = config.app.environment == "production"
    app = FastAPI(
        title=config.app.name,
        version=config.app.version,
        lifespan=lifespan,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
    )

    app.add_middleware(SecurityHeadersMiddleware)

    if is_production and "*" in config.app.cors.origins:
        raise RuntimeError(
            "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors.origins,
        allow_credentials=config.app.cors.allow_credentials,
        allow_methods=config.app.cors.allow_methods,
        allow_headers=config.app.cors.allow_headers,
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(UserServiceError, users.user_service_error_handler)
    app.add_exception_handler(users.InvalidUserIdError, users.invalid_user_id_handler)

    app.include_router(health.router)
    app.include_router(users.router, prefix=config.users.route_prefix)

    return app
