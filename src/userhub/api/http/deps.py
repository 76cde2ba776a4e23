"""FastAPI dependency implementations."""

from __future__ import annotations

from fastapi import Request

from src.userhub.api.http.app_data import ApplicationDependencies
from src.userhub.core.services.user import UserService
from src.userhub.core.storage import KeyValueStore


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_user_service(request: Request) -> UserService:
    """Get the user service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.user_service


def get_kv_store(request: Request) -> KeyValueStore:
    """Get the key-value store shared by the process."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.store_handle.store
