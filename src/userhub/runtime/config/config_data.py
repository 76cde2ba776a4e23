"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class RedisConfig(BaseModel):
    """Redis configuration model."""

    enabled: bool = Field(default=True, description="Enable Redis service")
    url: str = Field(default="", description="Redis connection URL")
    password: str | None = Field(
        default=None, description="Password for Redis authentication"
    )
    decode_responses: bool = Field(
        default=True, description="Decode Redis responses to strings"
    )
    max_connections: int = Field(
        default=50, description="Maximum connections in the client pool"
    )
    socket_timeout: float = Field(
        default=5.0, description="Socket read/write timeout in seconds"
    )
    socket_connect_timeout: float = Field(
        default=5.0, description="Socket connect timeout in seconds"
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the Redis connection string with password if provided."""
        if self.password:
            if "@" in self.url:
                # URL already has auth info
                return self.url
            parts = self.url.split("://", 1)
            if len(parts) == 2:
                scheme, rest = parts
                return f"{scheme}://:{self.password}@{rest}"
        return self.url

    @property
    def sanitized_connection_string(self) -> str:
        """Connection string safe to log (password masked)."""
        if self.password:
            return self.connection_string.replace(self.password, "****")
        return self.connection_string


class StoreConfig(BaseModel):
    """Key-value store layout for user records."""

    backend: Literal["redis", "memory"] = Field(
        default="redis", description="Store backend: redis or memory"
    )
    key_prefix: str = Field(
        default="userhub:", description="Prefix applied to every store key"
    )
    users_table: str = Field(
        default="users", description="Primary collection keyed by user id"
    )
    email_lookup_table: str = Field(
        default="users_email_lookup",
        description="Lookup collection mapping email to user id",
    )


class UsersConfig(BaseModel):
    """User API configuration."""

    route_prefix: str = Field(
        default="/api/users", description="Mount point of the users router"
    )


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str = Field(default="logs/app.log", description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class AppConfig(BaseModel):
    """Application configuration model."""

    name: str = Field(default="userhub", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    redis: RedisConfig = Field(
        default_factory=RedisConfig, description="Redis configuration"
    )
    store: StoreConfig = Field(
        default_factory=StoreConfig, description="User store configuration"
    )
    users: UsersConfig = Field(
        default_factory=UsersConfig, description="User API configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
