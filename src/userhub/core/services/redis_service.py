"""Redis connection service for managing Redis client lifecycle and health checks."""

from typing import Any

import redis.asyncio as redis_async
from loguru import logger
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from src.userhub.runtime.config.config_data import ConfigData


class RedisService:
    """Service for managing Redis connection lifecycle and health checks.

    Owns the single Redis client of the process: connection pooling, health
    checks and graceful shutdown. The client is created once and shared by
    every request.
    """

    def __init__(self, config: ConfigData):
        """Initialize the Redis service with connection pooling."""
        logger.info("Setting up Redis service")
        redis_config = config.redis

        self._enabled = redis_config.enabled
        self._client = None
        self._url = redis_config.url

        if not self._enabled:
            logger.info("Redis is disabled, service will not connect")
            return

        if not self._url:
            logger.warning("Redis URL not configured, service will not connect")
            self._enabled = False
            return

        try:
            logger.info(
                "Initializing Redis client with connection string: {}",
                redis_config.sanitized_connection_string,
            )

            retry = Retry(
                ExponentialBackoff(base=1, cap=10),  # 1s, 2s, 4s, … up to 10s
                retries=3,
            )

            self._client = redis_async.from_url(
                redis_config.connection_string,
                encoding="utf-8",
                decode_responses=redis_config.decode_responses,
                encoding_errors="replace",
                max_connections=redis_config.max_connections,
                socket_timeout=redis_config.socket_timeout,
                socket_connect_timeout=redis_config.socket_connect_timeout,
                socket_keepalive=True,
                health_check_interval=30,
                retry=retry,
                client_name=f"{config.app.name}_store",
            )

            logger.bind(
                max_connections=redis_config.max_connections,
                socket_timeout=redis_config.socket_timeout,
            ).info("Redis client initialized")
        except Exception as e:
            logger.bind(error_type=type(e).__name__, error_message=str(e)).error(
                "Failed to initialize Redis client"
            )
            self._enabled = False
            self._client = None
            if config.app.environment == "production":
                raise

    def get_client(self):
        """Get the Redis async client instance.

        Returns:
            Redis async client if enabled and connected, None otherwise.
        """
        if not self._enabled:
            logger.debug("Redis is disabled, returning None")
            return None

        if not self._client:
            logger.warning("Redis client not initialized, returning None")
            return None

        return self._client

    async def health_check(self) -> bool:
        """Perform a health check on the Redis connection.

        Returns:
            True if Redis is healthy and reachable, False otherwise.
        """
        if not self._enabled or not self._client:
            return False

        try:
            await self._client.ping()
            return True
        except Exception as e:
            logger.bind(error_type=type(e).__name__, error_message=str(e)).error(
                "Redis health check failed"
            )
            return False

    async def get_info(self) -> dict[str, Any] | None:
        """Get Redis server information for monitoring.

        Returns:
            Dictionary with Redis server info, or None if not available.
        """
        if not self._enabled or not self._client:
            return None

        try:
            info = await self._client.info()
            return {
                "version": info.get("redis_version"),
                "uptime_seconds": info.get("uptime_in_seconds"),
                "connected_clients": info.get("connected_clients"),
                "used_memory_human": info.get("used_memory_human"),
            }
        except Exception as e:
            logger.bind(error_type=type(e).__name__, error_message=str(e)).error(
                "Failed to get Redis info"
            )
            return None

    async def close(self) -> None:
        """Close the Redis connection and clean up resources."""
        if self._client:
            try:
                logger.info("Closing Redis connection")
                await self._client.aclose()
                logger.info("Redis connection closed successfully")
            except Exception as e:
                logger.bind(error_type=type(e).__name__, error_message=str(e)).error(
                    "Error closing Redis connection"
                )
            finally:
                self._client = None

    @property
    def is_enabled(self) -> bool:
        """Check if Redis service is enabled."""
        return self._enabled

    @property
    def url(self) -> str | None:
        """Get the Redis connection URL."""
        return self._url
