"""
Async Redis client used by the redis snapshot store.

Wraps a pooled redis.asyncio connection with retry and backoff, exposes only
the string operations snapshots need, and keeps credentials out of logs.
"""

from typing import Optional

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from storefront.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Pooled async Redis connection.

    Operations raise redis ConnectionError when called before connect() and
    re-raise RedisError after logging it; callers translate those errors.
    """

    def __init__(
        self,
        url: str,
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        health_check_interval: int = 30,
    ):
        self._url = url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._health_check_interval = health_check_interval

        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Replace the credentials part of a redis URL with ***."""
        scheme, sep, rest = url.partition("://")
        if sep and "@" in rest:
            return f"{scheme}://***@{rest.split('@', 1)[1]}"
        return url

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """
        Open the pool and verify it with PING.

        Raises:
            ConnectionError: If Redis cannot be reached
        """
        if self.is_connected:
            return

        self._pool = ConnectionPool.from_url(
            self._url,
            max_connections=self._max_connections,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_connect_timeout,
            retry_on_timeout=True,
            health_check_interval=self._health_check_interval,
            retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
            decode_responses=True,
        )
        client = Redis(connection_pool=self._pool)

        try:
            await client.ping()
        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Failed to connect to Redis",
                url=self._sanitize_url(self._url),
                error=str(e),
            )
            await client.aclose()
            await self._pool.aclose()
            self._pool = None
            raise ConnectionError(f"Redis connection failed: {e}") from e

        self._client = client
        logger.info(
            "Redis connection established",
            url=self._sanitize_url(self._url),
            max_connections=self._max_connections,
        )

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
            logger.info("Redis connection closed")

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("Redis health check failed", error=str(e))
            return False

    def _connection(self) -> Redis:
        if self._client is None:
            raise ConnectionError("Redis client is not connected")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._connection().get(key)
        except RedisError as e:
            logger.error("Redis GET failed", key=key, error=str(e))
            raise

    async def set(self, key: str, value: str) -> bool:
        try:
            return bool(await self._connection().set(key, value))
        except RedisError as e:
            logger.error("Redis SET failed", key=key, error=str(e))
            raise

    async def delete(self, *keys: str) -> int:
        try:
            return await self._connection().delete(*keys)
        except RedisError as e:
            logger.error("Redis DELETE failed", keys=keys, error=str(e))
            raise

    async def scan_keys(self, pattern: str) -> list[str]:
        """All keys matching a glob pattern, collected with SCAN."""
        try:
            return [
                key async for key in self._connection().scan_iter(match=pattern, count=100)
            ]
        except RedisError as e:
            logger.error("Redis SCAN failed", pattern=pattern, error=str(e))
            raise


class CacheKeyManager:
    """Builds and strips namespaced Redis keys."""

    def __init__(self, namespace: str = "storefront"):
        self.namespace = namespace

    def make_key(self, *parts: str) -> str:
        """
        Join the namespace and parts with colons.

        Example:
            >>> CacheKeyManager().make_key("snapshot", "ecommerce_orders")
            'storefront:snapshot:ecommerce_orders'
        """
        return ":".join([self.namespace, *parts])

    def strip_key(self, key: str, *parts: str) -> str:
        """Inverse of make_key for the given leading parts."""
        prefix = self.make_key(*parts) + ":"
        return key[len(prefix):] if key.startswith(prefix) else key
