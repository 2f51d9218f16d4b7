# storefront_cart/repos/storage.py
from typing import Dict, Optional

import redis

from storefront_cart.utils.retry import redis_retry
from storefront_cart.utils.settings import REDIS_URL, SESSION_NAMESPACE
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)


class MemoryStorage:
    """Process-local key/value storage, the equivalent of a fresh browser profile."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisStorage:
    """
    Durable storage for the persisted identifiers.
    Every key lives under `<namespace>:` so several profiles can share one redis.
    """

    def __init__(self, url: str | None = None, namespace: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.namespace = namespace or SESSION_NAMESPACE

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @redis_retry()
    def get(self, key: str) -> Optional[str]:
        return self.redis.get(self._key(key))

    @redis_retry()
    def set(self, key: str, value: str) -> None:
        logger.debug(f"SET {self._key(key)}")
        self.redis.set(self._key(key), value)

    @redis_retry()
    def delete(self, key: str) -> None:
        logger.debug(f"DEL {self._key(key)}")
        self.redis.delete(self._key(key))


def build_storage(backend: str, namespace: str | None = None):
    if backend == "redis":
        return RedisStorage(namespace=namespace)
    if backend == "memory":
        return MemoryStorage()
    raise ValueError(f"Unknown storage backend: {backend}")
