"""
Key-Value Store for the Flipbook Scanner

Persists the stop flag, scan speed, saved image list and license flags.
Values are JSON documents; no schema versioning.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError

from .config import ScannerConfig, get_config
from .errors import StorageError

logger = logging.getLogger(__name__)

# Keys shared with the UI
STOP_SCAN = "stopScan"
SCAN_SPEED = "scanSpeed"
SAVED_IMAGES = "savedImages"
IS_PRO_VERSION = "isProVersion"
USER_STATE = "userState"
REFRESH_PAGE_ON_SCAN = "refreshPageOnScan"


class KeyValueStore:
    """Minimal get/set/remove interface."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store; values are round-tripped through JSON like the Redis store."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class RedisStore(KeyValueStore):
    """Redis-backed store with a key prefix."""

    def __init__(self, redis_url: str, prefix: str = "flipscan:", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.prefix = prefix
        self._client = client

    def _get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = self._get_client().get(self._key(key))
        except RedisError as e:
            raise StorageError(f"Failed to read {key}: {e}", {"key": key}) from e
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding non-JSON value stored under {key}")
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            self._get_client().set(self._key(key), json.dumps(value))
        except RedisError as e:
            raise StorageError(f"Failed to write {key}: {e}", {"key": key}) from e

    def remove(self, key: str) -> None:
        try:
            self._get_client().delete(self._key(key))
        except RedisError as e:
            raise StorageError(f"Failed to remove {key}: {e}", {"key": key}) from e

    def test_connection(self) -> bool:
        """Test Redis connection."""
        try:
            self._get_client().ping()
            logger.info("Redis connection successful")
            return True
        except RedisError as e:
            logger.error(f"Redis connection failed: {e}")
            return False


def create_store(config: Optional[ScannerConfig] = None) -> KeyValueStore:
    """Build the store selected by configuration."""
    config = config or get_config()
    if config.redis_url:
        logger.info(f"Using Redis store at {config.redis_url}")
        return RedisStore(config.redis_url, prefix=config.redis_key_prefix)
    logger.info("Using in-memory store")
    return MemoryStore()
