"""
Persistence gateway: typed get/set over named records.

The engines only depend on StorageGateway. Three adapters are provided:
- InMemoryStorage: process-local dict
- FileStorage: one JSON file per key under a data directory
- RedisStorage: one string key per record (redis.asyncio)

Every call is independently fallible; failures surface as exceptions and are
handled by RecordStore.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

import redis.asyncio as redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from rewards.config import DATA_PATH, REDIS_URL
from rewards.exceptions import StorageReadError, StorageUnavailableError, StorageWriteError

logger = logging.getLogger(__name__)


class StorageGateway:
    """Abstract key-value substrate storing text values"""

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """Release any held connections"""
        return None


class InMemoryStorage(StorageGateway):
    """Dict-backed gateway, used in tests and demos"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class FileStorage(StorageGateway):
    """Store each record as <data_path>/<key>.json"""

    def __init__(self, data_path: Path = DATA_PATH):
        self.data_path = Path(data_path)

    def _path_for(self, key: str) -> Path:
        safe_key = key.replace(":", "_").replace("/", "_")
        return self.data_path / f"{safe_key}.json"

    async def get(self, key: str) -> Optional[str]:
        filepath = self._path_for(key)
        if not filepath.exists():
            return None
        try:
            return await asyncio.to_thread(filepath.read_text, encoding="utf-8")
        except UnicodeDecodeError as e:
            raise StorageReadError(f"Record file is not UTF-8: {filepath}", key=key, operation="get", cause=e)

    async def set(self, key: str, value: str) -> None:
        filepath = self._path_for(key)
        self.data_path.mkdir(parents=True, exist_ok=True)

        # Write to a sibling file then rename, so a crash never leaves half a record
        tmp_path = filepath.with_suffix(".json.tmp")
        await asyncio.to_thread(tmp_path.write_text, value, encoding="utf-8")
        await asyncio.to_thread(tmp_path.replace, filepath)
        logger.debug(f"Wrote {key} to {filepath} ({len(value)} bytes)")

    async def remove(self, key: str) -> None:
        filepath = self._path_for(key)
        if filepath.exists():
            await asyncio.to_thread(filepath.unlink)


class RedisStorage(StorageGateway):
    """
    Redis-backed gateway.

    Connection problems are raised as StorageUnavailableError so the
    record store retries them.
    """

    def __init__(self, redis_url: str = REDIS_URL):
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is not None:
            return
        self._client = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=10,
        )
        await self._client.ping()
        logger.info(f"Redis connected: {self.redis_url}")

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            try:
                await self.connect()
            except RedisError as e:
                self._client = None
                raise StorageUnavailableError(
                    f"Redis connection failed: {e}",
                    operation="connect",
                    cause=e,
                )
        return self._client

    async def get(self, key: str) -> Optional[str]:
        client = await self._get_client()
        try:
            return await client.get(key)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StorageUnavailableError(f"Redis read failed: {e}", key=key, operation="get", cause=e)
        except RedisError as e:
            raise StorageReadError(f"Redis read failed: {e}", key=key, operation="get", cause=e)

    async def set(self, key: str, value: str) -> None:
        client = await self._get_client()
        try:
            await client.set(key, value)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StorageUnavailableError(f"Redis write failed: {e}", key=key, operation="set", cause=e)
        except RedisError as e:
            raise StorageWriteError(f"Redis write rejected: {e}", key=key, operation="set", cause=e)

    async def remove(self, key: str) -> None:
        client = await self._get_client()
        await client.delete(key)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._client = None


def create_storage(backend: str, data_path: Path = DATA_PATH, redis_url: str = REDIS_URL) -> StorageGateway:
    """Build the gateway named by STORAGE_BACKEND"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "file":
        return FileStorage(data_path)
    if backend == "redis":
        return RedisStorage(redis_url)
    raise ValueError(f"Unknown storage backend: {backend}")
