"""
Record store: schema-aware access to the persistence gateway.

- Reads never raise. A gateway failure or undecodable payload is logged and
  reported as "no record", so engines fall back to their default state.
- Writes are retried with exponential backoff. A write that still fails is
  parked in a deferred queue (latest payload per key) and retried by
  flush_pending(). A later successful write for the same key supersedes it.
- Inside ``async with store.batch():`` saves made by the same asyncio task are
  buffered and written once, latest payload per key, when that task's
  outermost batch exits. Saves from other tasks stay write-through.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from rewards.config import (
    STORAGE_MAX_RETRIES,
    STORAGE_RETRY_BASE_DELAY,
    STORAGE_RETRY_MAX_DELAY,
)
from rewards.exceptions import SchemaValidationError
from rewards.resilience.metrics import record_storage_failure, set_deferred_writes
from rewards.resilience.retry import retry_with_backoff
from rewards.storage.gateway import StorageGateway

logger = logging.getLogger(__name__)

M = TypeVar('M', bound=BaseModel)

# Record keys, one per entity group
ACHIEVEMENTS_KEY = "rewards:achievements"
STREAK_KEY = "rewards:streak"
CHALLENGES_KEY = "rewards:challenges"
COSMETICS_KEY = "rewards:cosmetics"

ALL_RECORD_KEYS = (ACHIEVEMENTS_KEY, STREAK_KEY, CHALLENGES_KEY, COSMETICS_KEY)


def encode_record(model: BaseModel) -> str:
    """Encode a record as JSON with camelCase field names"""
    return model.model_dump_json(by_alias=True)


def decode_record(payload: str, model_cls: Type[M]) -> M:
    """Decode and validate a record produced by encode_record"""
    return model_cls.model_validate_json(payload)


def validate_record(key: str, raw: Any, model_cls: Type[M]) -> M:
    """
    Validate a decoded record against its schema.

    Raises:
        SchemaValidationError: raw does not match model_cls
    """
    try:
        return model_cls.model_validate(raw)
    except PydanticValidationError as e:
        raise SchemaValidationError(
            f"Stored record {key} failed {model_cls.__name__} validation: {e.error_count()} error(s)",
            record_type=model_cls.__name__,
            key=key,
            operation="validate_record",
            cause=e,
        )


@dataclass
class _Batch:
    """Open batch of one task"""
    depth: int = 0
    buffered: Dict[str, str] = field(default_factory=dict)


class RecordStore:
    """Typed record access with bounded retries and deferred writes"""

    def __init__(
        self,
        gateway: StorageGateway,
        max_retries: int = STORAGE_MAX_RETRIES,
        base_delay: float = STORAGE_RETRY_BASE_DELAY,
        max_delay: float = STORAGE_RETRY_MAX_DELAY,
    ):
        self.gateway = gateway
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._pending: Dict[str, str] = {}
        self._batches: Dict[Optional[asyncio.Task], _Batch] = {}

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def read_raw(self, key: str) -> Optional[Any]:
        """
        Read and JSON-decode a record.

        Returns:
            Decoded JSON value, or None when missing, unreadable or undecodable
        """
        # Buffered and deferred payloads are newer than whatever the gateway holds
        own = self._batches.get(asyncio.current_task())
        if own is not None and key in own.buffered:
            return json.loads(own.buffered[key])
        for batch in self._batches.values():
            if key in batch.buffered:
                return json.loads(batch.buffered[key])
        if key in self._pending:
            return json.loads(self._pending[key])

        try:
            payload = await self.gateway.get(key)
        except Exception as e:
            logger.error(f"Error reading {key} from storage: {type(e).__name__}: {e}")
            record_storage_failure("read", key)
            return None

        if payload is None:
            logger.debug(f"No data found for key: {key}")
            return None

        try:
            return json.loads(payload)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Stored record {key} is not valid JSON: {e}")
            record_storage_failure("read", key)
            return None

    async def load(self, key: str, model_cls: Type[M]) -> Optional[M]:
        """
        Read a record and validate it against model_cls.

        Returns:
            The model, or None when missing or when validation fails
        """
        raw = await self.read_raw(key)
        if raw is None:
            return None

        try:
            return validate_record(key, raw, model_cls)
        except SchemaValidationError:
            return None

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def save(self, key: str, model: BaseModel) -> bool:
        """
        Write a record through to the gateway.

        Returns:
            True if written (or buffered in a batch), False if the write was deferred
        """
        payload = encode_record(model)

        own = self._batches.get(asyncio.current_task())
        # Engines save their full state, so this payload supersedes older ones
        for batch in self._batches.values():
            if batch is not own:
                batch.buffered.pop(key, None)

        if own is not None:
            own.buffered[key] = payload
            return True

        return await self._write(key, payload)

    async def _write(self, key: str, payload: str) -> bool:
        self._pending.pop(key, None)

        try:
            await retry_with_backoff(
                self.gateway.set,
                key,
                payload,
                max_retries=self.max_retries,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                label=f"write {key}",
            )
        except Exception as e:
            self._pending[key] = payload
            record_storage_failure("write", key)
            set_deferred_writes(len(self._pending))
            logger.error(
                f"Write for {key} failed after retries, deferred for later retry: "
                f"{type(e).__name__}: {e}"
            )
            return False

        set_deferred_writes(len(self._pending))
        logger.debug(f"Saved data for key: {key} ({len(payload)} bytes)")
        return True

    @asynccontextmanager
    async def batch(self) -> AsyncIterator["RecordStore"]:
        """
        Buffer every save made inside the block and write each key once on exit.

        The batch belongs to the calling task. Nested batches in that task
        join the outermost one; saves from other tasks are written through
        and drop any older buffered payload for the same key. Buffered records
        are written even when the block raises, since they describe state
        changes that already happened in memory.
        """
        task = asyncio.current_task()
        batch = self._batches.setdefault(task, _Batch())
        batch.depth += 1
        try:
            yield self
        finally:
            batch.depth -= 1
            if batch.depth == 0:
                flushed = 0
                try:
                    # Stay registered so concurrent saves can still supersede
                    while batch.buffered:
                        key = next(iter(batch.buffered))
                        await self._write(key, batch.buffered.pop(key))
                        flushed += 1
                finally:
                    del self._batches[task]
                if flushed:
                    logger.debug(f"Batch flushed {flushed} record(s)")

    async def flush_pending(self) -> int:
        """
        Retry every deferred write once (each with its own backoff).

        Returns:
            Number of writes still deferred
        """
        for key, payload in list(self._pending.items()):
            try:
                await retry_with_backoff(
                    self.gateway.set,
                    key,
                    payload,
                    max_retries=self.max_retries,
                    base_delay=self.base_delay,
                    max_delay=self.max_delay,
                    label=f"deferred write {key}",
                )
            except Exception as e:
                logger.warning(f"Deferred write for {key} still failing: {type(e).__name__}: {e}")
                continue

            # Only drop it if no newer payload was parked meanwhile
            if self._pending.get(key) == payload:
                del self._pending[key]
            logger.info(f"Deferred write for {key} flushed")

        set_deferred_writes(len(self._pending))
        return len(self._pending)

    @property
    def pending_keys(self) -> List[str]:
        return list(self._pending)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def in_batch(self) -> bool:
        """Whether the calling task has an open batch"""
        return asyncio.current_task() in self._batches
