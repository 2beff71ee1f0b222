"""
Redis-backed alert store.

Key layout (prefix defaults to "shieldnet"):
    {prefix}:{collection}:doc:{id}        JSON document
    {prefix}:{collection}:ids             SET of document ids
    {prefix}:{collection}:key:{field}     HASH key value -> document id

Read-merge-write uses optimistic transactions: WATCH the keys, read, apply
the mutation in Python, then MULTI/EXEC. A concurrent writer aborts EXEC
with WatchError and the whole read-merge-write is retried.

Queries load the collection and filter in process. Community collections
are small (alerts expire within a day), so no secondary indexes are kept.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional, Sequence, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError, ConnectionError as RedisConnectionError

from ..config import RedisConfig
from ..errors import StoreError
from .base import (
    AlertStore,
    Document,
    Filter,
    OrderBy,
    UpdateFn,
    UpsertFn,
    apply_query,
    clone,
    document_id,
)


logger = logging.getLogger(__name__)


class RedisConnectionManager:
    """
    Manages Redis connections with automatic reconnection and pooling.

    A pre-built client can be injected (e.g. fakeredis in tests); the manager
    then never opens its own pool.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        max_connections: int = 50,
        socket_timeout: float = 5.0,
        retry_attempts: int = 3,
        retry_delay: float = 0.1,
        client: Optional[redis.Redis] = None,
    ):
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = client
        self._owns_client = client is None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisConnectionManager":
        return cls(
            redis_url=config.url,
            max_connections=config.max_connections,
            socket_timeout=config.socket_timeout,
        )

    async def get_client(self) -> redis.Redis:
        """
        Get a Redis client, creating the connection pool if needed.

        Raises:
            RedisConnectionError: If unable to connect after retries
        """
        if self._client is not None:
            return self._client

        async with self._lock:
            # Double-check after acquiring lock
            if self._client is not None:
                return self._client

            for attempt in range(self._retry_attempts):
                try:
                    self._pool = redis.ConnectionPool.from_url(
                        self._redis_url,
                        max_connections=self._max_connections,
                        socket_timeout=self._socket_timeout,
                        decode_responses=True,
                    )
                    client = redis.Redis(connection_pool=self._pool)
                    await client.ping()
                    self._client = client
                    logger.info("Redis connection established successfully")
                    return self._client

                except RedisError as e:
                    logger.warning(f"Redis connection attempt {attempt + 1} failed: {e}")
                    if attempt < self._retry_attempts - 1:
                        await asyncio.sleep(self._retry_delay * (attempt + 1))
                    else:
                        raise RedisConnectionError(
                            f"Failed to connect to Redis after {self._retry_attempts} attempts"
                        ) from e

        raise RedisConnectionError("Unexpected state in connection manager")

    async def close(self) -> None:
        """Close Redis connections gracefully."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None


class RedisAlertStore(AlertStore):
    """
    AlertStore on Redis.

    Usage:
        store = RedisAlertStore(RedisConnectionManager.from_config(config.redis))
        await store.health_check()
    """

    def __init__(
        self,
        manager: RedisConnectionManager,
        key_prefix: str = "shieldnet",
        transaction_retries: int = 10,
    ):
        self._manager = manager
        self._prefix = key_prefix
        self._retries = transaction_retries

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisAlertStore":
        return cls(
            RedisConnectionManager.from_config(config),
            key_prefix=config.key_prefix,
            transaction_retries=config.transaction_retries,
        )

    # =========================================================================
    # KEYS
    # =========================================================================

    def _doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self._prefix}:{collection}:doc:{doc_id}"

    def _ids_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:ids"

    def _index_key(self, collection: str, key_field: str) -> str:
        return f"{self._prefix}:{collection}:key:{key_field}"

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            client = await self._manager.get_client()
            raw = await client.get(self._doc_key(collection, doc_id))
        except RedisError as e:
            logger.error(f"Failed to read {collection}/{doc_id}: {e}")
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}") from e
        return json.loads(raw) if raw is not None else None

    async def put(self, collection: str, doc_id: str, document: Document) -> None:
        try:
            client = await self._manager.get_client()
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._doc_key(collection, doc_id), json.dumps(document))
                pipe.sadd(self._ids_key(collection), doc_id)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to write {collection}/{doc_id}: {e}")
            raise StoreError(f"Failed to write {collection}/{doc_id}: {e}") from e

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[Document]:
        try:
            client = await self._manager.get_client()
            ids = sorted(await client.smembers(self._ids_key(collection)))
            if not ids:
                return []
            raws = await client.mget([self._doc_key(collection, doc_id) for doc_id in ids])
        except RedisError as e:
            logger.error(f"Failed to query {collection}: {e}")
            raise StoreError(f"Failed to query {collection}: {e}") from e

        documents = [json.loads(raw) for raw in raws if raw is not None]
        return apply_query(documents, filters, order_by, limit)

    async def update(
        self,
        collection: str,
        doc_id: str,
        mutate: UpdateFn,
    ) -> Optional[Document]:
        key = self._doc_key(collection, doc_id)
        try:
            client = await self._manager.get_client()
            async with client.pipeline(transaction=True) as pipe:
                for attempt in range(self._retries):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            return None

                        updated = mutate(json.loads(raw))

                        pipe.multi()
                        pipe.set(key, json.dumps(updated))
                        await pipe.execute()
                        return updated

                    except WatchError:
                        logger.debug(f"Update conflict on {key}, retry {attempt + 1}")
                        continue
        except RedisError as e:
            logger.error(f"Failed to update {collection}/{doc_id}: {e}")
            raise StoreError(f"Failed to update {collection}/{doc_id}: {e}") from e

        raise StoreError(f"Update of {collection}/{doc_id} conflicted {self._retries} times")

    async def upsert_by_key(
        self,
        collection: str,
        key_field: str,
        key_value: str,
        mutate: UpsertFn,
    ) -> Tuple[Optional[Document], Document]:
        index_key = self._index_key(collection, key_field)
        try:
            client = await self._manager.get_client()
            async with client.pipeline(transaction=True) as pipe:
                for attempt in range(self._retries):
                    try:
                        await pipe.watch(index_key)
                        existing_id = await pipe.hget(index_key, key_value)

                        before: Optional[Document] = None
                        if existing_id is not None:
                            doc_key = self._doc_key(collection, existing_id)
                            await pipe.watch(doc_key)
                            raw = await pipe.get(doc_key)
                            before = json.loads(raw) if raw is not None else None

                        after = mutate(clone(before) if before is not None else None)
                        after[key_field] = key_value
                        doc_id = document_id(collection, after)

                        pipe.multi()
                        pipe.set(self._doc_key(collection, doc_id), json.dumps(after))
                        pipe.sadd(self._ids_key(collection), doc_id)
                        pipe.hset(index_key, key_value, doc_id)
                        await pipe.execute()
                        return before, after

                    except WatchError:
                        logger.debug(
                            f"Upsert conflict on {collection} {key_field}={key_value}, "
                            f"retry {attempt + 1}"
                        )
                        continue
        except RedisError as e:
            logger.error(f"Failed to upsert {collection} {key_field}={key_value}: {e}")
            raise StoreError(f"Failed to upsert {collection}: {e}") from e

        raise StoreError(
            f"Upsert of {collection} {key_field}={key_value} conflicted {self._retries} times"
        )

    async def health_check(self) -> bool:
        try:
            client = await self._manager.get_client()
            await client.ping()
            return True
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._manager.close()
