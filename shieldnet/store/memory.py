"""
In-memory alert store.

Single-process implementation of AlertStore. Every operation runs under one
asyncio.Lock, so `update` and `upsert_by_key` are atomic with respect to
other coroutines on the same event loop. Documents are deep-copied on the
way in and out; callers can never mutate stored state by accident.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

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


class InMemoryAlertStore(AlertStore):
    """
    Dict-backed store for tests and local development.

    Usage:
        store = InMemoryAlertStore()
        service = AlertService(store)
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        async with self._lock:
            document = self._collections[collection].get(doc_id)
            return clone(document) if document is not None else None

    async def put(self, collection: str, doc_id: str, document: Document) -> None:
        async with self._lock:
            self._collections[collection][doc_id] = clone(document)

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[Document]:
        async with self._lock:
            documents = list(self._collections[collection].values())
            return [clone(doc) for doc in apply_query(documents, filters, order_by, limit)]

    async def update(
        self,
        collection: str,
        doc_id: str,
        mutate: UpdateFn,
    ) -> Optional[Document]:
        async with self._lock:
            current = self._collections[collection].get(doc_id)
            if current is None:
                return None
            updated = mutate(clone(current))
            self._collections[collection][doc_id] = clone(updated)
            return clone(updated)

    async def upsert_by_key(
        self,
        collection: str,
        key_field: str,
        key_value: str,
        mutate: UpsertFn,
    ) -> Tuple[Optional[Document], Document]:
        async with self._lock:
            docs = self._collections[collection]
            before = next(
                (doc for doc in docs.values() if doc.get(key_field) == key_value),
                None,
            )

            after = mutate(clone(before) if before is not None else None)
            after[key_field] = key_value
            docs[document_id(collection, after)] = clone(after)

            logger.debug(
                f"Upserted {collection} {key_field}={key_value} "
                f"({'merged' if before is not None else 'created'})"
            )
            return (clone(before) if before is not None else None, clone(after))

    async def health_check(self) -> bool:
        return True

    def clear(self) -> None:
        """Drop all documents (for testing)."""
        self._collections.clear()
