"""
ShieldNet Alert Store Interface

Community data (alerts, scam patterns, safe locations) lives in an external
collection-oriented document store. Services only ever talk to it through
this interface, which is injected into their constructors.

Documents are plain dicts of JSON-compatible values. Timestamps inside
documents are epoch milliseconds so range filters compare numbers.

Implementations:
    - InMemoryAlertStore: single-process, for tests and development
    - RedisAlertStore: shared deployment store
"""

from __future__ import annotations

import copy
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple


# Collection names
ALERTS = "safety_alerts"
PATTERNS = "scam_patterns"
SAFE_LOCATIONS = "safe_locations"

Document = Dict[str, Any]

# Mutators receive a private copy of the current document
UpdateFn = Callable[[Document], Document]
UpsertFn = Callable[[Optional[Document]], Document]


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


@dataclass(frozen=True)
class Filter:
    """
    Equality or range predicate on one document field.

    A document missing the field never matches.
    """
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, document: Document) -> bool:
        if self.field not in document:
            return False
        candidate = document[self.field]
        if candidate is None and self.op not in ("==", "!="):
            return False
        try:
            return _OPERATORS[self.op](candidate, self.value)
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    """Sort key for query results."""
    field: str
    descending: bool = False


def apply_query(
    documents: Sequence[Document],
    filters: Sequence[Filter] = (),
    order_by: Sequence[OrderBy] = (),
    limit: Optional[int] = None,
) -> List[Document]:
    """
    Filter, sort and truncate documents in memory.

    Sort keys are applied right-to-left with a stable sort, so the first
    OrderBy is the primary key. Documents missing a sort field sort last.
    """
    results = [doc for doc in documents if all(f.matches(doc) for f in filters)]

    for order in reversed(order_by):
        present = [doc for doc in results if doc.get(order.field) is not None]
        missing = [doc for doc in results if doc.get(order.field) is None]
        present.sort(key=lambda doc: doc[order.field], reverse=order.descending)
        results = present + missing

    if limit is not None:
        results = results[:limit]
    return results


def clone(document: Document) -> Document:
    return copy.deepcopy(document)


class AlertStore(ABC):
    """
    Abstract interface for the community document store.

    All operations may raise StoreError on backend failure. Read-merge-write
    goes through `update` / `upsert_by_key`, which implementations must run
    as a single atomic transaction.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Fetch a document by id, or None if absent."""
        pass

    @abstractmethod
    async def put(self, collection: str, doc_id: str, document: Document) -> None:
        """Insert or replace a document."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return documents matching every filter, sorted and truncated."""
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        mutate: UpdateFn,
    ) -> Optional[Document]:
        """
        Atomically apply `mutate` to a document.

        Returns:
            The stored document, or None if no document has that id
        """
        pass

    @abstractmethod
    async def upsert_by_key(
        self,
        collection: str,
        key_field: str,
        key_value: str,
        mutate: UpsertFn,
    ) -> Tuple[Optional[Document], Document]:
        """
        Atomic increment-or-create keyed on a unique field.

        `mutate` receives the existing document (or None) and returns the
        document to store, which must contain the collection's id field
        (see ID_FIELDS).

        Returns:
            (before, after) where before is None when the document was created
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the store is reachable."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass


# Id field of each collection's documents
ID_FIELDS: Dict[str, str] = {
    ALERTS: "alert_id",
    PATTERNS: "pattern_id",
    SAFE_LOCATIONS: "location_id",
}


def document_id(collection: str, document: Document) -> str:
    """Read the id of a document, falling back to a generic `id` field."""
    field = ID_FIELDS.get(collection, "id")
    doc_id = document.get(field)
    if not doc_id:
        raise ValueError(f"Document for {collection} has no {field}")
    return str(doc_id)
