# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Document store contract and in-process implementation.

Workflow services talk to storage only through ``DocumentStore``: plain
documents with camelCase keys, Mongo-style filters, and a conditional update
that applies only when the filter still matches. That conditional update is
the one concurrency primitive the workflow relies on.
"""

import copy
import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from models.base import plain_value
from domain.errors import DeadlineExceededError

logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1

DONATIONS = "donations"
PICKUPS = "pickups"
ACTORS = "actors"
NOTIFICATIONS = "notifications"
AUDIT_ENTRIES = "audit_entries"
SIDE_EFFECT_LEDGER = "side_effect_ledger"


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size if page_size else 0
        self.has_next = page < self.total_pages
        self.has_prev = page > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


class DocumentStore(ABC):
    """Storage contract shared by the MongoDB and in-memory stores."""

    @abstractmethod
    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        """Insert a document; raises if its ``_id`` already exists."""

    @abstractmethod
    def insert_if_absent(self, collection: str, document: Dict[str, Any]) -> bool:
        """Insert unless a document with the same ``_id`` exists. Returns True if inserted."""

    @abstractmethod
    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        pass

    @abstractmethod
    def conditional_update(
        self,
        collection: str,
        query: Dict[str, Any],
        set_fields: Optional[Dict[str, Any]] = None,
        inc: Optional[Dict[str, int]] = None,
        unset: Optional[List[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically update the single document matching ``query``.

        Returns:
            The updated document, or None when nothing matched
        """

    @abstractmethod
    def delete(self, collection: str, query: Dict[str, Any]) -> bool:
        """Delete the single document matching ``query``. Returns True if one was removed."""

    @abstractmethod
    def deadline(self, timeout: Optional[float]):
        """Context manager bounding the store calls made inside it."""

    def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "backend": type(self).__name__}

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self.find_one(collection, {"_id": doc_id})

    def paginate(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: str = "createdAt",
        sort_order: int = DESCENDING,
    ) -> PaginationResult:
        """Paginate documents with sorting and filtering."""
        skip = (page - 1) * page_size
        total = self.count(collection, query)
        # Secondary sort on _id keeps pages stable for equal timestamps
        items = self.find(collection, query, sort=[(sort_by, sort_order), ("_id", ASCENDING)], skip=skip, limit=page_size)
        return PaginationResult(items, total, page, page_size)


def _resolve(document: Dict[str, Any], path: str) -> Tuple[bool, Any]:
    """Look up a dotted path. Returns (present, value)."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def _compare(operator: str, actual: Any, expected: Any, present: bool) -> bool:
    if operator == "$eq":
        return actual == expected
    if operator == "$ne":
        return actual != expected
    if operator == "$in":
        return any(actual == candidate for candidate in expected)
    if operator == "$nin":
        return all(actual != candidate for candidate in expected)
    if operator == "$exists":
        return present == bool(expected)
    if actual is None:
        return False
    if operator == "$gt":
        return actual > expected
    if operator == "$gte":
        return actual >= expected
    if operator == "$lt":
        return actual < expected
    if operator == "$lte":
        return actual <= expected
    raise ValueError(f"Unsupported query operator: {operator}")


def matches(document: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    """Evaluate the subset of the Mongo filter language the workflow uses."""
    if not query:
        return True
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
            continue
        if key == "$and":
            if not all(matches(document, clause) for clause in condition):
                return False
            continue
        present, actual = _resolve(document, key)
        if isinstance(condition, dict) and condition and all(op.startswith("$") for op in condition):
            if not all(_compare(op, actual, expected, present) for op, expected in condition.items()):
                return False
        elif actual != condition:
            return False
    return True


def _set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _unset_path(document: Dict[str, Any], path: str) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        current = current.get(part)
        if not isinstance(current, dict):
            return
    current.pop(parts[-1], None)


def _sort_key(value: Any) -> Tuple[int, Any]:
    # None sorts first, as in MongoDB
    return (0, "") if value is None else (1, value)


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe in-process store.

    A single lock serializes every operation, which gives conditional updates
    the same all-or-nothing behaviour as ``find_one_and_update``. Used by
    tests and single-process development runs.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._local = threading.local()
        logger.info("In-memory document store initialized")

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    @contextmanager
    def _locked(self) -> Iterator[None]:
        expires_at = getattr(self._local, "expires_at", None)
        if expires_at is None:
            acquired = self._lock.acquire()
        else:
            remaining = expires_at - time.monotonic()
            acquired = remaining > 0 and self._lock.acquire(timeout=remaining)
        if not acquired:
            raise DeadlineExceededError("Timed out waiting for the document store")
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def deadline(self, timeout: Optional[float]):
        if timeout is None:
            yield
            return
        previous = getattr(self._local, "expires_at", None)
        expires_at = time.monotonic() + timeout
        if previous is not None:
            expires_at = min(previous, expires_at)
        self._local.expires_at = expires_at
        try:
            yield
        finally:
            self._local.expires_at = previous

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        document = copy.deepcopy(plain_value(document))
        with self._locked():
            docs = self._collection(collection)
            doc_id = document["_id"]
            if doc_id in docs:
                raise ValueError("Document with this identifier already exists")
            docs[doc_id] = document
        logger.debug(f"Created document in {collection}: {doc_id}")
        return doc_id

    def insert_if_absent(self, collection: str, document: Dict[str, Any]) -> bool:
        document = copy.deepcopy(plain_value(document))
        with self._locked():
            docs = self._collection(collection)
            if document["_id"] in docs:
                return False
            docs[document["_id"]] = document
            return True

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        query = plain_value(query)
        with self._locked():
            docs = self._collection(collection)
            if set(query) == {"_id"} and not isinstance(query["_id"], dict):
                document = docs.get(query["_id"])
                return copy.deepcopy(document) if document is not None else None
            for document in docs.values():
                if matches(document, query):
                    return copy.deepcopy(document)
        return None

    def find(self, collection, query=None, sort=None, skip=0, limit=0):
        query = plain_value(query)
        with self._locked():
            found = [copy.deepcopy(doc) for doc in self._collection(collection).values() if matches(doc, query)]
        for field, direction in reversed(sort or []):
            found.sort(key=lambda doc: _sort_key(_resolve(doc, field)[1]), reverse=direction == DESCENDING)
        if skip:
            found = found[skip:]
        if limit:
            found = found[:limit]
        return found

    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        query = plain_value(query)
        with self._locked():
            return sum(1 for doc in self._collection(collection).values() if matches(doc, query))

    def conditional_update(self, collection, query, set_fields=None, inc=None, unset=None):
        query = plain_value(query)
        set_fields = copy.deepcopy(plain_value(set_fields or {}))
        with self._locked():
            docs = self._collection(collection)
            target = None
            for document in docs.values():
                if matches(document, query):
                    target = document
                    break
            if target is None:
                return None
            for path, value in set_fields.items():
                _set_path(target, path, value)
            for path, amount in (inc or {}).items():
                present, current = _resolve(target, path)
                _set_path(target, path, (current if present and current is not None else 0) + amount)
            for path in unset or []:
                _unset_path(target, path)
            return copy.deepcopy(target)

    def delete(self, collection: str, query: Dict[str, Any]) -> bool:
        query = plain_value(query)
        with self._locked():
            docs = self._collection(collection)
            for doc_id, document in docs.items():
                if matches(document, query):
                    del docs[doc_id]
                    return True
        return False

    def clear(self) -> None:
        with self._locked():
            self._collections.clear()
