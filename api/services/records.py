# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Record loading and compensation helpers shared by the workflow services.
"""

import logging
from typing import Any, Dict, Optional

from domain.authorization import AuthorizationResult
from domain.errors import ForbiddenError, NotFoundError
from models.base import BaseEntity
from models.entities import Actor, Donation, PickupAssignment
from .store import ACTORS, DONATIONS, PICKUPS, DocumentStore

logger = logging.getLogger(__name__)


def load_donation(store: DocumentStore, donation_id: str) -> Donation:
    document = store.get(DONATIONS, donation_id)
    if document is None:
        raise NotFoundError(f"Donation {donation_id} not found")
    return Donation.from_document(document)


def load_pickup(store: DocumentStore, pickup_id: str) -> PickupAssignment:
    document = store.get(PICKUPS, pickup_id)
    if document is None:
        raise NotFoundError(f"Pickup {pickup_id} not found")
    return PickupAssignment.from_document(document)


def load_actor(store: DocumentStore, actor_id: str) -> Actor:
    document = store.get(ACTORS, actor_id)
    if document is None:
        raise NotFoundError(f"Actor {actor_id} not found")
    return Actor.from_document(document)


def find_actor(store: DocumentStore, actor_id: str) -> Optional[Actor]:
    document = store.get(ACTORS, actor_id)
    return Actor.from_document(document) if document is not None else None


def require(result: AuthorizationResult) -> None:
    """Raise ``ForbiddenError`` for a denied authorization result."""
    if not result.allowed:
        raise ForbiddenError(result.reason or "Forbidden")


def compensate(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    applied_version: int,
    restore: Dict[str, Any],
    inc: Optional[Dict[str, int]] = None,
) -> bool:
    """
    Undo an earlier write of the current unit of work.

    The restore only applies while the document still carries the version
    this unit wrote. A failed compensation leaves the records inconsistent
    and is logged for reconciliation.
    """
    restored = store.conditional_update(
        collection,
        {"_id": doc_id, "version": applied_version},
        set_fields=restore,
        inc=inc,
    )
    if restored is None:
        logger.critical(
            "Compensation failed; reconciliation required",
            extra={
                "extra_fields": {
                    "collection": collection,
                    "document_id": doc_id,
                    "applied_version": applied_version,
                    "reconciliation": True
                }
            }
        )
        return False
    logger.warning(
        "Compensated partial write",
        extra={"extra_fields": {"collection": collection, "document_id": doc_id, "applied_version": applied_version}}
    )
    return True


def restore_record(store: DocumentStore, collection: str, before: BaseEntity, applied_version: int) -> bool:
    """Put back every field of ``before`` over the version this unit wrote."""
    document = before.to_document()
    document.pop("_id")
    return compensate(store, collection, before.id, applied_version, document)


def discard(store: DocumentStore, collection: str, doc_id: str, applied_version: int) -> bool:
    """Delete a document this unit inserted, unless it has moved on since."""
    removed = store.delete(collection, {"_id": doc_id, "version": applied_version})
    fields = {"collection": collection, "document_id": doc_id, "applied_version": applied_version}
    if not removed:
        logger.critical(
            "Could not remove inserted document; reconciliation required",
            extra={"extra_fields": dict(fields, reconciliation=True)}
        )
    else:
        logger.warning("Removed inserted document", extra={"extra_fields": fields})
    return removed
