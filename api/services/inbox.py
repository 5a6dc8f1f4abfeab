# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Notification inbox persistence.
"""

import logging
from datetime import datetime
from typing import List, Optional

from opentelemetry import trace

from models.base import utcnow
from models.entities import Notification
from .store import NOTIFICATIONS, DocumentStore, PaginationResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class InboxService:
    """Create, list and mark notifications addressed to one actor."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def deliver(self, notification: Notification) -> bool:
        """Insert a notification unless one with the same ID exists."""
        return self.store.insert_if_absent(NOTIFICATIONS, notification.to_document())

    def list_for(
        self,
        actor_id: str,
        unread_only: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> PaginationResult:
        with tracer.start_as_current_span("inbox.list") as span:
            span.set_attributes({"inbox.actor_id": actor_id, "inbox.unread_only": unread_only})
            query = {"recipientActorId": actor_id}
            if unread_only:
                query["isRead"] = False
            return self.store.paginate(NOTIFICATIONS, query, page=page, page_size=page_size)

    def unread_count(self, actor_id: str) -> int:
        return self.store.count(NOTIFICATIONS, {"recipientActorId": actor_id, "isRead": False})

    def mark_read(
        self,
        actor_id: str,
        notification_ids: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Mark notifications as read.

        Only the recipient's own unread notifications are touched. With no IDs
        given, every unread notification of the actor is marked.

        Returns:
            int: Number of notifications marked
        """
        now = now or utcnow()
        query = {"recipientActorId": actor_id, "isRead": False}
        if notification_ids is not None:
            query["_id"] = {"$in": list(notification_ids)}

        marked = 0
        for document in self.store.find(NOTIFICATIONS, query):
            updated = self.store.conditional_update(
                NOTIFICATIONS,
                {"_id": document["_id"], "recipientActorId": actor_id, "isRead": False},
                set_fields={"isRead": True, "readAt": now, "updatedAt": now},
            )
            if updated is not None:
                marked += 1

        logger.info(
            "Notifications marked as read",
            extra={"extra_fields": {"actor_id": actor_id, "marked": marked}}
        )
        return marked
