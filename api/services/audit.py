# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for the append-only workflow trail with OpenTelemetry correlation.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from opentelemetry import trace

from models.entities import AuditEntry
from models.enums import AuditAction, EntityType
from .store import AUDIT_ENTRIES, ASCENDING, DocumentStore, PaginationResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def current_trace_id() -> Optional[str]:
    """Hex trace ID of the active span, if any."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.trace_id, "032x")
    return None


class AuditFilters:
    """Filters for audit trail queries."""

    def __init__(
        self,
        entity_id: Optional[str] = None,
        entity_type: Optional[EntityType] = None,
        action: Optional[AuditAction] = None,
        performed_by: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        trace_id: Optional[str] = None
    ):
        self.entity_id = entity_id
        self.entity_type = entity_type
        self.action = action
        self.performed_by = performed_by
        self.start_date = start_date
        self.end_date = end_date
        self.trace_id = trace_id

    def to_mongo_query(self) -> Dict[str, Any]:
        """Convert filters to a store query."""
        query = {}

        if self.entity_id:
            query["entityId"] = self.entity_id

        if self.entity_type:
            query["entityType"] = self.entity_type

        if self.action:
            query["action"] = self.action

        if self.performed_by:
            query["performedBy"] = self.performed_by

        if self.trace_id:
            query["traceId"] = self.trace_id

        # Date range filter
        if self.start_date or self.end_date:
            date_filter = {}
            if self.start_date:
                date_filter["$gte"] = self.start_date
            if self.end_date:
                date_filter["$lte"] = self.end_date
            query["createdAt"] = date_filter

        return query


class AuditService:
    """Append-only audit trail over the document store."""

    def __init__(self, store: DocumentStore):
        """Initialize audit service with its store."""
        self.store = store
        self.collection_name = AUDIT_ENTRIES
        logger.info("Audit service initialized")

    def record(self, entry: AuditEntry) -> bool:
        """
        Write an audit entry if no entry with its ID exists.

        The ID is derived from the transition key, so a replayed transition
        finds its entry already present and writes nothing.

        Args:
            entry: Audit entry to persist

        Returns:
            bool: True if written, False if it was already present
        """
        with tracer.start_as_current_span("audit.record") as span:
            span.set_attributes({
                "audit.action": entry.action.value,
                "audit.entity_type": entry.entity_type.value,
                "audit.entity_id": entry.entity_id,
                "audit.sequence": entry.sequence
            })
            try:
                created = self.store.insert_if_absent(self.collection_name, entry.to_document())
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "extra_fields": {
                            "audit_id": entry.id,
                            "entity_id": entry.entity_id,
                            "action": entry.action.value,
                            "sequence": entry.sequence,
                            "performed_by": entry.performed_by,
                            "error": str(e)
                        }
                    },
                    exc_info=True
                )
                raise

            logger.info(
                "Audit trail entry created" if created else "Audit trail entry already present",
                extra={
                    "extra_fields": {
                        "audit_id": entry.id,
                        "entity_id": entry.entity_id,
                        "action": entry.action.value,
                        "sequence": entry.sequence,
                        "performed_by": entry.performed_by,
                        "trace_id": entry.trace_id,
                        "audit_category": "workflow_transition"
                    }
                }
            )
            return created

    def query(
        self,
        filters: AuditFilters,
        page: int = 1,
        page_size: int = 20,
        sort_by: str = "createdAt",
        sort_order: int = -1
    ) -> PaginationResult:
        """
        Query audit entries with filtering and pagination.

        Args:
            filters: Audit filters
            page: Page number (1-based)
            page_size: Number of items per page
            sort_by: Field to sort by
            sort_order: Sort order (1 for ascending, -1 for descending)

        Returns:
            PaginationResult: Paginated audit documents
        """
        with tracer.start_as_current_span("audit.query") as span:
            query = filters.to_mongo_query()
            span.set_attributes({
                "audit.query.page": page,
                "audit.query.page_size": page_size,
                "audit.query.filters_count": len(query)
            })
            result = self.store.paginate(
                self.collection_name,
                query,
                page=page,
                page_size=page_size,
                sort_by=sort_by,
                sort_order=sort_order
            )
            logger.info(
                "Audit entries queried",
                extra={
                    "extra_fields": {
                        "page": page,
                        "page_size": page_size,
                        "total_results": result.total,
                        "returned_items": len(result.items)
                    }
                }
            )
            return result

    def entries_for_entity(self, entity_id: str) -> List[AuditEntry]:
        """All audit entries of one entity in sequence order."""
        documents = self.store.find(
            self.collection_name,
            {"entityId": entity_id},
            sort=[("sequence", ASCENDING)]
        )
        return [AuditEntry.from_document(document) for document in documents]

