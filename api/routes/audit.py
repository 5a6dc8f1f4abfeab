# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit trail endpoints for querying workflow transitions.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from datetime import datetime
from typing import Optional

from domain.authorization import check_role
from domain.errors import ValidationError
from middleware.auth import require_actor
from models.base import to_naive_utc
from models.entities import ActorContext, AuditEntry
from models.enums import ActorRole, AuditAction, EntityType
from services.audit import AuditFilters
from services.records import require
from services.store import ASCENDING, DESCENDING
from utils.request import RequestParser, page_response

# Set up logging and tracing
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Create API blueprint
audit_tag = Tag(name="Audit", description="Audit trail querying")
audit_bp = APIBlueprint(
    'audit',
    __name__,
    url_prefix='/api/audit',
    abp_tags=[audit_tag]
)


def _parse_date(name: str) -> Optional[datetime]:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        raise ValidationError(
            f"Invalid {name} format",
            [f"{name} must use ISO format (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS)"]
        )


@audit_bp.get('')
@require_actor
def list_audit_entries(actor: ActorContext):
    """
    Query the audit trail (admin).

    Filters: entityId, entityType, action, performedBy, traceId, dateFrom,
    dateTo. Entries of a single entity can be listed in sequence order with
    ``sortBy=sequence&sortOrder=asc``.
    """
    require(check_role(actor, [ActorRole.ADMIN]))

    with tracer.start_as_current_span(
        "audit.list",
        attributes={"actor.id": actor.actor_id, "operation": "list_audit_entries"}
    ) as span:
        pagination = RequestParser.get_pagination_params()
        sort_by = request.args.get('sortBy', 'createdAt')
        if sort_by not in ('createdAt', 'sequence'):
            raise ValidationError("Invalid sortBy", ["sortBy must be one of: createdAt, sequence"])
        sort_order = ASCENDING if request.args.get('sortOrder', 'desc') == 'asc' else DESCENDING

        filters = AuditFilters(
            entity_id=request.args.get('entityId'),
            entity_type=RequestParser.get_enum_arg('entityType', EntityType),
            action=RequestParser.get_enum_arg('action', AuditAction),
            performed_by=request.args.get('performedBy'),
            start_date=_parse_date('dateFrom'),
            end_date=_parse_date('dateTo'),
            trace_id=request.args.get('traceId')
        )

        result = current_app.audit_service.query(
            filters,
            sort_by=sort_by,
            sort_order=sort_order,
            **pagination
        )
        span.set_attributes({
            "audit.query.total_results": result.total,
            "audit.query.returned_items": len(result.items)
        })

        items = [AuditEntry.from_document(document).to_api() for document in result.items]
        return jsonify(page_response(result, items)), 200
