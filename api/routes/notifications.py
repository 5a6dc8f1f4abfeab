# SPDX-License-Identifier: Apache-2.0

"""
Notification inbox endpoints.

Each actor reads and acknowledges only the notifications addressed to them.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from middleware.auth import require_actor
from models.entities import ActorContext, Notification
from models.requests import MarkNotificationsReadRequest
from utils.request import RequestParser, page_response

# Set up logging and tracing
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Create API blueprint
notifications_tag = Tag(name="Notifications", description="Actor notification inbox")
notifications_bp = APIBlueprint(
    'notifications',
    __name__,
    url_prefix='/api/notifications',
    abp_tags=[notifications_tag]
)


@notifications_bp.get('')
@require_actor
def list_notifications(actor: ActorContext):
    """List the caller's notifications, newest first."""
    pagination = RequestParser.get_pagination_params()
    unread_only = RequestParser.get_bool_arg('unreadOnly')
    result = current_app.inbox.list_for(actor.actor_id, unread_only=unread_only, **pagination)

    items = [Notification.from_document(document).to_api() for document in result.items]
    body = page_response(result, items)
    body["unreadCount"] = current_app.inbox.unread_count(actor.actor_id)
    return jsonify(body), 200


@notifications_bp.patch('/read')
@require_actor
def mark_notifications_read(actor: ActorContext):
    """
    Mark notifications as read.

    With ``notificationIds`` only those are marked; otherwise every unread
    notification of the caller.
    """
    payload = RequestParser.parse_body(MarkNotificationsReadRequest, required=False)
    with tracer.start_as_current_span("notifications.mark_read") as span:
        marked = current_app.inbox.mark_read(actor.actor_id, payload.notification_ids)
        span.set_attribute("notifications.marked", marked)
    return jsonify({
        "marked": marked,
        "unreadCount": current_app.inbox.unread_count(actor.actor_id)
    }), 200

