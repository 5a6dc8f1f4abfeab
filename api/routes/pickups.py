# SPDX-License-Identifier: Apache-2.0

"""
Pickup assignment endpoints.

Volunteers accept open assignments and report progress and position;
admins can cancel an assignment that is not yet underway.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from middleware.auth import require_actor
from models.entities import ActorContext
from models.enums import PickupStatus
from models.requests import LocationUpdateRequest, PickupPath, UpdatePickupStatusRequest
from utils.request import RequestParser, page_response

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

pickups_tag = Tag(name="Pickups", description="Pickup assignment lifecycle and tracking")
pickups_bp = APIBlueprint(
    'pickups',
    __name__,
    url_prefix='/api/pickups',
    abp_tags=[pickups_tag]
)


@pickups_bp.get('')
@require_actor
def list_pickups(actor: ActorContext):
    """List pickups the caller participates in."""
    pagination = RequestParser.get_pagination_params()
    status = RequestParser.get_enum_arg('status', PickupStatus)
    result = current_app.pickups.list(actor, status=status, **pagination)
    return jsonify(page_response(result, [pickup.to_api() for pickup in result.items])), 200


@pickups_bp.get('/available')
@require_actor
def list_available_pickups(actor: ActorContext):
    """Assignments still waiting for a volunteer, earliest pickup first."""
    pickups = current_app.pickups.list_unassigned(actor)
    return jsonify({"items": [pickup.to_api() for pickup in pickups]}), 200


@pickups_bp.get('/<pickup_id>')
@require_actor
def get_pickup(actor: ActorContext, path: PickupPath):
    pickup = current_app.pickups.get(path.pickup_id, actor)
    return jsonify(pickup.to_api()), 200


@pickups_bp.post('/<pickup_id>/accept')
@require_actor
def accept_pickup(actor: ActorContext, path: PickupPath):
    """Accept an open assignment as its volunteer."""
    result = current_app.pickups.accept_assignment(actor, path.pickup_id, timeout=RequestParser.get_timeout())
    return jsonify(result.to_dict()), 200


@pickups_bp.patch('/<pickup_id>/status')
@require_actor
def update_pickup_status(actor: ActorContext, path: PickupPath):
    """
    Advance a pickup.

    The response carries the donation status mirrored from the new
    pickup status.
    """
    payload = RequestParser.parse_body(UpdatePickupStatusRequest)
    with tracer.start_as_current_span("pickup.status.request") as span:
        span.set_attributes({"pickup.id": path.pickup_id, "pickup.target_status": payload.status.value})
        result = current_app.pickups.advance(
            actor,
            path.pickup_id,
            payload.status,
            gps_location=payload.gps_location,
            notes=payload.notes,
            timeout=RequestParser.get_timeout()
        )
    return jsonify(result.to_dict()), 200


@pickups_bp.post('/<pickup_id>/location')
@require_actor
def update_pickup_location(actor: ActorContext, path: PickupPath):
    """Report the assigned volunteer's current position."""
    payload = RequestParser.parse_body(LocationUpdateRequest)
    pickup = current_app.pickups.update_location(
        actor, path.pickup_id, payload.to_point(), timeout=RequestParser.get_timeout()
    )
    return jsonify({
        "pickupId": pickup.id,
        "currentLocation": payload.to_point().to_api()
    }), 200


@pickups_bp.delete('/<pickup_id>')
@require_actor
def cancel_pickup(actor: ActorContext, path: PickupPath):
    """Cancel a pickup and release its donation (admin)."""
    result = current_app.pickups.cancel(actor, path.pickup_id, timeout=RequestParser.get_timeout())
    return jsonify(result.to_dict()), 200
