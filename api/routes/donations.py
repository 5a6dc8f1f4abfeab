# SPDX-License-Identifier: Apache-2.0

"""
Donation workflow endpoints.

Creation, review, publication, claiming, cancellation and recipient
matching for donations. Workflow errors propagate to the error handler,
which renders them as problem JSON.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from middleware.auth import require_actor
from models.entities import ActorContext
from models.enums import DonationStatus
from models.requests import CancelDonationRequest, CreateDonationRequest, DonationPath, VerifyDonationRequest
from utils.request import RequestParser, page_response

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

donations_tag = Tag(name="Donations", description="Donation lifecycle and claims")
donations_bp = APIBlueprint(
    'donations',
    __name__,
    url_prefix='/api/donations',
    abp_tags=[donations_tag]
)


@donations_bp.post('')
@require_actor
def create_donation(actor: ActorContext):
    """
    Create a donation.

    The donation starts pending review. Unchecked safety checklist items are
    returned as warnings.
    """
    payload = RequestParser.parse_body(CreateDonationRequest)
    result = current_app.donations.create(actor, payload.to_attrs(), timeout=RequestParser.get_timeout())
    return jsonify({
        "donation": result.donation.to_api(),
        "warnings": result.warnings
    }), 201


@donations_bp.get('')
@require_actor
def list_donations(actor: ActorContext):
    """List donations visible to the caller."""
    pagination = RequestParser.get_pagination_params()
    status = RequestParser.get_enum_arg('status', DonationStatus)
    result = current_app.donations.list(actor, status=status, **pagination)
    return jsonify(page_response(result, [donation.to_api() for donation in result.items])), 200


@donations_bp.get('/<donation_id>')
@require_actor
def get_donation(actor: ActorContext, path: DonationPath):
    """Get a donation with its urgency recomputed."""
    donation = current_app.donations.get(path.donation_id, actor)
    return jsonify(donation.to_api()), 200


@donations_bp.post('/<donation_id>/claim')
@require_actor
def claim_donation(actor: ActorContext, path: DonationPath):
    """
    Claim a donation for the calling recipient organization.

    Exactly one concurrent claim wins; the others receive 409.
    """
    with tracer.start_as_current_span("donation.claim.request") as span:
        span.set_attributes({"donation.id": path.donation_id, "actor.id": actor.actor_id})
        result = current_app.claims.claim(actor, path.donation_id, timeout=RequestParser.get_timeout())
    return jsonify(result.to_dict()), 201


@donations_bp.post('/<donation_id>/verify')
@require_actor
def verify_donation(actor: ActorContext, path: DonationPath):
    """Approve or reject a pending donation (admin)."""
    payload = RequestParser.parse_body(VerifyDonationRequest)
    donation = current_app.donations.verify(
        actor,
        path.donation_id,
        approve=payload.approved,
        notes=payload.notes,
        publish=payload.publish,
        timeout=RequestParser.get_timeout()
    )
    return jsonify(donation.to_api()), 200


@donations_bp.post('/<donation_id>/publish')
@require_actor
def publish_donation(actor: ActorContext, path: DonationPath):
    """Publish a verified donation (admin)."""
    donation = current_app.donations.publish(actor, path.donation_id, timeout=RequestParser.get_timeout())
    return jsonify(donation.to_api()), 200


@donations_bp.delete('/<donation_id>')
@require_actor
def cancel_donation(actor: ActorContext, path: DonationPath):
    """Cancel a donation (owner or admin)."""
    payload = RequestParser.parse_body(CancelDonationRequest, required=False)
    donation = current_app.donations.cancel(
        actor, path.donation_id, reason=payload.reason, timeout=RequestParser.get_timeout()
    )
    return jsonify(donation.to_api()), 200


@donations_bp.get('/match/<donation_id>')
@require_actor
def match_recipients(actor: ActorContext, path: DonationPath):
    """Rank recipient organizations for a donation (owner or admin)."""
    matches = current_app.matching.match_recipients(actor, path.donation_id)
    logger.debug(f"Returning {len(matches)} recipient matches for donation {path.donation_id}")
    return jsonify({
        "donationId": path.donation_id,
        "matches": [candidate.to_dict() for candidate in matches]
    }), 200
