# SPDX-License-Identifier: Apache-2.0

"""
Actor profile endpoints: registration, verification and deactivation.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from domain.authorization import check_role
from domain.errors import ForbiddenError
from middleware.auth import require_actor
from models.entities import ActorContext
from models.enums import ActorRole
from models.requests import ActorPath, DeactivateActorRequest, RegisterActorRequest, VerifyActorRequest
from services.records import require
from utils.request import RequestParser

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

actors_tag = Tag(name="Actors", description="Actor profiles and verification")
actors_bp = APIBlueprint(
    'actors',
    __name__,
    url_prefix='/api/actors',
    abp_tags=[actors_tag]
)


@actors_bp.post('')
@require_actor
def register_actor(actor: ActorContext):
    """
    Register an actor profile.

    Non-admin callers register their own profile under their own role.
    """
    payload = RequestParser.parse_body(RegisterActorRequest)
    profile = current_app.actors.register(actor, payload.to_attrs())
    return jsonify(profile.to_api()), 201


@actors_bp.get('/<actor_id>')
@require_actor
def get_actor(actor: ActorContext, path: ActorPath):
    """Get an actor profile (the actor themselves or an admin)."""
    if actor.actor_id != path.actor_id and not actor.is_admin:
        raise ForbiddenError("Only the actor or an admin can view this profile")
    profile = current_app.actors.get(path.actor_id)
    return jsonify(profile.to_api()), 200


@actors_bp.post('/<actor_id>/verify')
@require_actor
def verify_actor(actor: ActorContext, path: ActorPath):
    """Approve or reject an actor (admin)."""
    payload = RequestParser.parse_body(VerifyActorRequest)
    with tracer.start_as_current_span("actor.verify.request") as span:
        span.set_attributes({"actor.id": path.actor_id, "actor.approved": payload.approved})
        profile = current_app.actors.verify(
            actor,
            path.actor_id,
            approve=payload.approved,
            trust_badge=payload.trust_badge,
            notes=payload.notes
        )
    return jsonify(profile.to_api()), 200


@actors_bp.delete('/<actor_id>')
@require_actor
def deactivate_actor(actor: ActorContext, path: ActorPath):
    """Deactivate an actor (admin)."""
    require(check_role(actor, [ActorRole.ADMIN]))
    payload = RequestParser.parse_body(DeactivateActorRequest, required=False)
    profile = current_app.actors.deactivate(actor, path.actor_id, reason=payload.reason)
    return jsonify(profile.to_api()), 200
