# SPDX-License-Identifier: Apache-2.0

"""
Volunteer availability endpoint.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
import logging

from middleware.auth import require_actor
from models.entities import ActorContext
from models.requests import VolunteerAvailabilityQuery

logger = logging.getLogger(__name__)

volunteers_tag = Tag(name="Volunteers", description="Volunteer availability matching")
volunteers_bp = APIBlueprint(
    'volunteers',
    __name__,
    url_prefix='/api/volunteers',
    abp_tags=[volunteers_tag]
)


@volunteers_bp.get('/available')
@require_actor
def available_volunteers(actor: ActorContext):
    """Volunteers available on the weekday of ``date`` (admin)."""
    query = VolunteerAvailabilityQuery.model_validate({"date": request.args.get('date')})
    ranked = current_app.matching.available_volunteers(actor, query.day)
    return jsonify({
        "date": query.day.isoformat(),
        "volunteers": [candidate.to_dict() for candidate in ranked]
    }), 200
