# SPDX-License-Identifier: Apache-2.0

"""
Identity middleware for gateway-authenticated requests.

Token verification happens upstream; the gateway forwards the verified
identity as ``X-Actor-Id`` and ``X-Actor-Role`` headers. This module turns
those headers into the ``ActorContext`` the workflow operations receive.
"""

from functools import wraps
from flask import request, jsonify, g
from typing import Callable, Optional
from opentelemetry import trace
import logging

from models.entities import ActorContext
from models.enums import ActorRole
from models.responses import ProblemDetails

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


class IdentityError(Exception):
    """Missing or malformed identity headers."""

    def __init__(self, message: str, status_code: int, error_type: str, title: str):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.title = title


def extract_actor_context() -> Optional[ActorContext]:
    """
    Build the actor context from identity headers.

    Returns:
        ActorContext, or None when no identity was forwarded

    Raises:
        IdentityError: Role header is missing or not a known role
    """
    actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    if not actor_id:
        return None

    role_value = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip()
    if not role_value:
        raise IdentityError(
            f"Missing {ACTOR_ROLE_HEADER} header", 401, "authentication-required", "Authentication Required"
        )
    try:
        role = ActorRole(role_value)
    except ValueError:
        raise IdentityError(
            f"Unknown actor role: {role_value}", 403, "insufficient-permissions", "Insufficient Permissions"
        )
    return ActorContext(actor_id=actor_id, role=role)


def _problem(error: IdentityError):
    problem = ProblemDetails.build(error.error_type, error.title, error.status_code, error.message, request.path)
    return jsonify(problem.to_dict()), error.status_code


def require_actor(f: Callable) -> Callable:
    """
    Decorator requiring a gateway-supplied identity.

    The decorated route receives the ``ActorContext`` as first argument.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        with tracer.start_as_current_span("auth.middleware.resolve_actor") as span:
            try:
                actor = extract_actor_context()
            except IdentityError as e:
                span.set_attribute("auth.result", "invalid_identity")
                logger.warning(f"Identity rejected: {e.message}", extra={"extra_fields": {"path": request.path}})
                return _problem(e)

            if actor is None:
                span.set_attribute("auth.result", "missing_identity")
                logger.warning(
                    "Authentication failed: missing identity headers",
                    extra={"extra_fields": {"path": request.path}}
                )
                return _problem(IdentityError(
                    f"Missing {ACTOR_ID_HEADER} header", 401, "authentication-required", "Authentication Required"
                ))

            g.actor_context = actor
            span.set_attributes({
                "auth.result": "success",
                "actor.id": actor.actor_id,
                "actor.role": actor.role.value
            })
        return f(actor, *args, **kwargs)

    return decorated_function
