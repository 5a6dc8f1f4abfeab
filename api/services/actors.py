# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Actor profiles: registration, admin verification and deactivation.

Identity itself is established upstream; this service only keeps the
workflow profile (role, trust badge, availability) of an authenticated actor.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import pydantic
from opentelemetry import trace

from domain import authorization as authz
from domain.errors import ConflictError, ForbiddenError, ValidationError, format_validation_errors
from domain.side_effects import TransitionEvent
from models.audit_details import UserDeactivatedDetails, UserRegisteredDetails, UserVerifiedDetails
from models.base import utcnow
from models.entities import Actor, ActorContext
from models.enums import ActorRole, AuditAction, EntityType, TrustBadge
from .dispatcher import Rollback, SideEffectDispatcher
from .records import discard, load_actor, require, restore_record
from .store import ACTORS, DocumentStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ActorService:
    """Manage actor profiles."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: SideEffectDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock

    def _dispatch(
        self,
        action: AuditAction,
        actor: Actor,
        performed_by: str,
        details,
        rollback: Optional[Rollback] = None,
    ) -> None:
        self.dispatcher.dispatch(TransitionEvent(
            action=action,
            entity_type=EntityType.ACTOR,
            entity_id=actor.id,
            sequence=actor.version,
            performed_by=performed_by,
            details=details,
            occurred_at=actor.updated_at,
            subject=actor,
        ), rollback=rollback)

    def register(self, ctx: ActorContext, attrs: Dict[str, Any]) -> Actor:
        """
        Create an actor profile.

        Admins may register any actor; everyone else only registers the
        profile of their own identity, with their own role. New profiles start
        unverified, without a trust badge.
        """
        with tracer.start_as_current_span("actors.register") as span:
            attrs = dict(attrs)
            if not ctx.is_admin:
                if attrs.get("id", ctx.actor_id) != ctx.actor_id:
                    raise ForbiddenError("Actors can only register their own profile")
                role = attrs.get("role", ctx.role)
                if role not in (ctx.role, ctx.role.value):
                    raise ForbiddenError("Registered role must match the authenticated role")
                attrs["id"] = ctx.actor_id
                attrs["role"] = ctx.role

            for protected in ("is_verified", "isVerified", "trust_badge", "trustBadge", "completed_count",
                              "completedCount", "verified_by", "verifiedBy", "verified_at", "verifiedAt"):
                attrs.pop(protected, None)

            now = self.clock()
            try:
                actor = Actor(**{**attrs, "created_at": now, "updated_at": now})
            except pydantic.ValidationError as e:
                raise ValidationError("Actor validation failed", format_validation_errors(e)) from e

            try:
                self.store.insert(ACTORS, actor.to_document())
            except ValueError as e:
                raise ConflictError(f"Actor {actor.id} is already registered") from e

            span.set_attributes({"actor.id": actor.id, "actor.role": actor.role.value})
            logger.info("Actor registered", extra={"extra_fields": {"actor_id": actor.id, "role": actor.role.value}})
            self._dispatch(
                AuditAction.USER_REGISTERED,
                actor,
                ctx.actor_id,
                UserRegisteredDetails(role=actor.role.value),
                rollback=lambda: discard(self.store, ACTORS, actor.id, actor.version),
            )
            return actor

    def verify(
        self,
        admin: ActorContext,
        actor_id: str,
        approve: bool,
        trust_badge: Optional[TrustBadge] = None,
        notes: Optional[str] = None,
    ) -> Actor:
        """
        Approve or reject an actor's verification request.

        Rejection also deactivates the actor.
        """
        with tracer.start_as_current_span("actors.verify") as span:
            span.set_attributes({"actor.id": actor_id, "actor.approved": approve})
            require(authz.check_role(admin, [ActorRole.ADMIN]))
            actor = load_actor(self.store, actor_id)
            now = self.clock()

            badge = trust_badge or (actor.trust_badge if actor.trust_badge != TrustBadge.NONE else TrustBadge.BRONZE)
            if approve:
                set_fields = {
                    "isVerified": True,
                    "trustBadge": badge,
                    "verifiedBy": admin.actor_id,
                    "verifiedAt": now,
                }
            else:
                badge = actor.trust_badge
                set_fields = {"isVerified": False, "isActive": False}
            set_fields.update({"updatedAt": now, "version": actor.version + 1})

            document = self.store.conditional_update(
                ACTORS, {"_id": actor.id, "version": actor.version}, set_fields=set_fields
            )
            if document is None:
                raise ConflictError(f"Actor {actor_id} was modified concurrently")
            updated = Actor.from_document(document)

            logger.info(
                "Actor verification reviewed",
                extra={"extra_fields": {"actor_id": actor_id, "approved": approve, "admin_id": admin.actor_id}}
            )
            self._dispatch(
                AuditAction.USER_VERIFIED,
                updated,
                admin.actor_id,
                UserVerifiedDetails(approved=approve, trust_badge=badge, notes=notes),
                rollback=lambda: restore_record(self.store, ACTORS, actor, updated.version),
            )
            return updated

    def deactivate(self, admin: ActorContext, actor_id: str, reason: Optional[str] = None) -> Actor:
        with tracer.start_as_current_span("actors.deactivate") as span:
            span.set_attribute("actor.id", actor_id)
            require(authz.check_role(admin, [ActorRole.ADMIN]))
            actor = load_actor(self.store, actor_id)
            if not actor.is_active:
                raise ValidationError("Actor is already inactive", [f"Actor {actor_id} is inactive"])

            now = self.clock()
            document = self.store.conditional_update(
                ACTORS,
                {"_id": actor.id, "version": actor.version, "isActive": True},
                set_fields={"isActive": False, "updatedAt": now, "version": actor.version + 1},
            )
            if document is None:
                raise ConflictError(f"Actor {actor_id} was modified concurrently")
            updated = Actor.from_document(document)

            logger.warning(
                "Actor deactivated",
                extra={"extra_fields": {"actor_id": actor_id, "admin_id": admin.actor_id}}
            )
            self._dispatch(
                AuditAction.USER_DEACTIVATED,
                updated,
                admin.actor_id,
                UserDeactivatedDetails(reason=reason),
                rollback=lambda: restore_record(self.store, ACTORS, actor, updated.version),
            )
            return updated

    def get(self, actor_id: str) -> Actor:
        return load_actor(self.store, actor_id)
