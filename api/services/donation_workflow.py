# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Donation lifecycle service.

Every status change is a conditional write guarded by the status (and
version) the caller observed, followed by exactly one dispatched transition
tagged with the donation's new version.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import pydantic
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain import authorization as authz
from domain import donations as donation_rules
from domain import pickups as pickup_rules
from domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    ValidationError,
    format_validation_errors,
)
from domain.side_effects import TransitionEvent
from models.audit_details import (
    DonationCancelledDetails,
    DonationCreatedDetails,
    DonationExpiredDetails,
    DonationPublishedDetails,
    DonationVerifiedDetails,
    PickupCancelledDetails,
)
from models.base import utcnow
from models.entities import ActorContext, Donation, PickupAssignment
from models.enums import ActorRole, AuditAction, DonationStatus, EntityType, PickupStatus
from .dispatcher import Rollback, SideEffectDispatcher
from .records import discard, load_donation, load_pickup, require, restore_record
from .store import DONATIONS, PICKUPS, DocumentStore, PaginationResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class CreateResult:
    """A created donation with the non-blocking safety warnings."""
    donation: Donation
    warnings: List[str] = field(default_factory=list)


class DonationStateMachine:
    """Create, review, publish, cancel and expire donations."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: SideEffectDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock

    def _event(self, action: AuditAction, donation: Donation, performed_by: str, details, **extra) -> TransitionEvent:
        return TransitionEvent(
            action=action,
            entity_type=EntityType.DONATION,
            entity_id=donation.id,
            sequence=donation.version,
            performed_by=performed_by,
            details=details,
            occurred_at=donation.updated_at,
            donation=donation,
            **extra,
        )

    def _dispatch(
        self,
        action: AuditAction,
        donation: Donation,
        performed_by: str,
        details,
        rollback: Optional[Rollback] = None,
    ) -> None:
        self.dispatcher.dispatch(self._event(action, donation, performed_by, details), rollback=rollback)

    def _restorer(self, before: Donation, after: Donation) -> Rollback:
        return lambda: restore_record(self.store, DONATIONS, before, after.version)

    def _transition(
        self,
        donation: Donation,
        target: DonationStatus,
        now: datetime,
        updates: Optional[Dict[str, Any]] = None,
    ) -> Donation:
        """Conditional write of ``donation`` to ``target`` on its observed status and version."""
        if not donation_rules.validate_status_transition(donation.status, target).is_valid:
            raise InvalidTransitionError(donation.status, target, "donation")
        set_fields = {
            "status": target,
            "updatedAt": now,
            "version": donation.version + 1,
            "urgencyLevel": donation_rules.compute_urgency(donation.expiry_at, now),
        }
        set_fields.update(updates or {})
        document = self.store.conditional_update(
            DONATIONS,
            {"_id": donation.id, "status": donation.status, "version": donation.version},
            set_fields=set_fields,
        )
        if document is None:
            raise ConflictError(f"Donation {donation.id} was modified concurrently")
        return Donation.from_document(document)

    def create(self, actor: ActorContext, attrs: Dict[str, Any], timeout: Optional[float] = None) -> CreateResult:
        """
        Create a pending donation.

        Args:
            actor: Donor or admin creating the donation
            attrs: Snake-case donation attributes
            timeout: Optional deadline in seconds

        Returns:
            CreateResult with the stored donation and safety warnings
        """
        with tracer.start_as_current_span("donation.create") as span:
            span.set_attributes({"actor.id": actor.actor_id, "actor.role": actor.role.value})
            require(authz.check_role(actor, [ActorRole.DONOR, ActorRole.ADMIN]))

            now = self.clock()
            validation = donation_rules.validate_new_donation(attrs, now)
            if not validation.is_valid:
                span.set_status(Status(StatusCode.ERROR, "Validation failed"))
                logger.warning(
                    "Donation validation failed",
                    extra={"extra_fields": {"actor_id": actor.actor_id, "validation_errors": validation.errors}}
                )
                raise ValidationError("Donation validation failed", validation.errors)

            try:
                donation = donation_rules.build_donation(actor.actor_id, attrs, now)
            except pydantic.ValidationError as e:
                raise ValidationError("Donation validation failed", format_validation_errors(e)) from e
            with self.store.deadline(timeout):
                self.store.insert(DONATIONS, donation.to_document())

            span.set_attribute("donation.id", donation.id)
            logger.info(
                "Donation created",
                extra={
                    "extra_fields": {
                        "donation_id": donation.id,
                        "owner_id": donation.owner_id,
                        "urgency": donation.urgency_level.value,
                        "warnings": validation.warnings
                    }
                }
            )

            self._dispatch(
                AuditAction.DONATION_CREATED,
                donation,
                actor.actor_id,
                DonationCreatedDetails(
                    food_type=donation.food_type.value,
                    quantity=donation.quantity,
                    unit=donation.unit.value,
                    warnings=validation.warnings,
                ),
                rollback=lambda: discard(self.store, DONATIONS, donation.id, donation.version),
            )
            return CreateResult(donation=donation, warnings=validation.warnings)

    def verify(
        self,
        admin: ActorContext,
        donation_id: str,
        approve: bool,
        notes: Optional[str] = None,
        publish: bool = True,
        timeout: Optional[float] = None,
    ) -> Donation:
        """
        Review a pending donation.

        Approval makes it available (or verified, when publication is a
        separate step); rejection cancels it.
        """
        with tracer.start_as_current_span("donation.verify") as span:
            span.set_attributes({"donation.id": donation_id, "donation.approved": approve})
            require(authz.check_role(admin, [ActorRole.ADMIN]))

            now = self.clock()
            if not approve:
                target = DonationStatus.CANCELLED
            elif publish:
                target = DonationStatus.AVAILABLE
            else:
                target = DonationStatus.VERIFIED

            with self.store.deadline(timeout):
                donation = load_donation(self.store, donation_id)
                if donation.status != DonationStatus.PENDING:
                    raise InvalidTransitionError(donation.status, target, "donation")
                if approve and donation_rules.is_expired(donation, now):
                    raise ValidationError("Donation has already expired", ["expiryAt is in the past"])

                updates: Dict[str, Any] = {"verificationNotes": notes}
                if approve:
                    updates.update({"verifiedBy": admin.actor_id, "verifiedAt": now})
                updated = self._transition(donation, target, now, updates)

            logger.info(
                "Donation reviewed",
                extra={
                    "extra_fields": {
                        "donation_id": donation_id,
                        "approved": approve,
                        "status": updated.status.value,
                        "admin_id": admin.actor_id
                    }
                }
            )
            self._dispatch(
                AuditAction.DONATION_VERIFIED,
                updated,
                admin.actor_id,
                DonationVerifiedDetails(approved=approve, published=target == DonationStatus.AVAILABLE, notes=notes),
                rollback=self._restorer(donation, updated),
            )
            return updated

    def publish(self, admin: ActorContext, donation_id: str, timeout: Optional[float] = None) -> Donation:
        """Make a verified donation visible to recipients."""
        with tracer.start_as_current_span("donation.publish") as span:
            span.set_attribute("donation.id", donation_id)
            require(authz.check_role(admin, [ActorRole.ADMIN]))

            now = self.clock()
            with self.store.deadline(timeout):
                donation = load_donation(self.store, donation_id)
                if donation.status != DonationStatus.VERIFIED:
                    raise InvalidTransitionError(donation.status, DonationStatus.AVAILABLE, "donation")
                if donation_rules.is_expired(donation, now):
                    raise ValidationError("Donation has already expired", ["expiryAt is in the past"])
                updated = self._transition(donation, DonationStatus.AVAILABLE, now)

            logger.info(
                "Donation published",
                extra={"extra_fields": {"donation_id": donation_id, "admin_id": admin.actor_id}}
            )
            self._dispatch(
                AuditAction.DONATION_PUBLISHED,
                updated,
                admin.actor_id,
                DonationPublishedDetails(),
                rollback=self._restorer(donation, updated),
            )
            return updated

    def cancel(
        self,
        actor: ActorContext,
        donation_id: str,
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Donation:
        """
        Cancel a donation before a volunteer has taken it.

        A claimed donation's assigned pickup is cancelled in the same unit of
        work; if that pickup can no longer be cancelled the donation is
        restored and the call fails.
        """
        with tracer.start_as_current_span("donation.cancel") as span:
            span.set_attributes({"donation.id": donation_id, "actor.id": actor.actor_id})
            now = self.clock()

            with self.store.deadline(timeout):
                donation = load_donation(self.store, donation_id)
                require(authz.can_cancel_donation(actor, donation))
                if donation.status not in donation_rules.CANCELLABLE_STATUSES:
                    raise ForbiddenError(f"Donation in status {donation.status.value} can no longer be cancelled")

                pickup: Optional[PickupAssignment] = None
                if donation.status == DonationStatus.CLAIMED and donation.active_pickup_id:
                    pickup = load_pickup(self.store, donation.active_pickup_id)
                    if not pickup_rules.can_transition(pickup.status, PickupStatus.CANCELLED):
                        raise InvalidTransitionError(pickup.status, PickupStatus.CANCELLED, "pickup")

                previous_status = donation.status
                updated = self._transition(donation, DonationStatus.CANCELLED, now, {
                    "claimedBy": None,
                    "claimedAt": None,
                    "activePickupId": None,
                })

            cancelled_pickup = None
            if pickup is not None:
                cancelled_pickup = self._cancel_claim_pickup(pickup, donation, updated, now)

            logger.info(
                "Donation cancelled",
                extra={
                    "extra_fields": {
                        "donation_id": donation_id,
                        "previous_status": previous_status.value,
                        "cancelled_pickup_id": pickup.id if pickup else None,
                        "actor_id": actor.actor_id
                    }
                }
            )
            events = [self._event(
                AuditAction.DONATION_CANCELLED,
                updated,
                actor.actor_id,
                DonationCancelledDetails(
                    previous_status=previous_status,
                    reason=reason,
                    cancelled_pickup_id=pickup.id if pickup else None,
                    previous_recipient_id=donation.claimed_by,
                ),
            )]
            if cancelled_pickup is not None:
                events.append(TransitionEvent(
                    action=AuditAction.PICKUP_CANCELLED,
                    entity_type=EntityType.PICKUP,
                    entity_id=cancelled_pickup.id,
                    sequence=cancelled_pickup.version,
                    performed_by=actor.actor_id,
                    details=PickupCancelledDetails(
                        previous_status=pickup.status,
                        previous_volunteer_id=pickup.volunteer_id,
                        donation_status=DonationStatus.CANCELLED,
                    ),
                    occurred_at=now,
                    donation=updated,
                    pickup=cancelled_pickup,
                ))

            def rollback() -> bool:
                restored = restore_record(self.store, DONATIONS, donation, updated.version)
                if cancelled_pickup is not None:
                    restored = restore_record(self.store, PICKUPS, pickup, cancelled_pickup.version) and restored
                return restored

            self.dispatcher.dispatch_all(events, rollback=rollback)
            return updated

    def _cancel_claim_pickup(
        self,
        pickup: PickupAssignment,
        before: Donation,
        after: Donation,
        now: datetime,
    ) -> PickupAssignment:
        document = self.store.conditional_update(
            PICKUPS,
            {"_id": pickup.id, "status": pickup.status, "version": pickup.version},
            set_fields={"status": PickupStatus.CANCELLED, "updatedAt": now, "version": pickup.version + 1},
        )
        if document is None:
            restore_record(self.store, DONATIONS, before, after.version)
            raise ConflictError(f"Pickup {pickup.id} changed while cancelling donation {before.id}")
        return PickupAssignment.from_document(document)

    def get(self, donation_id: str, actor: Optional[ActorContext] = None) -> Donation:
        """Fetch a donation with its urgency recomputed."""
        donation = load_donation(self.store, donation_id)
        if actor is not None:
            require(authz.can_view_donation(actor, donation))
        return donation_rules.refresh_urgency(donation, self.clock())

    def list(
        self,
        actor: ActorContext,
        status: Optional[DonationStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> PaginationResult:
        """
        Role-scoped donation listing.

        Donors see their own donations; recipients see claimable unexpired
        donations and the ones they claimed; admins see everything.
        """
        now = self.clock()
        if actor.role == ActorRole.ADMIN:
            query: Dict[str, Any] = {}
        elif actor.role == ActorRole.DONOR:
            query = {"ownerId": actor.actor_id}
        elif actor.role == ActorRole.RECIPIENT_ORG:
            query = {"$or": [
                {"status": {"$in": list(donation_rules.CLAIMABLE_STATUSES)}, "expiryAt": {"$gt": now}},
                {"claimedBy": actor.actor_id},
            ]}
        else:
            raise ForbiddenError("Volunteers browse pickups, not donations")
        if status is not None:
            query["status"] = status

        result = self.store.paginate(DONATIONS, query, page=page, page_size=page_size)
        result.items = [
            donation_rules.refresh_urgency(Donation.from_document(document), now)
            for document in result.items
        ]
        return result

    def expire_overdue(self, now: Optional[datetime] = None) -> List[Donation]:
        """
        Move available donations past their expiry to ``expired``.

        Pending and verified donations are left to admin review, which
        refuses to approve expired food.

        Each write is conditional on the status and version read by the
        sweep, so a concurrent claim or review wins over the sweep.
        """
        with tracer.start_as_current_span("donation.expire_overdue") as span:
            now = now or self.clock()
            candidates = self.store.find(DONATIONS, {
                "status": {"$in": list(donation_rules.EXPIRABLE_STATUSES)},
                "expiryAt": {"$lte": now},
            })
            expired = []
            for document in candidates:
                donation = Donation.from_document(document)
                try:
                    updated = self._transition(donation, DonationStatus.EXPIRED, now)
                except ConflictError:
                    logger.info(
                        "Donation changed during expiry sweep",
                        extra={"extra_fields": {"donation_id": donation.id}}
                    )
                    continue
                self._dispatch(
                    AuditAction.DONATION_EXPIRED,
                    updated,
                    SYSTEM_ACTOR,
                    DonationExpiredDetails(previous_status=donation.status, expiry_at=donation.expiry_at),
                    rollback=self._restorer(donation, updated),
                )
                expired.append(updated)

            span.set_attribute("donation.expired_count", len(expired))
            logger.info(
                "Expiry sweep finished",
                extra={"extra_fields": {"expired_count": len(expired), "candidates": len(candidates)}}
            )
            return expired
