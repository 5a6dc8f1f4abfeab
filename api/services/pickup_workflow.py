# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pickup assignment lifecycle service.

A pickup transition writes the pickup first, then mirrors the new status onto
the parent donation. When a later write of the same unit fails, the earlier
ones are compensated and the call fails with a conflict, so no caller ever
observes a pickup whose donation status disagrees with it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain import authorization as authz
from domain import donations as donation_rules
from domain import pickups as pickup_rules
from domain.errors import ConflictError, InvalidTransitionError, ValidationError
from domain.side_effects import (
    VOLUNTEER_LOCATION_EVENT,
    RealtimeEvent,
    TransitionEvent,
    pickup_channel,
)
from models.audit_details import (
    GeoPoint,
    PickupAssignedDetails,
    PickupCancelledDetails,
    PickupCompletedDetails,
    PickupUpdatedDetails,
)
from models.base import utcnow
from models.entities import ActorContext, Donation, PickupAssignment
from models.enums import ActorRole, AuditAction, DonationStatus, EntityType, PickupStatus
from .dispatcher import SideEffectDispatcher
from .records import find_actor, load_donation, load_pickup, require, restore_record
from .store import ACTORS, ASCENDING, DONATIONS, PICKUPS, DocumentStore, PaginationResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class PickupTransitionResult:
    """A pickup after a transition together with its mirrored donation."""
    pickup: PickupAssignment
    donation: Donation

    @property
    def donation_status(self) -> DonationStatus:
        return self.donation.status

    def to_dict(self) -> dict:
        return {
            "pickup": self.pickup.to_api(),
            "donationStatus": self.donation.status.value,
        }


class PickupStateMachine:
    """Accept, advance, track and cancel pickup assignments."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: SideEffectDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock

    def _write_pickup(
        self,
        pickup: PickupAssignment,
        set_fields: Dict[str, Any],
        extra_query: Optional[Dict[str, Any]] = None,
    ) -> PickupAssignment:
        query = {"_id": pickup.id, "status": pickup.status, "version": pickup.version}
        query.update(extra_query or {})
        set_fields = dict(set_fields, version=pickup.version + 1)
        document = self.store.conditional_update(PICKUPS, query, set_fields=set_fields)
        if document is None:
            raise ConflictError(f"Pickup {pickup.id} was modified concurrently")
        return PickupAssignment.from_document(document)

    def _mirror_donation(
        self,
        donation_id: str,
        pickup_id: str,
        sources,
        target: DonationStatus,
        now: datetime,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> Optional[Donation]:
        set_fields = {"status": target, "updatedAt": now}
        set_fields.update(extra_fields or {})
        document = self.store.conditional_update(
            DONATIONS,
            {"_id": donation_id, "status": {"$in": list(sources)}, "activePickupId": pickup_id},
            set_fields=set_fields,
            inc={"version": 1},
        )
        return Donation.from_document(document) if document is not None else None

    def _restore_pickup(self, before: PickupAssignment, after: PickupAssignment) -> bool:
        return restore_record(self.store, PICKUPS, before, after.version)

    def _restore_donation(self, before: Donation, after: Donation) -> bool:
        return restore_record(self.store, DONATIONS, before, after.version)

    def _restore_both(
        self,
        pickup_before: PickupAssignment,
        pickup_after: PickupAssignment,
        donation_before: Donation,
        donation_after: Donation,
    ) -> bool:
        donation_restored = self._restore_donation(donation_before, donation_after)
        return self._restore_pickup(pickup_before, pickup_after) and donation_restored

    def _uncredit(self, volunteer_id: str) -> bool:
        debited = self.store.conditional_update(
            ACTORS, {"_id": volunteer_id, "completedCount": {"$gt": 0}}, inc={"completedCount": -1}
        )
        return debited is not None

    def accept_assignment(
        self,
        volunteer: ActorContext,
        pickup_id: str,
        timeout: Optional[float] = None,
    ) -> PickupTransitionResult:
        """
        Take an unassigned pickup as its volunteer.

        Only one volunteer can win; the pickup moves to accepted and the
        donation to assigned.
        """
        with tracer.start_as_current_span("pickup.accept") as span:
            span.set_attributes({"pickup.id": pickup_id, "volunteer.id": volunteer.actor_id})
            now = self.clock()

            with self.store.deadline(timeout):
                profile = find_actor(self.store, volunteer.actor_id)
                require(authz.check_active_actor(volunteer, profile, ActorRole.VOLUNTEER))

                pickup = load_pickup(self.store, pickup_id)
                if pickup.volunteer_id is not None and pickup.status == PickupStatus.ASSIGNED:
                    raise ConflictError(f"Pickup {pickup_id} already has a volunteer")
                if not pickup_rules.can_transition(pickup.status, PickupStatus.ACCEPTED):
                    if pickup.status not in pickup_rules.TERMINAL_PICKUP_STATUSES:
                        raise ConflictError(f"Pickup {pickup_id} has already been accepted")
                    raise InvalidTransitionError(pickup.status, PickupStatus.ACCEPTED, "pickup")
                donation_before = load_donation(self.store, pickup.donation_id)

                accepted = self._write_pickup(
                    pickup,
                    {"status": PickupStatus.ACCEPTED, "volunteerId": volunteer.actor_id, "updatedAt": now},
                    extra_query={"volunteerId": None},
                )

            target = pickup_rules.mirrored_donation_status(PickupStatus.ACCEPTED)
            donation = self._mirror_donation(
                pickup.donation_id, pickup.id, pickup_rules.MIRROR_SOURCES[target], target, now
            )
            if donation is None:
                self._restore_pickup(pickup, accepted)
                span.set_status(Status(StatusCode.ERROR, "donation mirror failed"))
                raise ConflictError(f"Donation {pickup.donation_id} is no longer waiting for a volunteer")

            logger.info(
                "Pickup accepted",
                extra={
                    "extra_fields": {
                        "pickup_id": pickup_id,
                        "volunteer_id": volunteer.actor_id,
                        "donation_id": donation.id
                    }
                }
            )
            self.dispatcher.dispatch(TransitionEvent(
                action=AuditAction.PICKUP_ASSIGNED,
                entity_type=EntityType.PICKUP,
                entity_id=accepted.id,
                sequence=accepted.version,
                performed_by=volunteer.actor_id,
                details=PickupAssignedDetails(volunteer_id=volunteer.actor_id),
                occurred_at=now,
                donation=donation,
                pickup=accepted,
                subject=profile,
            ), rollback=lambda: self._restore_both(pickup, accepted, donation_before, donation))
            return PickupTransitionResult(pickup=accepted, donation=donation)

    def advance(
        self,
        actor: ActorContext,
        pickup_id: str,
        to: PickupStatus,
        gps_location: Optional[GeoPoint] = None,
        notes: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> PickupTransitionResult:
        """
        Move an accepted pickup one step along its route.

        Args:
            actor: Assigned volunteer or admin
            pickup_id: Pickup to advance
            to: Target status; accepted and cancelled have their own operations
            gps_location: Optional current volunteer position
            notes: Optional note stored on the pickup
            timeout: Optional deadline in seconds

        Returns:
            PickupTransitionResult with the pickup and the mirrored donation
        """
        with tracer.start_as_current_span("pickup.advance") as span:
            span.set_attributes({"pickup.id": pickup_id, "pickup.target_status": to.value})

            now = self.clock()
            with self.store.deadline(timeout):
                pickup = load_pickup(self.store, pickup_id)
                require(authz.can_advance_pickup(actor, pickup))
                if not pickup_rules.can_transition(pickup.status, to):
                    raise InvalidTransitionError(pickup.status, to, "pickup")
                validation = pickup_rules.validate_advance_target(to)
                if not validation.is_valid:
                    raise ValidationError("Invalid pickup status update", validation.errors)

                set_fields: Dict[str, Any] = {"status": to, "updatedAt": now}
                for name, value in pickup_rules.status_updates(to, now).items():
                    set_fields[PickupAssignment.model_fields[name].alias] = value
                if gps_location is not None:
                    set_fields["route.currentLocation"] = gps_location.to_document()
                if notes is not None:
                    set_fields["notes"] = notes
                updated = self._write_pickup(pickup, set_fields)

            donation_before = load_donation(self.store, pickup.donation_id)
            target = pickup_rules.mirrored_donation_status(to)
            extra = {"completedAt": now} if target == DonationStatus.COMPLETED else None
            donation = self._mirror_donation(
                pickup.donation_id, pickup.id, pickup_rules.MIRROR_SOURCES[target], target, now, extra
            )
            if donation is None:
                self._restore_pickup(pickup, updated)
                span.set_status(Status(StatusCode.ERROR, "donation mirror failed"))
                raise ConflictError(f"Donation {pickup.donation_id} changed while updating pickup {pickup_id}")

            completed = to == PickupStatus.COMPLETED
            if completed:
                credited = self.store.conditional_update(
                    ACTORS, {"_id": updated.volunteer_id}, set_fields={"updatedAt": now}, inc={"completedCount": 1}
                )
                if credited is None:
                    self._restore_donation(donation_before, donation)
                    self._restore_pickup(pickup, updated)
                    span.set_status(Status(StatusCode.ERROR, "volunteer credit failed"))
                    raise ConflictError(f"Volunteer {updated.volunteer_id} could not be credited")

            logger.info(
                "Pickup status updated",
                extra={
                    "extra_fields": {
                        "pickup_id": pickup_id,
                        "from_status": pickup.status.value,
                        "to_status": to.value,
                        "donation_status": donation.status.value,
                        "actor_id": actor.actor_id
                    }
                }
            )

            if completed:
                details = PickupCompletedDetails(
                    volunteer_id=updated.volunteer_id, gps_location=gps_location, notes=notes
                )
            else:
                details = PickupUpdatedDetails(
                    from_status=pickup.status,
                    to_status=to,
                    donation_status=donation.status,
                    gps_location=gps_location,
                    notes=notes,
                )
            self.dispatcher.dispatch(TransitionEvent(
                action=AuditAction.PICKUP_COMPLETED if completed else AuditAction.PICKUP_UPDATED,
                entity_type=EntityType.PICKUP,
                entity_id=updated.id,
                sequence=updated.version,
                performed_by=actor.actor_id,
                details=details,
                occurred_at=now,
                donation=donation,
                pickup=updated,
            ), rollback=lambda: self._undo_advance(pickup, updated, donation_before, donation, completed))
            return PickupTransitionResult(pickup=updated, donation=donation)

    def _undo_advance(
        self,
        pickup: PickupAssignment,
        updated: PickupAssignment,
        donation_before: Donation,
        donation: Donation,
        completed: bool,
    ) -> bool:
        restored = self._restore_both(pickup, updated, donation_before, donation)
        if completed:
            restored = self._uncredit(updated.volunteer_id) and restored
        return restored

    def update_location(
        self,
        volunteer: ActorContext,
        pickup_id: str,
        location: GeoPoint,
        timeout: Optional[float] = None,
    ) -> PickupAssignment:
        """
        Record the volunteer's current position.

        Location reports are not status transitions: the pickup version is
        unchanged and only a real-time event is published.
        """
        with tracer.start_as_current_span("pickup.update_location") as span:
            span.set_attribute("pickup.id", pickup_id)
            now = self.clock()

            with self.store.deadline(timeout):
                pickup = load_pickup(self.store, pickup_id)
                require(authz.can_report_location(volunteer, pickup))
                if pickup.status in pickup_rules.TERMINAL_PICKUP_STATUSES:
                    raise ValidationError(
                        "Pickup is no longer active",
                        [f"Pickup status is {pickup.status.value}"],
                    )
                document = self.store.conditional_update(
                    PICKUPS,
                    {
                        "_id": pickup.id,
                        "volunteerId": volunteer.actor_id,
                        "status": {"$nin": list(pickup_rules.TERMINAL_PICKUP_STATUSES)},
                    },
                    set_fields={"route.currentLocation": location.to_document(), "updatedAt": now},
                )
            if document is None:
                raise ConflictError(f"Pickup {pickup_id} is no longer active")

            self.dispatcher.publish_events([
                RealtimeEvent(pickup_channel(pickup.id), VOLUNTEER_LOCATION_EVENT, location.to_api())
            ])
            logger.debug(f"Location updated for pickup {pickup_id}")
            return PickupAssignment.from_document(document)

    def cancel(self, admin: ActorContext, pickup_id: str, timeout: Optional[float] = None) -> PickupTransitionResult:
        """
        Cancel a pickup that is not yet underway and release its donation.

        The donation returns to available, or becomes expired when its expiry
        passed in the meantime. The claim fields are cleared; verification
        fields are kept so the donation can be claimed again directly.
        """
        with tracer.start_as_current_span("pickup.cancel") as span:
            span.set_attribute("pickup.id", pickup_id)
            require(authz.check_role(admin, [ActorRole.ADMIN]))
            now = self.clock()

            with self.store.deadline(timeout):
                pickup = load_pickup(self.store, pickup_id)
                if not pickup_rules.can_transition(pickup.status, PickupStatus.CANCELLED):
                    raise InvalidTransitionError(pickup.status, PickupStatus.CANCELLED, "pickup")
                donation_before = load_donation(self.store, pickup.donation_id)
                cancelled = self._write_pickup(pickup, {"status": PickupStatus.CANCELLED, "updatedAt": now})

            released_status = pickup_rules.donation_status_after_cancel(donation_before, now)
            donation = self._mirror_donation(
                pickup.donation_id,
                pickup.id,
                pickup_rules.RELEASE_SOURCES,
                released_status,
                now,
                {
                    "claimedBy": None,
                    "claimedAt": None,
                    "activePickupId": None,
                    "urgencyLevel": donation_rules.compute_urgency(donation_before.expiry_at, now),
                },
            )
            if donation is None:
                self._restore_pickup(pickup, cancelled)
                span.set_status(Status(StatusCode.ERROR, "donation release failed"))
                raise ConflictError(f"Donation {pickup.donation_id} changed while cancelling pickup {pickup_id}")

            logger.info(
                "Pickup cancelled",
                extra={
                    "extra_fields": {
                        "pickup_id": pickup_id,
                        "previous_status": pickup.status.value,
                        "donation_status": donation.status.value,
                        "admin_id": admin.actor_id
                    }
                }
            )
            self.dispatcher.dispatch(TransitionEvent(
                action=AuditAction.PICKUP_CANCELLED,
                entity_type=EntityType.PICKUP,
                entity_id=cancelled.id,
                sequence=cancelled.version,
                performed_by=admin.actor_id,
                details=PickupCancelledDetails(
                    previous_status=pickup.status,
                    previous_volunteer_id=pickup.volunteer_id,
                    donation_status=donation.status,
                ),
                occurred_at=now,
                donation=donation,
                pickup=cancelled,
            ), rollback=lambda: self._restore_both(pickup, cancelled, donation_before, donation))
            return PickupTransitionResult(pickup=cancelled, donation=donation)

    def get(self, pickup_id: str, actor: Optional[ActorContext] = None) -> PickupAssignment:
        pickup = load_pickup(self.store, pickup_id)
        if actor is not None:
            require(authz.can_view_pickup(actor, pickup))
        return pickup

    def list(
        self,
        actor: ActorContext,
        status: Optional[PickupStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> PaginationResult:
        """Pickups the actor participates in; admins see all of them."""
        if actor.is_admin:
            query: Dict[str, Any] = {}
        elif actor.role == ActorRole.VOLUNTEER:
            query = {"volunteerId": actor.actor_id}
        elif actor.role == ActorRole.DONOR:
            query = {"donorId": actor.actor_id}
        else:
            query = {"recipientId": actor.actor_id}
        if status is not None:
            query["status"] = status

        result = self.store.paginate(PICKUPS, query, page=page, page_size=page_size)
        result.items = [PickupAssignment.from_document(document) for document in result.items]
        return result

    def list_unassigned(self, actor: ActorContext, limit: int = 50) -> List[PickupAssignment]:
        """Assignments still waiting for a volunteer, earliest pickup first."""
        require(authz.check_role(actor, [ActorRole.VOLUNTEER, ActorRole.ADMIN]))
        documents = self.store.find(
            PICKUPS,
            {"status": PickupStatus.ASSIGNED, "volunteerId": None},
            sort=[("scheduledPickupAt", ASCENDING)],
            limit=limit,
        )
        return [PickupAssignment.from_document(document) for document in documents]
