# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Claim arbitration for donations.

Any number of recipients may try to claim the same donation at once. The
claim is a single conditional write on the donation's claimable status,
version and expiry, so exactly one attempt wins and every other attempt sees a conflict.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain import authorization as authz
from domain import donations as donation_rules
from domain.errors import ConflictError, InvalidTransitionError, ValidationError
from domain.pickups import build_pickup
from domain.side_effects import TransitionEvent
from models.audit_details import DonationClaimedDetails
from models.base import generate_object_id, utcnow
from models.entities import ActorContext, Donation, PickupAssignment
from models.enums import ActorRole, AuditAction, DonationStatus, EntityType
from .dispatcher import SideEffectDispatcher
from .records import discard, find_actor, load_donation, require, restore_record
from .store import DONATIONS, PICKUPS, DocumentStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class ClaimResult:
    """The claimed donation and the pickup assignment created with it."""
    donation: Donation
    pickup: PickupAssignment

    def to_dict(self) -> dict:
        return {"donation": self.donation.to_api(), "pickup": self.pickup.to_api()}


class ClaimArbiter:
    """Award each donation to at most one recipient organization."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: SideEffectDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock

    def claim(self, recipient: ActorContext, donation_id: str, timeout: Optional[float] = None) -> ClaimResult:
        """
        Claim a donation for a recipient organization.

        Args:
            recipient: Acting recipient organization
            donation_id: Donation to claim
            timeout: Optional deadline in seconds for the pre-read and the claim write

        Returns:
            ClaimResult with the claimed donation and its new pickup

        Raises:
            ForbiddenError: Actor is not an active recipient organization
            NotFoundError: Donation does not exist
            ValidationError: Donation has expired
            ConflictError: Donation was already claimed
            InvalidTransitionError: Donation is not open for claims
        """
        with tracer.start_as_current_span("claims.claim") as span:
            span.set_attributes({"donation.id": donation_id, "recipient.id": recipient.actor_id})

            with self.store.deadline(timeout):
                profile = find_actor(self.store, recipient.actor_id)
                require(authz.check_active_actor(recipient, profile, ActorRole.RECIPIENT_ORG))

                now = self.clock()
                donation = load_donation(self.store, donation_id)
                self._check_claimable(donation, now)

                pickup_id = generate_object_id()
                document = self.store.conditional_update(
                    DONATIONS,
                    {
                        "_id": donation.id,
                        "status": {"$in": list(donation_rules.CLAIMABLE_STATUSES)},
                        "version": donation.version,
                        "expiryAt": {"$gt": now},
                    },
                    set_fields={
                        "status": DonationStatus.CLAIMED,
                        "claimedBy": recipient.actor_id,
                        "claimedAt": now,
                        "activePickupId": pickup_id,
                        "urgencyLevel": donation_rules.compute_urgency(donation.expiry_at, now),
                        "updatedAt": now,
                    },
                    inc={"version": 1},
                )

            if document is None:
                span.set_status(Status(StatusCode.ERROR, "claim lost"))
                logger.info(
                    "Claim lost to a concurrent claim",
                    extra={"extra_fields": {"donation_id": donation_id, "recipient_id": recipient.actor_id}}
                )
                raise ConflictError(f"Donation {donation_id} has already been claimed")

            claimed = Donation.from_document(document)
            pickup = build_pickup(pickup_id, claimed, profile, now)
            try:
                self.store.insert(PICKUPS, pickup.to_document())
            except Exception as e:
                span.record_exception(e)
                logger.error(
                    "Pickup creation failed after claim; releasing donation",
                    extra={"extra_fields": {"donation_id": donation_id, "pickup_id": pickup_id, "error": str(e)}}
                )
                restore_record(self.store, DONATIONS, donation, claimed.version)
                raise

            span.set_attributes({"pickup.id": pickup.id, "donation.version": claimed.version})
            logger.info(
                "Donation claimed",
                extra={
                    "extra_fields": {
                        "donation_id": claimed.id,
                        "recipient_id": recipient.actor_id,
                        "pickup_id": pickup.id,
                        "sequence": claimed.version
                    }
                }
            )

            self.dispatcher.dispatch(TransitionEvent(
                action=AuditAction.DONATION_CLAIMED,
                entity_type=EntityType.DONATION,
                entity_id=claimed.id,
                sequence=claimed.version,
                performed_by=recipient.actor_id,
                details=DonationClaimedDetails(recipient_id=recipient.actor_id, pickup_id=pickup.id),
                occurred_at=now,
                donation=claimed,
                pickup=pickup,
                subject=profile,
            ), rollback=lambda: self._release(donation, claimed, pickup))
            return ClaimResult(donation=claimed, pickup=pickup)

    def _release(self, before: Donation, claimed: Donation, pickup: PickupAssignment) -> bool:
        """Undo a claim: drop its pickup and reopen the donation."""
        removed = discard(self.store, PICKUPS, pickup.id, pickup.version)
        return restore_record(self.store, DONATIONS, before, claimed.version) and removed

    @staticmethod
    def _check_claimable(donation: Donation, now: datetime) -> None:
        if donation.status in donation_rules.CLAIMED_STATUSES:
            raise ConflictError(f"Donation {donation.id} has already been claimed")
        if donation_rules.is_expired(donation, now):
            raise ValidationError("Donation has expired", ["expiryAt is in the past"])
        if donation.status not in donation_rules.CLAIMABLE_STATUSES:
            raise InvalidTransitionError(donation.status, DonationStatus.CLAIMED, "donation")
