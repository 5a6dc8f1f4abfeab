# SPDX-License-Identifier: Apache-2.0

"""
Pickup assignment domain logic.

Transition table for the pickup lifecycle and the table mirroring pickup
progress onto the parent donation.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from models.entities import Actor, Donation, PickupAssignment, PickupRoute
from models.enums import DonationStatus, PickupStatus
from .authorization import ValidationResult
from .donations import is_expired


PICKUP_TRANSITIONS = {
    PickupStatus.ASSIGNED: {PickupStatus.ACCEPTED, PickupStatus.CANCELLED},
    PickupStatus.ACCEPTED: {PickupStatus.IN_TRANSIT, PickupStatus.CANCELLED},
    PickupStatus.IN_TRANSIT: {PickupStatus.PICKED_UP},
    PickupStatus.PICKED_UP: {PickupStatus.DELIVERING},
    PickupStatus.DELIVERING: {PickupStatus.DELIVERED},
    PickupStatus.DELIVERED: {PickupStatus.COMPLETED},
    PickupStatus.COMPLETED: set(),
    PickupStatus.CANCELLED: set(),
}

TERMINAL_PICKUP_STATUSES = frozenset({PickupStatus.COMPLETED, PickupStatus.CANCELLED})

# Pickup status -> donation status the donation must show afterwards
DONATION_MIRROR = {
    PickupStatus.ACCEPTED: DonationStatus.ASSIGNED,
    PickupStatus.IN_TRANSIT: DonationStatus.IN_TRANSIT,
    PickupStatus.PICKED_UP: DonationStatus.IN_TRANSIT,
    PickupStatus.DELIVERING: DonationStatus.IN_TRANSIT,
    PickupStatus.DELIVERED: DonationStatus.DELIVERED,
    PickupStatus.COMPLETED: DonationStatus.COMPLETED,
}

# Donation statuses the mirrored write may start from
MIRROR_SOURCES = {
    DonationStatus.ASSIGNED: (DonationStatus.CLAIMED,),
    DonationStatus.IN_TRANSIT: (DonationStatus.ASSIGNED, DonationStatus.IN_TRANSIT),
    DonationStatus.DELIVERED: (DonationStatus.IN_TRANSIT,),
    DonationStatus.COMPLETED: (DonationStatus.DELIVERED,),
}

# Donation statuses a cancelled pickup releases from
RELEASE_SOURCES = (DonationStatus.CLAIMED, DonationStatus.ASSIGNED)

# Targets reached only through their own operation, never through advance
DEDICATED_TARGETS = {
    PickupStatus.ACCEPTED: "accept",
    PickupStatus.CANCELLED: "cancel",
}

STATUS_TIMESTAMPS = {
    PickupStatus.PICKED_UP: "actual_pickup_at",
    PickupStatus.DELIVERED: "actual_delivery_at",
}


def can_transition(current: PickupStatus, target: PickupStatus) -> bool:
    return target in PICKUP_TRANSITIONS.get(current, set())


def validate_advance_target(target: PickupStatus) -> ValidationResult:
    """Reject targets that have a dedicated operation."""
    errors = []
    operation = DEDICATED_TARGETS.get(target)
    if operation:
        errors.append(f"Status {target.value} must be set through the {operation} operation")
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def mirrored_donation_status(target: PickupStatus) -> Optional[DonationStatus]:
    return DONATION_MIRROR.get(target)


def status_updates(target: PickupStatus, now: datetime) -> Dict[str, Any]:
    """Timestamp fields set on the pickup when it reaches ``target``."""
    field_name = STATUS_TIMESTAMPS.get(target)
    return {field_name: now} if field_name else {}


def donation_status_after_cancel(donation: Donation, now: datetime) -> DonationStatus:
    """A cancelled pickup releases the donation, unless it expired meanwhile."""
    return DonationStatus.EXPIRED if is_expired(donation, now) else DonationStatus.AVAILABLE


def build_pickup(
    pickup_id: str,
    donation: Donation,
    recipient: Actor,
    now: datetime,
) -> PickupAssignment:
    """
    Build the pickup assignment created by a successful claim.

    Scheduled pickup time, pickup location and instructions come from the
    donation; the delivery location is the recipient's own location.
    """
    return PickupAssignment(
        id=pickup_id,
        donation_id=donation.id,
        donor_id=donation.owner_id,
        recipient_id=recipient.id,
        status=PickupStatus.ASSIGNED,
        scheduled_pickup_at=donation.available_from,
        route=PickupRoute(
            pickup_location=donation.pickup_location,
            delivery_location=recipient.location,
        ),
        pickup_instructions=donation.pickup_instructions,
        created_at=now,
        updated_at=now,
        version=1,
    )
