# SPDX-License-Identifier: Apache-2.0

"""
Donation domain logic.

Pure functions for the donation lifecycle: the transition table, urgency
derived from time-to-expiry, and creation preconditions.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from models.entities import Donation, SafetyChecklist
from models.enums import DonationStatus, UrgencyLevel
from .authorization import ValidationResult


# claimed/assigned back to available or expired happens only when a pickup is
# cancelled; the expiry sweep only takes available donations
DONATION_TRANSITIONS = {
    DonationStatus.PENDING: {DonationStatus.VERIFIED, DonationStatus.AVAILABLE, DonationStatus.CANCELLED},
    DonationStatus.VERIFIED: {DonationStatus.AVAILABLE, DonationStatus.CLAIMED, DonationStatus.CANCELLED},
    DonationStatus.AVAILABLE: {DonationStatus.CLAIMED, DonationStatus.EXPIRED, DonationStatus.CANCELLED},
    DonationStatus.CLAIMED: {
        DonationStatus.ASSIGNED, DonationStatus.AVAILABLE, DonationStatus.EXPIRED, DonationStatus.CANCELLED
    },
    DonationStatus.ASSIGNED: {DonationStatus.IN_TRANSIT, DonationStatus.AVAILABLE, DonationStatus.EXPIRED},
    DonationStatus.IN_TRANSIT: {DonationStatus.DELIVERED},
    DonationStatus.DELIVERED: {DonationStatus.COMPLETED},
    DonationStatus.COMPLETED: set(),
    DonationStatus.EXPIRED: set(),
    DonationStatus.CANCELLED: set(),
}

TERMINAL_DONATION_STATUSES = frozenset(
    status for status, targets in DONATION_TRANSITIONS.items() if not targets
)

# Statuses a recipient may claim from
CLAIMABLE_STATUSES = (DonationStatus.AVAILABLE, DonationStatus.VERIFIED)

CANCELLABLE_STATUSES = (
    DonationStatus.PENDING,
    DonationStatus.VERIFIED,
    DonationStatus.AVAILABLE,
    DonationStatus.CLAIMED,
)

# Statuses the expiry sweep moves to expired
EXPIRABLE_STATUSES = (DonationStatus.AVAILABLE,)

CLAIMED_STATUSES = frozenset({
    DonationStatus.CLAIMED,
    DonationStatus.ASSIGNED,
    DonationStatus.IN_TRANSIT,
    DonationStatus.DELIVERED,
    DonationStatus.COMPLETED,
})

URGENCY_THRESHOLDS = (
    (timedelta(hours=2), UrgencyLevel.CRITICAL),
    (timedelta(hours=6), UrgencyLevel.HIGH),
    (timedelta(hours=12), UrgencyLevel.MEDIUM),
)

SAFETY_CHECKLIST_ITEMS = tuple(SafetyChecklist.model_fields.keys())


def can_transition(current: DonationStatus, target: DonationStatus) -> bool:
    return target in DONATION_TRANSITIONS.get(current, set())


def validate_status_transition(current: DonationStatus, target: DonationStatus) -> ValidationResult:
    """
    Validate a donation status transition against the table.

    Args:
        current: Current donation status
        target: Desired new status

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []
    if not can_transition(current, target):
        errors.append(f"Invalid status transition from {current.value} to {target.value}")
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def compute_urgency(expiry_at: datetime, now: datetime) -> UrgencyLevel:
    """
    Derive urgency from time remaining before expiry.

    Monotone in time: as ``now`` advances toward ``expiry_at`` the level never
    decreases. Already-expired food is critical.
    """
    remaining = expiry_at - now
    for threshold, level in URGENCY_THRESHOLDS:
        if remaining <= threshold:
            return level
    return UrgencyLevel.LOW


def refresh_urgency(donation: Donation, now: datetime) -> Donation:
    """Return the donation with its urgency recomputed for ``now``."""
    urgency = compute_urgency(donation.expiry_at, now)
    if donation.urgency_level != urgency:
        donation = donation.model_copy(update={"urgency_level": urgency})
    return donation


def is_expired(donation: Donation, now: datetime) -> bool:
    return donation.expiry_at <= now


def validate_new_donation(attrs: Dict[str, Any], now: datetime) -> ValidationResult:
    """
    Validate the attributes of a donation about to be created.

    Missing safety fields are errors. Checklist items stated as false are
    warnings: the donor declared them, an admin reviews them.

    Args:
        attrs: Snake-case donation attributes
        now: Evaluation time

    Returns:
        ValidationResult with errors and warnings
    """
    errors = []
    warnings = []

    quantity = attrs.get("quantity")
    if quantity is None:
        errors.append("Missing required field: quantity")
    elif quantity <= 0:
        errors.append("Quantity must be greater than zero")

    expiry_at = attrs.get("expiry_at")
    if expiry_at is None:
        errors.append("Missing required field: expiryAt")
    elif expiry_at <= now:
        errors.append("Expiry time must be in the future")

    available_from = attrs.get("available_from")
    available_until = attrs.get("available_until")
    if available_from is None or available_until is None:
        errors.append("Missing required field: availableFrom/availableUntil")
    elif available_until <= available_from:
        errors.append("availableUntil must be after availableFrom")

    if not attrs.get("storage_condition"):
        errors.append("Missing required safety field: storageCondition")

    if not (attrs.get("pickup_address") or "").strip():
        errors.append("Missing required safety field: pickupAddress")

    checklist = attrs.get("safety_checklist")
    if checklist is None:
        errors.append("Missing required safety field: safetyChecklist")
    else:
        for item in SAFETY_CHECKLIST_ITEMS:
            value = checklist.get(item)
            if value is None:
                errors.append(f"Safety checklist item not stated: {item}")
            elif value is False:
                warnings.append(f"Safety checklist item unchecked: {item}")

    if expiry_at is not None and available_until is not None and available_until > expiry_at:
        warnings.append("Pickup window extends past the expiry time")

    return ValidationResult(is_valid=len(errors) == 0, errors=errors, warnings=warnings)


def build_donation(owner_id: str, attrs: Dict[str, Any], now: datetime, donation_id: Optional[str] = None) -> Donation:
    """Build a pending donation from validated attributes."""
    data = dict(attrs)
    data.update({
        "owner_id": owner_id,
        "status": DonationStatus.PENDING,
        "urgency_level": compute_urgency(attrs["expiry_at"], now),
        "created_at": now,
        "updated_at": now,
        "version": 1,
    })
    if donation_id:
        data["id"] = donation_id
    return Donation.model_validate(data)
