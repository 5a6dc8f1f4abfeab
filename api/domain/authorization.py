# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for role-scoped workflow access.

This module contains pure functions deciding whether an actor may perform a
workflow operation or see a record. Callers turn a denied result into a
``ForbiddenError``.
"""

from typing import Iterable, List, Optional
from dataclasses import dataclass, field

from models.entities import Actor, ActorContext, Donation, PickupAssignment
from models.enums import ActorRole, DonationStatus


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of a precondition or payload validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


ALLOWED = AuthorizationResult(allowed=True)


def check_role(actor: ActorContext, allowed_roles: Iterable[ActorRole]) -> AuthorizationResult:
    """
    Check that the actor holds one of the allowed roles.

    Args:
        actor: Authenticated actor context
        allowed_roles: Roles permitted for the operation

    Returns:
        AuthorizationResult indicating if the role is accepted
    """
    allowed_roles = list(allowed_roles)
    if actor.role in allowed_roles:
        return ALLOWED
    names = ", ".join(role.value for role in allowed_roles)
    return AuthorizationResult(
        allowed=False,
        reason=f"Role {actor.role.value} is not permitted; requires one of: {names}",
    )


def check_active_actor(actor: ActorContext, profile: Optional[Actor], role: ActorRole) -> AuthorizationResult:
    """
    Check that the actor has the given role and an active profile.

    Claims and pickup acceptance are only open to registered, active actors.
    """
    if actor.role != role:
        return AuthorizationResult(allowed=False, reason=f"Only {role.value} actors may perform this action")
    if profile is None or not profile.is_active:
        return AuthorizationResult(allowed=False, reason="Actor account is not active")
    if profile.role != role:
        return AuthorizationResult(allowed=False, reason="Actor profile role does not match")
    return ALLOWED


def can_cancel_donation(actor: ActorContext, donation: Donation) -> AuthorizationResult:
    if actor.is_admin or donation.owner_id == actor.actor_id:
        return ALLOWED
    return AuthorizationResult(allowed=False, reason="Only the donor or an admin can cancel this donation")


def can_match_donation(actor: ActorContext, donation: Donation) -> AuthorizationResult:
    if actor.is_admin or donation.owner_id == actor.actor_id:
        return ALLOWED
    return AuthorizationResult(allowed=False, reason="Only the donor or an admin can request matches")


def can_view_donation(actor: ActorContext, donation: Donation) -> AuthorizationResult:
    """Donors see their own donations, recipients see claimable or their own claims."""
    if actor.is_admin or donation.owner_id == actor.actor_id:
        return ALLOWED
    if actor.role == ActorRole.RECIPIENT_ORG:
        if donation.claimed_by == actor.actor_id:
            return ALLOWED
        if donation.status in (DonationStatus.AVAILABLE, DonationStatus.VERIFIED):
            return ALLOWED
    if actor.role == ActorRole.VOLUNTEER and donation.status != DonationStatus.PENDING:
        return ALLOWED
    return AuthorizationResult(allowed=False, reason="Not authorized to view this donation")


def is_pickup_participant(actor: ActorContext, pickup: PickupAssignment) -> bool:
    return actor.actor_id in (pickup.donor_id, pickup.recipient_id, pickup.volunteer_id)


def can_view_pickup(actor: ActorContext, pickup: PickupAssignment) -> AuthorizationResult:
    if actor.is_admin or is_pickup_participant(actor, pickup):
        return ALLOWED
    # Unclaimed assignments are open for any volunteer to inspect before accepting
    if actor.role == ActorRole.VOLUNTEER and pickup.volunteer_id is None:
        return ALLOWED
    return AuthorizationResult(allowed=False, reason="Not authorized to view this pickup")


def can_advance_pickup(actor: ActorContext, pickup: PickupAssignment) -> AuthorizationResult:
    if actor.is_admin:
        return ALLOWED
    if pickup.volunteer_id is not None and pickup.volunteer_id == actor.actor_id:
        return ALLOWED
    return AuthorizationResult(allowed=False, reason="Only the assigned volunteer or an admin can update this pickup")


def can_report_location(actor: ActorContext, pickup: PickupAssignment) -> AuthorizationResult:
    if pickup.volunteer_id is not None and pickup.volunteer_id == actor.actor_id:
        return ALLOWED
    return AuthorizationResult(allowed=False, reason="Only the assigned volunteer can report location")
