# SPDX-License-Identifier: Apache-2.0

"""
Side-effect planning for accepted workflow transitions.

This module contains pure functions translating one accepted transition into
the notifications, the single audit entry and the real-time events it must
produce. Identifiers are derived from the transition key
``(entity_id, action, sequence)`` so replaying a plan writes the same records.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.entities import (
    Actor,
    AuditEntry,
    AuditTargets,
    Donation,
    Notification,
    PickupAssignment,
)
from models.enums import (
    AuditAction,
    EntityType,
    NotificationPriority,
    NotificationType,
    PickupStatus,
)


PICKUP_STATUS_MESSAGES = {
    PickupStatus.IN_TRANSIT: "Volunteer is on the way",
    PickupStatus.PICKED_UP: "Food has been picked up",
    PickupStatus.DELIVERING: "Food is being delivered",
    PickupStatus.DELIVERED: "Food has been delivered",
    PickupStatus.COMPLETED: "Pickup completed successfully",
}

PICKUP_STATUS_EVENT = "pickup-status-update"
VOLUNTEER_LOCATION_EVENT = "volunteer-location"
NOTIFICATION_EVENT = "notification"


def pickup_channel(pickup_id: str) -> str:
    return f"pickup-{pickup_id}"


def user_channel(actor_id: str) -> str:
    return f"user-{actor_id}"


def derive_id(*parts: str) -> str:
    """Deterministic 24-hex identifier (ObjectId-shaped) for a tuple of parts."""
    digest = hashlib.sha1(":".join(parts).encode("utf-8")).hexdigest()
    return digest[:24]


@dataclass
class TransitionEvent:
    """One accepted transition, tagged with the entity's new version."""
    action: AuditAction
    entity_type: EntityType
    entity_id: str
    sequence: int
    performed_by: str
    details: Any
    occurred_at: datetime
    donation: Optional[Donation] = None
    pickup: Optional[PickupAssignment] = None
    subject: Optional[Actor] = None

    @property
    def key(self) -> str:
        return f"{self.entity_id}:{self.action.value}:{self.sequence}"


@dataclass
class NotificationDraft:
    recipient_actor_id: str
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM


@dataclass
class RealtimeEvent:
    """Event published on a real-time channel."""
    channel: str
    event: str
    payload: Dict[str, Any]


@dataclass
class SideEffectPlan:
    key: str
    audit_entry: AuditEntry
    notifications: List[Notification] = field(default_factory=list)
    realtime: List[RealtimeEvent] = field(default_factory=list)


def _donation_drafts(event: TransitionEvent) -> List[NotificationDraft]:
    donation = event.donation
    details = event.details
    drafts = []

    if event.action == AuditAction.DONATION_VERIFIED:
        if not details.approved:
            drafts.append(NotificationDraft(
                donation.owner_id,
                NotificationType.SYSTEM_ALERT,
                "Donation Not Approved",
                f"Your donation was not approved. Reason: {details.notes or 'Not specified'}",
                NotificationPriority.HIGH,
            ))
        elif details.published:
            drafts.append(NotificationDraft(
                donation.owner_id,
                NotificationType.DONATION_VERIFIED,
                "Donation Verified",
                "Your donation has been verified and is now visible to NGOs",
            ))
        else:
            drafts.append(NotificationDraft(
                donation.owner_id,
                NotificationType.DONATION_VERIFIED,
                "Donation Verified",
                "Your donation has been verified and is awaiting publication",
            ))

    elif event.action == AuditAction.DONATION_PUBLISHED:
        drafts.append(NotificationDraft(
            donation.owner_id,
            NotificationType.DONATION_VERIFIED,
            "Donation Published",
            "Your donation is now visible to NGOs",
        ))

    elif event.action == AuditAction.DONATION_CLAIMED:
        claimant = "a recipient organization"
        if event.subject is not None:
            claimant = event.subject.organization or event.subject.name
        drafts.append(NotificationDraft(
            donation.owner_id,
            NotificationType.DONATION_CLAIMED,
            "Donation Claimed",
            f"Your {donation.food_type.value} donation has been claimed by {claimant}",
            NotificationPriority.HIGH,
        ))

    elif event.action == AuditAction.DONATION_CANCELLED:
        if details.previous_recipient_id:
            drafts.append(NotificationDraft(
                details.previous_recipient_id,
                NotificationType.DONATION_CANCELLED,
                "Donation Cancelled",
                "A donation you claimed has been cancelled",
                NotificationPriority.HIGH,
            ))
        if event.performed_by != donation.owner_id:
            drafts.append(NotificationDraft(
                donation.owner_id,
                NotificationType.DONATION_CANCELLED,
                "Donation Cancelled",
                f"Your donation was cancelled. Reason: {details.reason or 'Not specified'}",
            ))

    elif event.action == AuditAction.DONATION_EXPIRED:
        drafts.append(NotificationDraft(
            donation.owner_id,
            NotificationType.DONATION_EXPIRED,
            "Donation Expired",
            f"Your {donation.food_type.value} donation expired before it was delivered",
        ))

    return drafts


def _pickup_drafts(event: TransitionEvent) -> List[NotificationDraft]:
    pickup = event.pickup
    drafts = []

    if event.action == AuditAction.PICKUP_ASSIGNED:
        drafts.append(NotificationDraft(
            pickup.donor_id,
            NotificationType.PICKUP_ASSIGNED,
            "Volunteer Assigned",
            "A volunteer has been assigned to pick up your donation",
        ))
        drafts.append(NotificationDraft(
            pickup.recipient_id,
            NotificationType.PICKUP_ASSIGNED,
            "Pickup Scheduled",
            "A volunteer will pick up your requested food",
        ))

    elif event.action in (AuditAction.PICKUP_UPDATED, AuditAction.PICKUP_COMPLETED):
        message = PICKUP_STATUS_MESSAGES.get(pickup.status)
        if message:
            drafts.append(NotificationDraft(
                pickup.donor_id, NotificationType.PICKUP_UPDATE, "Pickup Update", message
            ))
            drafts.append(NotificationDraft(
                pickup.recipient_id, NotificationType.PICKUP_UPDATE, "Delivery Update", message
            ))

    elif event.action == AuditAction.PICKUP_CANCELLED:
        if event.details.previous_volunteer_id:
            drafts.append(NotificationDraft(
                event.details.previous_volunteer_id,
                NotificationType.ASSIGNMENT_CANCELLED,
                "Pickup Cancelled",
                "Your pickup assignment has been cancelled",
            ))
        drafts.append(NotificationDraft(
            pickup.donor_id,
            NotificationType.SYSTEM_ALERT,
            "Pickup Cancelled",
            "The pickup for your donation has been cancelled",
        ))

    return drafts


def _actor_drafts(event: TransitionEvent) -> List[NotificationDraft]:
    details = event.details
    if event.action == AuditAction.USER_VERIFIED:
        if details.approved:
            return [NotificationDraft(
                event.entity_id,
                NotificationType.VERIFICATION_APPROVED,
                "Account Verified",
                "Your account has been verified! You now have full access to the platform.",
                NotificationPriority.HIGH,
            )]
        return [NotificationDraft(
            event.entity_id,
            NotificationType.VERIFICATION_REJECTED,
            "Verification Update",
            f"Your verification request has been rejected. Reason: {details.notes or 'Not specified'}",
            NotificationPriority.HIGH,
        )]
    if event.action == AuditAction.USER_DEACTIVATED:
        return [NotificationDraft(
            event.entity_id,
            NotificationType.SYSTEM_ALERT,
            "Account Deactivated",
            f"Your account has been deactivated. Reason: {details.reason or 'Not specified'}",
            NotificationPriority.HIGH,
        )]
    return []


def plan_notifications(event: TransitionEvent) -> List[NotificationDraft]:
    """Notification drafts for the actors concerned by a transition."""
    if event.entity_type == EntityType.DONATION:
        return _donation_drafts(event)
    if event.entity_type == EntityType.PICKUP:
        return _pickup_drafts(event)
    return _actor_drafts(event)


def plan_realtime(event: TransitionEvent, notifications: List[Notification]) -> List[RealtimeEvent]:
    """
    Real-time events for a transition.

    Pickup progress goes to the pickup channel, with short status lines to
    the donor and recipient user channels. Every other notification is
    mirrored onto its recipient's user channel.
    """
    events = []
    pickup = event.pickup

    if event.entity_type == EntityType.PICKUP and pickup is not None:
        gps = getattr(event.details, "gps_location", None)
        location = gps.to_api() if gps is not None else None
        events.append(RealtimeEvent(
            pickup_channel(pickup.id),
            PICKUP_STATUS_EVENT,
            {"pickupId": pickup.id, "status": pickup.status.value, "location": location},
        ))
        if location is not None:
            events.append(RealtimeEvent(pickup_channel(pickup.id), VOLUNTEER_LOCATION_EVENT, location))

        if event.action in (AuditAction.PICKUP_UPDATED, AuditAction.PICKUP_COMPLETED):
            status = pickup.status.value
            events.append(RealtimeEvent(
                user_channel(pickup.donor_id),
                NOTIFICATION_EVENT,
                {"type": NotificationType.PICKUP_UPDATE.value, "message": f"Pickup status: {status}"},
            ))
            events.append(RealtimeEvent(
                user_channel(pickup.recipient_id),
                NOTIFICATION_EVENT,
                {"type": NotificationType.PICKUP_UPDATE.value, "message": f"Delivery status: {status}"},
            ))
            return events

    for notification in notifications:
        events.append(RealtimeEvent(
            user_channel(notification.recipient_actor_id),
            NOTIFICATION_EVENT,
            {"type": notification.type.value, "message": notification.message},
        ))
    return events


def _targets(event: TransitionEvent) -> AuditTargets:
    donation_id = event.donation.id if event.donation else None
    pickup_id = event.pickup.id if event.pickup else None
    if event.pickup is not None and donation_id is None:
        donation_id = event.pickup.donation_id
    if event.donation is not None and pickup_id is None:
        pickup_id = event.donation.active_pickup_id or getattr(event.details, "cancelled_pickup_id", None)
    actor_id = event.subject.id if event.subject else None
    return AuditTargets(donation_id=donation_id, pickup_id=pickup_id, actor_id=actor_id)


def build_audit_entry(event: TransitionEvent, trace_id: Optional[str] = None) -> AuditEntry:
    return AuditEntry(
        id=derive_id(event.key, "audit"),
        action=event.action,
        performed_by=event.performed_by,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        sequence=event.sequence,
        target_ids=_targets(event),
        details=event.details,
        trace_id=trace_id,
        created_at=event.occurred_at,
        updated_at=event.occurred_at,
    )


def build_notifications(event: TransitionEvent, drafts: List[NotificationDraft]) -> List[Notification]:
    notifications = []
    targets = _targets(event)
    for index, draft in enumerate(drafts):
        notifications.append(Notification(
            id=derive_id(event.key, "notification", str(index), draft.recipient_actor_id),
            recipient_actor_id=draft.recipient_actor_id,
            type=draft.type,
            title=draft.title,
            message=draft.message,
            priority=draft.priority,
            related_donation_id=targets.donation_id,
            related_pickup_id=targets.pickup_id,
            created_at=event.occurred_at,
            updated_at=event.occurred_at,
        ))
    return notifications


def plan_side_effects(event: TransitionEvent, trace_id: Optional[str] = None) -> SideEffectPlan:
    """
    Translate an accepted transition into its side-effect plan.

    Args:
        event: The accepted transition
        trace_id: Current trace ID for audit correlation

    Returns:
        SideEffectPlan with one audit entry, notifications and real-time events
    """
    notifications = build_notifications(event, plan_notifications(event))
    return SideEffectPlan(
        key=event.key,
        audit_entry=build_audit_entry(event, trace_id),
        notifications=notifications,
        realtime=plan_realtime(event, notifications),
    )
