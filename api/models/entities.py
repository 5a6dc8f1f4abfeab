# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the food rescue workflow.
"""

from typing import Dict, List, Optional
from pydantic import Field, field_validator, model_validator

from .audit_details import AuditDetails, GeoPoint
from .base import BaseEntity, DocumentModel, UtcDateTime
from .enums import (
    ActorRole,
    AuditAction,
    DonationStatus,
    EntityType,
    FoodType,
    NotificationPriority,
    NotificationType,
    PickupStatus,
    QuantityUnit,
    StorageCondition,
    TrustBadge,
    UrgencyLevel,
    Weekday,
)


class DayAvailability(DocumentModel):
    """A volunteer's declared availability for one weekday."""

    available: bool = Field(default=True, description="Whether the volunteer works this day")
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$", description="HH:MM")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$", description="HH:MM")


class VolunteerInfo(DocumentModel):
    """Volunteer-specific profile data."""

    availability: Dict[Weekday, DayAvailability] = Field(
        default_factory=dict, description="Weekly availability keyed by weekday"
    )
    has_vehicle: bool = Field(default=False, description="Whether the volunteer can drive")
    vehicle_type: Optional[str] = Field(None, max_length=50)
    preferred_areas: List[str] = Field(default_factory=list)
    max_distance_km: Optional[float] = Field(None, gt=0)


class Actor(BaseEntity):
    """A participant in the workflow (donor, recipient organization, volunteer, admin)."""

    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    role: ActorRole = Field(..., description="Actor role")
    is_active: bool = Field(default=True, description="Deactivated actors cannot act")
    is_verified: bool = Field(default=False, description="Admin-verified actor")
    trust_badge: TrustBadge = Field(default=TrustBadge.NONE)
    completed_count: int = Field(default=0, ge=0, description="Completed pickups or deliveries")
    response_rate: Optional[float] = Field(None, ge=0, le=1)
    organization: Optional[str] = Field(None, max_length=200)
    location: Optional[GeoPoint] = None
    volunteer_info: Optional[VolunteerInfo] = None
    verified_by: Optional[str] = None
    verified_at: Optional[UtcDateTime] = None
    version: int = Field(default=1, ge=1, description="Transition sequence number")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Validate actor name."""
        if not v.strip():
            raise ValueError("Actor name cannot be empty")
        return v.strip()


class SafetyChecklist(DocumentModel):
    """Food safety self-assessment; every item must be stated."""

    proper_storage: bool
    temperature_controlled: bool
    hygiene_standards: bool
    no_contamination: bool
    proper_packaging: bool

    def unchecked_items(self) -> List[str]:
        return [name for name, checked in self.model_dump().items() if not checked]


class Donation(BaseEntity):
    """A surplus-food offer moving through the donation lifecycle."""

    owner_id: str = Field(..., description="Donor actor ID")
    food_type: FoodType
    description: str = Field(..., min_length=1, max_length=1000)
    quantity: float = Field(..., gt=0)
    unit: QuantityUnit
    expiry_at: UtcDateTime
    prepared_at: Optional[UtcDateTime] = None
    storage_condition: StorageCondition
    allergens: List[str] = Field(default_factory=list)
    dietary_info: List[str] = Field(default_factory=list)
    pickup_address: str = Field(..., min_length=1, max_length=500)
    pickup_location: Optional[GeoPoint] = None
    pickup_instructions: Optional[str] = Field(None, max_length=500)
    available_from: UtcDateTime
    available_until: UtcDateTime
    safety_checklist: SafetyChecklist
    urgency_level: UrgencyLevel = Field(default=UrgencyLevel.LOW)
    status: DonationStatus = Field(default=DonationStatus.PENDING)
    claimed_by: Optional[str] = None
    claimed_at: Optional[UtcDateTime] = None
    active_pickup_id: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[UtcDateTime] = None
    verification_notes: Optional[str] = Field(None, max_length=1000)
    completed_at: Optional[UtcDateTime] = None
    version: int = Field(default=1, ge=1, description="Transition sequence number")

    @model_validator(mode="after")
    def validate_window(self):
        """Pickup window must be non-empty."""
        if self.available_until <= self.available_from:
            raise ValueError("availableUntil must be after availableFrom")
        return self


class PickupRoute(DocumentModel):
    pickup_location: Optional[GeoPoint] = None
    delivery_location: Optional[GeoPoint] = None
    current_location: Optional[GeoPoint] = None


class PickupAssignment(BaseEntity):
    """The logistics record created by a successful claim."""

    donation_id: str
    donor_id: str
    recipient_id: str
    volunteer_id: Optional[str] = None
    status: PickupStatus = Field(default=PickupStatus.ASSIGNED)
    scheduled_pickup_at: UtcDateTime
    actual_pickup_at: Optional[UtcDateTime] = None
    actual_delivery_at: Optional[UtcDateTime] = None
    route: PickupRoute = Field(default_factory=PickupRoute)
    pickup_instructions: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    version: int = Field(default=1, ge=1, description="Transition sequence number")


class Notification(BaseEntity):
    """Inbox message addressed to one actor."""

    recipient_actor_id: str
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    priority: NotificationPriority = Field(default=NotificationPriority.MEDIUM)
    related_donation_id: Optional[str] = None
    related_pickup_id: Optional[str] = None
    is_read: bool = False
    read_at: Optional[UtcDateTime] = None


class AuditTargets(DocumentModel):
    donation_id: Optional[str] = None
    pickup_id: Optional[str] = None
    actor_id: Optional[str] = None


class AuditEntry(BaseEntity):
    """Immutable record of one accepted transition."""

    action: AuditAction
    performed_by: str
    entity_type: EntityType
    entity_id: str
    sequence: int = Field(..., ge=1)
    target_ids: AuditTargets = Field(default_factory=AuditTargets)
    details: AuditDetails
    trace_id: Optional[str] = Field(None, description="OpenTelemetry trace ID")

    @model_validator(mode="after")
    def validate_details_tag(self):
        """The payload variant must match the audited action."""
        if self.details.action != self.action:
            raise ValueError(f"details variant {self.details.action.value} does not match {self.action.value}")
        return self


class ActorContext(DocumentModel):
    """Authenticated identity handed to the workflow by the gateway."""

    actor_id: str = Field(..., min_length=1)
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

