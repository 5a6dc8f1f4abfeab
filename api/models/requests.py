# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.

Bodies accept camelCase keys (snake_case also works). Creation payloads are
deliberately lenient: missing fields are reported by the workflow's own
validation, which lists every problem at once. Path models keep the URL
variable names, so they use plain snake_case.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .audit_details import GeoPoint
from .base import DocumentModel, UtcDateTime
from .entities import VolunteerInfo
from .enums import (
    ActorRole,
    FoodType,
    PickupStatus,
    QuantityUnit,
    StorageCondition,
    TrustBadge,
)


class SafetyChecklistInput(DocumentModel):
    """Checklist as declared by the donor; unanswered items stay None."""

    proper_storage: Optional[bool] = None
    temperature_controlled: Optional[bool] = None
    hygiene_standards: Optional[bool] = None
    no_contamination: Optional[bool] = None
    proper_packaging: Optional[bool] = None


class CreateDonationRequest(DocumentModel):
    """Request model for creating a donation."""

    food_type: Optional[FoodType] = None
    description: Optional[str] = Field(None, max_length=1000)
    quantity: Optional[float] = None
    unit: Optional[QuantityUnit] = None
    expiry_at: Optional[UtcDateTime] = None
    prepared_at: Optional[UtcDateTime] = None
    storage_condition: Optional[StorageCondition] = None
    allergens: List[str] = Field(default_factory=list)
    dietary_info: List[str] = Field(default_factory=list)
    pickup_address: Optional[str] = Field(None, max_length=500)
    pickup_location: Optional[GeoPoint] = None
    pickup_instructions: Optional[str] = Field(None, max_length=500)
    available_from: Optional[UtcDateTime] = None
    available_until: Optional[UtcDateTime] = None
    safety_checklist: Optional[SafetyChecklistInput] = None

    def to_attrs(self) -> Dict[str, Any]:
        """Snake-case attributes for the donation workflow, unset fields omitted."""
        attrs = self.model_dump(exclude_none=True)
        if self.safety_checklist is not None:
            attrs["safety_checklist"] = self.safety_checklist.model_dump()
        return attrs


class VerifyDonationRequest(DocumentModel):
    approved: bool = Field(..., description="Approve (true) or reject (false)")
    notes: Optional[str] = Field(None, max_length=1000)
    publish: bool = Field(default=True, description="Publish immediately on approval")


class CancelDonationRequest(DocumentModel):
    reason: Optional[str] = Field(None, max_length=500)


class UpdatePickupStatusRequest(DocumentModel):
    """Request model for advancing a pickup."""

    status: PickupStatus
    gps_location: Optional[GeoPoint] = None
    notes: Optional[str] = Field(None, max_length=1000)


class LocationUpdateRequest(DocumentModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class MarkNotificationsReadRequest(DocumentModel):
    notification_ids: Optional[List[str]] = Field(None, description="IDs to mark; all unread when omitted")


class RegisterActorRequest(DocumentModel):
    """Request model for registering an actor profile."""

    id: Optional[str] = Field(None, description="Actor ID; admins only, defaults to the caller")
    name: str = Field(..., min_length=1, max_length=200)
    role: Optional[ActorRole] = None
    organization: Optional[str] = Field(None, max_length=200)
    location: Optional[GeoPoint] = None
    response_rate: Optional[float] = Field(None, ge=0, le=1)
    volunteer_info: Optional[VolunteerInfo] = None

    def to_attrs(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class VerifyActorRequest(DocumentModel):
    approved: bool
    trust_badge: Optional[TrustBadge] = None
    notes: Optional[str] = Field(None, max_length=1000)


class DeactivateActorRequest(DocumentModel):
    reason: Optional[str] = Field(None, max_length=500)


class VolunteerAvailabilityQuery(DocumentModel):
    day: date = Field(..., alias="date", description="Target date (YYYY-MM-DD)")


class DonationPath(BaseModel):
    donation_id: str = Field(..., description="Donation ID")


class PickupPath(BaseModel):
    pickup_id: str = Field(..., description="Pickup assignment ID")


class ActorPath(BaseModel):
    actor_id: str = Field(..., description="Actor ID")
