# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Typed audit payloads.

Each audited action carries exactly one payload variant, discriminated by the
``action`` tag, so the set of details stays closed over ``AuditAction``.
"""

from typing import Annotated, List, Literal, Optional, Union
from pydantic import Field

from .base import DocumentModel, UtcDateTime
from .enums import AuditAction, DonationStatus, PickupStatus, TrustBadge


class GeoPoint(DocumentModel):
    """A WGS84 coordinate pair."""

    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")


class UserRegisteredDetails(DocumentModel):
    action: Literal[AuditAction.USER_REGISTERED] = AuditAction.USER_REGISTERED
    role: str


class UserVerifiedDetails(DocumentModel):
    action: Literal[AuditAction.USER_VERIFIED] = AuditAction.USER_VERIFIED
    approved: bool
    trust_badge: TrustBadge
    notes: Optional[str] = None


class UserDeactivatedDetails(DocumentModel):
    action: Literal[AuditAction.USER_DEACTIVATED] = AuditAction.USER_DEACTIVATED
    reason: Optional[str] = None


class DonationCreatedDetails(DocumentModel):
    action: Literal[AuditAction.DONATION_CREATED] = AuditAction.DONATION_CREATED
    food_type: str
    quantity: float
    unit: str
    warnings: List[str] = Field(default_factory=list)


class DonationVerifiedDetails(DocumentModel):
    action: Literal[AuditAction.DONATION_VERIFIED] = AuditAction.DONATION_VERIFIED
    approved: bool
    published: bool
    notes: Optional[str] = None


class DonationPublishedDetails(DocumentModel):
    action: Literal[AuditAction.DONATION_PUBLISHED] = AuditAction.DONATION_PUBLISHED


class DonationClaimedDetails(DocumentModel):
    action: Literal[AuditAction.DONATION_CLAIMED] = AuditAction.DONATION_CLAIMED
    recipient_id: str
    pickup_id: str


class DonationCancelledDetails(DocumentModel):
    action: Literal[AuditAction.DONATION_CANCELLED] = AuditAction.DONATION_CANCELLED
    previous_status: DonationStatus
    reason: Optional[str] = None
    cancelled_pickup_id: Optional[str] = None
    previous_recipient_id: Optional[str] = None


class DonationExpiredDetails(DocumentModel):
    action: Literal[AuditAction.DONATION_EXPIRED] = AuditAction.DONATION_EXPIRED
    previous_status: DonationStatus
    expiry_at: UtcDateTime


class PickupAssignedDetails(DocumentModel):
    action: Literal[AuditAction.PICKUP_ASSIGNED] = AuditAction.PICKUP_ASSIGNED
    volunteer_id: str


class PickupUpdatedDetails(DocumentModel):
    action: Literal[AuditAction.PICKUP_UPDATED] = AuditAction.PICKUP_UPDATED
    from_status: PickupStatus
    to_status: PickupStatus
    donation_status: Optional[DonationStatus] = None
    gps_location: Optional[GeoPoint] = None
    notes: Optional[str] = None


class PickupCompletedDetails(DocumentModel):
    action: Literal[AuditAction.PICKUP_COMPLETED] = AuditAction.PICKUP_COMPLETED
    volunteer_id: Optional[str] = None
    gps_location: Optional[GeoPoint] = None
    notes: Optional[str] = None


class PickupCancelledDetails(DocumentModel):
    action: Literal[AuditAction.PICKUP_CANCELLED] = AuditAction.PICKUP_CANCELLED
    previous_status: PickupStatus
    previous_volunteer_id: Optional[str] = None
    donation_status: DonationStatus


AuditDetails = Annotated[
    Union[
        UserRegisteredDetails,
        UserVerifiedDetails,
        UserDeactivatedDetails,
        DonationCreatedDetails,
        DonationVerifiedDetails,
        DonationPublishedDetails,
        DonationClaimedDetails,
        DonationCancelledDetails,
        DonationExpiredDetails,
        PickupAssignedDetails,
        PickupUpdatedDetails,
        PickupCompletedDetails,
        PickupCancelledDetails,
    ],
    Field(discriminator="action"),
]
