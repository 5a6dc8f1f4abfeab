# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the food rescue workflow.
"""

from enum import Enum


class ActorRole(str, Enum):
    """Roles an authenticated actor can hold."""
    DONOR = "donor"
    RECIPIENT_ORG = "recipient_org"
    VOLUNTEER = "volunteer"
    ADMIN = "admin"


class TrustBadge(str, Enum):
    """Tiered reputation label used by match scoring."""
    NONE = "none"
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class DonationStatus(str, Enum):
    """Donation lifecycle status."""
    PENDING = "pending"
    VERIFIED = "verified"
    AVAILABLE = "available"
    CLAIMED = "claimed"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class UrgencyLevel(str, Enum):
    """Urgency derived from time remaining before expiry."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PickupStatus(str, Enum):
    """Pickup assignment lifecycle status."""
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    PICKED_UP = "picked_up"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FoodType(str, Enum):
    """Kinds of donated food."""
    COOKED_MEALS = "cooked_meals"
    RAW_VEGETABLES = "raw_vegetables"
    FRUITS = "fruits"
    DAIRY = "dairy"
    BAKERY = "bakery"
    PACKAGED = "packaged"
    BEVERAGES = "beverages"
    OTHER = "other"


class QuantityUnit(str, Enum):
    """Units a donation quantity can be expressed in."""
    KG = "kg"
    LITERS = "liters"
    PIECES = "pieces"
    SERVINGS = "servings"
    BOXES = "boxes"
    PACKETS = "packets"


class StorageCondition(str, Enum):
    """How the donated food is being stored."""
    ROOM_TEMPERATURE = "room_temperature"
    REFRIGERATED = "refrigerated"
    FROZEN = "frozen"


class NotificationType(str, Enum):
    """Notification categories shown in an actor's inbox."""
    DONATION_CREATED = "donation_created"
    DONATION_CLAIMED = "donation_claimed"
    DONATION_VERIFIED = "donation_verified"
    DONATION_EXPIRED = "donation_expired"
    DONATION_CANCELLED = "donation_cancelled"
    PICKUP_ASSIGNED = "pickup_assigned"
    PICKUP_UPDATE = "pickup_update"
    PICKUP_COMPLETED = "pickup_completed"
    ASSIGNMENT_CANCELLED = "assignment_cancelled"
    VERIFICATION_APPROVED = "verification_approved"
    VERIFICATION_REJECTED = "verification_rejected"
    SYSTEM_ALERT = "system_alert"


class NotificationPriority(str, Enum):
    """Notification priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AuditAction(str, Enum):
    """Closed set of audited actions."""
    USER_REGISTERED = "USER_REGISTERED"
    USER_VERIFIED = "USER_VERIFIED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    DONATION_CREATED = "DONATION_CREATED"
    DONATION_VERIFIED = "DONATION_VERIFIED"
    DONATION_PUBLISHED = "DONATION_PUBLISHED"
    DONATION_CLAIMED = "DONATION_CLAIMED"
    DONATION_CANCELLED = "DONATION_CANCELLED"
    DONATION_EXPIRED = "DONATION_EXPIRED"
    PICKUP_ASSIGNED = "PICKUP_ASSIGNED"
    PICKUP_UPDATED = "PICKUP_UPDATED"
    PICKUP_COMPLETED = "PICKUP_COMPLETED"
    PICKUP_CANCELLED = "PICKUP_CANCELLED"


class EntityType(str, Enum):
    """Entity kinds that carry a transition sequence."""
    ACTOR = "actor"
    DONATION = "donation"
    PICKUP = "pickup"


class Weekday(str, Enum):
    """Days used in volunteer weekly availability."""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"
