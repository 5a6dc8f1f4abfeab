# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the food rescue workflow.
"""

# Base models
from .base import BaseEntity, DocumentModel, generate_object_id, utcnow

# Enumerations
from .enums import (
    ActorRole,
    AuditAction,
    DonationStatus,
    EntityType,
    NotificationType,
    PickupStatus,
    TrustBadge,
    UrgencyLevel,
)

# Core entities
from .entities import (
    Actor,
    ActorContext,
    AuditEntry,
    Donation,
    Notification,
    PickupAssignment,
)

# Audit payloads
from .audit_details import AuditDetails, GeoPoint

__all__ = [
    # Base models
    "BaseEntity",
    "DocumentModel",
    "generate_object_id",
    "utcnow",

    # Enumerations
    "ActorRole",
    "AuditAction",
    "DonationStatus",
    "EntityType",
    "NotificationType",
    "PickupStatus",
    "TrustBadge",
    "UrgencyLevel",

    # Core entities
    "Actor",
    "ActorContext",
    "AuditEntry",
    "Donation",
    "Notification",
    "PickupAssignment",

    # Audit payloads
    "AuditDetails",
    "GeoPoint",
]
