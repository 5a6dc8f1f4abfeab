# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

Every test runs against the in-memory document store and publisher with a
controllable clock, so no MongoDB or broker is needed.
"""

import os
import pytest
from datetime import datetime, timedelta
from typing import Any, Dict

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'

from models.entities import Actor, ActorContext, DayAvailability, VolunteerInfo
from models.enums import ActorRole, FoodType, QuantityUnit, StorageCondition, TrustBadge, Weekday
from services.actors import ActorService
from services.audit import AuditService
from services.claims import ClaimArbiter
from services.dispatcher import SideEffectDispatcher
from services.donation_workflow import DonationStateMachine
from services.inbox import InboxService
from services.matching import MatchingService
from services.pickup_workflow import PickupStateMachine
from services.realtime import InMemoryEventPublisher
from services.store import ACTORS, InMemoryDocumentStore

# A Monday
NOW = datetime(2026, 3, 2, 12, 0, 0)

DONOR_ID = "donor-1"
OTHER_DONOR_ID = "donor-2"
RECIPIENT_ID = "ngo-1"
OTHER_RECIPIENT_ID = "ngo-2"
VOLUNTEER_ID = "vol-1"
OTHER_VOLUNTEER_ID = "vol-2"
ADMIN_ID = "admin-1"


class FakeClock:
    """Callable clock the tests move forward explicitly."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def donation_attrs(now: datetime = NOW, **overrides) -> Dict[str, Any]:
    """Valid snake_case donation attributes relative to ``now``."""
    attrs = {
        "food_type": FoodType.COOKED_MEALS,
        "description": "Vegetable curry trays from lunch service",
        "quantity": 20,
        "unit": QuantityUnit.SERVINGS,
        "expiry_at": now + timedelta(hours=24),
        "storage_condition": StorageCondition.REFRIGERATED,
        "allergens": ["nuts"],
        "pickup_address": "12 Market Street",
        "pickup_location": {"lat": 52.52, "lng": 13.405},
        "pickup_instructions": "Ring the kitchen bell",
        "available_from": now + timedelta(hours=1),
        "available_until": now + timedelta(hours=6),
        "safety_checklist": {
            "proper_storage": True,
            "temperature_controlled": True,
            "hygiene_standards": True,
            "no_contamination": True,
            "proper_packaging": True,
        },
    }
    attrs.update(overrides)
    return attrs


def make_actor(actor_id: str, role: ActorRole, **overrides) -> Actor:
    data = {
        "id": actor_id,
        "name": actor_id.replace("-", " ").title(),
        "role": role,
        "is_active": True,
        "is_verified": True,
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Actor(**data)


def ctx(actor_id: str, role: ActorRole) -> ActorContext:
    return ActorContext(actor_id=actor_id, role=role)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def audit_service(store):
    return AuditService(store)


@pytest.fixture
def inbox(store):
    return InboxService(store)


@pytest.fixture
def dispatcher(store, audit_service, inbox, publisher):
    return SideEffectDispatcher(store, audit_service, inbox, publisher)


@pytest.fixture
def donations(store, dispatcher, clock):
    return DonationStateMachine(store, dispatcher, clock=clock)


@pytest.fixture
def claims(store, dispatcher, clock):
    return ClaimArbiter(store, dispatcher, clock=clock)


@pytest.fixture
def pickups(store, dispatcher, clock):
    return PickupStateMachine(store, dispatcher, clock=clock)


@pytest.fixture
def matching(store):
    return MatchingService(store)


@pytest.fixture
def actor_service(store, dispatcher, clock):
    return ActorService(store, dispatcher, clock=clock)


@pytest.fixture
def actors(store):
    """Registered, active and verified actors for every role."""
    profiles = [
        make_actor(DONOR_ID, ActorRole.DONOR),
        make_actor(OTHER_DONOR_ID, ActorRole.DONOR),
        make_actor(
            RECIPIENT_ID,
            ActorRole.RECIPIENT_ORG,
            organization="City Food Bank",
            trust_badge=TrustBadge.GOLD,
            response_rate=0.9,
            location={"lat": 52.50, "lng": 13.39},
        ),
        make_actor(OTHER_RECIPIENT_ID, ActorRole.RECIPIENT_ORG, organization="Night Shelter"),
        make_actor(
            VOLUNTEER_ID,
            ActorRole.VOLUNTEER,
            trust_badge=TrustBadge.SILVER,
            volunteer_info=VolunteerInfo(
                has_vehicle=True,
                availability={Weekday.MONDAY: DayAvailability(available=True, start_time="09:00", end_time="17:00")},
            ),
        ),
        make_actor(OTHER_VOLUNTEER_ID, ActorRole.VOLUNTEER),
        make_actor(ADMIN_ID, ActorRole.ADMIN),
    ]
    for profile in profiles:
        store.insert(ACTORS, profile.to_document())
    return {profile.id: profile for profile in profiles}


@pytest.fixture
def donor_ctx():
    return ctx(DONOR_ID, ActorRole.DONOR)


@pytest.fixture
def recipient_ctx():
    return ctx(RECIPIENT_ID, ActorRole.RECIPIENT_ORG)


@pytest.fixture
def volunteer_ctx():
    return ctx(VOLUNTEER_ID, ActorRole.VOLUNTEER)


@pytest.fixture
def admin_ctx():
    return ctx(ADMIN_ID, ActorRole.ADMIN)


@pytest.fixture
def available_donation(actors, donations, donor_ctx, admin_ctx):
    """A donation created by the donor and approved for claiming."""
    created = donations.create(donor_ctx, donation_attrs())
    return donations.verify(admin_ctx, created.donation.id, approve=True)


@pytest.fixture
def claimed(available_donation, claims, recipient_ctx):
    """ClaimResult of the recipient claiming the available donation."""
    return claims.claim(recipient_ctx, available_donation.id)


@pytest.fixture
def accepted(claimed, pickups, volunteer_ctx):
    """PickupTransitionResult after the volunteer accepted the claim's pickup."""
    return pickups.accept_assignment(volunteer_ctx, claimed.pickup.id)
