# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the pickup lifecycle and its mirroring onto donations.
"""

import pytest
from unittest.mock import patch

from domain import pickups as pickup_rules
from domain.errors import AuditTrailError, ConflictError, ForbiddenError, InvalidTransitionError, ValidationError
from models.audit_details import GeoPoint
from models.enums import ActorRole, AuditAction, DonationStatus, PickupStatus
from services.store import ACTORS, DONATIONS, PICKUPS

from conftest import (
    DONOR_ID,
    NOW,
    OTHER_VOLUNTEER_ID,
    RECIPIENT_ID,
    VOLUNTEER_ID,
    ctx,
    make_actor,
)

ROUTE = [
    PickupStatus.IN_TRANSIT,
    PickupStatus.PICKED_UP,
    PickupStatus.DELIVERING,
    PickupStatus.DELIVERED,
    PickupStatus.COMPLETED,
]


def assert_mirrored(result):
    """The donation shows the status its pickup implies."""
    assert result.donation.status == pickup_rules.mirrored_donation_status(result.pickup.status)


class TestAcceptAssignment:

    def test_volunteer_accepts_unassigned_pickup(self, accepted, store):
        assert accepted.pickup.status == PickupStatus.ACCEPTED
        assert accepted.pickup.volunteer_id == VOLUNTEER_ID
        assert accepted.pickup.version == 2
        assert accepted.donation.status == DonationStatus.ASSIGNED
        assert accepted.donation.version == 4
        assert store.get(DONATIONS, accepted.donation.id)["status"] == "assigned"

    def test_donor_and_recipient_are_notified(self, accepted, inbox):
        donor_titles = [item["title"] for item in inbox.list_for(DONOR_ID).items]
        recipient_titles = [item["title"] for item in inbox.list_for(RECIPIENT_ID).items]
        assert "Volunteer Assigned" in donor_titles
        assert "Pickup Scheduled" in recipient_titles

    def test_second_volunteer_conflicts(self, accepted, pickups):
        with pytest.raises(ConflictError):
            pickups.accept_assignment(ctx(OTHER_VOLUNTEER_ID, ActorRole.VOLUNTEER), accepted.pickup.id)

    def test_only_active_volunteers_accept(self, claimed, pickups, recipient_ctx, store):
        with pytest.raises(ForbiddenError):
            pickups.accept_assignment(recipient_ctx, claimed.pickup.id)

        store.insert(ACTORS, make_actor("vol-off", ActorRole.VOLUNTEER, is_active=False).to_document())
        with pytest.raises(ForbiddenError):
            pickups.accept_assignment(ctx("vol-off", ActorRole.VOLUNTEER), claimed.pickup.id)

    def test_cancelled_pickup_cannot_be_accepted(self, claimed, pickups, admin_ctx, volunteer_ctx):
        pickups.cancel(admin_ctx, claimed.pickup.id)
        with pytest.raises(InvalidTransitionError):
            pickups.accept_assignment(volunteer_ctx, claimed.pickup.id)

    def test_list_unassigned(self, claimed, pickups, volunteer_ctx, donor_ctx):
        unassigned = pickups.list_unassigned(volunteer_ctx)
        assert [pickup.id for pickup in unassigned] == [claimed.pickup.id]

        pickups.accept_assignment(volunteer_ctx, claimed.pickup.id)
        assert pickups.list_unassigned(volunteer_ctx) == []

        with pytest.raises(ForbiddenError):
            pickups.list_unassigned(donor_ctx)


class TestAdvance:

    def test_full_route_keeps_donation_mirrored(self, accepted, pickups, volunteer_ctx, store, actors):
        pickup_id = accepted.pickup.id
        for index, target in enumerate(ROUTE):
            result = pickups.advance(volunteer_ctx, pickup_id, target)
            assert result.pickup.status == target
            assert result.pickup.version == 3 + index
            assert_mirrored(result)

        assert result.donation.status == DonationStatus.COMPLETED
        assert result.donation.completed_at == NOW
        assert result.pickup.actual_pickup_at == NOW
        assert result.pickup.actual_delivery_at == NOW
        assert store.get(ACTORS, VOLUNTEER_ID)["completedCount"] == actors[VOLUNTEER_ID].completed_count + 1

    def test_audit_trail_of_a_completed_pickup(self, accepted, pickups, volunteer_ctx, audit_service):
        for target in ROUTE:
            pickups.advance(volunteer_ctx, accepted.pickup.id, target)

        entries = audit_service.entries_for_entity(accepted.pickup.id)
        assert [entry.sequence for entry in entries] == [2, 3, 4, 5, 6, 7]
        assert [entry.action for entry in entries] == [
            AuditAction.PICKUP_ASSIGNED,
            AuditAction.PICKUP_UPDATED,
            AuditAction.PICKUP_UPDATED,
            AuditAction.PICKUP_UPDATED,
            AuditAction.PICKUP_UPDATED,
            AuditAction.PICKUP_COMPLETED,
        ]
        assert entries[1].details.from_status == PickupStatus.ACCEPTED
        assert entries[1].details.donation_status == DonationStatus.IN_TRANSIT

    def test_progress_is_published_in_real_time(self, accepted, pickups, volunteer_ctx, publisher):
        publisher.clear()
        location = GeoPoint(lat=52.51, lng=13.40)

        pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.IN_TRANSIT, gps_location=location)

        channel_events = publisher.events_for(f"pickup-{accepted.pickup.id}")
        assert [event.event for event in channel_events] == ["pickup-status-update", "volunteer-location"]
        assert channel_events[0].payload["status"] == "in_transit"
        assert channel_events[0].payload["location"] == {"lat": 52.51, "lng": 13.40}

        donor_events = publisher.events_for(f"user-{DONOR_ID}")
        assert donor_events[0].payload["message"] == "Pickup status: in_transit"

    def test_gps_location_is_stored_on_route(self, accepted, pickups, volunteer_ctx):
        result = pickups.advance(
            volunteer_ctx,
            accepted.pickup.id,
            PickupStatus.IN_TRANSIT,
            gps_location=GeoPoint(lat=52.0, lng=13.0),
            notes="Leaving now",
        )
        assert result.pickup.route.current_location.lat == 52.0
        assert result.pickup.notes == "Leaving now"

    def test_skipping_a_step_is_rejected(self, accepted, pickups, volunteer_ctx):
        with pytest.raises(InvalidTransitionError) as exc_info:
            pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.DELIVERED)
        assert exc_info.value.to_problem_fields() == {"from": "accepted", "to": "delivered"}

    def test_cancel_through_advance_is_refused(self, accepted, pickups, volunteer_ctx):
        with pytest.raises(ValidationError):
            pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.CANCELLED)
        assert pickups.get(accepted.pickup.id).status == PickupStatus.ACCEPTED

    def test_accept_through_advance_is_refused(self, claimed, pickups, admin_ctx):
        with pytest.raises(ValidationError):
            pickups.advance(admin_ctx, claimed.pickup.id, PickupStatus.ACCEPTED)
        assert pickups.get(claimed.pickup.id).volunteer_id is None

    @pytest.mark.parametrize("target", [PickupStatus.CANCELLED, PickupStatus.ACCEPTED])
    def test_illegal_dedicated_targets_report_the_transition(self, accepted, pickups, volunteer_ctx, target):
        pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.IN_TRANSIT)

        with pytest.raises(InvalidTransitionError) as exc_info:
            pickups.advance(volunteer_ctx, accepted.pickup.id, target)

        assert exc_info.value.to_problem_fields() == {"from": "in_transit", "to": target.value}

    def test_unassigned_pickup_cannot_advance(self, claimed, pickups, admin_ctx):
        with pytest.raises(InvalidTransitionError):
            pickups.advance(admin_ctx, claimed.pickup.id, PickupStatus.IN_TRANSIT)

    def test_only_assigned_volunteer_or_admin_advances(self, accepted, pickups, admin_ctx):
        with pytest.raises(ForbiddenError):
            pickups.advance(ctx(OTHER_VOLUNTEER_ID, ActorRole.VOLUNTEER), accepted.pickup.id, PickupStatus.IN_TRANSIT)

        result = pickups.advance(admin_ctx, accepted.pickup.id, PickupStatus.IN_TRANSIT)
        assert result.pickup.status == PickupStatus.IN_TRANSIT

    def test_failed_mirror_restores_pickup(self, accepted, pickups, volunteer_ctx, store):
        # Donation moved underneath the pickup
        store.conditional_update(DONATIONS, {"_id": accepted.donation.id}, set_fields={"status": "cancelled"})

        with pytest.raises(ConflictError):
            pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.IN_TRANSIT)

        document = store.get(PICKUPS, accepted.pickup.id)
        assert document["status"] == "accepted"
        assert document["version"] == 2

    def test_failed_volunteer_credit_restores_both_records(self, accepted, pickups, volunteer_ctx, store):
        for target in ROUTE[:-1]:
            pickups.advance(volunteer_ctx, accepted.pickup.id, target)

        original = store.conditional_update

        def fail_actor_updates(collection, *args, **kwargs):
            if collection == ACTORS:
                return None
            return original(collection, *args, **kwargs)

        with patch.object(store, "conditional_update", side_effect=fail_actor_updates):
            with pytest.raises(ConflictError):
                pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.COMPLETED)

        assert store.get(PICKUPS, accepted.pickup.id)["status"] == "delivered"
        donation = store.get(DONATIONS, accepted.donation.id)
        assert donation["status"] == "delivered"
        assert donation["completedAt"] is None


class TestLocationUpdates:

    def test_location_update_publishes_without_new_version(self, accepted, pickups, volunteer_ctx, publisher, audit_service):
        publisher.clear()
        entries_before = len(audit_service.entries_for_entity(accepted.pickup.id))

        pickup = pickups.update_location(volunteer_ctx, accepted.pickup.id, GeoPoint(lat=52.3, lng=13.1))

        assert pickup.version == accepted.pickup.version
        assert pickup.route.current_location.lng == 13.1
        assert [event.event for event in publisher.events] == ["volunteer-location"]
        assert len(audit_service.entries_for_entity(accepted.pickup.id)) == entries_before

    def test_only_the_assigned_volunteer_reports_location(self, accepted, pickups, admin_ctx):
        with pytest.raises(ForbiddenError):
            pickups.update_location(admin_ctx, accepted.pickup.id, GeoPoint(lat=1, lng=1))

    def test_finished_pickup_rejects_location(self, accepted, pickups, volunteer_ctx):
        for target in ROUTE:
            pickups.advance(volunteer_ctx, accepted.pickup.id, target)
        with pytest.raises(ValidationError):
            pickups.update_location(volunteer_ctx, accepted.pickup.id, GeoPoint(lat=1, lng=1))


class TestCancelPickup:

    def test_cancel_releases_donation_for_a_new_claim(self, accepted, pickups, claims, admin_ctx, recipient_ctx, store):
        result = pickups.cancel(admin_ctx, accepted.pickup.id)

        assert result.pickup.status == PickupStatus.CANCELLED
        assert result.donation.status == DonationStatus.AVAILABLE
        assert result.donation.claimed_by is None
        assert result.donation.active_pickup_id is None
        assert result.donation.verified_by is not None

        volunteer_notes = store.find("notifications", {"recipientActorId": VOLUNTEER_ID})
        assert [note["title"] for note in volunteer_notes] == ["Pickup Cancelled"]

        again = claims.claim(recipient_ctx, accepted.donation.id)
        assert again.pickup.id != accepted.pickup.id

    def test_cancel_after_expiry_expires_donation(self, claimed, pickups, admin_ctx, clock):
        clock.advance(hours=25)
        result = pickups.cancel(admin_ctx, claimed.pickup.id)
        assert result.donation.status == DonationStatus.EXPIRED

    def test_pickup_underway_cannot_be_cancelled(self, accepted, pickups, volunteer_ctx, admin_ctx):
        pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.IN_TRANSIT)
        with pytest.raises(InvalidTransitionError):
            pickups.cancel(admin_ctx, accepted.pickup.id)

    def test_only_admins_cancel(self, accepted, pickups, volunteer_ctx):
        with pytest.raises(ForbiddenError):
            pickups.cancel(volunteer_ctx, accepted.pickup.id)


class TestPickupQueries:

    def test_participants_see_their_pickups(self, accepted, pickups, donor_ctx, recipient_ctx, volunteer_ctx):
        for actor in (donor_ctx, recipient_ctx, volunteer_ctx):
            page = pickups.list(actor)
            assert [pickup.id for pickup in page.items] == [accepted.pickup.id]
            assert pickups.get(accepted.pickup.id, actor).id == accepted.pickup.id

    def test_outsiders_cannot_view(self, accepted, pickups):
        with pytest.raises(ForbiddenError):
            pickups.get(accepted.pickup.id, ctx(OTHER_VOLUNTEER_ID, ActorRole.VOLUNTEER))


class TestAuditFailureRollback:

    def test_acceptance_is_undone(self, claimed, pickups, volunteer_ctx, store, audit_service):
        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError) as exc_info:
                pickups.accept_assignment(volunteer_ctx, claimed.pickup.id)

        assert exc_info.value.rolled_back is True
        pickup = store.get(PICKUPS, claimed.pickup.id)
        assert pickup["status"] == "assigned"
        assert pickup["volunteerId"] is None
        assert pickup["version"] == claimed.pickup.version
        donation = store.get(DONATIONS, claimed.donation.id)
        assert donation["status"] == "claimed"
        assert donation["version"] == claimed.donation.version

        # Another volunteer can still take the pickup
        result = pickups.accept_assignment(ctx(OTHER_VOLUNTEER_ID, ActorRole.VOLUNTEER), claimed.pickup.id)
        assert result.pickup.volunteer_id == OTHER_VOLUNTEER_ID

    def test_completion_is_undone_with_the_volunteer_credit(
        self, accepted, pickups, volunteer_ctx, store, audit_service, actors
    ):
        for target in ROUTE[:-1]:
            pickups.advance(volunteer_ctx, accepted.pickup.id, target)
        delivered = pickups.get(accepted.pickup.id)

        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError):
                pickups.advance(volunteer_ctx, accepted.pickup.id, PickupStatus.COMPLETED)

        pickup = store.get(PICKUPS, accepted.pickup.id)
        assert pickup["status"] == "delivered"
        assert pickup["version"] == delivered.version
        donation = store.get(DONATIONS, accepted.donation.id)
        assert donation["status"] == "delivered"
        assert donation["completedAt"] is None
        assert store.get(ACTORS, VOLUNTEER_ID)["completedCount"] == actors[VOLUNTEER_ID].completed_count

    def test_admin_cancel_is_undone(self, accepted, pickups, admin_ctx, store, audit_service):
        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError):
                pickups.cancel(admin_ctx, accepted.pickup.id)

        assert store.get(PICKUPS, accepted.pickup.id)["status"] == "accepted"
        donation = store.get(DONATIONS, accepted.donation.id)
        assert donation["status"] == "assigned"
        assert donation["claimedBy"] == RECIPIENT_ID
        assert donation["activePickupId"] == accepted.pickup.id
