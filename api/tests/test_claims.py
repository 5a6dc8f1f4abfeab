# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for claim arbitration, including concurrent claim attempts.
"""

import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from domain.errors import AuditTrailError, ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError
from models.enums import ActorRole, AuditAction, DonationStatus, NotificationType, PickupStatus
from services.store import ACTORS, DONATIONS, NOTIFICATIONS, PICKUPS

from conftest import DONOR_ID, NOW, OTHER_RECIPIENT_ID, RECIPIENT_ID, ctx, donation_attrs, make_actor


class TestClaim:

    def test_claim_awards_donation_and_creates_pickup(self, claimed, store, audit_service):
        donation = claimed.donation
        pickup = claimed.pickup

        assert donation.status == DonationStatus.CLAIMED
        assert donation.claimed_by == RECIPIENT_ID
        assert donation.claimed_at == NOW
        assert donation.active_pickup_id == pickup.id
        assert donation.version == 3

        assert pickup.status == PickupStatus.ASSIGNED
        assert pickup.volunteer_id is None
        assert pickup.donation_id == donation.id
        assert pickup.donor_id == DONOR_ID
        assert pickup.recipient_id == RECIPIENT_ID
        assert store.get(PICKUPS, pickup.id)["status"] == "assigned"

        entry = audit_service.entries_for_entity(donation.id)[-1]
        assert entry.action == AuditAction.DONATION_CLAIMED
        assert entry.sequence == 3
        assert entry.target_ids.pickup_id == pickup.id

    def test_donor_is_notified_with_organization_name(self, claimed, store, publisher):
        notification = store.find_one(NOTIFICATIONS, {
            "recipientActorId": DONOR_ID,
            "type": NotificationType.DONATION_CLAIMED.value,
        })
        assert notification["message"] == "Your cooked_meals donation has been claimed by City Food Bank"
        assert notification["relatedPickupId"] == claimed.pickup.id
        assert publisher.events_for(f"user-{DONOR_ID}")

    def test_verified_donation_can_be_claimed(self, actors, donations, claims, donor_ctx, admin_ctx, recipient_ctx):
        created = donations.create(donor_ctx, donation_attrs()).donation
        donations.verify(admin_ctx, created.id, approve=True, publish=False)

        result = claims.claim(recipient_ctx, created.id)
        assert result.donation.status == DonationStatus.CLAIMED

    def test_second_claim_conflicts(self, claimed, claims):
        with pytest.raises(ConflictError):
            claims.claim(ctx(OTHER_RECIPIENT_ID, ActorRole.RECIPIENT_ORG), claimed.donation.id)

    def test_pending_donation_cannot_be_claimed(self, actors, donations, claims, donor_ctx, recipient_ctx):
        created = donations.create(donor_ctx, donation_attrs()).donation
        with pytest.raises(InvalidTransitionError) as exc_info:
            claims.claim(recipient_ctx, created.id)
        assert exc_info.value.to_status == "claimed"

    def test_unknown_donation(self, actors, claims, recipient_ctx):
        with pytest.raises(NotFoundError):
            claims.claim(recipient_ctx, "missing")

    def test_only_active_recipients_claim(self, available_donation, claims, donor_ctx, store):
        with pytest.raises(ForbiddenError):
            claims.claim(donor_ctx, available_donation.id)

        store.insert(ACTORS, make_actor("ngo-3", ActorRole.RECIPIENT_ORG, is_active=False).to_document())
        with pytest.raises(ForbiddenError):
            claims.claim(ctx("ngo-3", ActorRole.RECIPIENT_ORG), available_donation.id)

        with pytest.raises(ForbiddenError):
            claims.claim(ctx("ngo-unregistered", ActorRole.RECIPIENT_ORG), available_donation.id)

        assert store.get(DONATIONS, available_donation.id)["status"] == "available"

    def test_failed_pickup_insert_releases_the_donation(self, available_donation, claims, recipient_ctx, store):
        with patch.object(store, "insert", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                claims.claim(recipient_ctx, available_donation.id)

        document = store.get(DONATIONS, available_donation.id)
        assert document["status"] == "available"
        assert document["claimedBy"] is None
        assert document["activePickupId"] is None
        assert document["version"] == available_donation.version
        assert store.count(PICKUPS) == 0

        # The donation is claimable again
        assert claims.claim(recipient_ctx, available_donation.id).donation.claimed_by == RECIPIENT_ID

    def test_failed_audit_write_undoes_the_claim(
        self, available_donation, claims, recipient_ctx, store, audit_service, publisher
    ):
        publisher.clear()
        notifications_before = store.count(NOTIFICATIONS)
        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError) as exc_info:
                claims.claim(recipient_ctx, available_donation.id)

        assert exc_info.value.rolled_back is True
        assert exc_info.value.entity_id == available_donation.id
        document = store.get(DONATIONS, available_donation.id)
        assert document["status"] == "available"
        assert document["claimedBy"] is None
        assert document["activePickupId"] is None
        assert document["version"] == available_donation.version
        assert store.count(PICKUPS) == 0
        assert store.count(NOTIFICATIONS) == notifications_before
        assert publisher.events == []

        result = claims.claim(recipient_ctx, available_donation.id)
        assert result.donation.version == available_donation.version + 1
        assert store.count(PICKUPS) == 1


class TestConcurrentClaims:

    def test_exactly_one_of_many_concurrent_claims_wins(self, available_donation, claims, store, audit_service):
        recipients = [f"ngo-race-{index}" for index in range(8)]
        for recipient_id in recipients:
            store.insert(ACTORS, make_actor(recipient_id, ActorRole.RECIPIENT_ORG).to_document())

        barrier = threading.Barrier(len(recipients))

        def attempt(recipient_id):
            barrier.wait()
            try:
                return claims.claim(ctx(recipient_id, ActorRole.RECIPIENT_ORG), available_donation.id)
            except ConflictError as e:
                return e

        with ThreadPoolExecutor(max_workers=len(recipients)) as executor:
            outcomes = list(executor.map(attempt, recipients))

        winners = [outcome for outcome in outcomes if not isinstance(outcome, ConflictError)]
        losers = [outcome for outcome in outcomes if isinstance(outcome, ConflictError)]
        assert len(winners) == 1
        assert len(losers) == len(recipients) - 1

        document = store.get(DONATIONS, available_donation.id)
        assert document["claimedBy"] == winners[0].donation.claimed_by
        assert store.count(PICKUPS, {"donationId": available_donation.id}) == 1

        claimed_entries = [
            entry for entry in audit_service.entries_for_entity(available_donation.id)
            if entry.action == AuditAction.DONATION_CLAIMED
        ]
        assert len(claimed_entries) == 1
