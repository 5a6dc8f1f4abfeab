# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for entity models and document conversion.
"""

import pytest
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError

from models.audit_details import DonationClaimedDetails, DonationPublishedDetails
from models.entities import ActorContext, AuditEntry, Donation, SafetyChecklist
from models.enums import ActorRole, AuditAction, DonationStatus, EntityType, FoodType
from models.requests import CreateDonationRequest, VolunteerAvailabilityQuery
from models.responses import ProblemDetails

from conftest import NOW, donation_attrs, make_actor


class TestDonationModel:
    """Test Donation model validation and conversion."""

    def test_pickup_window_must_not_be_empty(self):
        attrs = donation_attrs(available_until=NOW + timedelta(hours=1))
        with pytest.raises(ValidationError) as exc_info:
            Donation(owner_id="donor-1", **attrs)
        assert "availableUntil must be after availableFrom" in str(exc_info.value)

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            Donation(owner_id="donor-1", **donation_attrs(quantity=-3))

    def test_document_uses_camel_case_and_plain_values(self):
        donation = Donation(owner_id="donor-1", **donation_attrs())
        document = donation.to_document()

        assert document["_id"] == donation.id
        assert "id" not in document
        assert document["ownerId"] == "donor-1"
        assert document["foodType"] == "cooked_meals"
        assert document["safetyChecklist"]["properStorage"] is True
        assert document["status"] == "pending"

    def test_from_document_restores_the_entity(self):
        donation = Donation(owner_id="donor-1", **donation_attrs())
        restored = Donation.from_document(donation.to_document())

        assert restored == donation
        assert restored.food_type == FoodType.COOKED_MEALS

    def test_aware_datetimes_are_normalized_to_naive_utc(self):
        aware = datetime(2026, 3, 3, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        donation = Donation(owner_id="donor-1", **donation_attrs(expiry_at=aware))
        assert donation.expiry_at == datetime(2026, 3, 3, 12, 0)
        assert donation.expiry_at.tzinfo is None

    def test_api_dump_is_json_ready(self):
        donation = Donation(owner_id="donor-1", **donation_attrs())
        payload = donation.to_api()
        assert payload["id"] == donation.id
        assert payload["status"] == DonationStatus.PENDING.value
        assert isinstance(payload["expiryAt"], str)


class TestSafetyChecklist:

    def test_unchecked_items(self):
        checklist = SafetyChecklist(
            proper_storage=True,
            temperature_controlled=False,
            hygiene_standards=True,
            no_contamination=True,
            proper_packaging=False,
        )
        assert checklist.unchecked_items() == ["temperature_controlled", "proper_packaging"]


class TestActorModels:

    def test_actor_name_is_stripped(self):
        actor = make_actor("donor-1", ActorRole.DONOR, name="  Corner Bakery ")
        assert actor.name == "Corner Bakery"

    def test_blank_actor_name_is_rejected(self):
        with pytest.raises(ValidationError):
            make_actor("donor-1", ActorRole.DONOR, name="   ")

    def test_response_rate_bounds(self):
        with pytest.raises(ValidationError):
            make_actor("ngo-1", ActorRole.RECIPIENT_ORG, response_rate=1.5)

    def test_actor_context_admin_flag(self):
        assert ActorContext(actor_id="a", role=ActorRole.ADMIN).is_admin
        assert not ActorContext(actor_id="a", role=ActorRole.DONOR).is_admin


class TestAuditEntry:

    def test_details_variant_must_match_action(self):
        with pytest.raises(ValidationError):
            AuditEntry(
                action=AuditAction.DONATION_CLAIMED,
                performed_by="ngo-1",
                entity_type=EntityType.DONATION,
                entity_id="d1",
                sequence=3,
                details=DonationPublishedDetails(),
            )

    def test_details_discriminated_from_document(self):
        entry = AuditEntry(
            action=AuditAction.DONATION_CLAIMED,
            performed_by="ngo-1",
            entity_type=EntityType.DONATION,
            entity_id="d1",
            sequence=3,
            details=DonationClaimedDetails(recipient_id="ngo-1", pickup_id="p1"),
        )
        restored = AuditEntry.from_document(entry.to_document())

        assert isinstance(restored.details, DonationClaimedDetails)
        assert restored.details.pickup_id == "p1"
        assert restored.to_document()["details"]["action"] == "DONATION_CLAIMED"


class TestRequestModels:

    def test_create_request_accepts_camel_case(self):
        request = CreateDonationRequest.model_validate({
            "foodType": "bakery",
            "quantity": 5,
            "safetyChecklist": {"properStorage": True},
        })
        attrs = request.to_attrs()

        assert attrs["food_type"] == FoodType.BAKERY
        assert attrs["quantity"] == 5
        assert attrs["safety_checklist"]["proper_storage"] is True
        assert attrs["safety_checklist"]["no_contamination"] is None
        assert "pickup_address" not in attrs

    def test_volunteer_query_reads_date_alias(self):
        query = VolunteerAvailabilityQuery.model_validate({"date": "2026-03-02"})
        assert query.day.isoformat() == "2026-03-02"

    def test_volunteer_query_requires_date(self):
        with pytest.raises(ValidationError):
            VolunteerAvailabilityQuery.model_validate({"date": None})


class TestProblemDetails:

    def test_problem_fields(self):
        problem = ProblemDetails.build(
            "invalid-transition",
            "Invalid Transition",
            400,
            "Cannot transition pickup from accepted to delivered",
            "/api/pickups/p1/status",
            from_status="accepted",
            to_status="delivered",
        )
        body = problem.to_dict()

        assert body["type"].endswith("/invalid-transition")
        assert body["status"] == 400
        assert body["from"] == "accepted"
        assert body["to"] == "delivered"
        assert "errors" not in body
