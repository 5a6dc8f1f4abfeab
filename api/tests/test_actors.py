# SPDX-License-Identifier: Apache-2.0

"""
Tests for actor profile registration, verification and deactivation.
"""

import pytest
from unittest.mock import patch

from domain.errors import AuditTrailError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from models.enums import ActorRole, AuditAction, NotificationType, TrustBadge
from services.store import ACTORS, NOTIFICATIONS

from conftest import ADMIN_ID, NOW, VOLUNTEER_ID, ctx


class TestRegister:

    def test_actor_registers_own_profile(self, actor_service, audit_service):
        new_volunteer = ctx("vol-new", ActorRole.VOLUNTEER)

        actor = actor_service.register(new_volunteer, {
            "name": "Sam Rivers",
            "volunteer_info": {"has_vehicle": True},
            "is_verified": True,
            "trust_badge": TrustBadge.PLATINUM,
        })

        assert actor.id == "vol-new"
        assert actor.role == ActorRole.VOLUNTEER
        assert actor.is_verified is False
        assert actor.trust_badge == TrustBadge.NONE
        assert actor.volunteer_info.has_vehicle is True
        assert actor.created_at == NOW

        entries = audit_service.entries_for_entity("vol-new")
        assert [entry.action for entry in entries] == [AuditAction.USER_REGISTERED]

    def test_cannot_register_someone_else(self, actor_service):
        with pytest.raises(ForbiddenError):
            actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"id": "vol-other", "name": "X"})

    def test_cannot_pick_another_role(self, actor_service):
        with pytest.raises(ForbiddenError):
            actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": "X", "role": "admin"})

    def test_admin_registers_any_actor(self, actor_service):
        actor = actor_service.register(ctx(ADMIN_ID, ActorRole.ADMIN), {
            "id": "ngo-new",
            "name": "Harbour Kitchen",
            "role": ActorRole.RECIPIENT_ORG,
            "organization": "Harbour Kitchen e.V.",
        })
        assert actor.role == ActorRole.RECIPIENT_ORG

    def test_duplicate_registration_conflicts(self, actors, actor_service):
        with pytest.raises(ConflictError):
            actor_service.register(ctx(VOLUNTEER_ID, ActorRole.VOLUNTEER), {"name": "Again"})

    def test_invalid_profile(self, actor_service):
        with pytest.raises(ValidationError) as exc_info:
            actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": ""})
        assert exc_info.value.errors

    def test_failed_audit_write_removes_the_profile(self, actor_service, audit_service, store):
        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError) as exc_info:
                actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": "Sam Rivers"})

        assert exc_info.value.rolled_back is True
        assert store.get(ACTORS, "vol-new") is None
        assert actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": "Sam Rivers"}).version == 1


class TestVerify:

    def test_approval_sets_badge_and_notifies(self, actor_service, admin_ctx, store):
        actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": "Sam Rivers"})

        verified = actor_service.verify(admin_ctx, "vol-new", approve=True)

        assert verified.is_verified is True
        assert verified.trust_badge == TrustBadge.BRONZE
        assert verified.verified_by == ADMIN_ID
        assert verified.version == 2
        notification = store.find_one(NOTIFICATIONS, {"recipientActorId": "vol-new"})
        assert notification["type"] == NotificationType.VERIFICATION_APPROVED.value

    def test_explicit_badge(self, actor_service, admin_ctx):
        actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": "Sam Rivers"})
        verified = actor_service.verify(admin_ctx, "vol-new", approve=True, trust_badge=TrustBadge.GOLD)
        assert verified.trust_badge == TrustBadge.GOLD

    def test_rejection_deactivates(self, actor_service, admin_ctx, store):
        actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": "Sam Rivers"})

        rejected = actor_service.verify(admin_ctx, "vol-new", approve=False, notes="Documents missing")

        assert rejected.is_active is False
        assert rejected.is_verified is False
        notification = store.find_one(NOTIFICATIONS, {"recipientActorId": "vol-new"})
        assert "Documents missing" in notification["message"]

    def test_failed_audit_write_keeps_the_actor_unreviewed(self, actor_service, admin_ctx, audit_service):
        actor_service.register(ctx("vol-new", ActorRole.VOLUNTEER), {"name": "Sam Rivers"})

        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError):
                actor_service.verify(admin_ctx, "vol-new", approve=True)

        actor = actor_service.get("vol-new")
        assert actor.is_verified is False
        assert actor.trust_badge == TrustBadge.NONE
        assert actor.version == 1

    def test_only_admins_verify(self, actors, actor_service, volunteer_ctx):
        with pytest.raises(ForbiddenError):
            actor_service.verify(volunteer_ctx, VOLUNTEER_ID, approve=True)

    def test_unknown_actor(self, actor_service, admin_ctx):
        with pytest.raises(NotFoundError):
            actor_service.verify(admin_ctx, "nobody", approve=True)


class TestDeactivate:

    def test_deactivated_volunteer_can_no_longer_accept(
        self, claimed, actor_service, pickups, admin_ctx, volunteer_ctx, audit_service
    ):
        deactivated = actor_service.deactivate(admin_ctx, VOLUNTEER_ID, reason="Repeated no-shows")

        assert deactivated.is_active is False
        assert audit_service.entries_for_entity(VOLUNTEER_ID)[-1].action == AuditAction.USER_DEACTIVATED
        with pytest.raises(ForbiddenError):
            pickups.accept_assignment(volunteer_ctx, claimed.pickup.id)

    def test_inactive_actor_cannot_be_deactivated_again(self, actors, actor_service, admin_ctx):
        actor_service.deactivate(admin_ctx, VOLUNTEER_ID)
        with pytest.raises(ValidationError):
            actor_service.deactivate(admin_ctx, VOLUNTEER_ID)
