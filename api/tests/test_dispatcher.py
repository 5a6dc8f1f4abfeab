# SPDX-License-Identifier: Apache-2.0

"""
Tests for the side-effect dispatcher.
"""

import dataclasses
import pytest
from unittest.mock import MagicMock, patch

from domain.errors import AuditTrailError
from domain.side_effects import RealtimeEvent, TransitionEvent
from models.audit_details import DonationClaimedDetails
from models.enums import AuditAction, EntityType
from services.dispatcher import SideEffectDispatcher
from services.store import AUDIT_ENTRIES, NOTIFICATIONS, SIDE_EFFECT_LEDGER

from conftest import DONOR_ID, NOW, RECIPIENT_ID


@pytest.fixture
def claim_event(claimed, actors):
    """The claim transition, rebuilt so it can be dispatched again."""
    return TransitionEvent(
        action=AuditAction.DONATION_CLAIMED,
        entity_type=EntityType.DONATION,
        entity_id=claimed.donation.id,
        sequence=claimed.donation.version,
        performed_by=RECIPIENT_ID,
        details=DonationClaimedDetails(recipient_id=RECIPIENT_ID, pickup_id=claimed.pickup.id),
        occurred_at=NOW,
        donation=claimed.donation,
        pickup=claimed.pickup,
        subject=actors[RECIPIENT_ID],
    )


@pytest.fixture
def fresh_event(claim_event):
    """A transition the dispatcher has not seen yet."""
    claim_event.sequence = 99
    return claim_event


class TestDispatcher:

    def test_replay_produces_no_new_effects(self, claim_event, dispatcher, store, publisher):
        audit_count = store.count(AUDIT_ENTRIES)
        notification_count = store.count(NOTIFICATIONS)
        event_count = len(publisher.events)

        assert dispatcher.is_dispatched(claim_event.key)
        assert dispatcher.dispatch(claim_event) is None

        assert store.count(AUDIT_ENTRIES) == audit_count
        assert store.count(NOTIFICATIONS) == notification_count
        assert len(publisher.events) == event_count

    def test_effects_run_once_and_are_recorded(self, fresh_event, dispatcher, store):
        plan = dispatcher.dispatch(fresh_event)

        assert plan.key == f"{fresh_event.entity_id}:DONATION_CLAIMED:99"
        assert store.get(AUDIT_ENTRIES, plan.audit_entry.id)["sequence"] == 99
        assert store.get(SIDE_EFFECT_LEDGER, plan.key)["entityId"] == fresh_event.entity_id
        assert [n.recipient_actor_id for n in plan.notifications] == [DONOR_ID]

    def test_audit_failure_is_fatal(self, fresh_event, dispatcher, audit_service, store):
        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError) as exc_info:
                dispatcher.dispatch(fresh_event)

        assert exc_info.value.entity_id == fresh_event.entity_id
        assert exc_info.value.status_code == 500
        assert not dispatcher.is_dispatched(fresh_event.key)
        assert exc_info.value.rolled_back is False

    def test_audit_failure_runs_the_rollback(self, fresh_event, dispatcher, audit_service, store, publisher):
        rollback = MagicMock(return_value=True)
        notification_count = store.count(NOTIFICATIONS)
        event_count = len(publisher.events)

        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError) as exc_info:
                dispatcher.dispatch(fresh_event, rollback=rollback)

        rollback.assert_called_once_with()
        assert exc_info.value.rolled_back is True
        assert exc_info.value.to_problem_fields() == {"rolledBack": True}
        assert store.count(NOTIFICATIONS) == notification_count
        assert len(publisher.events) == event_count

    def test_failing_rollback_still_reports_the_audit_failure(self, fresh_event, dispatcher, audit_service):
        rollback = MagicMock(side_effect=RuntimeError("store down"))

        with patch.object(audit_service, "record", side_effect=RuntimeError("mongo down")):
            with pytest.raises(AuditTrailError) as exc_info:
                dispatcher.dispatch(fresh_event, rollback=rollback)

        assert exc_info.value.rolled_back is False

    def test_unit_of_work_announces_nothing_until_every_entry_is_written(
        self, fresh_event, dispatcher, audit_service, store
    ):
        second = dataclasses.replace(fresh_event, sequence=100)
        rollback = MagicMock(return_value=True)
        notification_count = store.count(NOTIFICATIONS)

        with patch.object(audit_service, "record", side_effect=[True, RuntimeError("mongo down")]):
            with pytest.raises(AuditTrailError) as exc_info:
                dispatcher.dispatch_all([fresh_event, second], rollback=rollback)

        assert exc_info.value.entity_id == second.entity_id
        rollback.assert_called_once_with()
        assert store.count(NOTIFICATIONS) == notification_count
        assert not dispatcher.is_dispatched(fresh_event.key)
        assert not dispatcher.is_dispatched(second.key)

    def test_dispatch_all_runs_every_plan(self, fresh_event, dispatcher, store):
        second = dataclasses.replace(fresh_event, sequence=100)

        plans = dispatcher.dispatch_all([fresh_event, second])

        assert [plan.key for plan in plans] == [fresh_event.key, second.key]
        assert dispatcher.is_dispatched(fresh_event.key)
        assert dispatcher.is_dispatched(second.key)

    def test_notification_failure_leaves_key_open_for_retry(self, fresh_event, dispatcher, inbox, store):
        with patch.object(inbox, "deliver", side_effect=RuntimeError("write failed")):
            plan = dispatcher.dispatch(fresh_event)

        assert store.get(AUDIT_ENTRIES, plan.audit_entry.id) is not None
        assert not dispatcher.is_dispatched(fresh_event.key)

        # Retrying writes the missing notification with the same identifier
        retried = dispatcher.dispatch(fresh_event)
        assert retried.notifications[0].id == plan.notifications[0].id
        assert store.get(NOTIFICATIONS, plan.notifications[0].id) is not None
        assert dispatcher.is_dispatched(fresh_event.key)
        assert store.count(AUDIT_ENTRIES, {"entityId": fresh_event.entity_id, "sequence": 99}) == 1

    def test_realtime_failure_is_tolerated(self, fresh_event, store, audit_service, inbox):
        failing_publisher = MagicMock()
        failing_publisher.publish.side_effect = ConnectionError("broker unavailable")
        dispatcher = SideEffectDispatcher(store, audit_service, inbox, failing_publisher)

        plan = dispatcher.dispatch(fresh_event)

        assert failing_publisher.publish.call_count == len(plan.realtime)
        assert dispatcher.is_dispatched(fresh_event.key)

    def test_publish_events_tolerates_publisher_errors(self, store, audit_service, inbox):
        failing_publisher = MagicMock()
        failing_publisher.publish.side_effect = ConnectionError("broker unavailable")
        dispatcher = SideEffectDispatcher(store, audit_service, inbox, failing_publisher)

        dispatcher.publish_events([RealtimeEvent("pickup-p1", "volunteer-location", {"lat": 1, "lng": 2})])
        failing_publisher.publish.assert_called_once()
