# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Side-effect dispatcher for accepted workflow transitions.

Runs the plan of one transition in a fixed order: audit entry, then
notifications, then real-time events, then the completion ledger record.
Every record written is keyed on ``(entity_id, action, sequence)``, so
dispatching the same transition twice produces each effect once. When the
audit entry cannot be written the caller's rollback undoes the transition
before ``AuditTrailError`` is raised.
"""

import logging
from typing import Callable, List, Optional, Tuple

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.errors import AuditTrailError
from domain.side_effects import RealtimeEvent, SideEffectPlan, TransitionEvent, plan_side_effects
from models.base import utcnow
from .audit import AuditService, current_trace_id
from .inbox import InboxService
from .realtime import EventPublisher
from .store import SIDE_EFFECT_LEDGER, DocumentStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Undoes the state writes of a unit of work; True when everything was restored
Rollback = Callable[[], bool]


class SideEffectDispatcher:
    """Execute side-effect plans exactly once per transition key."""

    def __init__(
        self,
        store: DocumentStore,
        audit_service: AuditService,
        inbox_service: InboxService,
        publisher: EventPublisher,
    ):
        self.store = store
        self.audit_service = audit_service
        self.inbox_service = inbox_service
        self.publisher = publisher

    def is_dispatched(self, key: str) -> bool:
        return self.store.get(SIDE_EFFECT_LEDGER, key) is not None

    def dispatch(self, event: TransitionEvent, rollback: Optional[Rollback] = None) -> Optional[SideEffectPlan]:
        """
        Dispatch the side effects of one accepted transition.

        Args:
            event: The accepted transition
            rollback: Undoes the transition's state writes if its audit
                entry cannot be written

        Returns:
            The executed plan, or None if the key was already completed

        Raises:
            AuditTrailError: The audit entry could not be written
        """
        return self.dispatch_all([event], rollback=rollback)[0]

    def dispatch_all(
        self,
        events: List[TransitionEvent],
        rollback: Optional[Rollback] = None,
    ) -> List[Optional[SideEffectPlan]]:
        """
        Dispatch the transitions of one unit of work.

        Every audit entry is written before any notification or real-time
        event goes out, so a failed audit write leaves nothing announced
        for a transition that ``rollback`` then undoes.
        """
        with tracer.start_as_current_span("dispatcher.dispatch") as span:
            span.set_attributes({
                "dispatch.keys": [event.key for event in events],
                "dispatch.actions": [event.action.value for event in events]
            })

            plans: List[Optional[SideEffectPlan]] = []
            audited: List[Tuple[TransitionEvent, SideEffectPlan]] = []
            for event in events:
                if self.is_dispatched(event.key):
                    logger.info("Side effects already dispatched", extra={"extra_fields": {"dispatch_key": event.key}})
                    span.set_attribute("dispatch.replayed", True)
                    plans.append(None)
                    continue

                plan = plan_side_effects(event, trace_id=current_trace_id())
                try:
                    self.audit_service.record(plan.audit_entry)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, "audit write failed"))
                    self._audit_failed(event, e, rollback, [done.key for done, _ in audited])
                plans.append(plan)
                audited.append((event, plan))

            for event, plan in audited:
                notifications_ok = self._deliver_notifications(event, plan)
                self._publish_realtime(plan)

                if notifications_ok:
                    self.store.insert_if_absent(SIDE_EFFECT_LEDGER, {
                        "_id": event.key,
                        "entityId": event.entity_id,
                        "action": event.action.value,
                        "sequence": event.sequence,
                        "completedAt": utcnow(),
                    })

            span.set_attributes({
                "dispatch.notifications": sum(len(plan.notifications) for _, plan in audited),
                "dispatch.realtime_events": sum(len(plan.realtime) for _, plan in audited)
            })
            span.set_status(Status(StatusCode.OK))
            return plans

    def _audit_failed(
        self,
        event: TransitionEvent,
        error: Exception,
        rollback: Optional[Rollback],
        audited_keys: List[str],
    ) -> None:
        """Undo the unit of work's writes, then raise ``AuditTrailError``."""
        rolled_back = False
        if rollback is not None:
            try:
                rolled_back = rollback()
            except Exception as rollback_error:
                logger.critical(
                    "Rollback after audit failure raised",
                    exc_info=rollback_error,
                    extra={"extra_fields": {"dispatch_key": event.key, "reconciliation": True}}
                )

        fields = {
            "dispatch_key": event.key,
            "entity_id": event.entity_id,
            "action": event.action.value,
            "sequence": event.sequence,
            "rolled_back": rolled_back,
            "error": str(error)
        }
        if rolled_back and not audited_keys:
            logger.error("Audit write failed; transition rolled back", extra={"extra_fields": fields})
        else:
            fields.update(reconciliation=True, orphaned_audit_keys=audited_keys)
            logger.critical("Audit write failed; reconciliation required", extra={"extra_fields": fields})

        raise AuditTrailError(
            f"Audit trail write failed for {event.key}",
            entity_id=event.entity_id,
            action=event.action.value,
            rolled_back=rolled_back,
        ) from error

    def _deliver_notifications(self, event: TransitionEvent, plan: SideEffectPlan) -> bool:
        """Write notifications; failures are logged for reconciliation, not raised."""
        all_ok = True
        for notification in plan.notifications:
            try:
                self.inbox_service.deliver(notification)
            except Exception as e:
                all_ok = False
                logger.error(
                    "Notification write failed; reconciliation required",
                    extra={
                        "extra_fields": {
                            "dispatch_key": event.key,
                            "notification_id": notification.id,
                            "recipient_actor_id": notification.recipient_actor_id,
                            "reconciliation": True,
                            "error": str(e)
                        }
                    }
                )
        return all_ok

    def _publish_realtime(self, plan: SideEffectPlan) -> None:
        for realtime_event in plan.realtime:
            try:
                self.publisher.publish(realtime_event)
            except Exception as e:
                logger.warning(
                    "Realtime publish failed",
                    extra={
                        "extra_fields": {
                            "dispatch_key": plan.key,
                            "channel": realtime_event.channel,
                            "event": realtime_event.event,
                            "error": str(e)
                        }
                    }
                )

    def publish_events(self, events: List[RealtimeEvent]) -> None:
        """Publish real-time events that carry no audit or notification record."""
        for realtime_event in events:
            try:
                self.publisher.publish(realtime_event)
            except Exception as e:
                logger.warning(
                    "Realtime publish failed",
                    extra={
                        "extra_fields": {
                            "channel": realtime_event.channel,
                            "event": realtime_event.event,
                            "error": str(e)
                        }
                    }
                )
