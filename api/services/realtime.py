# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Real-time event publishing.

Publishers deliver ``RealtimeEvent``s to ``pickup-{id}`` and ``user-{id}``
channels. Delivery is best effort: a failed publish is logged, never raised
into the workflow that produced the event.
"""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from domain.side_effects import RealtimeEvent

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class EventPublisher(ABC):
    """Capability to push an event onto a real-time channel."""

    @abstractmethod
    def publish(self, event: RealtimeEvent) -> None:
        """Publish one event. May raise; callers treat failures as non-fatal."""

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for pending events. Returns True when nothing is pending."""
        return True

    def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "backend": type(self).__name__}

    def close(self) -> None:
        pass


class InMemoryEventPublisher(EventPublisher):
    """Records events in order; used for tests and local development."""

    def __init__(self):
        self._events: List[RealtimeEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: RealtimeEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.debug(f"Recorded realtime event {event.event} on {event.channel}")

    @property
    def events(self) -> List[RealtimeEvent]:
        with self._lock:
            return list(self._events)

    def events_for(self, channel: str) -> List[RealtimeEvent]:
        return [event for event in self.events if event.channel == channel]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


_STOP = object()


class QueuedEventPublisher(EventPublisher):
    """
    Queue-and-forget wrapper around another publisher.

    ``publish`` only enqueues; a single worker thread drains the queue in FIFO
    order, so events for one entity reach the broker in commit order and the
    request thread never waits on the broker.
    """

    def __init__(self, delegate: EventPublisher, max_queue_size: int = 10000):
        self.delegate = delegate
        self._queue: "queue.Queue" = queue.Queue(maxsize=max_queue_size)
        self._worker = threading.Thread(target=self._run, name="realtime-publisher", daemon=True)
        self._worker.start()
        logger.info(f"Queued event publisher started for {type(delegate).__name__}")

    def publish(self, event: RealtimeEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.error(
                "Realtime queue full, dropping event",
                extra={"extra_fields": {"channel": event.channel, "event": event.event}},
            )

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                with tracer.start_as_current_span("realtime.publish") as span:
                    span.set_attributes({"realtime.channel": item.channel, "realtime.event": item.event})
                    try:
                        self.delegate.publish(item)
                    except Exception as e:
                        span.record_exception(e)
                        logger.warning(
                            "Realtime publish failed",
                            extra={
                                "extra_fields": {
                                    "channel": item.channel,
                                    "event": item.event,
                                    "error": str(e),
                                }
                            },
                        )
            finally:
                self._queue.task_done()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued event was handed to the delegate."""
        if timeout is None:
            self._queue.join()
            return True
        done = threading.Event()

        def _wait():
            self._queue.join()
            done.set()

        threading.Thread(target=_wait, daemon=True).start()
        return done.wait(timeout)

    def close(self) -> None:
        self._queue.put(_STOP)
        self._worker.join(timeout=5)
        self.delegate.close()

    def health_check(self) -> Dict[str, Any]:
        health = dict(self.delegate.health_check())
        health["queued"] = self._queue.qsize()
        return health
