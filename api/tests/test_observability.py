# SPDX-License-Identifier: Apache-2.0

"""
Tests for structured logging and trace correlation.
"""

import json
import logging
import sys

from opentelemetry.sdk.trace import TracerProvider

from observability.config import StructuredFormatter
from services.audit import current_trace_id


def make_record(message="Donation claimed", **extra):
    record = logging.LogRecord("services.claims", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:

    def test_basic_fields(self):
        entry = json.loads(StructuredFormatter().format(make_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "services.claims"
        assert entry["message"] == "Donation claimed"
        assert "trace_id" not in entry

    def test_extra_fields_are_merged(self):
        record = make_record(donation_id="d1", extra_fields={"actor_id": "ngo-1", "status_code": 201})

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["donation_id"] == "d1"
        assert entry["actor_id"] == "ngo-1"
        assert entry["status_code"] == 201
        assert "extra_fields" not in entry

    def test_exception_is_rendered(self):
        try:
            raise RuntimeError("store unreachable")
        except RuntimeError:
            record = make_record("Insert failed")
            record.exc_info = sys.exc_info()

        entry = json.loads(StructuredFormatter().format(record))

        assert "RuntimeError: store unreachable" in entry["exception"]

    def test_active_span_is_correlated(self):
        tracer = TracerProvider().get_tracer(__name__)

        with tracer.start_as_current_span("donation.claim") as span:
            entry = json.loads(StructuredFormatter().format(make_record()))
            expected = format(span.get_span_context().trace_id, "032x")
            assert current_trace_id() == expected

        assert entry["trace_id"] == expected
        assert len(entry["span_id"]) == 16

    def test_no_trace_id_outside_a_span(self):
        assert current_trace_id() is None


class TestWorkflowLogRecords:

    def test_workflow_fields_travel_in_extra_fields(self, available_donation, claims, recipient_ctx, caplog):
        with caplog.at_level(logging.INFO, logger="services.claims"):
            result = claims.claim(recipient_ctx, available_donation.id)

        record = next(item for item in caplog.records if item.getMessage() == "Donation claimed")
        assert record.extra_fields["donation_id"] == result.donation.id
        assert not hasattr(record, "donation_id")

        entry = json.loads(StructuredFormatter().format(record))
        assert entry["pickup_id"] == result.pickup.id
        assert entry["sequence"] == result.donation.version
