# SPDX-License-Identifier: Apache-2.0

"""
Observability Middleware

Flask hooks adding OpenTelemetry request attributes, the acting identity
and structured request logging to every HTTP request.
"""

import time
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

from middleware.auth import ACTOR_ID_HEADER, ACTOR_ROLE_HEADER

TRACE_ID_HEADER = 'X-Trace-Id'


def add_observability_middleware(app: Flask, instrument: bool = True):
    """Add OpenTelemetry instrumentation and request logging to Flask app."""

    if instrument:
        FlaskInstrumentor().instrument_app(app)

    logger = logging.getLogger(__name__)

    @app.before_request
    def before_request():
        """Set up request context and start timing."""
        g.start_time = time.time()
        g.trace_id = None

        span = trace.get_current_span()
        if span.is_recording():
            span_context = span.get_span_context()
            g.trace_id = format(span_context.trace_id, "032x")

            attributes = {
                "http.method": request.method,
                "http.target": request.path,
                "http.user_agent": request.headers.get("User-Agent", "")
            }
            if request.headers.get(ACTOR_ID_HEADER):
                attributes["enduser.id"] = request.headers[ACTOR_ID_HEADER]
            if request.headers.get(ACTOR_ROLE_HEADER):
                attributes["enduser.role"] = request.headers[ACTOR_ROLE_HEADER]
            span.set_attributes(attributes)

    @app.after_request
    def after_request(response):
        """Log request completion and add response attributes to span."""
        duration_ms = round((time.time() - g.get('start_time', time.time())) * 1000, 2)

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attributes({
                "http.status_code": response.status_code,
                "http.duration_ms": duration_ms
            })

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "HTTP request completed",
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "actor_id": request.headers.get(ACTOR_ID_HEADER),
                    "trace_id": g.get('trace_id'),
                    "request_size": request.content_length or 0
                }
            }
        )

        if g.get('trace_id'):
            response.headers[TRACE_ID_HEADER] = g.trace_id

        return response
