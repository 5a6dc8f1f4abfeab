# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with RFC 7807 problem responses.
Provides centralized error handling and formatting for Flask applications.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, Tuple
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import logging
import pydantic

from domain.errors import AuditTrailError, ValidationError, WorkflowError, format_validation_errors
from models.responses import ProblemDetails

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

ERROR_TITLES = {
    "validation-error": "Validation Error",
    "invalid-transition": "Invalid Transition",
    "insufficient-permissions": "Insufficient Permissions",
    "resource-not-found": "Resource Not Found",
    "resource-conflict": "Resource Conflict",
    "deadline-exceeded": "Deadline Exceeded",
    "audit-trail-failure": "Audit Trail Failure",
}

HTTP_ERRORS = {
    400: ("bad-request", "Bad Request"),
    401: ("authentication-required", "Authentication Required"),
    403: ("insufficient-permissions", "Insufficient Permissions"),
    404: ("resource-not-found", "Resource Not Found"),
    405: ("method-not-allowed", "Method Not Allowed"),
    409: ("resource-conflict", "Resource Conflict"),
    415: ("unsupported-media-type", "Unsupported Media Type"),
    422: ("validation-error", "Validation Error"),
    500: ("internal-server-error", "Internal Server Error"),
    503: ("service-unavailable", "Service Unavailable"),
    504: ("gateway-timeout", "Gateway Timeout"),
}


class ErrorHandlerMiddleware:
    """Centralized error handling middleware with problem-detail formatting."""

    def __init__(self, app: Flask):
        self.app = app
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register error handlers with Flask application."""

        @self.app.errorhandler(WorkflowError)
        def handle_workflow_error(error: WorkflowError):
            return self.handle_workflow_error(error)

        @self.app.errorhandler(pydantic.ValidationError)
        def handle_request_validation(error: pydantic.ValidationError):
            return self.handle_workflow_error(
                ValidationError("Request validation failed", format_validation_errors(error))
            )

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error: HTTPException):
            return self.handle_http_error(error)

        # Handle generic exceptions
        @self.app.errorhandler(Exception)
        def handle_generic_exception(error):
            return self.handle_unexpected_error(error)

    def handle_workflow_error(self, error: WorkflowError) -> Tuple[Any, int]:
        """
        Render a workflow error as problem JSON.

        Args:
            error: Raised workflow error

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.workflow_error") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            log_extra = {
                "error_type": error.error_type,
                "status_code": error.status_code,
                "detail": error.message,
                "path": request.path,
                "method": request.method
            }
            if isinstance(error, AuditTrailError):
                span.set_status(Status(StatusCode.ERROR, error.message))
                log_extra.update(entity_id=error.entity_id, action=error.action, rolled_back=error.rolled_back)
                if error.rolled_back:
                    logger.error("Transition rolled back after audit failure", extra={"extra_fields": log_extra})
                else:
                    log_extra["reconciliation"] = True
                    logger.critical("Transition committed without audit entry", extra={"extra_fields": log_extra})
            elif error.status_code >= 500:
                logger.error(f"Workflow error: {error.error_type}", extra={"extra_fields": log_extra})
            else:
                logger.warning(f"Workflow error: {error.error_type}", extra={"extra_fields": log_extra})

            problem = ProblemDetails.build(
                error.error_type,
                ERROR_TITLES.get(error.error_type, "Application Error"),
                error.status_code,
                error.message,
                request.path,
                **error.to_problem_fields()
            )
            return jsonify(problem.to_dict()), error.status_code

    def handle_http_error(self, error: HTTPException) -> Tuple[Any, int]:
        """Render werkzeug HTTP errors (unknown routes, bad JSON) as problem JSON."""
        status = error.code or 500
        error_type, title = HTTP_ERRORS.get(status, ("http-error", error.name))
        detail = str(error.description) if error.description else title

        log_extra = {"extra_fields": {"status_code": status, "path": request.path}}
        if status >= 500:
            logger.error(f"Server error: {title}", extra=log_extra)
        else:
            logger.warning(f"Client error: {title}", extra=log_extra)

        problem = ProblemDetails.build(error_type, title, status, detail, request.path)
        return jsonify(problem.to_dict()), status

    def handle_unexpected_error(self, error: Exception) -> Tuple[Dict[str, Any], int]:
        """
        Handle unexpected exceptions not caught by specific handlers.

        Args:
            error: Unexpected exception

        Returns:
            Tuple of (error response, status code)
        """
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })

            # Record exception in span
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "extra_fields": {
                        "error_type": "unexpected-error",
                        "error_class": error.__class__.__name__,
                        "error_message": str(error),
                        "path": request.path,
                        "method": request.method
                    }
                },
                exc_info=True
            )

            # Don't expose internal error details
            detail = "An unexpected error occurred"
            if self.app.config.get('ENVIRONMENT') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            problem = ProblemDetails.build("internal-server-error", "Internal Server Error", 500, detail, request.path)
            return jsonify(problem.to_dict()), 500

