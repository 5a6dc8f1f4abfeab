# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Workflow error taxonomy.

Every error carries the HTTP status and problem type it maps to, so the
boundary layer can render it without knowing the concrete class.
"""

from typing import List, Optional


class WorkflowError(Exception):
    """Base class for workflow exceptions."""

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type

    def to_problem_fields(self) -> dict:
        """Extra problem-detail members beyond type/title/status/detail."""
        return {}


class ValidationError(WorkflowError):
    """Input or precondition failed validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, 400, "validation-error")
        self.errors = errors or []

    def to_problem_fields(self) -> dict:
        return {"errors": self.errors} if self.errors else {}


class ForbiddenError(WorkflowError):
    def __init__(self, message: str):
        super().__init__(message, 403, "insufficient-permissions")


class NotFoundError(WorkflowError):
    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class InvalidTransitionError(WorkflowError):
    """The requested status change is not in the transition table."""

    def __init__(self, from_status, to_status, entity: str = "entity"):
        self.from_status = getattr(from_status, "value", from_status)
        self.to_status = getattr(to_status, "value", to_status)
        super().__init__(
            f"Cannot transition {entity} from {self.from_status} to {self.to_status}",
            400,
            "invalid-transition",
        )

    def to_problem_fields(self) -> dict:
        return {"from": self.from_status, "to": self.to_status}


class ConflictError(WorkflowError):
    """A concurrent writer won the conditional update."""

    def __init__(self, message: str):
        super().__init__(message, 409, "resource-conflict")


class DeadlineExceededError(WorkflowError):
    def __init__(self, message: str = "Operation deadline exceeded"):
        super().__init__(message, 504, "deadline-exceeded")


class AuditTrailError(WorkflowError):
    """The audit entry for a transition could not be written."""

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        rolled_back: bool = False,
    ):
        super().__init__(message, 500, "audit-trail-failure")
        self.entity_id = entity_id
        self.action = action
        self.rolled_back = rolled_back

    def to_problem_fields(self) -> dict:
        return {"rolledBack": self.rolled_back}


def format_validation_errors(error) -> List[str]:
    """Flatten a pydantic ``ValidationError`` into ``"field: message"`` strings."""
    return [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]
