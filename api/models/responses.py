# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

PROBLEM_TYPE_BASE = "https://api.food-rescue.org/problems"


class ProblemDetails(BaseModel):
    """Error response model following RFC 7807."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="Error type URI")
    title: str = Field(..., description="Error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Error detail")
    instance: str = Field(..., description="Request instance")
    errors: Optional[List[str]] = Field(None, description="Validation errors")
    from_status: Optional[str] = Field(None, alias="from", description="Current status of a rejected transition")
    to_status: Optional[str] = Field(None, alias="to", description="Requested status of a rejected transition")
    rolled_back: Optional[bool] = Field(
        None, alias="rolledBack", description="Whether a transition without audit entry was undone"
    )

    @classmethod
    def build(cls, error_type: str, title: str, status: int, detail: str, instance: str, **extra) -> "ProblemDetails":
        return cls(
            type=f"{PROBLEM_TYPE_BASE}/{error_type}",
            title=title,
            status=status,
            detail=detail,
            instance=instance,
            **extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Environment name")
    timestamp: datetime = Field(..., description="Check timestamp")
    dependencies: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Dependency health")
