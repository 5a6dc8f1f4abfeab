# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and document conversion.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict, AfterValidator
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form pymongo returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize aware datetimes to naive UTC so comparisons never mix kinds."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]


def plain_value(value: Any) -> Any:
    """Recursively replace enum members with their values for storage."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {plain_value(key): plain_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain_value(item) for item in value]
    return value


class DocumentModel(BaseModel):
    """Pydantic model stored as a camelCase document."""

    model_config = ConfigDict(
        # Accept both snake_case field names and camelCase document keys
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def to_document(self) -> Dict[str, Any]:
        """Dump to a storage document with camelCase keys and plain values."""
        return plain_value(self.model_dump(by_alias=True))

    def to_api(self) -> Dict[str, Any]:
        """Dump to a JSON-ready dict for HTTP responses."""
        return self.model_dump(by_alias=True, mode="json")


class BaseEntity(DocumentModel):
    """Base entity with common fields for all stored domain objects."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: UtcDateTime = Field(default_factory=utcnow, description="Creation timestamp")
    updated_at: UtcDateTime = Field(default_factory=utcnow, description="Last update timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Build an entity from a stored document (``_id`` becomes ``id``)."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        document = super().to_document()
        document["_id"] = document.pop("id")
        return document

    def touch(self, now: Optional[datetime] = None) -> None:
        """Update the modification timestamp."""
        self.updated_at = now or utcnow()
