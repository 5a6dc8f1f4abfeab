# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting and processing request data.
"""

from enum import Enum
from flask import request
from typing import Any, Dict, List, Optional, Type, TypeVar
from pydantic import BaseModel
import logging

from domain.errors import ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
E = TypeVar("E", bound=Enum)

TIMEOUT_HEADER = "X-Request-Timeout"


class RequestParser:
    """Utility for parsing and extracting request data."""

    @staticmethod
    def get_pagination_params(
        default_page: int = 1,
        default_page_size: int = 20,
        max_page_size: int = 100
    ) -> Dict[str, int]:
        """
        Extract pagination parameters from request.

        Args:
            default_page: Default page number
            default_page_size: Default page size
            max_page_size: Maximum allowed page size

        Returns:
            Dictionary with page and page_size
        """
        try:
            page = int(request.args.get('page', default_page))
            page = max(1, page)  # Ensure page is at least 1
        except (ValueError, TypeError):
            page = default_page

        raw_size = request.args.get('pageSize', request.args.get('page_size', default_page_size))
        try:
            page_size = int(raw_size)
            page_size = max(1, min(page_size, max_page_size))  # Clamp between 1 and max
        except (ValueError, TypeError):
            page_size = default_page_size

        return {
            'page': page,
            'page_size': page_size
        }

    @staticmethod
    def get_enum_arg(name: str, enum_type: Type[E]) -> Optional[E]:
        """
        Read an optional enum-valued query parameter.

        Raises:
            ValidationError: The value is not a member of ``enum_type``
        """
        value = request.args.get(name)
        if not value:
            return None
        try:
            return enum_type(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_type)
            raise ValidationError(f"Invalid {name}: {value}", [f"{name} must be one of: {allowed}"])

    @staticmethod
    def get_bool_arg(name: str, default: bool = False) -> bool:
        value = request.args.get(name)
        if value is None:
            return default
        return value.lower() in ['true', '1', 'yes', 'on']

    @staticmethod
    def get_timeout() -> Optional[float]:
        """Optional per-request deadline in seconds from the ``X-Request-Timeout`` header."""
        value = request.headers.get(TIMEOUT_HEADER)
        if not value:
            return None
        try:
            timeout = float(value)
        except ValueError:
            raise ValidationError(f"Invalid {TIMEOUT_HEADER} header", [f"{TIMEOUT_HEADER} must be a number"])
        if timeout <= 0:
            raise ValidationError(f"Invalid {TIMEOUT_HEADER} header", [f"{TIMEOUT_HEADER} must be positive"])
        return timeout

    @staticmethod
    def parse_json_body(required: bool = True) -> Optional[Dict[str, Any]]:
        """
        Parse JSON request body with error handling.

        Args:
            required: Whether JSON body is required

        Returns:
            Parsed JSON data or None

        Raises:
            ValidationError: If JSON is required but missing or invalid
        """
        data = request.get_json(silent=True)
        if data is None:
            if required:
                raise ValidationError("Request body must be a JSON object", ["Missing or invalid JSON body"])
            return None
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object", ["JSON body must be an object"])
        return data

    @staticmethod
    def parse_body(model: Type[M], required: bool = True) -> M:
        """
        Validate the JSON body against a request model.

        Pydantic errors propagate to the error handler, which renders them
        as a 400 validation problem.
        """
        data = RequestParser.parse_json_body(required=required)
        return model.model_validate(data or {})


def page_response(result, items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Paginated response body: items plus pagination metadata."""
    return {
        'items': items,
        'pagination': result.to_dict()
    }
