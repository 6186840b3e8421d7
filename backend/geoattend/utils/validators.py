"""Validation utilities for the application."""
import math
from datetime import date
from typing import Dict, List, Any

from geoattend.utils.helpers import parse_datetime


class ValidationError(Exception):
    """Raised when input or model state breaks a rule."""
    pass


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                errors.append(f"{field} is required")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_name(name: str) -> Dict[str, Any]:
        """Validate class name."""
        errors = []

        if not name or not str(name).strip():
            errors.append("Name is required")
        elif len(name.strip()) > 255:
            errors.append("Name is too long")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def as_int(data: Dict, field: str, minimum: int = None) -> int:
        """Read an integer field, raising ValidationError if it is not one."""
        value = data[field]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{field} must be an integer")
        if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
            raise ValidationError(f"{field} must be an integer")
        value = int(value)
        if minimum is not None and value < minimum:
            raise ValidationError(f"{field} must be at least {minimum}")
        return value

    @staticmethod
    def as_datetime(data: Dict, field: str):
        """Read an ISO-8601 timestamp field."""
        try:
            return parse_datetime(str(data[field]))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 timestamp")

    @staticmethod
    def as_date(data: Dict, field: str):
        """Read an ISO-8601 date field."""
        try:
            return date.fromisoformat(str(data[field]))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date")
