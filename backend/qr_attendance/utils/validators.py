"""Validation utilities for the application."""
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from qr_attendance.utils.exceptions import ValidationError

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] is None or data[field] == '':
                errors.append(f"{field} is required")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def require(data: Optional[Dict], required_fields: List[str]) -> Dict:
        """Like validate_required_fields but raises on the first failure."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        result = Validator.validate_required_fields(data, required_fields)
        if not result['is_valid']:
            raise ValidationError(', '.join(result['errors']),
                                  {'fields': result['errors']})
        return data

    @staticmethod
    def parse_date(value: Any) -> date:
        """Parse a YYYY-MM-DD date."""
        if isinstance(value, date):
            return value
        try:
            return datetime.strptime(str(value), '%Y-%m-%d').date()
        except ValueError:
            raise ValidationError("date must be in YYYY-MM-DD format")

    @staticmethod
    def parse_time(value: Any) -> str:
        """Validate an HH:MM clock time."""
        if not isinstance(value, str) or not TIME_PATTERN.match(value):
            raise ValidationError("time must be in HH:MM format")
        return value

    @staticmethod
    def parse_positive_int(value: Any, field: str, maximum: int = None) -> int:
        """Parse an integer >= 1 (optionally bounded)."""
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be an integer")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be an integer")
        if number < 1:
            raise ValidationError(f"{field} must be at least 1")
        if maximum is not None and number > maximum:
            raise ValidationError(f"{field} must be at most {maximum}")
        return number

    @staticmethod
    def parse_location(value: Any) -> Optional[Tuple[float, float]]:
        """Accept {'latitude', 'longitude'} or a (lat, lng) pair."""
        if value is None:
            return None
        if isinstance(value, dict):
            lat, lng = value.get('latitude'), value.get('longitude')
        elif isinstance(value, (list, tuple)) and len(value) == 2:
            lat, lng = value
        else:
            raise ValidationError("location must contain latitude and longitude")

        try:
            lat, lng = float(lat), float(lng)
        except (TypeError, ValueError):
            raise ValidationError("latitude and longitude must be numbers")

        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise ValidationError("latitude/longitude out of range")
        return lat, lng

    @staticmethod
    def parse_device_id(value: Any) -> Optional[str]:
        """Optional device identifier, up to 128 characters."""
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip() or len(value) > 128:
            raise ValidationError("device_id must be a non-empty string of at most 128 characters")
        return value.strip()
