"""GPS verification service."""
from typing import Dict, Optional, Tuple
import math

from qr_attendance.utils.exceptions import OutOfRange, ValidationError

class GPSService:
    """Service for GPS and location verification."""

    EARTH_RADIUS_METERS = 6371000

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate distance between two GPS points in meters."""
        R = GPSService.EARTH_RADIUS_METERS

        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat/2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon/2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

        return R * c

    @staticmethod
    def verify_location(user_lat: float, user_lng: float, course, default_radius: float) -> Dict:
        """Verify if user is within the course geofence."""
        radius = course.geofence_radius_meters or default_radius
        distance = GPSService.calculate_distance(
            user_lat, user_lng,
            course.latitude, course.longitude
        )

        return {
            'is_inside': distance <= radius,
            'distance': distance,
            'radius': radius,
            'center': {
                'latitude': course.latitude,
                'longitude': course.longitude
            }
        }

    @staticmethod
    def enforce_geofence(course, location: Optional[Tuple[float, float]],
                         default_radius: float) -> Optional[Dict]:
        """Raise OutOfRange unless the location is inside the course geofence.

        Courses without geofencing (or without registered coordinates) pass
        without a location.
        """
        if course is None or not course.geofence_enabled or not course.has_coordinates:
            return None
        if location is None:
            raise ValidationError("Location is required to check in to this course")

        result = GPSService.verify_location(location[0], location[1], course, default_radius)
        if not result['is_inside']:
            raise OutOfRange(result['distance'], result['radius'])
        return result
