"""GPS verification service."""
import math
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict

from geoattend.utils.validators import ValidationError

EARTH_RADIUS_METERS = 6371000


@dataclass(frozen=True)
class Coordinate:
    """A (latitude, longitude) pair in degrees."""
    latitude: float
    longitude: float

    @classmethod
    def from_dict(cls, data: Dict) -> 'Coordinate':
        """Build from a ``{latitude, longitude}`` mapping."""
        if not isinstance(data, dict) or 'latitude' not in data or 'longitude' not in data:
            raise ValidationError("Location must provide latitude and longitude")
        try:
            return cls(float(data['latitude']), float(data['longitude']))
        except (TypeError, ValueError):
            raise ValidationError("Latitude and longitude must be numbers")

    def to_dict(self) -> Dict[str, float]:
        return {'latitude': self.latitude, 'longitude': self.longitude}


class LocationUnavailableError(Exception):
    """The student's position could not be obtained in time."""
    pass


class GPSService:
    """Service for GPS and location verification."""

    @staticmethod
    def distance_meters(a: Coordinate, b: Coordinate) -> float:
        """Great-circle (haversine) distance between two points in meters."""
        lat1_rad = math.radians(a.latitude)
        lat2_rad = math.radians(b.latitude)
        delta_lat = math.radians(b.latitude - a.latitude)
        delta_lon = math.radians(b.longitude - a.longitude)

        h = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

        return EARTH_RADIUS_METERS * c

    @staticmethod
    def validate_coordinate(coordinate: Coordinate) -> Coordinate:
        """Reject non-finite or out-of-range coordinates."""
        lat, lon = coordinate.latitude, coordinate.longitude
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValidationError("Coordinates must be finite numbers")
        if not -90 <= lat <= 90:
            raise ValidationError(f"Latitude {lat} is outside [-90, 90]")
        if not -180 <= lon <= 180:
            raise ValidationError(f"Longitude {lon} is outside [-180, 180]")
        return coordinate

    @staticmethod
    def verify_location(current: Coordinate, session) -> Dict:
        """Verify if the student is within the class distance threshold."""
        distance = GPSService.distance_meters(current, session.location)
        threshold = session.distance_threshold_meters

        return {
            'is_inside': distance <= threshold,
            'distance': distance,
            'threshold': threshold,
            'class_location': session.location.to_dict()
        }

    @staticmethod
    def acquire_location(provider: Callable[[], Coordinate], timeout: float) -> Coordinate:
        """
        Call a blocking location provider, giving up after ``timeout`` seconds.

        The provider keeps running in its worker thread after a timeout; its
        result is discarded.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='geolocation')
        try:
            future = executor.submit(provider)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                raise LocationUnavailableError(
                    f"Timed out after {timeout:g}s waiting for a location fix"
                )
            except Exception as e:
                raise LocationUnavailableError(f"Location provider failed: {e}") from e
        finally:
            executor.shutdown(wait=False)
