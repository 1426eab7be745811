"""Geospatial helper functions for event locations and zone boundaries.

All points are ``(longitude, latitude)`` pairs, the order used by the event
documents and by shapely.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence, Union

from shapely.geometry import Point, Polygon

from ..errors import ValidationError
from ..models.domain import Coordinate, Zone

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def validate_coordinate(value: Sequence[float], label: str = "coordinates") -> Coordinate:
    """Return ``value`` as a (lon, lat) tuple or raise ValidationError."""
    try:
        lon, lat = (float(item) for item in value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a [longitude, latitude] pair") from exc
    if math.isnan(lon) or math.isnan(lat):
        raise ValidationError(f"{label} must be numeric")
    if not -180.0 <= lon <= 180.0:
        raise ValidationError(f"{label}: longitude {lon} outside [-180, 180]")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError(f"{label}: latitude {lat} outside [-90, 90]")
    return (lon, lat)


def validate_polygon(coordinates: Iterable[Sequence[float]], label: str = "zone") -> list[Coordinate]:
    """Validate a zone ring and return it as an open list of vertices.

    A closing vertex equal to the first one is accepted and dropped. Rings
    with fewer than three distinct vertices, zero area (collinear points) or
    self-intersections are rejected.
    """
    ring = [validate_coordinate(item, f"{label} vertex") for item in coordinates]
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    if len(set(ring)) < 3:
        raise ValidationError(f"{label} needs at least 3 distinct vertices")
    polygon = Polygon(ring)
    if polygon.area == 0:
        raise ValidationError(f"{label} vertices are collinear")
    if not polygon.is_valid:
        raise ValidationError(f"{label} boundary must not intersect itself")
    return ring


def contains(zone: Union[Zone, Sequence[Coordinate]], point: Coordinate) -> bool:
    """Return True if ``point`` lies inside or on the boundary of ``zone``."""
    vertices = zone.coordinates if isinstance(zone, Zone) else zone
    return Polygon(vertices).covers(Point(point[0], point[1]))


def contains_radius(center: Coordinate, radius_meters: float, point: Coordinate) -> bool:
    """Return True if ``point`` is within ``radius_meters`` great-circle distance of ``center``."""
    distance_km = haversine_km(center[1], center[0], point[1], point[0])
    return distance_km * 1000.0 <= radius_meters


def suggest_zone(zones: Sequence[Zone], point: Coordinate) -> Optional[Zone]:
    """First zone containing the point, if any. Advisory only."""
    for zone in zones:
        if contains(zone, point):
            return zone
    return None
