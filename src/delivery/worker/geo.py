"""Nearest-candidate selection on a spherical earth.

Pure functions: no I/O and no state. Candidates may be Protean aggregates,
plain objects or mappings, as long as they expose an ``id`` and a pair of
coordinates. Entries with unusable coordinates are skipped, never fatal.
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from delivery.errors import NoEligibleCandidate

logger = structlog.get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

_LATITUDE_KEYS = ("latitude", "lat")
_LONGITUDE_KEYS = ("longitude", "lon")


@dataclass(frozen=True)
class Nearest:
    candidate: Any
    distance_km: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Clamp: rounding can push a fraction above 1 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def _read(source, keys):
    for key in keys:
        if isinstance(source, Mapping):
            if key in source:
                return source[key]
        elif hasattr(source, key):
            return getattr(source, key)
    return None


def _valid_number(value, bound: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and -bound <= value <= bound


def coordinates_of(source) -> tuple[float, float] | None:
    """Return ``(latitude, longitude)`` when both are usable numbers, else None."""
    if source is None:
        return None

    latitude = _read(source, _LATITUDE_KEYS)
    longitude = _read(source, _LONGITUDE_KEYS)
    if _valid_number(latitude, 90.0) and _valid_number(longitude, 180.0):
        return float(latitude), float(longitude)
    return None


def _candidate_id(candidate):
    if isinstance(candidate, Mapping):
        return candidate.get("id")
    return getattr(candidate, "id", None)


def nearest(origin, candidates: Iterable) -> Nearest:
    """Return the candidate closest to ``origin`` by haversine distance.

    Ties go to the candidate encountered first. Raises NoEligibleCandidate
    when no candidate has valid coordinates, and ValueError when the origin
    itself is unusable.
    """
    origin_point = coordinates_of(origin)
    if origin_point is None:
        raise ValueError(f"Invalid origin location: {origin!r}")

    best = None
    for candidate in candidates:
        point = coordinates_of(candidate)
        if point is None:
            logger.warning("Invalid location", candidate_id=str(_candidate_id(candidate)))
            continue

        distance = haversine_km(*origin_point, *point)
        if best is None or distance < best.distance_km:
            best = Nearest(candidate=candidate, distance_km=distance)

    if best is None:
        raise NoEligibleCandidate("No candidate with a valid location")

    return best
