"""Geofence evaluation - great-circle distance against a task's radius."""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from fieldtrack.models.task import GeoPoint, Task


EARTH_RADIUS_M = 6371000


@dataclass(frozen=True)
class GeofenceResult:
    """Outcome of a single geofence check."""
    inside: bool
    distance_m: float
    radius_m: float


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Calculate distance in meters between two GPS points (Haversine formula)."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Float error can push h a hair past 1 for antipodal points
    h = min(1.0, h)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def evaluate_geofence(user: GeoPoint, center: GeoPoint, radius_km: float) -> GeofenceResult:
    """
    Check whether a worker is inside a circular geofence.

    Pure and total for validated coordinates; the caller filters invalid input.
    """
    distance_m = haversine_distance_m(user, center)
    radius_m = radius_km * 1000
    return GeofenceResult(inside=distance_m <= radius_m, distance_m=distance_m, radius_m=radius_m)


def evaluate_task(user: GeoPoint, task: Task) -> GeofenceResult:
    return evaluate_geofence(user, task.location, task.radius_km)


def nearest_task_in_radius(
    user: GeoPoint,
    tasks: Iterable[Task]
) -> Optional[tuple[Task, GeofenceResult]]:
    """
    Pick the closest task whose geofence contains the worker.

    Returns None when the worker is outside every geofence.
    """
    best: Optional[tuple[Task, GeofenceResult]] = None
    for task in tasks:
        result = evaluate_task(user, task)
        if not result.inside:
            continue
        if best is None or result.distance_m < best[1].distance_m:
            best = (task, result)
    return best
