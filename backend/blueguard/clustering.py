"""K-means style clustering of geo-tagged events."""

import logging
import math
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import EmptyInputError
from .geo import haversine_distance
from .schemas import LocationCluster, LocationEvent, RiskLevel

logger = logging.getLogger(__name__)

ITERATIONS = 10


@dataclass
class _Group:
    lat: float
    lon: float
    points: List[LocationEvent] = field(default_factory=list)


def cluster_risk(point_count: int, radius_km: float) -> RiskLevel:
    """Risk from point density (points per square km)."""
    if radius_km <= 0:
        return RiskLevel.LOW
    density = point_count / (math.pi * radius_km * radius_km)
    if density > 10:
        return RiskLevel.HIGH
    if density > 5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _nearest(point: LocationEvent, groups: List[_Group]) -> _Group:
    # Strict comparison keeps the earliest group on ties
    nearest = groups[0]
    min_distance = haversine_distance(point.lat, point.lon, nearest.lat, nearest.lon)
    for group in groups[1:]:
        distance = haversine_distance(point.lat, point.lon, group.lat, group.lon)
        if distance < min_distance:
            min_distance = distance
            nearest = group
    return nearest


def cluster_locations(
    points: Sequence[LocationEvent],
    k: int,
    rng: Optional[random.Random] = None,
) -> List[LocationCluster]:
    """
    Partition points into at most ``k`` clusters.

    Centers are seeded from randomly chosen input points and refined for a
    fixed number of iterations with no convergence check. Clusters left
    empty are dropped, so fewer than ``k`` may come back.
    """
    if k < 1:
        raise ValueError("k must be at least 1")
    if not points:
        logger.debug(str(EmptyInputError("No points to cluster")))
        return []

    rng = rng or random.Random()
    groups = []
    for _ in range(k):
        seed = rng.choice(points)
        groups.append(_Group(lat=seed.lat, lon=seed.lon))

    for _ in range(ITERATIONS):
        for group in groups:
            group.points = []
        for point in points:
            _nearest(point, groups).points.append(point)
        for group in groups:
            if group.points:
                group.lat = sum(p.lat for p in group.points) / len(group.points)
                group.lon = sum(p.lon for p in group.points) / len(group.points)

    clusters = []
    for group in groups:
        if not group.points:
            continue
        radius = max(haversine_distance(p.lat, p.lon, group.lat, group.lon) for p in group.points)
        clusters.append(LocationCluster(
            id=f"cluster_{len(clusters) + 1}",
            center_lat=group.lat,
            center_lon=group.lon,
            radius_km=radius,
            risk_level=cluster_risk(len(group.points), radius),
            point_count=len(group.points),
            last_activity=max(p.timestamp for p in group.points),
        ))
    return clusters
