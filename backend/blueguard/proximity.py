"""Proximity risk scoring, evacuation routing and heatmaps against the risk zone catalog."""

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from .errors import EmptyInputError
from .geo import haversine_distance, random_point_in_bounds
from .schemas import (
    EvacuationReport,
    HeatmapPoint,
    HeatmapRequest,
    Incident,
    LocationEvent,
    NearbyZone,
    ProximityReport,
    RiskLevel,
    RiskZone,
    RouteOption,
)

logger = logging.getLogger(__name__)

SEVERITY_WEIGHT = {RiskLevel.HIGH: 3, RiskLevel.MEDIUM: 2, RiskLevel.LOW: 1}
MINUTES_PER_KM = 3
ALTERNATIVE_RADIUS_KM = 20
MAX_ALTERNATIVES = 3

HEATMAP_INFLUENCE_KM = 20
HEATMAP_WEIGHT = {RiskLevel.HIGH: 0.8, RiskLevel.MEDIUM: 0.5, RiskLevel.LOW: 0.2}
HEATMAP_MIN_INTENSITY = 0.1
HEATMAP_POINT_TYPES = ["incident", "user_activity", "sensor_alert", "risk_prediction"]

CONGESTION_RADIUS_DEG = 0.1

MOBILE_ALERTS_HINT = "Install BlueGuard mobile alerts for real-time updates"


def nearby_zones(zones: Iterable[RiskZone], lat: float, lon: float, radius_km: float) -> List[NearbyZone]:
    """Zones whose reference vertex lies within ``radius_km``, nearest first."""
    found = []
    for zone in zones:
        distance = haversine_distance(lat, lon, zone.reference.lat, zone.reference.lon)
        if distance <= radius_km:
            found.append(NearbyZone(zone=zone, distance_km=distance))
    return sorted(found, key=lambda item: item.distance_km)


def proximity_score(nearby: List[NearbyZone], radius_km: float) -> int:
    score = 0.0
    for item in nearby:
        proximity_factor = max(0.0, (radius_km - item.distance_km) / radius_km)
        score += proximity_factor * SEVERITY_WEIGHT[item.zone.risk_level] * 20
    return min(100, round(score))


def location_recommendations(score: int, nearby: List[NearbyZone]) -> List[str]:
    if score > 70:
        recommendations = [
            "High risk area - consider relocation during storm season",
            "Maintain emergency kit and evacuation plan",
        ]
    elif score > 40:
        recommendations = [
            "Moderate risk - stay informed about weather conditions",
            "Review and practice evacuation procedures",
        ]
    else:
        recommendations = ["Low risk area - maintain standard coastal preparedness"]

    if nearby:
        recommendations.append(f"Monitor conditions in nearby {nearby[0].zone.name}")
    recommendations.append(MOBILE_ALERTS_HINT)
    return recommendations


def assess_proximity(
    zones: Iterable[RiskZone],
    lat: float,
    lon: float,
    radius_km: float = 10.0,
    incidents: Iterable[LocationEvent] = (),
) -> ProximityReport:
    """Score a location against the risk zones around it."""
    if radius_km <= 0:
        raise ValueError("radius_km must be greater than zero")

    zones = list(zones)
    if not zones:
        logger.debug(str(EmptyInputError("No risk zones to score against")))

    nearby = nearby_zones(zones, lat, lon, radius_km)
    score = proximity_score(nearby, radius_km)

    recent = []
    for event in incidents:
        distance = haversine_distance(lat, lon, event.lat, event.lon)
        if distance <= radius_km:
            recent.append(Incident(lat=event.lat, lon=event.lon, distance_km=distance, timestamp=event.timestamp))
    recent.sort(key=lambda incident: incident.distance_km)

    return ProximityReport(
        risk_score=score,
        nearby_zones=nearby,
        recent_incidents=recent,
        recommendations=location_recommendations(score, nearby),
    )


def congestion_level(zones: Iterable[RiskZone], lat: float, lon: float, rng: Optional[random.Random] = None) -> RiskLevel:
    """Rough congestion estimate; crowded near high-risk zones."""
    zones = list(zones)
    if not zones:
        return RiskLevel.LOW

    base = (rng or random).random()
    for zone in zones:
        if zone.risk_level != RiskLevel.HIGH:
            continue
        if abs(lat - zone.reference.lat) < CONGESTION_RADIUS_DEG and abs(lon - zone.reference.lon) < CONGESTION_RADIUS_DEG:
            return RiskLevel.HIGH if base > 0.3 else RiskLevel.MEDIUM
    return RiskLevel.MEDIUM if base > 0.7 else RiskLevel.LOW


def nearest_evacuation(
    zones: Iterable[RiskZone],
    lat: float,
    lon: float,
    rng: Optional[random.Random] = None,
) -> EvacuationReport:
    """Find the closest evacuation route start and its nearby alternatives."""
    zones = list(zones)
    nearest: Optional[RouteOption] = None
    alternatives: List[RouteOption] = []

    for zone in zones:
        for route in zone.evacuation_routes:
            start = route.coordinates[0]
            distance = haversine_distance(lat, lon, start.lat, start.lon)
            option = RouteOption(
                name=route.name,
                distance_km=distance,
                estimated_minutes=round(distance * MINUTES_PER_KM),
                capacity=route.capacity,
                coordinates=route.coordinates,
            )
            if nearest is None or distance < nearest.distance_km:
                nearest = option
            if distance <= ALTERNATIVE_RADIUS_KM:
                alternatives.append(option)

    alternatives.sort(key=lambda option: option.distance_km)
    return EvacuationReport(
        nearest_route=nearest,
        alternatives=alternatives[:MAX_ALTERNATIVES],
        congestion=congestion_level(zones, lat, lon, rng),
    )


def heat_intensity(zones: Iterable[RiskZone], lat: float, lon: float, data_type: str, rng: random.Random) -> float:
    intensity = 0.0
    for zone in zones:
        distance = haversine_distance(lat, lon, zone.reference.lat, zone.reference.lon)
        proximity_factor = max(0.0, 1 - distance / HEATMAP_INFLUENCE_KM)
        intensity += proximity_factor * HEATMAP_WEIGHT[zone.risk_level]

    if data_type == "incidents":
        intensity *= 0.8 + rng.random() * 0.4
    elif data_type == "user_activity":
        intensity *= 0.5 + rng.random() * 0.8
    return min(1.0, intensity)


def generate_heatmap(
    zones: Iterable[RiskZone],
    request: HeatmapRequest,
    samples: int = 100,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> List[HeatmapPoint]:
    """Sample the region and keep the points that sit in a zone's influence."""
    zones = list(zones)
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    south_west = (request.south_west.lat, request.south_west.lon)
    north_east = (request.north_east.lat, request.north_east.lon)

    points = []
    for _ in range(samples):
        lat, lon = random_point_in_bounds(south_west, north_east, rng)
        intensity = heat_intensity(zones, lat, lon, request.data_type, rng)
        if intensity <= HEATMAP_MIN_INTENSITY:
            continue

        if request.data_type == "incidents":
            point_type = "incident"
        elif request.data_type == "user_activity":
            point_type = "user_activity"
        else:
            point_type = rng.choice(HEATMAP_POINT_TYPES)

        points.append(HeatmapPoint(
            lat=lat,
            lon=lon,
            intensity=intensity,
            type=point_type,
            timestamp=now - timedelta(days=rng.random() * 30),
        ))

    return sorted(points, key=lambda point: point.intensity, reverse=True)
