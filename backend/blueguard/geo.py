"""Great-circle distance and bounding-box sampling."""

import math
import random
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return distance in kilometers between two lat/lon points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push antipodal pairs just past 1
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def random_point_in_bounds(
    south_west: Tuple[float, float],
    north_east: Tuple[float, float],
    rng: Optional[random.Random] = None,
) -> Tuple[float, float]:
    """Sample a (lat, lon) uniformly inside the box spanned by two corners."""
    rng = rng or random
    lat = south_west[0] + rng.random() * (north_east[0] - south_west[0])
    lon = south_west[1] + rng.random() * (north_east[1] - south_west[1])
    return lat, lon
