"""Spatial risk analytics over the risk zone catalog and reported location events."""

import logging
import random
from typing import List, Optional, Sequence

from .catalog import RiskZoneCatalog
from .clustering import cluster_locations
from .proximity import assess_proximity, generate_heatmap, nearest_evacuation
from .schemas import (
    EvacuationReport,
    HeatmapPoint,
    HeatmapRequest,
    LocationCluster,
    LocationEvent,
    ProximityReport,
    RiskZone,
)

logger = logging.getLogger(__name__)


class GeoAnalytics:
    """Clustering, proximity and evacuation queries.

    The most recent clustering batch is kept so proximity reports can list
    nearby incidents; each clustering run replaces it wholesale.
    """

    def __init__(
        self,
        catalog: RiskZoneCatalog,
        default_k: int = 5,
        default_radius_km: float = 10.0,
        heatmap_samples: int = 100,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.default_k = default_k
        self.default_radius_km = default_radius_km
        self.heatmap_samples = heatmap_samples
        self.rng = rng or random.Random()
        self.recent_events: List[LocationEvent] = []
        self.clusters: List[LocationCluster] = []

    def risk_zones(self) -> List[RiskZone]:
        return self.catalog.zones

    def cluster(self, points: Sequence[LocationEvent], k: Optional[int] = None) -> List[LocationCluster]:
        clusters = cluster_locations(points, self.default_k if k is None else k, self.rng)
        self.recent_events = list(points)
        self.clusters = clusters
        logger.info(f"Clustered {len(points)} events into {len(clusters)} clusters")
        return clusters

    def assess_proximity(self, lat: float, lon: float, radius_km: Optional[float] = None) -> ProximityReport:
        return assess_proximity(
            self.catalog, lat, lon,
            radius_km=self.default_radius_km if radius_km is None else radius_km,
            incidents=self.recent_events,
        )

    def nearest_evacuation(self, lat: float, lon: float) -> EvacuationReport:
        return nearest_evacuation(self.catalog, lat, lon, self.rng)

    def heatmap(self, request: HeatmapRequest) -> List[HeatmapPoint]:
        return generate_heatmap(self.catalog, request, self.heatmap_samples, self.rng)
