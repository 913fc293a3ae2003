"""Static risk zone catalog."""

import json
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .schemas import RiskZone

logger = logging.getLogger(__name__)


DEFAULT_ZONES: List[dict] = [
    {
        "id": "zone_001",
        "name": "Miami Beach High Risk Zone",
        "polygon": [
            {"lat": 25.7617, "lon": -80.1918},
            {"lat": 25.7817, "lon": -80.1718},
            {"lat": 25.7417, "lon": -80.1518},
            {"lat": 25.7217, "lon": -80.1818},
        ],
        "risk_level": "high",
        "risk_factors": ["Storm surge susceptible", "Low elevation", "Dense population"],
        "evacuation_routes": [
            {
                "name": "Route A1A North",
                "coordinates": [
                    {"lat": 25.7617, "lon": -80.1918},
                    {"lat": 25.8017, "lon": -80.1718},
                ],
                "capacity": 5000,
            }
        ],
    },
    {
        "id": "zone_002",
        "name": "San Francisco Bay Area",
        "polygon": [
            {"lat": 37.7749, "lon": -122.4194},
            {"lat": 37.8049, "lon": -122.3894},
            {"lat": 37.7449, "lon": -122.3594},
            {"lat": 37.7149, "lon": -122.3994},
        ],
        "risk_level": "medium",
        "risk_factors": ["Seismic activity", "Tsunami risk", "Fog impact"],
        "evacuation_routes": [
            {
                "name": "Golden Gate Bridge",
                "coordinates": [
                    {"lat": 37.7749, "lon": -122.4194},
                    {"lat": 37.8083, "lon": -122.4784},
                ],
                "capacity": 10000,
            }
        ],
    },
]


class RiskZoneCatalog:
    """Read-only collection of risk zones, fixed for the lifetime of the process."""

    def __init__(self, zones: Sequence[RiskZone]):
        self._zones = tuple(zones)

    def __iter__(self) -> Iterator[RiskZone]:
        return iter(self._zones)

    def __len__(self) -> int:
        return len(self._zones)

    @property
    def zones(self) -> List[RiskZone]:
        return list(self._zones)

    @classmethod
    def from_dicts(cls, items: Sequence[dict]) -> "RiskZoneCatalog":
        return cls([RiskZone.model_validate(item) for item in items])


def load_catalog(path: Optional[str] = None) -> RiskZoneCatalog:
    """Load zones from a JSON file, or the built-in catalog when no path is given."""
    if not path:
        return RiskZoneCatalog.from_dicts(DEFAULT_ZONES)

    catalog_path = Path(path)
    with open(catalog_path, "r", encoding="utf-8") as f:
        catalog = RiskZoneCatalog.from_dicts(json.load(f))
    logger.info(f"Loaded {len(catalog)} risk zones from {catalog_path}")
    return catalog
