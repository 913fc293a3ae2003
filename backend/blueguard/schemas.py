"""Pydantic models for telemetry, alerts and spatial analytics."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DeviceType(str, Enum):
    WAVE = "wave"
    TIDE = "tide"
    WEATHER = "weather"
    SEISMIC = "seismic"
    WATER_QUALITY = "water_quality"
    MARINE_LIFE = "marine_life"


class Quality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Condition(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    OUTSIDE = "outside"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------

class Location(BaseModel):
    """Device position."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    name: str = ""

    model_config = ConfigDict(frozen=True)


class DeviceConfig(BaseModel):
    """Configuration of one telemetry source. Replaced wholesale on every change."""
    id: str = Field(..., min_length=1)
    type: DeviceType
    location: Location
    sampling_interval: float = Field(..., gt=0)  # seconds
    is_active: bool = True
    last_service: datetime

    model_config = ConfigDict(frozen=True)


class DevicePatch(BaseModel):
    """Partial reconfiguration of a device. Identity and type are fixed."""
    location: Optional[Location] = None
    sampling_interval: Optional[float] = None
    is_active: Optional[bool] = None
    last_service: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


class ServiceRecordInput(BaseModel):
    serviced_at: Optional[datetime] = None


class DeviceStatus(BaseModel):
    id: str
    type: DeviceType
    location: str
    is_online: bool
    last_reading: Optional[datetime] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    quality: Optional[Quality] = None
    next_service: datetime


class NetworkTopology(BaseModel):
    total_devices: int
    online_devices: int
    network_health: float
    data_transmission_rate: float  # KB/s estimate
    last_network_update: datetime


# ---------------------------------------------------------------------------
# Readings (one variant per device type, tagged by ``kind``)
# ---------------------------------------------------------------------------

class WaveData(BaseModel):
    kind: Literal["wave"] = "wave"
    height: float
    period: float
    direction: float
    energy: float


class TideData(BaseModel):
    kind: Literal["tide"] = "tide"
    level: float
    flow: float
    temperature: float


class WeatherData(BaseModel):
    kind: Literal["weather"] = "weather"
    temperature: float
    humidity: float
    pressure: float
    wind_speed: float
    wind_direction: float
    rainfall: float


class SeismicData(BaseModel):
    kind: Literal["seismic"] = "seismic"
    magnitude: float
    frequency: float
    p_wave_velocity: float
    s_wave_velocity: float
    acceleration: float


class WaterQualityData(BaseModel):
    kind: Literal["water_quality"] = "water_quality"
    ph: float
    dissolved_oxygen: float
    turbidity: float
    temperature: float
    salinity: float
    nitrate_level: float
    phosphate_level: float


class MarineLifeData(BaseModel):
    kind: Literal["marine_life"] = "marine_life"
    fish_count: int
    avg_fish_size: float
    species_count: int
    migration_indicator: bool
    biomass_index: float


ReadingData = Annotated[
    Union[WaveData, TideData, WeatherData, SeismicData, WaterQualityData, MarineLifeData],
    Field(discriminator="kind"),
]


class Reading(BaseModel):
    """One sample from one device. Immutable once produced."""
    device_id: str
    timestamp: datetime
    data: ReadingData
    quality: Quality
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        """Naive timestamps are taken as UTC so readings always compare."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def device_type(self) -> DeviceType:
        return DeviceType(self.data.kind)

    def value_of(self, name: str) -> Any:
        """Look a field up by name; ``None`` when this variant has no such field."""
        if name == "kind" or name not in type(self.data).model_fields:
            return None
        return getattr(self.data, name)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class AlertRule(BaseModel):
    device_type: DeviceType
    field: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    condition: Condition
    severity: Severity

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_bounds(self) -> "AlertRule":
        if self.condition == Condition.ABOVE and self.max_value is None:
            raise ValueError("'above' rules need max_value")
        if self.condition == Condition.BELOW and self.min_value is None:
            raise ValueError("'below' rules need min_value")
        if self.condition == Condition.OUTSIDE and (self.min_value is None or self.max_value is None):
            raise ValueError("'outside' rules need both min_value and max_value")
        return self


class AlertEvent(BaseModel):
    device_id: str
    timestamp: datetime
    field: str
    value: float
    rule: AlertRule
    message: str

    @property
    def severity(self) -> Severity:
        return self.rule.severity


class Envelope(BaseModel):
    """A reading and the alerts it raised, published once per tick."""
    reading: Reading
    alerts: List[AlertEvent] = []


# ---------------------------------------------------------------------------
# Spatial analytics
# ---------------------------------------------------------------------------

class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    model_config = ConfigDict(frozen=True)


class EvacuationRoute(BaseModel):
    name: str
    coordinates: List[GeoPoint] = Field(..., min_length=1)
    capacity: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)


class RiskZone(BaseModel):
    id: str
    name: str
    polygon: List[GeoPoint] = Field(..., min_length=3)
    risk_level: RiskLevel
    risk_factors: List[str] = []
    evacuation_routes: List[EvacuationRoute] = []

    model_config = ConfigDict(frozen=True)

    @property
    def reference(self) -> GeoPoint:
        """Vertex used for distance calculations."""
        return self.polygon[0]


class LocationEvent(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    timestamp: datetime


class LocationCluster(BaseModel):
    id: str
    center_lat: float
    center_lon: float
    radius_km: float = Field(..., ge=0)
    risk_level: RiskLevel
    point_count: int
    last_activity: datetime


class ClusterRequest(BaseModel):
    points: List[LocationEvent]
    k: Optional[int] = Field(default=None, ge=1)


class NearbyZone(BaseModel):
    zone: RiskZone
    distance_km: float


class Incident(BaseModel):
    lat: float
    lon: float
    distance_km: float
    timestamp: datetime


class ProximityReport(BaseModel):
    risk_score: int = Field(..., ge=0, le=100)
    nearby_zones: List[NearbyZone] = []
    recent_incidents: List[Incident] = []
    recommendations: List[str] = []


class RouteOption(BaseModel):
    name: str
    distance_km: float
    estimated_minutes: int
    capacity: int
    coordinates: List[GeoPoint]


class EvacuationReport(BaseModel):
    nearest_route: Optional[RouteOption] = None
    alternatives: List[RouteOption] = []
    congestion: RiskLevel = RiskLevel.LOW


class HeatmapRequest(BaseModel):
    north_east: GeoPoint
    south_west: GeoPoint
    data_type: Literal["incidents", "user_activity", "combined"] = "combined"

    @model_validator(mode="after")
    def check_corners(self) -> "HeatmapRequest":
        if self.north_east.lat < self.south_west.lat or self.north_east.lon < self.south_west.lon:
            raise ValueError("north_east must lie north-east of south_west")
        return self


class HeatmapPoint(BaseModel):
    lat: float
    lon: float
    intensity: float
    type: Literal["incident", "user_activity", "sensor_alert", "risk_prediction"]
    timestamp: datetime
