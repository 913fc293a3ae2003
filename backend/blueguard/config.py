"""
Configuration for the BlueGuard telemetry service
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Storage
    DATABASE_URL: str = "sqlite:///./data/alerts.db"

    # Telemetry stream
    AUTO_STREAM_ENABLED: bool = True
    SUBSCRIBER_QUEUE_SIZE: int = 100

    # Alert sink
    ALERT_QUEUE_SIZE: int = 1000
    ALERT_DEDUP_WINDOW_SEC: int = 600  # 10 minutes

    # Spatial analytics
    RISK_ZONE_CATALOG_PATH: Optional[str] = None
    DEFAULT_CLUSTER_COUNT: int = 5
    DEFAULT_PROXIMITY_RADIUS_KM: float = 10.0
    HEATMAP_SAMPLES: int = 100

    # Service
    SERVICE_NAME: str = "blueguard-telemetry"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
