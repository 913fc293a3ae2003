"""SQLAlchemy models for the alert sink."""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AlertRecord(Base):
    """Stored alert, deduplicated per device/field/severity within a time window."""

    __tablename__ = "alerts"

    id = Column(String, primary_key=True)
    device_id = Column(String, nullable=False)
    device_type = Column(String, nullable=False)
    field = Column(String, nullable=False)
    severity = Column(String, nullable=False)  # low, medium, high, critical
    condition = Column(String, nullable=False)
    message = Column(String, nullable=False)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False)
    last_value = Column(Float, nullable=False)
    peak_value = Column(Float, nullable=False)
    occurrence_count = Column(Integer, nullable=False, default=1)
    dedup_group_id = Column(String, nullable=False, index=True)

    __table_args__ = (
        Index("ix_alerts_device_field_severity", "device_id", "field", "severity"),
        Index("ix_alerts_last_seen_at", "last_seen_at"),
    )

    def to_dict(self) -> dict:
        """Convert alert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "device_id": self.device_id,
            "device_type": self.device_type,
            "field": self.field,
            "severity": self.severity,
            "condition": self.condition,
            "message": self.message,
            "first_seen_at": self.first_seen_at.isoformat() if self.first_seen_at else None,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
            "last_value": self.last_value,
            "peak_value": self.peak_value,
            "occurrence_count": self.occurrence_count,
            "dedup_group_id": self.dedup_group_id,
        }
