"""Best-effort alert sink with time-window deduplication."""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from .models import AlertRecord
from .schemas import AlertEvent

logger = logging.getLogger(__name__)

TIME_WINDOW_SEC = 600  # 10 minutes


def _naive_utc(timestamp: datetime) -> datetime:
    """SQLite stores naive datetimes; keep everything in naive UTC."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    return timestamp


def compute_time_bucket(timestamp: datetime, window_sec: int = TIME_WINDOW_SEC) -> str:
    """Compute time bucket for deduplication."""
    epoch = datetime(2020, 1, 1)
    seconds_since_epoch = (_naive_utc(timestamp) - epoch).total_seconds()
    return str(int(seconds_since_epoch // window_sec))


def compute_dedup_group_id(device_id: str, field: str, severity: str, time_bucket: str) -> str:
    return f"{device_id}:{field}:{severity}:{time_bucket}"


def find_existing_alert(
    db: Session,
    event: AlertEvent,
    window_sec: int = TIME_WINDOW_SEC,
) -> Optional[AlertRecord]:
    """
    Find a stored alert for the same device, field and severity seen within the window.
    """
    time_threshold = _naive_utc(event.timestamp) - timedelta(seconds=window_sec)

    return (
        db.query(AlertRecord)
        .filter(
            AlertRecord.device_id == event.device_id,
            AlertRecord.field == event.field,
            AlertRecord.severity == event.severity.value,
            AlertRecord.last_seen_at >= time_threshold,
        )
        .order_by(AlertRecord.last_seen_at.desc())
        .first()
    )


def record_alert(db: Session, event: AlertEvent, window_sec: int = TIME_WINDOW_SEC) -> Tuple[AlertRecord, str]:
    """
    Store an alert event, folding it into a recent matching record when there is one.

    Returns:
        Tuple of (record, kind) where kind is "new" or "update"
    """
    timestamp = _naive_utc(event.timestamp)
    existing = find_existing_alert(db, event, window_sec)

    if existing:
        existing.last_seen_at = max(existing.last_seen_at, timestamp)
        existing.last_value = event.value
        existing.message = event.message
        existing.occurrence_count += 1
        if abs(event.value) > abs(existing.peak_value):
            existing.peak_value = event.value
        db.commit()
        db.refresh(existing)
        return existing, "update"

    severity = event.severity.value
    record = AlertRecord(
        id=str(uuid.uuid4()),
        device_id=event.device_id,
        device_type=event.rule.device_type.value,
        field=event.field,
        severity=severity,
        condition=event.rule.condition.value,
        message=event.message,
        first_seen_at=timestamp,
        last_seen_at=timestamp,
        last_value=event.value,
        peak_value=event.value,
        occurrence_count=1,
        dedup_group_id=compute_dedup_group_id(
            event.device_id, event.field, severity, compute_time_bucket(timestamp, window_sec)
        ),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record, "new"


def list_recent_alerts(db: Session, hours: int = 24) -> List[AlertRecord]:
    threshold = _naive_utc(datetime.now(timezone.utc)) - timedelta(hours=hours)
    return (
        db.query(AlertRecord)
        .filter(AlertRecord.last_seen_at >= threshold)
        .order_by(AlertRecord.last_seen_at.desc())
        .all()
    )


class AlertSink:
    """Queue between the telemetry stream and alert storage.

    ``offer`` never blocks the publisher; a full queue drops the event.
    Storage runs in a worker thread so the event loop keeps ticking.
    """

    def __init__(self, session_factory: sessionmaker, maxsize: int = 1000, window_sec: int = TIME_WINDOW_SEC):
        self.session_factory = session_factory
        self.window_sec = window_sec
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.stored = 0
        self.dropped = 0
        self._task: Optional[asyncio.Task] = None

    def offer(self, events: Iterable[AlertEvent]) -> None:
        for event in events:
            try:
                self.queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.warning(f"Alert sink full, dropping {event.severity.value} alert from {event.device_id}")

    def store(self, event: AlertEvent) -> Tuple[AlertRecord, str]:
        db = self.session_factory()
        try:
            return record_alert(db, event, self.window_sec)
        finally:
            db.close()

    async def run(self) -> None:
        """Drain the queue until cancelled."""
        loop = asyncio.get_running_loop()
        while True:
            event = await self.queue.get()
            try:
                record, kind = await loop.run_in_executor(None, self.store, event)
                self.stored += 1
                logger.debug(f"Stored {kind} alert {record.id[:8]} for {event.device_id}")
            except Exception:
                logger.exception(f"Failed to store alert from {event.device_id}")
            finally:
                self.queue.task_done()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
