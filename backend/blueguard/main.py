"""FastAPI backend for the BlueGuard telemetry and spatial risk analytics core."""

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from . import __version__
from .alerts import AlertSink, list_recent_alerts
from .analytics import GeoAnalytics
from .catalog import load_catalog
from .config import Settings, settings
from .db import init_db, make_engine, make_session_factory
from .errors import (
    ConfigurationError,
    DuplicateDeviceError,
    InvalidIntervalError,
    ReadingTypeMismatchError,
    StaleReadingError,
    SubscriberDeliveryFailure,
    UnknownDeviceError,
)
from .realtime import BroadcastHub
from .registry import DeviceRegistry, default_devices
from .schemas import (
    AlertRule,
    ClusterRequest,
    DeviceConfig,
    DevicePatch,
    DeviceStatus,
    Envelope,
    EvacuationReport,
    HeatmapPoint,
    HeatmapRequest,
    LocationCluster,
    NetworkTopology,
    ProximityReport,
    Reading,
    RiskZone,
    ServiceRecordInput,
)
from .stream import TelemetryStream
from .synthesizer import ReadingSynthesizer
from .thresholds import ThresholdEngine

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class AlertResponse(BaseModel):
    """Stored alert."""
    id: str
    device_id: str
    device_type: str
    field: str
    severity: str
    condition: str
    message: str
    first_seen_at: str
    last_seen_at: str
    last_value: float
    peak_value: float
    occurrence_count: int
    dedup_group_id: str


def _ensure_sqlite_dir(url: str) -> None:
    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        directory = os.path.dirname(url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)


# Dependencies
def get_stream(request: Request) -> TelemetryStream:
    return request.app.state.stream


def get_analytics(request: Request) -> GeoAnalytics:
    return request.app.state.analytics


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


async def handle_client_message(stream: TelemetryStream, message: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a command sent by a WebSocket client and build the reply."""
    message_type = message.get("type")
    try:
        if message_type == "sensor_config_update":
            patch = DevicePatch.model_validate(message.get("config") or {})
            config = await stream.reconfigure(message.get("sensorId", ""), patch)
            return {"kind": "ack", "type": message_type, "config": config.model_dump(mode="json")}
        if message_type == "manual_reading":
            envelope = stream.ingest(Reading.model_validate(message.get("reading") or {}))
            return {"kind": "ack", "type": message_type, "alerts": len(envelope.alerts)}
        if message_type == "maintenance_update":
            serviced_at = message.get("date")
            if serviced_at is not None:
                serviced_at = ServiceRecordInput.model_validate({"serviced_at": serviced_at}).serviced_at
            config = await stream.record_service(message.get("sensorId", ""), serviced_at)
            return {"kind": "ack", "type": message_type, "config": config.model_dump(mode="json")}
    except (ConfigurationError, ValidationError) as e:
        return {"kind": "error", "type": message_type, "detail": str(e)}
    return {"kind": "error", "type": message_type, "detail": f"Unknown message type: {message_type}"}


def create_app(config: Optional[Settings] = None, devices: Optional[List[DeviceConfig]] = None) -> FastAPI:
    """Compose the telemetry core and its HTTP surface."""
    config = config or settings

    _ensure_sqlite_dir(config.DATABASE_URL)
    engine = make_engine(config.DATABASE_URL)
    session_factory = make_session_factory(engine)

    hub = BroadcastHub(queue_size=config.SUBSCRIBER_QUEUE_SIZE)
    alert_sink = AlertSink(
        session_factory,
        maxsize=config.ALERT_QUEUE_SIZE,
        window_sec=config.ALERT_DEDUP_WINDOW_SEC,
    )
    stream = TelemetryStream(
        registry=DeviceRegistry(default_devices() if devices is None else devices),
        synthesizer=ReadingSynthesizer(),
        engine=ThresholdEngine(),
        hub=hub,
        alert_sink=alert_sink,
    )
    analytics = GeoAnalytics(
        load_catalog(config.RISK_ZONE_CATALOG_PATH),
        default_k=config.DEFAULT_CLUSTER_COUNT,
        default_radius_km=config.DEFAULT_PROXIMITY_RADIUS_KM,
        heatmap_samples=config.HEATMAP_SAMPLES,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown."""
        # Startup
        init_db(engine)
        alert_sink.start()
        if config.AUTO_STREAM_ENABLED:
            stream.start()

        yield

        # Shutdown
        await stream.shutdown()
        await alert_sink.stop()
        engine.dispose()

    app = FastAPI(
        title="BlueGuard Telemetry",
        description="Coastal telemetry streaming, threshold alerts and spatial risk analytics",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.stream = stream
    app.state.hub = hub
    app.state.alert_sink = alert_sink
    app.state.analytics = analytics
    app.state.session_factory = session_factory

    # Error handlers
    @app.exception_handler(UnknownDeviceError)
    async def unknown_device_handler(request, exc):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DuplicateDeviceError)
    async def duplicate_device_handler(request, exc):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InvalidIntervalError)
    async def invalid_interval_handler(request, exc):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StaleReadingError)
    async def stale_reading_handler(request, exc):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ReadingTypeMismatchError)
    async def reading_type_handler(request, exc):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.get("/")
    async def root():
        return {"service": config.SERVICE_NAME, "version": __version__, "status": "running"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "auto_stream": config.AUTO_STREAM_ENABLED,
            "scheduled_devices": len(stream.scheduled_devices()),
            "subscribers": len(hub.subscribers),
            "alerts_stored": alert_sink.stored,
            "alerts_dropped": alert_sink.dropped,
        }

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    @app.get("/devices", response_model=List[DeviceStatus])
    async def list_devices(stream: TelemetryStream = Depends(get_stream)):
        return stream.statuses()

    @app.post("/devices", response_model=DeviceConfig, status_code=201)
    async def register_device(device: DeviceConfig, stream: TelemetryStream = Depends(get_stream)):
        """Register a new device; it starts ticking right away when active."""
        return stream.register(device)

    @app.get("/devices/{device_id}", response_model=DeviceConfig)
    async def get_device(device_id: str, stream: TelemetryStream = Depends(get_stream)):
        return stream.registry.config(device_id)

    @app.patch("/devices/{device_id}", response_model=DeviceConfig)
    async def reconfigure_device(
        device_id: str,
        patch: DevicePatch,
        stream: TelemetryStream = Depends(get_stream),
    ):
        """Change interval, location, active flag or service date."""
        return await stream.reconfigure(device_id, patch)

    @app.post("/devices/{device_id}/service", response_model=DeviceConfig)
    async def record_service(
        device_id: str,
        record: ServiceRecordInput,
        stream: TelemetryStream = Depends(get_stream),
    ):
        return await stream.record_service(device_id, record.serviced_at)

    @app.get("/devices/{device_id}/history", response_model=List[Reading])
    async def device_history(
        device_id: str,
        hours: int = Query(default=24, ge=1, le=168),
        stream: TelemetryStream = Depends(get_stream),
    ):
        return stream.history(device_id, hours)

    @app.get("/network", response_model=NetworkTopology)
    async def network_topology(stream: TelemetryStream = Depends(get_stream)):
        return stream.topology()

    # ------------------------------------------------------------------
    # Readings and alerts
    # ------------------------------------------------------------------

    @app.post("/readings", response_model=Envelope)
    async def ingest_reading(reading: Reading, stream: TelemetryStream = Depends(get_stream)):
        """
        Accept a reading produced outside the scheduler.
        Evaluated and broadcast exactly like a scheduled tick.
        """
        return stream.ingest(reading)

    @app.get("/alerts", response_model=List[AlertResponse])
    async def list_alerts(
        hours: int = Query(default=24, ge=1, le=168),
        db: Session = Depends(get_db),
    ):
        return [AlertResponse(**record.to_dict()) for record in list_recent_alerts(db, hours)]

    @app.get("/alerts/rules", response_model=List[AlertRule])
    async def list_rules(stream: TelemetryStream = Depends(get_stream)):
        return list(stream.engine.rules)

    # ------------------------------------------------------------------
    # Live feeds
    # ------------------------------------------------------------------

    @app.get("/stream")
    async def stream_readings():
        """
        SSE endpoint for real-time telemetry.
        """
        subscription = hub.subscribe()

        async def event_generator():
            try:
                async for message in hub.stream(subscription):
                    yield message
            finally:
                hub.unsubscribe(subscription)

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.websocket("/ws/sensors")
    async def sensor_socket(websocket: WebSocket):
        await websocket.accept()
        subscription = hub.subscribe()

        async def forward():
            async for message in subscription.messages():
                await websocket.send_json(message)

        sender = asyncio.create_task(forward())
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Invalid sensor message from WebSocket client")
                    continue
                if not isinstance(message, dict):
                    continue
                reply = await handle_client_message(stream, message)
                try:
                    subscription.deliver(reply)
                except SubscriberDeliveryFailure:
                    break
        except WebSocketDisconnect:
            pass
        finally:
            hub.unsubscribe(subscription)
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"WebSocket sender ended with error: {e}")

    # ------------------------------------------------------------------
    # Spatial analytics
    # ------------------------------------------------------------------

    @app.get("/zones", response_model=List[RiskZone])
    async def list_zones(analytics: GeoAnalytics = Depends(get_analytics)):
        return analytics.risk_zones()

    @app.post("/analytics/clusters", response_model=List[LocationCluster])
    async def cluster_events(request: ClusterRequest, analytics: GeoAnalytics = Depends(get_analytics)):
        return analytics.cluster(request.points, request.k)

    @app.get("/analytics/proximity", response_model=ProximityReport)
    async def proximity(
        lat: float = Query(..., ge=-90, le=90),
        lon: float = Query(..., ge=-180, le=180),
        radius_km: Optional[float] = Query(default=None, gt=0),
        analytics: GeoAnalytics = Depends(get_analytics),
    ):
        return analytics.assess_proximity(lat, lon, radius_km)

    @app.get("/analytics/evacuation", response_model=EvacuationReport)
    async def evacuation(
        lat: float = Query(..., ge=-90, le=90),
        lon: float = Query(..., ge=-180, le=180),
        analytics: GeoAnalytics = Depends(get_analytics),
    ):
        return analytics.nearest_evacuation(lat, lon)

    @app.post("/analytics/heatmap", response_model=List[HeatmapPoint])
    async def heatmap(request: HeatmapRequest, analytics: GeoAnalytics = Depends(get_analytics)):
        return analytics.heatmap(request)

    return app


app = create_app()
