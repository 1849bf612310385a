"""
Shipment Service - Main Application

Shipment lifecycle, ETA progress, dashboards and tracking links
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Body, FastAPI, HTTPException, Path, Query

from core.config_manager import ConfigManager
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .aggregation import DashboardRefresher
from .factory import create_address_lookup, create_shipment_service
from .models import (
    Address,
    CancelRequest,
    DashboardMetrics,
    DashboardSnapshot,
    DeadlineStatus,
    HealthResponse,
    ScheduleUpdateRequest,
    Shipment,
    ShipmentCreateRequest,
    ShipmentCreateResult,
    ShipmentFilters,
    ShipmentProgress,
    ShipmentStatus,
    ShipmentView,
    StatusHistoryEntry,
    TrackingLink,
    TrackingLinkRequest,
)
from .protocols import (
    AlreadyTerminalError,
    ShipmentCreationTimeoutError,
    ShipmentNotFoundError,
    ShipmentValidationError,
)

SERVICE_NAME = "shipment_service"
SERVICE_VERSION = "1.0.0"

# Initialize config
config_manager = ConfigManager(SERVICE_NAME)
config = config_manager.get_service_config()

# Setup logger
logger = setup_service_logger(SERVICE_NAME)


class ShipmentMicroservice:
    def __init__(self):
        self.service = None
        self.event_bus = None
        self.geocoder = None
        self.address_lookup = None
        self.event_handlers = None
        self.dashboard = None

    def _store_snapshot(self, snapshot: DashboardSnapshot) -> None:
        logger.debug(f"Dashboard refreshed: {snapshot.metrics.total_shipments} shipments")

    async def initialize(self):
        settings = config_manager.settings

        # Initialize event bus
        if settings.infrastructure.nats_enabled:
            try:
                self.event_bus = await get_event_bus(SERVICE_NAME, config=config_manager)
                logger.info("Event bus initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize event bus: {e}. Continuing without event publishing.")
                self.event_bus = None

        # Create service with real dependencies using factory
        self.service = create_shipment_service(config=config_manager, event_bus=self.event_bus)
        self.geocoder = self.service.geocoder
        self.address_lookup = create_address_lookup(config=config_manager)

        # Dispatcher dashboard (all shipments), refreshed by timer and by pushes
        self.dashboard = DashboardRefresher(
            self.service.aggregator,
            self._store_snapshot,
            interval_seconds=settings.freight.dashboard_refresh_seconds,
        )
        self.dashboard.start()

        if self.event_bus:
            try:
                from .events import ShipmentEventHandlers

                self.event_handlers = ShipmentEventHandlers()
                self.event_handlers.register(self.dashboard)
                for pattern, handler in self.event_handlers.get_event_handler_map().items():
                    await self.event_bus.subscribe_to_events(pattern=pattern, handler=handler)
                    logger.info(f"Subscribed to {pattern} events")
            except Exception as e:
                logger.error(f"Failed to subscribe to events: {e}", exc_info=True)

        logger.info("Shipment service initialized")

    async def shutdown(self):
        if self.dashboard:
            await self.dashboard.stop()
        if self.service:
            await self.service.drain_side_effects()
        if self.address_lookup:
            await self.address_lookup.close()
        if self.geocoder:
            await self.geocoder.close()
        if self.event_bus:
            try:
                await self.event_bus.close()
                logger.info("Shipment event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")
        logger.info("Shipment service shutting down")


# Global instance
microservice = ShipmentMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    await microservice.initialize()
    yield
    await microservice.shutdown()


app = FastAPI(
    title="Shipment Service",
    description="Freight shipments: lifecycle, ETA progress, dashboards and tracking links",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


def _raise_http(e: Exception, action: str):
    """Map service errors to HTTP responses"""
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, ShipmentValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ShipmentNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AlreadyTerminalError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ShipmentCreationTimeoutError):
        raise HTTPException(status_code=504, detail=str(e))
    logger.error(f"Error {action}: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail="Internal server error")


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", service=SERVICE_NAME, version=SERVICE_VERSION)


# =============================================================================
# Shipments
# =============================================================================


@app.post("/api/v1/shipments", response_model=ShipmentCreateResult, status_code=201)
async def create_shipment(request: ShipmentCreateRequest = Body(...)):
    """Register a shipment; returns share targets when a driver phone was given"""
    try:
        return await microservice.service.create_shipment(request)
    except Exception as e:
        _raise_http(e, "creating shipment")


@app.get("/api/v1/shipments", response_model=List[ShipmentView])
async def list_shipments(
    shipper_id: Optional[str] = Query(None, description="Restrict to one shipper"),
    status: Optional[List[ShipmentStatus]] = Query(None),
    status_prazo: Optional[List[DeadlineStatus]] = Query(None, description="Recomputed deadline status"),
    invoice_number: Optional[str] = Query(None),
    origin_state: Optional[str] = Query(None, max_length=2),
    destination_state: Optional[str] = Query(None, max_length=2),
    driver_name: Optional[str] = Query(None),
    vehicle_plate: Optional[str] = Query(None),
    departure_from: Optional[datetime] = Query(None),
    departure_to: Optional[datetime] = Query(None),
    arrival_from: Optional[datetime] = Query(None),
    arrival_to: Optional[datetime] = Query(None),
):
    """Filtered listing with latest fix and recomputed progress, newest first"""
    try:
        filters = ShipmentFilters(
            status=status,
            deadline_status=status_prazo,
            invoice_number=invoice_number,
            origin_state=origin_state,
            destination_state=destination_state,
            driver_name=driver_name,
            vehicle_plate=vehicle_plate,
            departure_from=departure_from,
            departure_to=departure_to,
            arrival_from=arrival_from,
            arrival_to=arrival_to,
        )
        return await microservice.service.aggregator.list_shipments(filters, shipper_id=shipper_id)
    except Exception as e:
        _raise_http(e, "listing shipments")


@app.get("/api/v1/shipments/metrics", response_model=DashboardMetrics)
async def get_metrics(shipper_id: Optional[str] = Query(None)):
    try:
        return await microservice.service.aggregator.compute_metrics(shipper_id=shipper_id)
    except Exception as e:
        _raise_http(e, "computing metrics")


@app.get("/api/v1/shipments/dashboard", response_model=DashboardSnapshot)
async def get_dashboard():
    """Latest dispatcher dashboard snapshot (refreshed on demand when empty)"""
    try:
        dashboard = microservice.dashboard
        if dashboard is None:
            raise HTTPException(status_code=503, detail="Dashboard not running")
        return dashboard.last_snapshot or await dashboard.refresh()
    except Exception as e:
        _raise_http(e, "loading dashboard")


@app.get("/api/v1/shipments/{shipment_id}", response_model=Shipment)
async def get_shipment(shipment_id: str = Path(...)):
    try:
        return await microservice.service.get_shipment(shipment_id)
    except Exception as e:
        _raise_http(e, "getting shipment")


@app.get("/api/v1/shipments/{shipment_id}/progress", response_model=ShipmentProgress)
async def get_progress(shipment_id: str = Path(...)):
    try:
        return await microservice.service.get_progress(shipment_id)
    except Exception as e:
        _raise_http(e, "computing progress")


@app.get("/api/v1/shipments/{shipment_id}/history", response_model=List[StatusHistoryEntry])
async def get_history(shipment_id: str = Path(...)):
    try:
        return await microservice.service.get_history(shipment_id)
    except Exception as e:
        _raise_http(e, "getting history")


@app.put("/api/v1/shipments/{shipment_id}/schedule", response_model=Shipment)
async def update_schedule(shipment_id: str = Path(...), request: ScheduleUpdateRequest = Body(...)):
    try:
        return await microservice.service.update_schedule(
            shipment_id, request.departure_at, request.promised_arrival_at
        )
    except Exception as e:
        _raise_http(e, "updating schedule")


@app.post("/api/v1/shipments/{shipment_id}/deliver", response_model=Shipment)
async def deliver_shipment(shipment_id: str = Path(...)):
    try:
        return await microservice.service.mark_delivered(shipment_id)
    except Exception as e:
        _raise_http(e, "marking shipment delivered")


@app.post("/api/v1/shipments/{shipment_id}/cancel", response_model=Shipment)
async def cancel_shipment(shipment_id: str = Path(...), request: CancelRequest = Body(...)):
    try:
        return await microservice.service.cancel_shipment(shipment_id, request.reason)
    except Exception as e:
        _raise_http(e, "cancelling shipment")


@app.delete("/api/v1/shipments/{shipment_id}", status_code=204)
async def delete_shipment(shipment_id: str = Path(...)):
    try:
        await microservice.service.soft_delete_shipment(shipment_id)
    except Exception as e:
        _raise_http(e, "deleting shipment")


@app.post("/api/v1/shipments/{shipment_id}/tracking-link", response_model=TrackingLink, status_code=201)
async def issue_tracking_link(shipment_id: str = Path(...), request: TrackingLinkRequest = Body(...)):
    try:
        return await microservice.service.issue_tracking_link(
            shipment_id, request.driver_phone, sms_phone=request.sms_phone
        )
    except Exception as e:
        _raise_http(e, "issuing tracking link")


# =============================================================================
# Address lookup
# =============================================================================


@app.get("/api/v1/addresses/{postal_code}", response_model=Address)
async def lookup_address(postal_code: str = Path(...)):
    address = await microservice.address_lookup.lookup(postal_code)
    if address is None:
        raise HTTPException(status_code=404, detail="CEP não encontrado")
    return address


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "microservices.shipment_service.main:app",
        host=config.service_host,
        port=config.service_port,
        reload=config.debug,
    )
