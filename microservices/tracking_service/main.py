"""
Tracking Service - Main Application

Tracking-link resolution and GPS fix ingestion
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Body, FastAPI, HTTPException, Path, Query

from core.config_manager import ConfigManager
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .factory import create_tracking_service
from .models import (
    FixRecordRequest,
    HealthResponse,
    PositionFix,
    SharingStatus,
    TrackedShipment,
)
from .protocols import InvalidTokenError, TrackingValidationError

SERVICE_NAME = "tracking_service"
SERVICE_VERSION = "1.0.0"

# Initialize config
config_manager = ConfigManager(SERVICE_NAME)
config = config_manager.get_service_config()

# Setup logger
logger = setup_service_logger(SERVICE_NAME)


class TrackingMicroservice:
    def __init__(self):
        self.service = None
        self.event_bus = None

    async def initialize(self):
        if config_manager.settings.infrastructure.nats_enabled:
            try:
                self.event_bus = await get_event_bus(SERVICE_NAME, config=config_manager)
                logger.info("Event bus initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize event bus: {e}. Continuing without event publishing.")
                self.event_bus = None

        self.service = create_tracking_service(config=config_manager, event_bus=self.event_bus)
        logger.info("Tracking service initialized")

    async def shutdown(self):
        if self.service:
            await self.service.drain_side_effects()
        if self.event_bus:
            try:
                await self.event_bus.close()
                logger.info("Tracking event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")
        logger.info("Tracking service shutting down")


# Global instance
microservice = TrackingMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    await microservice.initialize()
    yield
    await microservice.shutdown()


app = FastAPI(
    title="Tracking Service",
    description="Freight tracking links and driver GPS fixes",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", service=SERVICE_NAME, version=SERVICE_VERSION)


# =============================================================================
# Driver endpoints (tracking link)
# =============================================================================


@app.get("/api/v1/tracking/{token}", response_model=TrackedShipment)
async def resolve_token(token: str = Path(...)):
    try:
        return await microservice.service.resolve_token(token)
    except InvalidTokenError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error resolving token: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/api/v1/tracking/{token}/fixes", response_model=PositionFix, status_code=201)
async def record_fix(token: str = Path(...), request: FixRecordRequest = Body(...)):
    try:
        return await microservice.service.record_fix(token, request)
    except InvalidTokenError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TrackingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error recording fix: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


# =============================================================================
# Dashboard endpoints
# =============================================================================


@app.get("/api/v1/tracking/shipments/{shipment_id}/latest", response_model=Optional[PositionFix])
async def get_latest_fix(shipment_id: str = Path(...)):
    try:
        return await microservice.service.get_latest_fix(shipment_id)
    except Exception as e:
        logger.error(f"Error getting latest fix: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/api/v1/tracking/shipments/{shipment_id}/history", response_model=List[PositionFix])
async def get_fix_history(
    shipment_id: str = Path(...),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(500, ge=1, le=5000),
):
    try:
        return await microservice.service.get_fix_history(shipment_id, start=start, end=end, limit=limit)
    except TrackingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting fix history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/api/v1/tracking/shipments/{shipment_id}/sharing", response_model=SharingStatus)
async def get_sharing_status(shipment_id: str = Path(...)):
    try:
        return await microservice.service.get_sharing_status(shipment_id)
    except Exception as e:
        logger.error(f"Error getting sharing status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "microservices.tracking_service.main:app",
        host=config.service_host,
        port=config.service_port,
        reload=config.debug,
    )
