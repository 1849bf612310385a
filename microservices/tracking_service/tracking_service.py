"""
Tracking Service - Business Logic

Token resolution, position-fix ingestion and the queries the dashboards
and driver page use.
"""

import asyncio
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set

from core.config import FreightConfig

from .models import FixRecordRequest, PositionFix, SharingStatus, TrackedShipment
from .protocols import (
    InvalidTokenError,
    PositionRepositoryProtocol,
    TrackingValidationError,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TrackingService:
    """
    Server side of the tracking link.

    Fixes are append-only; "latest" is always decided by captured_at.
    """

    def __init__(
        self,
        repository: Optional[PositionRepositoryProtocol] = None,
        event_bus=None,
        freight_config: Optional[FreightConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.config = freight_config or FreightConfig()
        self.clock = clock or _utcnow
        self._side_effects: Set[asyncio.Task] = set()

    def _spawn(self, coro, label: str) -> None:
        task = asyncio.create_task(coro)
        self._side_effects.add(task)

        def _done(t: asyncio.Task):
            self._side_effects.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"Side effect '{label}' failed: {t.exception()}")

        task.add_done_callback(_done)

    async def drain_side_effects(self) -> None:
        while self._side_effects:
            await asyncio.gather(*list(self._side_effects), return_exceptions=True)

    async def resolve_token(self, token: str) -> TrackedShipment:
        """
        Raises:
            InvalidTokenError: unknown token, or shipment delivered/cancelled/deleted
        """
        if not token or not token.strip():
            raise InvalidTokenError("Token de rastreamento inválido")

        shipment = await self.repository.resolve_token(token.strip())
        if shipment is None:
            raise InvalidTokenError("Token de rastreamento inválido")
        return shipment

    async def record_fix(self, token: str, request: FixRecordRequest) -> PositionFix:
        """Validate and append a fix for the shipment behind the token"""
        shipment = await self.resolve_token(token)

        if not (math.isfinite(request.latitude) and math.isfinite(request.longitude)):
            raise TrackingValidationError("Coordinates must be finite")
        if not (-90 <= request.latitude <= 90 and -180 <= request.longitude <= 180):
            raise TrackingValidationError("Coordinates out of range")
        if request.accuracy_m is None or not math.isfinite(request.accuracy_m) or request.accuracy_m <= 0:
            raise TrackingValidationError("Accuracy must be a positive number of meters")

        now = self.clock()
        captured_at = _as_utc(request.captured_at) or now
        if captured_at > now:
            # Device clock ahead of the server
            logger.debug(f"Clamping future captured_at {captured_at.isoformat()} for shipment {shipment.shipment_id}")
            captured_at = now

        fix = PositionFix(
            fix_id=str(uuid.uuid4()),
            shipment_id=shipment.shipment_id,
            latitude=request.latitude,
            longitude=request.longitude,
            speed=request.speed,
            accuracy_m=request.accuracy_m,
            captured_at=captured_at,
            source=request.source,
            received_at=now,
        )
        stored = await self.repository.insert_fix(fix)
        logger.info(f"Recorded fix for shipment {shipment.shipment_id} ({fix.latitude:.5f}, {fix.longitude:.5f})")

        if self.event_bus:
            from .events.publishers import publish_fix_recorded
            self._spawn(publish_fix_recorded(self.event_bus, stored), "tracking.fix.recorded")

        return stored

    async def get_latest_fix(self, shipment_id: str) -> Optional[PositionFix]:
        return await self.repository.get_latest_fix(shipment_id)

    async def get_fix_history(
        self,
        shipment_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[PositionFix]:
        start, end = _as_utc(start), _as_utc(end)
        if start and end and end < start:
            raise TrackingValidationError("End of the window must not precede its start")
        return await self.repository.get_fix_history(shipment_id, start=start, end=end, limit=limit)

    async def get_sharing_status(self, shipment_id: str) -> SharingStatus:
        """A driver is actively sharing while the last fix is younger than the sharing window"""
        latest = await self.repository.get_latest_fix(shipment_id)
        if latest is None:
            return SharingStatus(shipment_id=shipment_id, active=False)

        captured_at = latest.captured_at
        if captured_at.tzinfo is None:
            captured_at = captured_at.replace(tzinfo=timezone.utc)

        age = self.clock() - captured_at
        window = timedelta(minutes=self.config.sharing_window_minutes)
        return SharingStatus(
            shipment_id=shipment_id,
            active=age < window,
            last_fix_at=captured_at,
            minutes_since_last_fix=round(age.total_seconds() / 60, 1),
        )
