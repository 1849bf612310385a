"""
Driver-side tracking loop

Runs in the driver's client process after the tracking link is opened:
captures one fix immediately, then one per interval, and forwards each to
the tracking API.

    async with DriverTracker(api, geolocation) as tracker:
        session = await tracker.start_tracking(token)
        ...
        await tracker.stop_tracking(session.shipment_id)

Per-tick failures (timeouts, permission revoked mid-session, API errors)
are logged and counted; the loop keeps its schedule. A tick that fires
while the previous capture is still running is skipped, never queued.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .models import (
    FixRecordRequest,
    FixSource,
    GeolocationOptions,
    GeolocationReading,
    PermissionState,
    SessionStats,
    TrackedShipment,
)
from .protocols import (
    GeolocationError,
    GeolocationProviderProtocol,
    GeolocationTimeoutError,
    GeolocationUnsupportedError,
    InvalidTokenError,
    LocationPermissionDeniedError,
    TrackingApiProtocol,
)

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 300.0


class TrackingSession:
    """Capture loop for one shipment"""

    def __init__(
        self,
        shipment: TrackedShipment,
        token: str,
        api: TrackingApiProtocol,
        geolocation: GeolocationProviderProtocol,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        options: Optional[GeolocationOptions] = None,
        clock: Optional[Callable[[], datetime]] = None,
        on_expired: Optional[Callable[["TrackingSession"], None]] = None,
    ):
        self.shipment = shipment
        self.shipment_id = shipment.shipment_id
        self.token = token
        self.api = api
        self.geolocation = geolocation
        self.interval_seconds = interval_seconds
        self.options = options or GeolocationOptions()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.on_expired = on_expired

        self.stats = SessionStats()
        self.expired = False

        self._loop_task: Optional[asyncio.Task] = None
        self._capture_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        """Start capturing (first capture right away)"""
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run())
        logger.info(f"Tracking started for shipment {self.shipment_id} every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Cancel the loop and any in-flight capture; safe to call twice"""
        tasks = [t for t in (self._loop_task, self._capture_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Tracking stopped for shipment {self.shipment_id}")
        self._loop_task = None
        self._capture_task = None

    async def wait_for_capture(self) -> None:
        """Wait until the in-flight capture (if any) finishes"""
        if self._capture_task is not None:
            await asyncio.gather(self._capture_task, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            self._tick()
            await asyncio.sleep(self.interval_seconds)

    def _tick(self) -> None:
        if self._capture_task is not None and not self._capture_task.done():
            self.stats.ticks_skipped += 1
            logger.debug(f"Capture still running for shipment {self.shipment_id}, skipping tick")
            return
        self._capture_task = asyncio.create_task(self._capture())

    async def _acquire(self) -> GeolocationReading:
        timeout = self.options.timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                self.geolocation.get_current_position(self.options), timeout=timeout
            )
        except asyncio.TimeoutError:
            raise GeolocationTimeoutError(f"No position within {self.options.timeout_ms} ms")

    async def _capture(self) -> None:
        try:
            reading = await self._acquire()
            fix = await self.api.submit_fix(
                self.token,
                FixRecordRequest(
                    latitude=reading.latitude,
                    longitude=reading.longitude,
                    speed=reading.speed,
                    accuracy_m=reading.accuracy,
                    captured_at=self.clock(),
                    source=FixSource.BROWSER_GEOLOCATION.value,
                ),
            )
        except InvalidTokenError:
            # Shipment delivered, cancelled or deleted: the link is dead
            self.stats.captures_failed += 1
            self.expired = True
            logger.warning(f"Tracking link for shipment {self.shipment_id} expired, stopping")
            if self._loop_task is not None:
                self._loop_task.cancel()
            if self.on_expired is not None:
                self.on_expired(self)
            return
        except GeolocationError as e:
            self.stats.captures_failed += 1
            logger.warning(f"Location capture failed for shipment {self.shipment_id}: {e}")
            return
        except Exception as e:
            self.stats.captures_failed += 1
            logger.error(f"Failed to send fix for shipment {self.shipment_id}: {e}")
            return

        self.stats.captures_ok += 1
        self.stats.last_fix_at = fix.captured_at
        logger.debug(f"Fix sent for shipment {self.shipment_id}")


class DriverTracker:
    """
    Owns the tracking sessions of one driver device.

    At most one session per shipment. A session whose link expires is
    dropped; leaving the context stops the rest.
    """

    def __init__(
        self,
        api: TrackingApiProtocol,
        geolocation: GeolocationProviderProtocol,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        options: Optional[GeolocationOptions] = None,
    ):
        self.api = api
        self.geolocation = geolocation
        self.interval_seconds = interval_seconds
        self.options = options or GeolocationOptions()
        self._sessions: Dict[str, TrackingSession] = {}

    async def __aenter__(self) -> "DriverTracker":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop_all()

    @property
    def sessions(self) -> Dict[str, TrackingSession]:
        return dict(self._sessions)

    def get_session(self, shipment_id: str) -> Optional[TrackingSession]:
        return self._sessions.get(shipment_id)

    async def start_tracking(self, token: str) -> TrackingSession:
        """
        Start sharing location for the shipment behind a tracking link.

        Raises:
            GeolocationUnsupportedError: device cannot provide a position
            InvalidTokenError: link unknown or expired
            LocationPermissionDeniedError: location access denied
        """
        if not self.geolocation.is_supported():
            raise GeolocationUnsupportedError("Geolocalização não suportada neste dispositivo")

        shipment = await self.api.resolve(token)

        permission = await self.geolocation.permission_state()
        if permission == PermissionState.DENIED:
            raise LocationPermissionDeniedError(
                "Permissão de localização negada. Habilite o acesso à localização para continuar."
            )

        previous = self._sessions.pop(shipment.shipment_id, None)
        if previous is not None:
            await previous.stop()

        session = TrackingSession(
            shipment=shipment,
            token=token,
            api=self.api,
            geolocation=self.geolocation,
            interval_seconds=self.interval_seconds,
            options=self.options,
            on_expired=self._forget,
        )
        self._sessions[shipment.shipment_id] = session
        await session.start()
        return session

    def _forget(self, session: TrackingSession) -> None:
        if self._sessions.get(session.shipment_id) is session:
            del self._sessions[session.shipment_id]

    async def stop_tracking(self, shipment_id: str) -> bool:
        session = self._sessions.pop(shipment_id, None)
        if session is None:
            return False
        await session.stop()
        return True

    async def stop_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.stop()
