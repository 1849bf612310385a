"""
Component Tests: driver-side tracking loop

TrackingSession / DriverTracker against fake device geolocation and a
fake tracking API. Intervals are shortened to milliseconds.
"""
import asyncio

import pytest

from microservices.tracking_service.models import (
    GeolocationOptions,
    GeolocationReading,
    PermissionState,
)
from microservices.tracking_service.protocols import (
    GeolocationTimeoutError,
    GeolocationUnsupportedError,
    InvalidTokenError,
    LocationPermissionDeniedError,
)
from microservices.tracking_service.tracking_session import DriverTracker
from tests.component.mocks import FakeGeolocation, FakeTrackingApi
from tests.fixtures import make_tracked_shipment

pytestmark = pytest.mark.component

TOKEN = "1710504000000-abcdefghijklm"
READING = GeolocationReading(latitude=-23.2, longitude=-45.9, speed=20.0, accuracy=8.0)


@pytest.fixture
def api():
    return FakeTrackingApi({TOKEN: make_tracked_shipment()})


async def _first_capture(session):
    await asyncio.sleep(0)
    await session.wait_for_capture()


class TestStartTracking:

    @pytest.mark.asyncio
    async def test_first_capture_is_immediate(self, api):
        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=60) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await _first_capture(session)

            assert session.is_running
            assert session.stats.captures_ok == 1
            assert session.stats.last_fix_at is not None
            submitted = api.submitted[0]
            assert (submitted.latitude, submitted.longitude) == (-23.2, -45.9)
            assert submitted.accuracy_m == 8.0
            assert submitted.source == "browser_geolocation"

    @pytest.mark.asyncio
    async def test_captures_every_interval(self, api):
        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=0.02) as tracker:
            await tracker.start_tracking(TOKEN)
            await asyncio.sleep(0.11)

        assert len(api.submitted) >= 3

    @pytest.mark.asyncio
    async def test_unsupported_device(self, api):
        geolocation = FakeGeolocation(supported=False)
        async with DriverTracker(api, geolocation) as tracker:
            with pytest.raises(GeolocationUnsupportedError):
                await tracker.start_tracking("bogus-token")
            assert tracker.sessions == {}

    @pytest.mark.asyncio
    async def test_invalid_token(self, api):
        async with DriverTracker(api, FakeGeolocation()) as tracker:
            with pytest.raises(InvalidTokenError):
                await tracker.start_tracking("bogus-token")

    @pytest.mark.asyncio
    async def test_permission_denied(self, api):
        geolocation = FakeGeolocation(permission=PermissionState.DENIED)
        async with DriverTracker(api, geolocation) as tracker:
            with pytest.raises(LocationPermissionDeniedError):
                await tracker.start_tracking(TOKEN)
            assert tracker.sessions == {}
        assert geolocation.calls == 0

    @pytest.mark.asyncio
    async def test_restart_keeps_single_session(self, api):
        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=60) as tracker:
            first = await tracker.start_tracking(TOKEN)
            second = await tracker.start_tracking(TOKEN)

            assert list(tracker.sessions.values()) == [second]
            assert not first.is_running
            assert second.is_running


class TestCaptureFailures:

    @pytest.mark.asyncio
    async def test_failed_capture_keeps_schedule(self, api):
        geolocation = FakeGeolocation([GeolocationTimeoutError("no fix"), READING])
        async with DriverTracker(api, geolocation, interval_seconds=0.02) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await asyncio.sleep(0.09)

            assert session.is_running
            assert session.stats.captures_failed == 1
            assert session.stats.captures_ok >= 1

    @pytest.mark.asyncio
    async def test_slow_device_times_out(self, api):
        geolocation = FakeGeolocation([READING], delay=1.0)
        options = GeolocationOptions(timeout_ms=20)
        async with DriverTracker(api, geolocation, interval_seconds=60, options=options) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await _first_capture(session)

            assert session.stats.captures_failed == 1
            assert api.submitted == []

    @pytest.mark.asyncio
    async def test_api_error_counted(self, api):
        api.failures.append(ConnectionError("network down"))
        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=60) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await _first_capture(session)

            assert session.stats.captures_failed == 1
            assert session.is_running

    @pytest.mark.asyncio
    async def test_busy_ticks_are_skipped(self, api):
        geolocation = FakeGeolocation([READING], delay=0.2)
        async with DriverTracker(api, geolocation, interval_seconds=0.02) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await asyncio.sleep(0.1)

            assert geolocation.calls == 1
            assert session.stats.ticks_skipped >= 2

    @pytest.mark.asyncio
    async def test_expired_link_stops_session(self, api):
        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=0.02) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await _first_capture(session)

            api.expire(TOKEN)
            await asyncio.sleep(0.08)

            assert session.expired is True
            assert not session.is_running
            assert session.stats.captures_ok == 1
            assert tracker.get_session(session.shipment_id) is None
            assert tracker.sessions == {}

    @pytest.mark.asyncio
    async def test_expired_session_can_be_restarted(self, api):
        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=0.02) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await _first_capture(session)
            api.expire(TOKEN)
            await asyncio.sleep(0.08)

            api.shipments[TOKEN] = make_tracked_shipment(shipment_id=session.shipment_id)
            restarted = await tracker.start_tracking(TOKEN)
            await _first_capture(restarted)

            assert tracker.get_session(session.shipment_id) is restarted
            assert restarted.is_running


class TestStopTracking:

    @pytest.mark.asyncio
    async def test_no_capture_after_stop(self, api):
        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=0.02) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await asyncio.sleep(0.05)

            assert await tracker.stop_tracking(session.shipment_id) is True
            count = len(api.submitted)
            await asyncio.sleep(0.06)

            assert len(api.submitted) == count
            assert not session.is_running
            assert tracker.get_session(session.shipment_id) is None

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_capture(self, api):
        geolocation = FakeGeolocation([READING], delay=0.5)
        async with DriverTracker(api, geolocation, interval_seconds=60) as tracker:
            session = await tracker.start_tracking(TOKEN)
            await asyncio.sleep(0.01)
            await session.stop()
            await session.stop()

        assert api.submitted == []
        assert session.stats.captures_ok == 0

    @pytest.mark.asyncio
    async def test_stop_unknown_shipment(self, api):
        async with DriverTracker(api, FakeGeolocation()) as tracker:
            assert await tracker.stop_tracking("missing") is False

    @pytest.mark.asyncio
    async def test_leaving_context_stops_everything(self, api):
        other_token = "1710504000001-nopqrstuvwxyz"
        api.shipments[other_token] = make_tracked_shipment()

        async with DriverTracker(api, FakeGeolocation([READING]), interval_seconds=60) as tracker:
            sessions = [await tracker.start_tracking(TOKEN), await tracker.start_tracking(other_token)]
            assert len(tracker.sessions) == 2

        assert all(not s.is_running for s in sessions)
        assert tracker.sessions == {}
