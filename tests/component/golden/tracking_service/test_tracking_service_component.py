"""
Component Tests: Tracking Service

Token resolution, fix ingestion and sharing status with mocked
repository and event bus.
"""
import math
from datetime import datetime, timedelta, timezone

import pytest

from microservices.tracking_service.models import FixRecordRequest, FixSource
from microservices.tracking_service.protocols import InvalidTokenError, TrackingValidationError
from microservices.tracking_service.tracking_service import TrackingService
from tests.fixtures import FIXED_NOW, make_tracked_shipment

pytestmark = pytest.mark.component

TOKEN = "1710504000000-abcdefghijklm"


@pytest.fixture
def shipment(mock_position_repo):
    return mock_position_repo.set_token(TOKEN, make_tracked_shipment())


@pytest.fixture
def service(mock_position_repo, mock_event_bus, freight_config, clock):
    return TrackingService(
        repository=mock_position_repo,
        event_bus=mock_event_bus,
        freight_config=freight_config,
        clock=clock,
    )


def _request(**overrides):
    data = {"latitude": -23.1, "longitude": -45.2, "accuracy_m": 12.0, "speed": 22.5}
    data.update(overrides)
    return FixRecordRequest(**data)


class TestTokenResolution:

    @pytest.mark.asyncio
    async def test_resolve(self, service, shipment):
        resolved = await service.resolve_token(TOKEN)
        assert resolved.shipment_id == shipment.shipment_id

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_ignored(self, service, shipment):
        resolved = await service.resolve_token(f"  {TOKEN} ")
        assert resolved.shipment_id == shipment.shipment_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "   ", "unknown-token"])
    async def test_invalid_tokens(self, service, shipment, token):
        with pytest.raises(InvalidTokenError):
            await service.resolve_token(token)

    @pytest.mark.asyncio
    async def test_expired_token(self, service, shipment, mock_position_repo):
        mock_position_repo.expire_token(TOKEN)
        with pytest.raises(InvalidTokenError):
            await service.resolve_token(TOKEN)


class TestRecordFix:

    @pytest.mark.asyncio
    async def test_record_fix(self, service, shipment, mock_position_repo, mock_event_bus):
        fix = await service.record_fix(TOKEN, _request())
        await service.drain_side_effects()

        assert fix.shipment_id == shipment.shipment_id
        assert fix.captured_at == FIXED_NOW
        assert fix.received_at == FIXED_NOW
        assert fix.source == FixSource.BROWSER_GEOLOCATION.value
        assert mock_position_repo.fixes == [fix]
        mock_event_bus.assert_event_published("tracking.fix.recorded", {"shipment_id": shipment.shipment_id})

    @pytest.mark.asyncio
    async def test_client_capture_time_kept(self, service, shipment):
        captured = FIXED_NOW - timedelta(minutes=3)
        fix = await service.record_fix(TOKEN, _request(captured_at=captured))
        assert fix.captured_at == captured

    @pytest.mark.asyncio
    async def test_external_source_tag(self, service, shipment):
        fix = await service.record_fix(TOKEN, _request(source=FixSource.TRACKING_API.value))
        assert fix.source == "api_rastreamento"

    @pytest.mark.asyncio
    async def test_invalid_token_stores_nothing(self, service, shipment, mock_position_repo):
        with pytest.raises(InvalidTokenError):
            await service.record_fix("nope", _request())
        assert mock_position_repo.fixes == []

    @pytest.mark.asyncio
    async def test_non_finite_coordinates_rejected(self, service, shipment, mock_position_repo):
        request = FixRecordRequest.model_construct(
            latitude=math.nan,
            longitude=-45.0,
            speed=None,
            accuracy_m=10.0,
            captured_at=None,
            source=FixSource.BROWSER_GEOLOCATION.value,
        )
        with pytest.raises(TrackingValidationError):
            await service.record_fix(TOKEN, request)
        assert mock_position_repo.fixes == []

    @pytest.mark.asyncio
    async def test_non_positive_accuracy_rejected(self, service, shipment):
        request = FixRecordRequest.model_construct(
            latitude=-23.0,
            longitude=-45.0,
            speed=None,
            accuracy_m=0.0,
            captured_at=None,
            source=FixSource.BROWSER_GEOLOCATION.value,
        )
        with pytest.raises(TrackingValidationError):
            await service.record_fix(TOKEN, request)

    @pytest.mark.asyncio
    async def test_no_event_bus(self, mock_position_repo, freight_config, clock, shipment):
        service = TrackingService(mock_position_repo, None, freight_config, clock)
        fix = await service.record_fix(TOKEN, _request())
        assert fix.fix_id

    @pytest.mark.asyncio
    async def test_future_capture_time_clamped_to_server_time(self, service, shipment):
        fix = await service.record_fix(TOKEN, _request(captured_at=datetime(2099, 1, 1, tzinfo=timezone.utc)))

        assert fix.captured_at == FIXED_NOW
        assert fix.received_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_naive_capture_time_taken_as_utc(self, service, shipment):
        naive = (FIXED_NOW - timedelta(minutes=2)).replace(tzinfo=None)

        fix = await service.record_fix(TOKEN, _request(captured_at=naive))

        assert fix.captured_at == FIXED_NOW - timedelta(minutes=2)
        assert fix.captured_at.tzinfo is not None


class TestFixQueries:

    @pytest.mark.asyncio
    async def test_latest_is_by_capture_time(self, service, shipment):
        newest = await service.record_fix(TOKEN, _request(latitude=-22.0, captured_at=FIXED_NOW - timedelta(minutes=1)))
        await service.record_fix(TOKEN, _request(latitude=-23.9, captured_at=FIXED_NOW - timedelta(minutes=30)))

        latest = await service.get_latest_fix(shipment.shipment_id)

        assert latest.fix_id == newest.fix_id

    @pytest.mark.asyncio
    async def test_history_window(self, service, shipment):
        for minutes in (5, 15, 25, 35):
            await service.record_fix(TOKEN, _request(captured_at=FIXED_NOW - timedelta(minutes=minutes)))

        history = await service.get_fix_history(
            shipment.shipment_id,
            start=FIXED_NOW - timedelta(minutes=30),
            end=FIXED_NOW - timedelta(minutes=10),
        )

        assert [f.captured_at for f in history] == [
            FIXED_NOW - timedelta(minutes=15),
            FIXED_NOW - timedelta(minutes=25),
        ]

    @pytest.mark.asyncio
    async def test_history_limit(self, service, shipment):
        for minutes in range(5):
            await service.record_fix(TOKEN, _request(captured_at=FIXED_NOW - timedelta(minutes=minutes)))

        history = await service.get_fix_history(shipment.shipment_id, limit=2)

        assert [f.captured_at for f in history] == [FIXED_NOW, FIXED_NOW - timedelta(minutes=1)]

    @pytest.mark.asyncio
    @pytest.mark.asyncio
    async def test_naive_window_bounds(self, service, shipment):
        for minutes in (5, 15, 25):
            await service.record_fix(TOKEN, _request(captured_at=FIXED_NOW - timedelta(minutes=minutes)))

        history = await service.get_fix_history(
            shipment.shipment_id,
            start=(FIXED_NOW - timedelta(minutes=20)).replace(tzinfo=None),
            end=FIXED_NOW,
        )

        assert [f.captured_at for f in history] == [
            FIXED_NOW - timedelta(minutes=5),
            FIXED_NOW - timedelta(minutes=15),
        ]

    @pytest.mark.asyncio
    async def test_inverted_window_rejected(self, service, shipment):
        with pytest.raises(TrackingValidationError):
            await service.get_fix_history(shipment.shipment_id, start=FIXED_NOW, end=FIXED_NOW - timedelta(hours=1))


class TestSharingStatus:

    @pytest.mark.asyncio
    async def test_no_fixes_is_inactive(self, service, shipment):
        status = await service.get_sharing_status(shipment.shipment_id)
        assert status.active is False
        assert status.last_fix_at is None

    @pytest.mark.asyncio
    async def test_recent_fix_is_active(self, service, shipment):
        await service.record_fix(TOKEN, _request(captured_at=FIXED_NOW - timedelta(minutes=5)))

        status = await service.get_sharing_status(shipment.shipment_id)

        assert status.active is True
        assert status.minutes_since_last_fix == 5.0

    @pytest.mark.asyncio
    async def test_stale_fix_is_inactive(self, service, shipment):
        await service.record_fix(TOKEN, _request(captured_at=FIXED_NOW - timedelta(minutes=10)))

        status = await service.get_sharing_status(shipment.shipment_id)

        assert status.active is False
        assert status.last_fix_at == FIXED_NOW - timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_future_dated_fix_does_not_pin_latest(self, mock_position_repo, freight_config, shipment):
        now = [FIXED_NOW]
        service = TrackingService(mock_position_repo, None, freight_config, clock=lambda: now[0])

        await service.record_fix(TOKEN, _request(latitude=-23.0, captured_at=datetime(2099, 1, 1, tzinfo=timezone.utc)))
        now[0] = FIXED_NOW + timedelta(hours=5)
        real = await service.record_fix(TOKEN, _request(latitude=-22.5))

        latest = await service.get_latest_fix(shipment.shipment_id)
        status = await service.get_sharing_status(shipment.shipment_id)

        assert latest.fix_id == real.fix_id
        assert status.active is True
        assert status.minutes_since_last_fix == 0.0
