"""
Component Tests: Shipment Repository

SQL shape and row mapping against the mock PostgreSQL client.
"""
from datetime import timedelta

import pytest

from core.config_manager import ConfigManager
from microservices.shipment_service.models import DeadlineStatus, ShipmentFilters, ShipmentStatus
from microservices.shipment_service.shipment_repository import ShipmentRepository
from tests.fixtures import FIXED_NOW, make_shipment

pytestmark = pytest.mark.component

SHIPMENT_ID = "0b7c4c3e-0000-4000-8000-000000000001"
OTHER_ID = "0b7c4c3e-0000-4000-8000-000000000002"


def shipment_row(**overrides):
    row = {
        "shipment_id": SHIPMENT_ID,
        "shipper_id": "shipper_1",
        "invoice_number": "NF-1001",
        "origin_city": "São Paulo",
        "origin_state": "SP",
        "origin_address": None,
        "origin_postal_code": None,
        "origin_lat": -23.5505,
        "origin_lng": -46.6333,
        "destination_city": "Rio de Janeiro",
        "destination_state": "RJ",
        "destination_address": None,
        "destination_postal_code": None,
        "destination_lat": -22.9068,
        "destination_lng": -43.1729,
        "weight_tons": 10,
        "cargo_type": None,
        "description": None,
        "departure_at": FIXED_NOW - timedelta(days=1),
        "promised_arrival_at": FIXED_NOW + timedelta(days=1),
        "delivered_at": None,
        "driver_name": "João Silva",
        "driver_phone": None,
        "vehicle_plate": "ABC1D23",
        "average_speed_kmh": None,
        "total_distance_km": 357.7,
        "status": "in_transit",
        "deadline_status": "on_time",
        "is_deleted": False,
        "tracking_token": None,
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
    }
    row.update(overrides)
    return row


@pytest.fixture
def repo(mock_db):
    return ShipmentRepository(config=ConfigManager("shipment_service"), db=mock_db)


class TestShipmentRepository:

    @pytest.mark.asyncio
    async def test_row_mapping(self, repo, mock_db):
        mock_db.set_row_response(shipment_row())

        shipment = await repo.get_shipment(SHIPMENT_ID)

        assert shipment.origin.city == "São Paulo"
        assert shipment.destination.latitude == -22.9068
        assert shipment.cargo_type == "Carga Geral"
        assert shipment.average_speed_kmh == 60.0
        assert shipment.status == ShipmentStatus.IN_TRANSIT
        mock_db.assert_query_executed("is_deleted = FALSE", method="query_row")

    @pytest.mark.asyncio
    async def test_get_including_deleted(self, repo, mock_db):
        mock_db.set_row_response(shipment_row(is_deleted=True))

        shipment = await repo.get_shipment(SHIPMENT_ID, include_deleted=True)

        assert shipment.is_deleted is True
        assert "is_deleted = FALSE" not in mock_db.get_last_query()[1]

    @pytest.mark.asyncio
    async def test_transition_is_compare_and_set(self, repo, mock_db):
        mock_db.set_row_response(None)

        result = await repo.transition_status(
            SHIPMENT_ID, ShipmentStatus.DELIVERED, DeadlineStatus.ON_TIME, delivered_at=FIXED_NOW
        )

        assert result is None
        _, query, params = mock_db.get_last_query()
        assert "status = 'in_transit'" in query
        assert params[:4] == [SHIPMENT_ID, "delivered", "on_time", FIXED_NOW]

    @pytest.mark.asyncio
    async def test_soft_delete_reports_missing_row(self, repo, mock_db):
        mock_db.set_execute_response(0)
        assert await repo.soft_delete(SHIPMENT_ID) is False

        mock_db.set_execute_response(1)
        assert await repo.soft_delete(SHIPMENT_ID) is True

    @pytest.mark.asyncio
    async def test_list_builds_numbered_filters(self, repo, mock_db):
        mock_db.set_rows_response([shipment_row()])
        filters = ShipmentFilters(
            status=[ShipmentStatus.IN_TRANSIT],
            origin_state="sp",
            driver_name="joão",
        )

        shipments = await repo.list_shipments(shipper_id="shipper_1", filters=filters)

        assert len(shipments) == 1
        _, query, params = mock_db.get_last_query()
        assert "shipper_id = $1" in query
        assert "status = ANY($2::text[])" in query
        assert "origin_state = $3" in query
        assert "driver_name ILIKE $4" in query
        assert params == ["shipper_1", ["in_transit"], "SP", "%joão%"]
        assert "ORDER BY created_at DESC" in query

    @pytest.mark.asyncio
    async def test_create_writes_all_columns(self, repo, mock_db):
        shipment = make_shipment()
        mock_db.set_row_response(shipment_row(shipment_id=shipment.shipment_id))

        created = await repo.create_shipment(shipment)

        assert created.shipment_id == shipment.shipment_id
        _, query, params = mock_db.get_last_query()
        assert len(params) == 32
        assert params[0] == shipment.shipment_id
        assert "RETURNING" in query

    @pytest.mark.asyncio
    async def test_latest_fixes_one_per_shipment(self, repo, mock_db):
        mock_db.set_rows_response([
            {
                "fix_id": "f1",
                "shipment_id": SHIPMENT_ID,
                "latitude": -23.0,
                "longitude": -46.0,
                "speed": None,
                "accuracy_m": 10.0,
                "captured_at": FIXED_NOW,
                "source": "browser_geolocation",
            }
        ])

        fixes = await repo.get_latest_fixes([SHIPMENT_ID, OTHER_ID])

        assert list(fixes) == [SHIPMENT_ID]
        mock_db.assert_query_executed("DISTINCT ON (shipment_id)")
        mock_db.assert_query_executed("captured_at DESC")

    @pytest.mark.asyncio
    async def test_latest_fixes_empty_input_skips_query(self, repo, mock_db):
        assert await repo.get_latest_fixes([]) == {}
        assert mock_db.queries == []

    @pytest.mark.asyncio
    async def test_non_uuid_ids_never_reach_the_database(self, repo, mock_db):
        assert await repo.get_shipment("abc") is None
        assert await repo.transition_status("abc", ShipmentStatus.CANCELLED, DeadlineStatus.ON_TIME) is None
        assert await repo.update_schedule("abc", FIXED_NOW, FIXED_NOW, DeadlineStatus.ON_TIME) is None
        assert await repo.set_tracking_token("abc", "token") is None
        assert await repo.soft_delete("abc") is False
        assert await repo.get_history("abc") == []
        assert await repo.get_latest_fixes(["abc"]) == {}
        assert mock_db.queries == []

    @pytest.mark.asyncio
    async def test_latest_fixes_drops_non_uuid_ids(self, repo, mock_db):
        mock_db.set_rows_response([])

        await repo.get_latest_fixes([SHIPMENT_ID, "abc"])

        _, _, params = mock_db.get_last_query()
        assert params == [[SHIPMENT_ID]]
