"""
Component Tests: Position Repository

SQL shape against the mock PostgreSQL client.
"""
from datetime import timedelta

import pytest

from core.config_manager import ConfigManager
from microservices.tracking_service.position_repository import PositionRepository
from tests.fixtures import FIXED_NOW

pytestmark = pytest.mark.component

SHIPMENT_ID = "0b7c4c3e-0000-4000-8000-000000000001"


def fix_row(**overrides):
    row = {
        "fix_id": "7d1e2f3a-0000-4000-8000-000000000001",
        "shipment_id": SHIPMENT_ID,
        "latitude": -23.0,
        "longitude": -46.0,
        "speed": 20.0,
        "accuracy_m": 8.0,
        "captured_at": FIXED_NOW,
        "source": "browser_geolocation",
        "received_at": FIXED_NOW,
    }
    row.update(overrides)
    return row


@pytest.fixture
def repo(mock_db):
    return PositionRepository(config=ConfigManager("tracking_service"), db=mock_db)


class TestPositionRepository:

    @pytest.mark.asyncio
    async def test_latest_fix(self, repo, mock_db):
        mock_db.set_row_response(fix_row())

        fix = await repo.get_latest_fix(SHIPMENT_ID)

        assert fix.shipment_id == SHIPMENT_ID
        _, query, params = mock_db.get_last_query()
        assert "ORDER BY captured_at DESC" in query
        assert params == [SHIPMENT_ID]

    @pytest.mark.asyncio
    async def test_history_window_parameters(self, repo, mock_db):
        mock_db.set_rows_response([fix_row()])
        start = FIXED_NOW - timedelta(hours=1)

        await repo.get_fix_history(SHIPMENT_ID, start=start, end=FIXED_NOW, limit=50)

        _, query, params = mock_db.get_last_query()
        assert "captured_at >= $2" in query
        assert "captured_at <= $3" in query
        assert "LIMIT $4" in query
        assert params == [SHIPMENT_ID, start, FIXED_NOW, 50]

    @pytest.mark.asyncio
    async def test_non_uuid_ids_never_reach_the_database(self, repo, mock_db):
        assert await repo.get_latest_fix("abc") is None
        assert await repo.get_fix_history("abc") == []
        assert mock_db.queries == []
