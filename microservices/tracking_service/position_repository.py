"""
Position Repository

Position-fix data access layer - PostgreSQL (asyncpg), schema "freight".
Token resolution reads the shipments table directly.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClientWrapper

from .models import PositionFix, TrackedShipment

logger = logging.getLogger(__name__)

FIX_COLUMNS = "fix_id, shipment_id, latitude, longitude, speed, accuracy_m, captured_at, source, received_at"


def _row_to_fix(row: Dict[str, Any]) -> PositionFix:
    return PositionFix(**{**row, "fix_id": str(row["fix_id"]), "shipment_id": str(row["shipment_id"])})


def _is_uuid(value: str) -> bool:
    """shipment_id is a UUID column; anything else can never match"""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class PositionRepository:
    """Position fixes - PostgreSQL"""

    def __init__(self, config: Optional[ConfigManager] = None, db: Optional[PostgresClientWrapper] = None):
        if config is None:
            config = ConfigManager("tracking_service")

        self.db = db or PostgresClientWrapper(service_name="tracking_service")
        self.schema = config.settings.infrastructure.postgres_schema
        self.table_name = "position_fixes"
        self.shipments_table = "shipments"

    async def resolve_token(self, token: str) -> Optional[TrackedShipment]:
        query = f"""
            SELECT shipment_id, invoice_number, origin_city, origin_state,
                   destination_city, destination_state, driver_name,
                   promised_arrival_at, status
            FROM {self.schema}.{self.shipments_table}
            WHERE tracking_token = $1 AND is_deleted = FALSE AND status = 'in_transit'
        """
        row = await self.db.query_row(query, [token])
        if not row:
            return None
        return TrackedShipment(**{**row, "shipment_id": str(row["shipment_id"])})

    async def insert_fix(self, fix: PositionFix) -> PositionFix:
        query = f"""
            INSERT INTO {self.schema}.{self.table_name} ({FIX_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING {FIX_COLUMNS}
        """
        row = await self.db.query_row(query, [
            fix.fix_id,
            fix.shipment_id,
            fix.latitude,
            fix.longitude,
            fix.speed,
            fix.accuracy_m,
            fix.captured_at,
            fix.source,
            fix.received_at,
        ])
        return _row_to_fix(row)

    async def get_latest_fix(self, shipment_id: str) -> Optional[PositionFix]:
        if not _is_uuid(shipment_id):
            return None
        query = f"""
            SELECT {FIX_COLUMNS} FROM {self.schema}.{self.table_name}
            WHERE shipment_id = $1
            ORDER BY captured_at DESC
            LIMIT 1
        """
        row = await self.db.query_row(query, [shipment_id])
        return _row_to_fix(row) if row else None

    async def get_fix_history(
        self,
        shipment_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[PositionFix]:
        if not _is_uuid(shipment_id):
            return []

        conditions = ["shipment_id = $1"]
        params: List[Any] = [shipment_id]

        if start:
            params.append(start)
            conditions.append(f"captured_at >= ${len(params)}")
        if end:
            params.append(end)
            conditions.append(f"captured_at <= ${len(params)}")

        params.append(limit)
        query = f"""
            SELECT {FIX_COLUMNS} FROM {self.schema}.{self.table_name}
            WHERE {" AND ".join(conditions)}
            ORDER BY captured_at DESC
            LIMIT ${len(params)}
        """
        rows = await self.db.query(query, params)
        return [_row_to_fix(row) for row in rows]
