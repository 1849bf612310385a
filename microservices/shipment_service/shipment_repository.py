"""
Shipment Repository

Shipment data access layer - PostgreSQL (asyncpg), schema "freight"
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClientWrapper

from .models import (
    DEFAULT_CARGO_TYPE,
    DeadlineStatus,
    DeliveryAlert,
    PositionFix,
    RoutePoint,
    Shipment,
    ShipmentFilters,
    ShipmentStatus,
    StatusHistoryEntry,
)

logger = logging.getLogger(__name__)

SHIPMENT_COLUMNS = """
    shipment_id, shipper_id, invoice_number,
    origin_city, origin_state, origin_address, origin_postal_code, origin_lat, origin_lng,
    destination_city, destination_state, destination_address, destination_postal_code,
    destination_lat, destination_lng,
    weight_tons, cargo_type, description, departure_at, promised_arrival_at, delivered_at,
    driver_name, driver_phone, vehicle_plate, average_speed_kmh, total_distance_km,
    status, deadline_status, is_deleted, tracking_token, created_at, updated_at
"""


def _row_to_shipment(row: Dict[str, Any]) -> Shipment:
    return Shipment(
        shipment_id=str(row["shipment_id"]),
        shipper_id=str(row["shipper_id"]),
        invoice_number=row["invoice_number"],
        origin=RoutePoint(
            city=row["origin_city"],
            state=row["origin_state"],
            address=row.get("origin_address"),
            postal_code=row.get("origin_postal_code"),
            latitude=row.get("origin_lat"),
            longitude=row.get("origin_lng"),
        ),
        destination=RoutePoint(
            city=row["destination_city"],
            state=row["destination_state"],
            address=row.get("destination_address"),
            postal_code=row.get("destination_postal_code"),
            latitude=row.get("destination_lat"),
            longitude=row.get("destination_lng"),
        ),
        weight_tons=float(row.get("weight_tons") or 0),
        cargo_type=row.get("cargo_type") or DEFAULT_CARGO_TYPE,
        description=row.get("description"),
        departure_at=row["departure_at"],
        promised_arrival_at=row["promised_arrival_at"],
        delivered_at=row.get("delivered_at"),
        driver_name=row.get("driver_name"),
        driver_phone=row.get("driver_phone"),
        vehicle_plate=row.get("vehicle_plate"),
        average_speed_kmh=float(row.get("average_speed_kmh") or 60),
        total_distance_km=float(row["total_distance_km"]) if row.get("total_distance_km") is not None else None,
        status=ShipmentStatus(row["status"]),
        deadline_status=DeadlineStatus(row["deadline_status"]),
        is_deleted=bool(row.get("is_deleted")),
        tracking_token=row.get("tracking_token"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _is_uuid(value: str) -> bool:
    """shipment_id is a UUID column; anything else can never match"""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class ShipmentRepository:
    """Shipment data access layer - PostgreSQL"""

    def __init__(self, config: Optional[ConfigManager] = None, db: Optional[PostgresClientWrapper] = None):
        if config is None:
            config = ConfigManager("shipment_service")

        self.db = db or PostgresClientWrapper(service_name="shipment_service")
        self.schema = config.settings.infrastructure.postgres_schema
        self.table_name = "shipments"
        self.history_table = "status_history"
        self.alerts_table = "delivery_alerts"
        self.fixes_table = "position_fixes"

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        query = f"""
            INSERT INTO {self.schema}.{self.table_name} ({SHIPMENT_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16,
                    $17, $18, $19, $20, $21, $22, $23, $24, $25, $26, $27, $28, $29, $30, $31, $32)
            RETURNING {SHIPMENT_COLUMNS}
        """
        o, d = shipment.origin, shipment.destination
        params = [
            shipment.shipment_id, shipment.shipper_id, shipment.invoice_number,
            o.city, o.state, o.address, o.postal_code, o.latitude, o.longitude,
            d.city, d.state, d.address, d.postal_code, d.latitude, d.longitude,
            shipment.weight_tons, shipment.cargo_type, shipment.description,
            shipment.departure_at, shipment.promised_arrival_at, shipment.delivered_at,
            shipment.driver_name, shipment.driver_phone, shipment.vehicle_plate,
            shipment.average_speed_kmh, shipment.total_distance_km,
            shipment.status.value, shipment.deadline_status.value, shipment.is_deleted,
            shipment.tracking_token, shipment.created_at, shipment.updated_at,
        ]
        row = await self.db.query_row(query, params)
        return _row_to_shipment(row)

    async def get_shipment(self, shipment_id: str, include_deleted: bool = False) -> Optional[Shipment]:
        if not _is_uuid(shipment_id):
            return None
        query = f"SELECT {SHIPMENT_COLUMNS} FROM {self.schema}.{self.table_name} WHERE shipment_id = $1"
        if not include_deleted:
            query += " AND is_deleted = FALSE"
        row = await self.db.query_row(query, [shipment_id])
        return _row_to_shipment(row) if row else None

    async def list_shipments(
        self,
        shipper_id: Optional[str] = None,
        filters: Optional[ShipmentFilters] = None,
    ) -> List[Shipment]:
        conditions = ["is_deleted = FALSE"]
        params: List[Any] = []

        def add(condition: str, value: Any):
            params.append(value)
            conditions.append(condition.format(p=f"${len(params)}"))

        if shipper_id:
            add("shipper_id = {p}", shipper_id)

        if filters:
            if filters.status:
                add("status = ANY({p}::text[])", [s.value for s in filters.status])
            if filters.invoice_number:
                add("invoice_number ILIKE {p}", f"%{filters.invoice_number}%")
            if filters.origin_state:
                add("origin_state = {p}", filters.origin_state.upper())
            if filters.destination_state:
                add("destination_state = {p}", filters.destination_state.upper())
            if filters.driver_name:
                add("driver_name ILIKE {p}", f"%{filters.driver_name}%")
            if filters.vehicle_plate:
                add("vehicle_plate ILIKE {p}", f"%{filters.vehicle_plate}%")
            if filters.departure_from:
                add("departure_at >= {p}", filters.departure_from)
            if filters.departure_to:
                add("departure_at <= {p}", filters.departure_to)
            if filters.arrival_from:
                add("promised_arrival_at >= {p}", filters.arrival_from)
            if filters.arrival_to:
                add("promised_arrival_at <= {p}", filters.arrival_to)

        query = f"""
            SELECT {SHIPMENT_COLUMNS} FROM {self.schema}.{self.table_name}
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC
        """
        rows = await self.db.query(query, params)
        return [_row_to_shipment(row) for row in rows]

    async def transition_status(
        self,
        shipment_id: str,
        new_status: ShipmentStatus,
        deadline_status: DeadlineStatus,
        delivered_at: Optional[datetime] = None,
    ) -> Optional[Shipment]:
        if not _is_uuid(shipment_id):
            return None
        # Compare-and-set: only an in-transit, non-deleted row can move
        query = f"""
            UPDATE {self.schema}.{self.table_name}
            SET status = $2, deadline_status = $3,
                delivered_at = COALESCE($4, delivered_at), updated_at = $5
            WHERE shipment_id = $1 AND status = 'in_transit' AND is_deleted = FALSE
            RETURNING {SHIPMENT_COLUMNS}
        """
        row = await self.db.query_row(
            query,
            [shipment_id, new_status.value, deadline_status.value, delivered_at, datetime.now(timezone.utc)],
        )
        return _row_to_shipment(row) if row else None

    async def update_schedule(
        self,
        shipment_id: str,
        departure_at: datetime,
        promised_arrival_at: datetime,
        deadline_status: DeadlineStatus,
    ) -> Optional[Shipment]:
        if not _is_uuid(shipment_id):
            return None
        query = f"""
            UPDATE {self.schema}.{self.table_name}
            SET departure_at = $2, promised_arrival_at = $3, deadline_status = $4, updated_at = $5
            WHERE shipment_id = $1 AND status = 'in_transit' AND is_deleted = FALSE
            RETURNING {SHIPMENT_COLUMNS}
        """
        row = await self.db.query_row(
            query,
            [shipment_id, departure_at, promised_arrival_at, deadline_status.value, datetime.now(timezone.utc)],
        )
        return _row_to_shipment(row) if row else None

    async def soft_delete(self, shipment_id: str) -> bool:
        if not _is_uuid(shipment_id):
            return False
        query = f"""
            UPDATE {self.schema}.{self.table_name}
            SET is_deleted = TRUE, updated_at = $2
            WHERE shipment_id = $1 AND is_deleted = FALSE
        """
        count = await self.db.execute(query, [shipment_id, datetime.now(timezone.utc)])
        return count > 0

    async def set_tracking_token(
        self, shipment_id: str, token: str, driver_phone: Optional[str] = None
    ) -> Optional[Shipment]:
        if not _is_uuid(shipment_id):
            return None
        query = f"""
            UPDATE {self.schema}.{self.table_name}
            SET tracking_token = $2, driver_phone = COALESCE($3, driver_phone), updated_at = $4
            WHERE shipment_id = $1 AND status = 'in_transit' AND is_deleted = FALSE
            RETURNING {SHIPMENT_COLUMNS}
        """
        row = await self.db.query_row(query, [shipment_id, token, driver_phone, datetime.now(timezone.utc)])
        return _row_to_shipment(row) if row else None

    async def add_history_entry(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        query = f"""
            INSERT INTO {self.schema}.{self.history_table}
                (entry_id, shipment_id, previous_status, new_status, event, note, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
        """
        await self.db.execute(query, [
            entry.entry_id,
            entry.shipment_id,
            entry.previous_status.value if entry.previous_status else None,
            entry.new_status.value,
            entry.event.value,
            entry.note,
            entry.created_at,
        ])
        return entry

    async def get_history(self, shipment_id: str) -> List[StatusHistoryEntry]:
        if not _is_uuid(shipment_id):
            return []
        query = f"""
            SELECT entry_id, shipment_id, previous_status, new_status, event, note, created_at
            FROM {self.schema}.{self.history_table}
            WHERE shipment_id = $1
            ORDER BY created_at ASC
        """
        rows = await self.db.query(query, [shipment_id])
        return [
            StatusHistoryEntry(**{**row, "entry_id": str(row["entry_id"]), "shipment_id": str(row["shipment_id"])})
            for row in rows
        ]

    async def create_delivery_alert(self, alert: DeliveryAlert) -> DeliveryAlert:
        query = f"""
            INSERT INTO {self.schema}.{self.alerts_table}
                (alert_id, shipment_id, kind, recipient, message, sent, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
        """
        await self.db.execute(query, [
            alert.alert_id,
            alert.shipment_id,
            alert.kind.value,
            alert.recipient.value,
            alert.message,
            alert.sent,
            alert.created_at,
        ])
        return alert

    async def get_latest_fixes(self, shipment_ids: List[str]) -> Dict[str, PositionFix]:
        shipment_ids = [s for s in shipment_ids if _is_uuid(s)]
        if not shipment_ids:
            return {}
        query = f"""
            SELECT DISTINCT ON (shipment_id)
                fix_id, shipment_id, latitude, longitude, speed, accuracy_m, captured_at, source
            FROM {self.schema}.{self.fixes_table}
            WHERE shipment_id = ANY($1::uuid[])
            ORDER BY shipment_id, captured_at DESC
        """
        rows = await self.db.query(query, [shipment_ids])
        fixes = {}
        for row in rows:
            fix = PositionFix(**{**row, "fix_id": str(row["fix_id"]), "shipment_id": str(row["shipment_id"])})
            fixes[fix.shipment_id] = fix
        return fixes
