"""
Shipment Service - Business Logic

Shipment lifecycle (in_transit -> delivered | cancelled), creation with
geocoding fallback, schedule edits and tracking-link issuance.

Uses dependency injection for testability.
- Repository, geocoder and event bus are injected, not created at import time
- Side effects (alerts, events) run as tracked background tasks
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set, Tuple

from core.config import FreightConfig

from .aggregation import ShipmentAggregator
from .geo import haversine_distance_km
from .models import (
    DEFAULT_CARGO_TYPE,
    DeadlineStatus,
    DeliveryAlert,
    DriverContactRequest,
    HistoryEvent,
    RoutePoint,
    Shipment,
    ShipmentCreateRequest,
    ShipmentCreateResult,
    ShipmentProgress,
    ShipmentStatus,
    StatusHistoryEntry,
    TrackingLink,
    as_utc,
)
from .protocols import (
    AlreadyTerminalError,
    GeocoderProtocol,
    ShipmentCreationTimeoutError,
    ShipmentNotFoundError,
    ShipmentRepositoryProtocol,
    ShipmentValidationError,
)
from .share_links import (
    build_br_phone,
    build_share_message,
    build_sms_url,
    build_tracking_url,
    build_whatsapp_url,
    digits_only,
    generate_tracking_token,
    is_valid_mobile,
)
from .status_engine import classify_deadline, compute_progress, estimate_arrival

logger = logging.getLogger(__name__)

MSG_REQUIRED_FIELDS = "Preencha todos os campos obrigatórios"
MSG_REQUIRED_STATES = "Selecione o estado de saída e o estado de destino"
MSG_REQUIRED_DEPARTURE = "Selecione a data de saída"
MSG_REQUIRED_ARRIVAL = "Selecione a estimativa de entrega"
MSG_REQUIRED_SHIPPER = "Selecione o nome da empresa"
MSG_ARRIVAL_BEFORE_DEPARTURE = "A estimativa de entrega deve ser posterior à data de saída"
MSG_WINDOW_EXCEEDED = (
    "data ultrapassa a quantidade de dias estabelecido. "
    "Por favor selecione uma data válida."
)
MSG_INVALID_PHONE = "Telefone inválido: informe 9 dígitos e o primeiro deve ser 9"
MSG_WHATSAPP_REQUIRED = "Informe um telefone com WhatsApp"
MSG_INVALID_WHATSAPP = "Telefone WhatsApp inválido: informe 9 dígitos e o primeiro deve ser 9"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_driver_contact(contact: DriverContactRequest) -> Tuple[str, str]:
    """
    Validate a driver contact and return (whatsapp_phone, sms_phone) as
    DDD + number digits.

    Raises:
        ShipmentValidationError: on an invalid primary or WhatsApp number
    """
    if not is_valid_mobile(contact.phone):
        raise ShipmentValidationError(MSG_INVALID_PHONE)

    sms_phone = build_br_phone(contact.ddd, contact.phone)
    if contact.phone_is_whatsapp:
        return sms_phone, sms_phone

    if not contact.whatsapp_ddd or not contact.whatsapp_phone:
        raise ShipmentValidationError(MSG_WHATSAPP_REQUIRED)
    if not is_valid_mobile(contact.whatsapp_phone):
        raise ShipmentValidationError(MSG_INVALID_WHATSAPP)

    return build_br_phone(contact.whatsapp_ddd, contact.whatsapp_phone), sms_phone


class ShipmentService:
    """
    Shipment business logic

    The only writer of lifecycle status. Every transition goes through the
    repository's compare-and-set update so concurrent deliver/cancel calls
    on the same shipment cannot both win.
    """

    def __init__(
        self,
        repository: Optional[ShipmentRepositoryProtocol] = None,
        event_bus=None,
        geocoder: Optional[GeocoderProtocol] = None,
        freight_config: Optional[FreightConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize service with injected dependencies.

        Args:
            repository: Repository (inject mock for testing)
            event_bus: Event bus for publishing events
            geocoder: City/state geocoder used when coordinates are missing
            freight_config: Business settings (defaults to product values)
            clock: Callable returning "now" (UTC)
        """
        self.repository = repository
        self.event_bus = event_bus
        self.geocoder = geocoder
        self.config = freight_config or FreightConfig()
        self.clock = clock or _utcnow
        self.aggregator = ShipmentAggregator(
            repository=repository,
            freight_config=self.config,
            clock=self.clock,
        )
        self._side_effects: Set[asyncio.Task] = set()

    @property
    def early_margin(self) -> timedelta:
        return timedelta(hours=self.config.early_margin_hours)

    @property
    def max_delivery_window(self) -> timedelta:
        return timedelta(days=self.config.max_delivery_window_days)

    # ==================== Side effects ====================

    def _spawn(self, coro, label: str) -> None:
        """Run a best-effort side effect in the background"""
        task = asyncio.create_task(coro)
        self._side_effects.add(task)

        def _done(t: asyncio.Task):
            self._side_effects.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(f"Side effect '{label}' failed: {exc}")

        task.add_done_callback(_done)

    async def drain_side_effects(self) -> None:
        """Wait for pending side effects (shutdown, tests)"""
        while self._side_effects:
            await asyncio.gather(*list(self._side_effects), return_exceptions=True)

    async def _publish(self, publisher, *args, **kwargs) -> None:
        if self.event_bus:
            await publisher(self.event_bus, *args, **kwargs)

    # ==================== Validation ====================

    def _validate_schedule(self, departure_at: datetime, promised_arrival_at: datetime) -> None:
        departure_at, promised_arrival_at = as_utc(departure_at), as_utc(promised_arrival_at)
        if promised_arrival_at < departure_at:
            raise ShipmentValidationError(MSG_ARRIVAL_BEFORE_DEPARTURE)
        if promised_arrival_at > departure_at + self.max_delivery_window:
            raise ShipmentValidationError(MSG_WINDOW_EXCEEDED)

    def _validate_draft(self, request: ShipmentCreateRequest) -> Tuple[Optional[str], Optional[str]]:
        """Checks run before any I/O; returns (whatsapp_phone, sms_phone)"""
        if not (request.invoice_number or "").strip():
            raise ShipmentValidationError(MSG_REQUIRED_FIELDS)
        if not request.origin.city.strip() or not request.destination.city.strip():
            raise ShipmentValidationError(MSG_REQUIRED_FIELDS)
        if not request.origin.state.strip() or not request.destination.state.strip():
            raise ShipmentValidationError(MSG_REQUIRED_STATES)
        if request.departure_at is None:
            raise ShipmentValidationError(MSG_REQUIRED_DEPARTURE)
        if request.promised_arrival_at is None:
            raise ShipmentValidationError(MSG_REQUIRED_ARRIVAL)
        if not (request.shipper_id or "").strip():
            raise ShipmentValidationError(MSG_REQUIRED_SHIPPER)

        self._validate_schedule(request.departure_at, request.promised_arrival_at)

        if request.driver_contact is None:
            return None, None
        return resolve_driver_contact(request.driver_contact)

    # ==================== Creation ====================

    async def _resolve_point(self, point: RoutePoint) -> RoutePoint:
        """Fill missing coordinates by geocoding, falling back to the default pair"""
        if point.has_coordinates:
            return point

        fallback = {
            "latitude": self.config.default_latitude,
            "longitude": self.config.default_longitude,
        }
        if self.geocoder is None:
            logger.warning(f"No geocoder configured, using default coordinates for {point.city}/{point.state}")
            return point.model_copy(update=fallback)

        try:
            latitude, longitude = await self.geocoder.geocode(point.city, point.state)
        except Exception as e:
            logger.warning(f"Geocoding failed for {point.city}/{point.state}: {e}; using default coordinates")
            return point.model_copy(update=fallback)

        return point.model_copy(update={"latitude": latitude, "longitude": longitude})

    async def _geocode_and_persist(
        self, request: ShipmentCreateRequest, driver_phone: Optional[str]
    ) -> Shipment:
        origin = await self._resolve_point(request.origin)
        destination = await self._resolve_point(request.destination)

        distance = haversine_distance_km(
            origin.latitude, origin.longitude, destination.latitude, destination.longitude
        )

        cargo_type = request.cargo_type or DEFAULT_CARGO_TYPE
        description = f"[Tipo de carga: {cargo_type}]"
        if request.description:
            description = f"{description} {request.description}"

        now = self.clock()
        shipment = Shipment(
            shipment_id=str(uuid.uuid4()),
            shipper_id=request.shipper_id,
            invoice_number=request.invoice_number.strip(),
            origin=origin,
            destination=destination,
            weight_tons=request.weight_tons,
            cargo_type=cargo_type,
            description=description,
            departure_at=request.departure_at,
            promised_arrival_at=request.promised_arrival_at,
            driver_name=request.driver_name,
            driver_phone=driver_phone,
            vehicle_plate=request.vehicle_plate,
            average_speed_kmh=request.average_speed_kmh,
            total_distance_km=round(distance, 2),
            status=ShipmentStatus.IN_TRANSIT,
            deadline_status=DeadlineStatus.ON_TIME,
            created_at=now,
            updated_at=now,
        )

        created = await self.repository.create_shipment(shipment)
        await self.repository.add_history_entry(
            self._history_entry(created.shipment_id, None, ShipmentStatus.IN_TRANSIT, HistoryEvent.CREATED, "Carga criada")
        )
        return created

    async def create_shipment(self, request: ShipmentCreateRequest) -> ShipmentCreateResult:
        """
        Register a new shipment.

        Raises:
            ShipmentValidationError: invalid draft (nothing persisted)
            ShipmentCreationTimeoutError: geocoding + persistence took too long
        """
        whatsapp_phone, sms_phone = self._validate_draft(request)

        try:
            shipment = await asyncio.wait_for(
                self._geocode_and_persist(request, whatsapp_phone),
                timeout=self.config.creation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Shipment creation timed out after {self.config.creation_timeout_seconds}s")
            raise ShipmentCreationTimeoutError(
                "Tempo esgotado ao cadastrar a carga. Tente novamente."
            )

        logger.info(f"Created shipment {shipment.shipment_id} (NF {shipment.invoice_number}) for shipper {shipment.shipper_id}")

        from .events.publishers import publish_shipment_created
        self._spawn(self._publish(publish_shipment_created, shipment), "shipment.created")

        tracking_link = None
        if whatsapp_phone:
            try:
                tracking_link = await self.issue_tracking_link(
                    shipment.shipment_id, whatsapp_phone, sms_phone=sms_phone
                )
                shipment = shipment.model_copy(
                    update={"tracking_token": tracking_link.token, "driver_phone": whatsapp_phone}
                )
            except Exception as e:
                logger.error(f"Failed to issue tracking link for shipment {shipment.shipment_id}: {e}")

        return ShipmentCreateResult(shipment=shipment, tracking_link=tracking_link)

    # ==================== Queries ====================

    async def get_shipment(self, shipment_id: str) -> Shipment:
        shipment = await self.repository.get_shipment(shipment_id)
        if shipment is None or shipment.is_deleted:
            raise ShipmentNotFoundError(f"Shipment not found: {shipment_id}")
        return shipment

    async def get_history(self, shipment_id: str) -> List[StatusHistoryEntry]:
        await self.get_shipment(shipment_id)
        return await self.repository.get_history(shipment_id)

    async def get_progress(self, shipment_id: str) -> ShipmentProgress:
        """Recomputed ETA for one shipment using its most recent fix"""
        shipment = await self.get_shipment(shipment_id)
        fixes = await self.repository.get_latest_fixes([shipment_id])
        return compute_progress(
            shipment,
            fixes.get(shipment_id),
            self.clock(),
            early_margin=self.early_margin,
            default_speed_kmh=self.config.default_average_speed_kmh,
        )

    # ==================== Transitions ====================

    async def _get_transitionable(self, shipment_id: str) -> Shipment:
        shipment = await self.get_shipment(shipment_id)
        if shipment.is_terminal:
            raise AlreadyTerminalError(shipment_id, shipment.status)
        return shipment

    async def _lost_race(self, shipment_id: str) -> Exception:
        """Error to raise when a compare-and-set update matched no row"""
        current = await self.repository.get_shipment(shipment_id)
        if current is None or current.is_deleted:
            return ShipmentNotFoundError(f"Shipment not found: {shipment_id}")
        return AlreadyTerminalError(shipment_id, current.status)

    def _history_entry(
        self,
        shipment_id: str,
        previous: Optional[ShipmentStatus],
        new: ShipmentStatus,
        event: HistoryEvent,
        note: Optional[str],
    ) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            entry_id=str(uuid.uuid4()),
            shipment_id=shipment_id,
            previous_status=previous,
            new_status=new,
            event=event,
            note=note,
            created_at=self.clock(),
        )

    async def _write_delivery_alert(self, shipment: Shipment) -> None:
        alert = DeliveryAlert(
            alert_id=str(uuid.uuid4()),
            shipment_id=shipment.shipment_id,
            message=f"Carga NF {shipment.invoice_number} foi entregue com sucesso!",
            created_at=self.clock(),
        )
        await self.repository.create_delivery_alert(alert)

    async def mark_delivered(self, shipment_id: str) -> Shipment:
        """
        Mark an in-transit shipment as delivered.

        Raises:
            ShipmentNotFoundError: unknown or soft-deleted shipment
            AlreadyTerminalError: shipment already delivered or cancelled
        """
        shipment = await self._get_transitionable(shipment_id)

        now = self.clock()
        delivered = shipment.model_copy(update={"status": ShipmentStatus.DELIVERED, "delivered_at": now})
        deadline_status = classify_deadline(delivered, now, early_margin=self.early_margin)

        updated = await self.repository.transition_status(
            shipment_id, ShipmentStatus.DELIVERED, deadline_status, delivered_at=now
        )
        if updated is None:
            raise await self._lost_race(shipment_id)

        await self.repository.add_history_entry(
            self._history_entry(shipment_id, shipment.status, ShipmentStatus.DELIVERED, HistoryEvent.DELIVERED, "Carga entregue")
        )
        logger.info(f"Shipment {shipment_id} delivered ({deadline_status.value})")

        from .events.publishers import publish_shipment_delivered
        self._spawn(self._write_delivery_alert(updated), "delivery alert")
        self._spawn(self._publish(publish_shipment_delivered, updated), "shipment.delivered")

        return updated

    async def cancel_shipment(self, shipment_id: str, reason: Optional[str] = None) -> Shipment:
        """
        Cancel an in-transit shipment; the stored deadline status is kept.

        Raises:
            ShipmentNotFoundError: unknown or soft-deleted shipment
            AlreadyTerminalError: shipment already delivered or cancelled
        """
        shipment = await self._get_transitionable(shipment_id)

        updated = await self.repository.transition_status(
            shipment_id, ShipmentStatus.CANCELLED, shipment.deadline_status
        )
        if updated is None:
            raise await self._lost_race(shipment_id)

        await self.repository.add_history_entry(
            self._history_entry(shipment_id, shipment.status, ShipmentStatus.CANCELLED, HistoryEvent.CANCELLED, reason)
        )
        logger.info(f"Shipment {shipment_id} cancelled: {reason}")

        from .events.publishers import publish_shipment_cancelled
        self._spawn(self._publish(publish_shipment_cancelled, updated, reason=reason), "shipment.cancelled")

        return updated

    async def soft_delete_shipment(self, shipment_id: str) -> None:
        """Hide a shipment from every query; its status is left unchanged"""
        shipment = await self.get_shipment(shipment_id)

        deleted = await self.repository.soft_delete(shipment_id)
        if not deleted:
            raise ShipmentNotFoundError(f"Shipment not found: {shipment_id}")

        await self.repository.add_history_entry(
            self._history_entry(shipment_id, shipment.status, shipment.status, HistoryEvent.DELETED, "Carga excluída")
        )
        logger.info(f"Shipment {shipment_id} soft-deleted")

        from .events.publishers import publish_shipment_deleted
        self._spawn(self._publish(publish_shipment_deleted, shipment), "shipment.deleted")

    async def update_schedule(
        self, shipment_id: str, departure_at: datetime, promised_arrival_at: datetime
    ) -> Shipment:
        """Edit departure / promised arrival of an in-transit shipment"""
        departure_at, promised_arrival_at = as_utc(departure_at), as_utc(promised_arrival_at)
        self._validate_schedule(departure_at, promised_arrival_at)
        shipment = await self._get_transitionable(shipment_id)

        edited = shipment.model_copy(
            update={"departure_at": departure_at, "promised_arrival_at": promised_arrival_at}
        )
        fixes = await self.repository.get_latest_fixes([shipment_id])
        now = self.clock()
        projected = estimate_arrival(
            edited, fixes.get(shipment_id), now, default_speed_kmh=self.config.default_average_speed_kmh
        )
        deadline_status = classify_deadline(edited, now, projected, early_margin=self.early_margin)

        updated = await self.repository.update_schedule(
            shipment_id, departure_at, promised_arrival_at, deadline_status
        )
        if updated is None:
            raise await self._lost_race(shipment_id)

        await self.repository.add_history_entry(
            self._history_entry(
                shipment_id, shipment.status, shipment.status, HistoryEvent.SCHEDULE_UPDATED, "Prazo alterado"
            )
        )

        from .events.publishers import publish_schedule_updated
        self._spawn(self._publish(publish_schedule_updated, updated), "shipment.schedule.updated")

        return updated

    # ==================== Tracking links ====================

    async def issue_tracking_link(
        self, shipment_id: str, driver_phone: str, sms_phone: Optional[str] = None
    ) -> TrackingLink:
        """
        Generate and store a tracking token and build the share targets.

        driver_phone is DDD + number of a WhatsApp-capable mobile.
        """
        digits = digits_only(driver_phone)
        if len(digits) < 9 or not is_valid_mobile(digits[-9:]):
            raise ShipmentValidationError(MSG_INVALID_PHONE)

        await self._get_transitionable(shipment_id)

        token = generate_tracking_token()
        stored = await self.repository.set_tracking_token(shipment_id, token, driver_phone=digits)
        if stored is None:
            raise await self._lost_race(shipment_id)

        url = build_tracking_url(self.config.public_base_url, token)
        message = build_share_message(url)
        link = TrackingLink(
            shipment_id=shipment_id,
            token=token,
            url=url,
            message=message,
            whatsapp_url=build_whatsapp_url(digits, message),
            sms_url=build_sms_url(sms_phone or digits, message),
        )
        logger.info(f"Issued tracking link for shipment {shipment_id}")

        from .events.publishers import publish_tracking_link_issued
        self._spawn(self._publish(publish_tracking_link_issued, link), "shipment.tracking_link.issued")

        return link
