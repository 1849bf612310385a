"""
Live aggregation / refresh layer

Filtered shipment listing with latest fixes, dashboard metrics and the
DashboardRefresher that runs manual, interval and push triggers through
one refresh path.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from core.config import FreightConfig

from .models import (
    DashboardMetrics,
    DashboardSnapshot,
    DeadlineStatus,
    PositionFix,
    Shipment,
    ShipmentFilters,
    ShipmentStatus,
    ShipmentView,
)
from .status_engine import compute_progress

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _contains(haystack: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    return needle.lower() in (haystack or "").lower()


def _in_range(value: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    value = _aware(value)
    if start is not None and value < _aware(start):
        return False
    if end is not None and value > _aware(end):
        return False
    return True


def shipment_matches(shipment: Shipment, filters: Optional[ShipmentFilters]) -> bool:
    """
    Stored-field filters (everything except the deadline status, which is
    matched against the recomputed classification).
    """
    if filters is None:
        return True
    if filters.status and shipment.status not in filters.status:
        return False
    if not _contains(shipment.invoice_number, filters.invoice_number):
        return False
    if filters.origin_state and shipment.origin.state != filters.origin_state.upper():
        return False
    if filters.destination_state and shipment.destination.state != filters.destination_state.upper():
        return False
    if not _contains(shipment.driver_name, filters.driver_name):
        return False
    if not _contains(shipment.vehicle_plate, filters.vehicle_plate):
        return False
    if not _in_range(shipment.departure_at, filters.departure_from, filters.departure_to):
        return False
    if not _in_range(shipment.promised_arrival_at, filters.arrival_from, filters.arrival_to):
        return False
    return True


def _pct(part: int, whole: int) -> float:
    if whole == 0:
        return 0.0
    return round(part * 100.0 / whole, 2)


def build_metrics(views: List[ShipmentView]) -> DashboardMetrics:
    """Single pass over shipment views using recomputed classifications"""
    metrics = DashboardMetrics()
    delivered_by_deadline: Dict[DeadlineStatus, int] = {status: 0 for status in DeadlineStatus}

    for view in views:
        shipment = view.shipment
        deadline = view.progress.deadline_status
        metrics.total_shipments += 1

        if deadline == DeadlineStatus.ON_TIME:
            metrics.on_time_count += 1
        elif deadline == DeadlineStatus.LATE:
            metrics.late_count += 1
        else:
            metrics.early_count += 1

        if shipment.status == ShipmentStatus.IN_TRANSIT:
            metrics.in_transit_count += 1
            metrics.total_tons_in_transport += shipment.weight_tons
        elif shipment.status == ShipmentStatus.DELIVERED:
            metrics.delivered_count += 1
            metrics.total_tons_delivered += shipment.weight_tons
            delivered_by_deadline[deadline] += 1
        else:
            metrics.cancelled_count += 1

    delivered = metrics.delivered_count
    metrics.on_time_delivery_pct = _pct(delivered_by_deadline[DeadlineStatus.ON_TIME], delivered)
    metrics.early_delivery_pct = _pct(delivered_by_deadline[DeadlineStatus.EARLY], delivered)
    metrics.late_delivery_pct = _pct(delivered_by_deadline[DeadlineStatus.LATE], delivered)
    return metrics


class ShipmentAggregator:
    """Read side of the dashboards"""

    def __init__(
        self,
        repository=None,
        freight_config: Optional[FreightConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.config = freight_config or FreightConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def list_shipments(
        self,
        filters: Optional[ShipmentFilters] = None,
        shipper_id: Optional[str] = None,
    ) -> List[ShipmentView]:
        """
        Non-deleted shipments (optionally of one shipper), newest first, each
        with its most recent fix and a recomputed progress.
        """
        shipments = await self.repository.list_shipments(shipper_id=shipper_id, filters=filters)
        shipments = [s for s in shipments if not s.is_deleted and shipment_matches(s, filters)]

        fixes: Dict[str, PositionFix] = {}
        if shipments:
            fixes = await self.repository.get_latest_fixes([s.shipment_id for s in shipments])

        now = self.clock()
        early_margin = timedelta(hours=self.config.early_margin_hours)
        views = []
        for shipment in shipments:
            fix = fixes.get(shipment.shipment_id)
            progress = compute_progress(
                shipment,
                fix,
                now,
                early_margin=early_margin,
                default_speed_kmh=self.config.default_average_speed_kmh,
            )
            if filters and filters.deadline_status and progress.deadline_status not in filters.deadline_status:
                continue
            views.append(ShipmentView(shipment=shipment, latest_fix=fix, progress=progress))

        views.sort(key=lambda v: _aware(v.shipment.created_at) or _EPOCH, reverse=True)
        return views

    async def compute_metrics(self, shipper_id: Optional[str] = None) -> DashboardMetrics:
        views = await self.list_shipments(shipper_id=shipper_id)
        return build_metrics(views)


SnapshotListener = Callable[[DashboardSnapshot], Union[None, Awaitable[None]]]


class DashboardRefresher:
    """
    Owns the refresh cadence of one dashboard view.

    refresh() (explicit), the interval loop and notify_change() (push) all
    end up in the same refresh path. Triggers that arrive while a refresh
    is running collapse into at most one follow-up refresh.

    Usage:
        async with DashboardRefresher(aggregator, listener) as refresher:
            ...
            refresher.notify_change()
    """

    def __init__(
        self,
        aggregator: ShipmentAggregator,
        listener: SnapshotListener,
        interval_seconds: float = 30.0,
        filters: Optional[ShipmentFilters] = None,
        shipper_id: Optional[str] = None,
    ):
        self.aggregator = aggregator
        self.listener = listener
        self.interval_seconds = interval_seconds
        self.filters = filters
        self.shipper_id = shipper_id

        self.last_snapshot: Optional[DashboardSnapshot] = None
        self.refresh_count = 0

        self._lock = asyncio.Lock()
        self._requested = 0
        self._covered = 0
        self._interval_task: Optional[asyncio.Task] = None
        self._push_tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "DashboardRefresher":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    @property
    def is_running(self) -> bool:
        return self._interval_task is not None and not self._interval_task.done()

    def start(self) -> None:
        """Start the interval timer"""
        if self.is_running:
            return
        self._interval_task = asyncio.create_task(self._interval_loop())

    async def stop(self) -> None:
        """Cancel the timer and any pending push refresh"""
        tasks = list(self._push_tasks)
        if self._interval_task is not None:
            tasks.append(self._interval_task)
            self._interval_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._push_tasks.clear()

    async def refresh(self) -> DashboardSnapshot:
        """Run a refresh now (or join the one that already covers this request)"""
        self._requested += 1
        ticket = self._requested

        async with self._lock:
            if self._covered >= ticket and self.last_snapshot is not None:
                return self.last_snapshot

            covers = self._requested
            views = await self.aggregator.list_shipments(self.filters, self.shipper_id)
            snapshot = DashboardSnapshot(
                shipments=views,
                metrics=build_metrics(views),
                refreshed_at=self.aggregator.clock(),
            )
            self._covered = covers
            self.last_snapshot = snapshot
            self.refresh_count += 1

            result = self.listener(snapshot)
            if inspect.isawaitable(result):
                await result

            return snapshot

    def notify_change(self) -> None:
        """Push trigger (e.g. a NATS shipment/tracking event)"""
        task = asyncio.create_task(self._safe_refresh("push"))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    async def _safe_refresh(self, trigger: str) -> None:
        try:
            await self.refresh()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Dashboard {trigger} refresh failed: {e}", exc_info=True)

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self._safe_refresh("interval")
