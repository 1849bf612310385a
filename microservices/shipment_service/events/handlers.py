"""
Shipment Service Event Handlers

Turns freight-stream events into dashboard refresh triggers
"""

import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class ShipmentEventHandlers:
    """Push-refresh handlers for live dashboards"""

    def __init__(self):
        self._refreshers: List = []

    def register(self, refresher) -> None:
        """Register a DashboardRefresher to be nudged on changes"""
        self._refreshers.append(refresher)

    def unregister(self, refresher) -> None:
        if refresher in self._refreshers:
            self._refreshers.remove(refresher)

    def get_event_handler_map(self) -> Dict[str, Callable]:
        """
        Subject pattern -> handler

        Returns:
            Dict[pattern, handler_function]
        """
        return {
            "shipment.>": self.handle_change,
            "tracking.fix.recorded": self.handle_change,
        }

    async def handle_change(self, event) -> None:
        """Any shipment or fix change schedules a refresh of every dashboard"""
        event_type = getattr(event, "type", "unknown")
        logger.debug(f"Dashboard refresh triggered by {event_type}")

        for refresher in list(self._refreshers):
            refresher.notify_change()
