"""
Tracking Service Client

HTTP client used by the driver's device to resolve its tracking link and
submit fixes.
"""

import logging
from typing import Optional

import httpx

from core.service_client_base import BaseServiceClient

from ..models import FixRecordRequest, PositionFix, TrackedShipment
from ..protocols import InvalidTokenError

logger = logging.getLogger(__name__)


class TrackingServiceClient(BaseServiceClient):
    """Tracking API client (implements TrackingApiProtocol)"""

    service_name = "tracking_service"
    default_port = 8241

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)

    async def resolve(self, token: str) -> TrackedShipment:
        """
        Resolve a tracking token.

        Raises:
            InvalidTokenError: token unknown or expired
            httpx.HTTPError: transport or server failure
        """
        response = await self.get(f"/api/v1/tracking/{token}")
        if response.status_code == 404:
            raise InvalidTokenError("Token de rastreamento inválido")
        response.raise_for_status()
        return TrackedShipment(**response.json())

    async def submit_fix(self, token: str, request: FixRecordRequest) -> PositionFix:
        """Send one fix; the server stamps captured_at when it is missing"""
        response = await self.post(
            f"/api/v1/tracking/{token}/fixes",
            json=request.model_dump(mode="json", exclude_none=True),
        )
        if response.status_code == 404:
            raise InvalidTokenError("Token de rastreamento inválido")
        response.raise_for_status()
        return PositionFix(**response.json())
