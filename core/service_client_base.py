"""
Base Service Client for Internal Microservice Communication

Base class for HTTP clients that talk to peer freight services.
"""

import httpx
import logging
from typing import Optional, Dict, Any
from abc import ABC

logger = logging.getLogger(__name__)


class BaseServiceClient(ABC):
    """
    Base class for peer-service clients

    Handles:
    1. Base URL resolution (explicit -> ServiceConfig -> localhost default)
    2. HTTP client lifetime
    3. Timeouts

    Example:
        class TrackingServiceClient(BaseServiceClient):
            service_name = "tracking_service"
            default_port = 8241

            async def resolve(self, token: str):
                response = await self.get(f"/api/v1/tracking/{token}")
                return response.json()
    """

    # Subclasses define these
    service_name: str = None
    default_port: int = None

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Service base URL (resolved from settings when omitted)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not self.service_name:
            raise ValueError(f"{self.__class__.__name__} must define 'service_name'")

        if base_url:
            self.base_url = base_url.rstrip('/')
        else:
            self.base_url = self._discover_service()

        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers=self._build_default_headers(),
            transport=transport,
        )

        logger.debug(f"Initialized {self.service_name} client: {self.base_url}")

    def _discover_service(self) -> str:
        """Resolve the base URL from ServiceConfig (<service_name>_url)"""
        try:
            from core.config import get_settings
            url = getattr(get_settings().services, f"{self.service_name}_url")
            logger.debug(f"Resolved {self.service_name} at {url}")
            return url.rstrip('/')
        except AttributeError as e:
            default_url = f"http://localhost:{self.default_port}" if self.default_port else "http://localhost:8000"
            logger.warning(
                f"No configured URL for {self.service_name}, "
                f"using default: {default_url}. Error: {e}"
            )
            return default_url

    def _build_default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": f"freight-internal-client/{self.service_name}",
        }

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()
        logger.debug(f"Closed {self.service_name} client")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ========================================
    # HTTP helpers
    # ========================================

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        return await self.client.get(url, params=params, headers=headers)

    async def post(
        self,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        return await self.client.post(url, json=json, headers=headers)

    async def put(
        self,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        return await self.client.put(url, json=json, headers=headers)

    async def delete(
        self,
        path: str,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        return await self.client.delete(url, headers=headers)

    async def health_check(self) -> bool:
        """Return True when the peer answers /health with 200"""
        try:
            response = await self.get("/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"{self.service_name} health check failed: {e}")
            return False


__all__ = ["BaseServiceClient"]
