"""
Address Lookup Client

Postal code (CEP) -> address through ViaCEP. Lookups never raise: a
malformed code, an unknown code or a transport failure all yield None.
"""

import logging
from typing import Dict, Optional

import httpx

from ..models import Address
from ..share_links import digits_only

logger = logging.getLogger(__name__)


def format_postal_code(value: str) -> str:
    """Mask a CEP as it is typed: "01001000" -> "01001-000" """
    digits = digits_only(value)[:8]
    if len(digits) <= 5:
        return digits
    return f"{digits[:5]}-{digits[5:]}"


class AddressLookupClient:
    """ViaCEP client with a per-instance cache of hits and misses"""

    def __init__(
        self,
        base_url: str = "https://viacep.com.br/ws",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._cache: Dict[str, Optional[Address]] = {}

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def lookup(self, postal_code: str) -> Optional[Address]:
        """Return the address for an 8-digit CEP, or None"""
        cep = digits_only(postal_code)
        if len(cep) != 8:
            return None

        if cep in self._cache:
            return self._cache[cep]

        try:
            response = await self.client.get(f"{self.base_url}/{cep}/json/")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Postal code lookup failed for {cep}: {e}")
            return None

        if data.get("erro"):
            self._cache[cep] = None
            return None

        address = Address(
            postal_code=data.get("cep") or format_postal_code(cep),
            street=data.get("logradouro") or None,
            neighborhood=data.get("bairro") or None,
            city=data.get("localidade") or None,
            state=data.get("uf") or None,
        )
        self._cache[cep] = address
        return address
