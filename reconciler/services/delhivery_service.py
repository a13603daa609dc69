"""
Delhivery tracking: GET /api/v1/packages/json/?waybill=XXXX
Authorization: Token <API_KEY>
Returns the raw JSON payload; status extraction and mapping happen downstream.
"""
import logging
from typing import Any, Optional

import httpx

from reconciler.config import settings
from reconciler.services.errors import ConfigurationError
from reconciler.services.http_client import get_json

logger = logging.getLogger(__name__)


def get_client(api_key: Optional[str] = None) -> "DelhiveryClient":
    """Return a client instance. Api key from env if not passed."""
    key = api_key or getattr(settings, "DELHIVERY_API_KEY", None) or ""
    base = getattr(settings, "DELHIVERY_TRACKING_BASE_URL", "https://track.delhivery.com")
    return DelhiveryClient(api_key=key, base_url=base, timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS)


class DelhiveryClient:
    """
    Delhivery tracking API client.
    GET https://track.delhivery.com/api/v1/packages/json/?waybill=XXXX
    Authorization: Token <API_KEY>
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://track.delhivery.com",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not (api_key or "").strip():
            raise ConfigurationError("DELHIVERY_API_KEY not set")
        self.api_key = api_key.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def fetch_tracking_status(self, waybill: str) -> Any:
        """Fetch the raw tracking payload for one waybill. Raises ExternalServiceError on failure."""
        url = f"{self.base_url}/api/v1/packages/json/"
        logger.debug("Delhivery tracking request waybill=%s", waybill)
        return await get_json(
            url,
            params={"waybill": waybill},
            headers={"Authorization": f"Token {self.api_key}", "Accept": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )
