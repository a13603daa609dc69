"""
HDFC SmartGateway (Juspay) order status client.
GET {HDFC_BASE_URL}/orders/<order_id>, Basic auth with the API key as username.
"""
import logging
from typing import Any, Optional

import httpx

from reconciler.config import settings
from reconciler.services.errors import ConfigurationError, MalformedResponseError
from reconciler.services.http_client import get_json

logger = logging.getLogger(__name__)

API_VERSION = "2023-06-30"


def get_client() -> "HdfcPaymentClient":
    """Return a client configured from env."""
    return HdfcPaymentClient(
        api_key=settings.HDFC_API_KEY,
        merchant_id=settings.HDFC_MERCHANT_ID,
        base_url=settings.HDFC_BASE_URL,
        timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
    )


class HdfcPaymentClient:
    """Order-status lookups against the payment gateway."""

    def __init__(
        self,
        api_key: str,
        merchant_id: str,
        base_url: str = "https://smartgateway.hdfcuat.bank.in",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not (api_key or "").strip():
            raise ConfigurationError("HDFC_API_KEY not set")
        if not (merchant_id or "").strip():
            raise ConfigurationError("HDFC_MERCHANT_ID not set")
        self.api_key = api_key.strip()
        self.merchant_id = merchant_id.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def fetch_payment_status(self, order_ref: str) -> dict[str, Any]:
        """
        Fetch order status. The payload always carries `status`; `txn_id`,
        `bank_ref_no`, `payment_method`, `error_code`, `error_message` when known.
        """
        data = await get_json(
            f"{self.base_url}/orders/{order_ref}",
            headers={
                "x-merchantid": self.merchant_id,
                "version": API_VERSION,
                "Accept": "application/json",
            },
            auth=(self.api_key, ""),
            timeout=self.timeout,
            transport=self._transport,
        )
        if not isinstance(data, dict) or not data.get("status"):
            raise MalformedResponseError(f"order status response for {order_ref} has no status")
        return data
