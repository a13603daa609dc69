"""
Shared HTTP helper for the carrier and gateway APIs.
One attempt per call, bounded by a timeout. Failures surface as ExternalServiceError
so the caller can record the item as errored and move on; the next run retries it.
"""
import logging
from typing import Any, Optional

import httpx

from reconciler.services.errors import ExternalServiceError, MalformedResponseError, RateLimitedError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


async def get_json(
    url: str,
    *,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    auth: Optional[httpx.Auth | tuple[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """GET url and return the decoded JSON body."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.get(url, params=params, headers=headers, auth=auth)
    except httpx.TimeoutException as e:
        logger.warning("HTTP GET %s timed out after %ss", url, timeout)
        raise ExternalServiceError(f"timeout after {timeout}s") from e
    except httpx.HTTPError as e:
        logger.warning("HTTP GET %s failed: %s", url, e)
        raise ExternalServiceError(f"request failed: {e}") from e

    if resp.status_code == 429:
        raise RateLimitedError("rate limited (HTTP 429)", status_code=429)
    if resp.status_code >= 400:
        raise ExternalServiceError(f"HTTP {resp.status_code}", status_code=resp.status_code)
    try:
        return resp.json()
    except ValueError as e:
        raise MalformedResponseError(f"non-JSON response (HTTP {resp.status_code})", status_code=resp.status_code) from e
