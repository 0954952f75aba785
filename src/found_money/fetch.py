"""Outbound HTTP with a fixed timeout and a single retry for transient failures."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from found_money.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_BACKOFF = 1.0

DEFAULT_HEADERS = {
    "User-Agent": "found-money/0.1 (unclaimed money finder)",
    "Accept": "application/json, */*",
}


def make_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Async client with the service's default headers and timeout."""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers=DEFAULT_HEADERS,
    )


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    backoff: float = DEFAULT_BACKOFF,
    **kwargs: Any,
) -> httpx.Response:
    """
    Send one request; retry once after ``backoff`` seconds on network errors,
    timeouts and 5xx responses. 4xx responses are never retried.
    Raises UpstreamError when the request ultimately fails.
    """
    last_error: Optional[UpstreamError] = None
    for attempt in (1, 2):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            last_error = UpstreamError(f"Timeout calling {url}: {e}", transient=True)
        except httpx.RequestError as e:
            last_error = UpstreamError(f"Network error calling {url}: {e}", transient=True)
        else:
            if response.status_code < 400:
                return response
            status = response.status_code
            if status < 500:
                raise UpstreamError(
                    f"HTTP {status} from {url}",
                    transient=False,
                    status_code=status,
                )
            last_error = UpstreamError(f"HTTP {status} from {url}", transient=True, status_code=status)

        if attempt == 1:
            logger.warning("Retrying %s %s after transient failure: %s", method, url, last_error)
            await asyncio.sleep(backoff)

    assert last_error is not None
    raise last_error
