"""
Outbound HTTP for payment vendors and the rate provider.

Every external call goes through VendorHTTPClient so timeouts and the retry
budget are the same everywhere:

    - each attempt is bounded by settings.vendor_timeout_seconds
    - transport errors, timeouts and 502/503/504 are retried up to
      settings.vendor_max_retries times with exponential backoff
    - any other response (including 4xx rejections) is returned as-is;
      a definitive vendor answer is never retried
"""
import asyncio
import logging
from typing import Any, Optional

import httpx

from config import settings
from domain.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before retry number `attempt` (1-based): base, 2*base, 4*base… capped."""
    delay = base * (2 ** max(attempt - 1, 0))
    return min(delay, cap)


class VendorHTTPClient:
    """
    Thin retrying wrapper around httpx.AsyncClient.

    `transport` is passed straight to httpx; tests hand in an
    httpx.MockTransport.
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = settings.vendor_timeout_seconds if timeout is None else timeout
        self.max_retries = settings.vendor_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.vendor_backoff_base if backoff_base is None else backoff_base
        self.backoff_max = settings.vendor_backoff_max if backoff_max is None else backoff_max
        self.transport = transport

    async def request(self, service: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send one logical request, retrying transient failures.

        Raises:
            UpstreamServiceError: the retry budget was exhausted without any
                response (network failure / timeout).
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt > self.max_retries:
                    logger.error(
                        f"  ❌ {service} {method} {url} failed after {attempt} attempts: "
                        f"{type(e).__name__}"
                    )
                    raise UpstreamServiceError(service, f"network error: {type(e).__name__}") from e
                delay = backoff_delay(attempt, self.backoff_base, self.backoff_max)
                logger.warning(
                    f"  {service} {method} {url}: {type(e).__name__}, "
                    f"retry {attempt}/{self.max_retries} in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code in RETRYABLE_STATUS_CODES and attempt <= self.max_retries:
                delay = backoff_delay(attempt, self.backoff_base, self.backoff_max)
                logger.warning(
                    f"  {service} {method} {url}: HTTP {response.status_code}, "
                    f"retry {attempt}/{self.max_retries} in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            return response


def json_body(service: str, response: httpx.Response) -> dict:
    """Decode a JSON object body or raise UpstreamServiceError."""
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamServiceError(service, f"invalid JSON (HTTP {response.status_code})") from e
    if not isinstance(data, dict):
        raise UpstreamServiceError(service, "unexpected JSON shape")
    return data
