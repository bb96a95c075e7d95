"""Bounded-retry upstream calls with exponential backoff."""

import asyncio
import logging
from typing import Awaitable, Callable, Collection, Mapping, Optional

import httpx

from .exceptions import UpstreamRetryExhaustedError

logger = logging.getLogger("grokproxy")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_ATTEMPT_TIMEOUT = 30.0
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Optional[Mapping[str, str]] = None,
    content: Optional[bytes] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    retryable_statuses: Collection[int] = RETRYABLE_STATUSES,
    timeout: float = DEFAULT_ATTEMPT_TIMEOUT,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_attempt: Optional[Callable[[int], None]] = None,
) -> httpx.Response:
    """Send a request, retrying transient failures.

    The returned response is opened in streaming mode and its body has not
    been read; the caller owns it and must close it. Responses whose status
    is not retryable (including 4xx errors) are returned as-is.

    Each attempt waits at most ``timeout`` seconds for the response headers.
    Between failed attempts the call sleeps ``backoff_factor ** attempt``
    seconds, attempt being 0-based. ``on_attempt`` is called with the
    1-based attempt number before each send.

    Raises:
        UpstreamRetryExhaustedError: every attempt timed out, failed at the
            transport level, or returned a retryable status.
    """
    attempts = max(1, int(max_attempts))
    last_message = "Request failed after retries"
    last_status: Optional[int] = None

    for attempt in range(attempts):
        logger.info(f"Fetch attempt {attempt + 1}/{attempts} to {url}")
        if on_attempt is not None:
            on_attempt(attempt + 1)
        request = client.build_request(method, url, headers=headers, content=content)
        try:
            response = await asyncio.wait_for(
                client.send(request, stream=True), timeout=timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            last_message = f"Request timed out after {timeout:g} seconds"
            last_status = None
            logger.warning("Fetch attempt %d to %s timed out", attempt + 1, url)
        except httpx.HTTPError as exc:
            last_message = f"{exc.__class__.__name__}: {exc}"
            last_status = None
            logger.warning("Fetch attempt %d to %s failed: %s", attempt + 1, url, last_message)
        else:
            logger.info(f"Fetch response status: {response.status_code}")
            if response.status_code not in retryable_statuses:
                return response
            try:
                error_text = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            last_status = response.status_code
            last_message = f"Request failed with status {response.status_code}: {error_text}"
            logger.error(last_message)

        if attempt + 1 < attempts:
            delay = backoff_factor ** attempt
            logger.info(f"Retry attempt {attempt + 1}/{attempts} after {delay:.2f}s")
            await sleep(delay)

    logger.error(f"Upstream {url} exhausted {attempts} attempts: {last_message}")
    raise UpstreamRetryExhaustedError(
        last_message, upstream_status=last_status, attempts=attempts
    )
