"""Outbound HTTP with bounded exponential-backoff retry"""

import asyncio
import httpx

from backend.app.core.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 2
BASE_DELAY_SECONDS = 0.5


def is_retryable_status(status_code: int) -> bool:
    """Transient failures: any 5xx or 429 (rate limited)"""
    return status_code >= 500 or status_code == 429


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    attempt: int = 0,
    **kwargs
) -> httpx.Response:
    """
    Issue a request, retrying transient failures with exponential backoff

    Successful responses return immediately. Responses with status >= 500 or
    429 are retried while fewer than MAX_RETRIES retries have been made,
    sleeping BASE_DELAY_SECONDS * 2**attempt first (0.5s, then 1s). Any other
    non-success response is returned as-is for the caller to inspect.
    Transport errors are not caught.

    Args:
        client: HTTP client to send the request with
        method: HTTP method
        url: Absolute or client-relative URL
        attempt: Zero-based attempt counter to start from
        **kwargs: Passed through to `client.request`

    Returns:
        The last response received
    """
    while True:
        response = await client.request(method, url, **kwargs)

        if response.is_success:
            return response

        if not is_retryable_status(response.status_code) or attempt >= MAX_RETRIES:
            return response

        delay = BASE_DELAY_SECONDS * (2 ** attempt)
        logger.info(
            f"Retrying {method} {url} in {delay:.1f}s after {response.status_code} "
            f"(attempt {attempt + 1}/{MAX_RETRIES})"
        )
        await asyncio.sleep(delay)
        attempt += 1
