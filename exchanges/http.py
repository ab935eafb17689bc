"""
Async HTTP helper mapping transport failures onto the error taxonomy.
"""
from typing import Any
import logging

import httpx

from errors import NetworkError, VenueError

DEFAULT_TIMEOUT = 10.0


def create_http_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Create the shared async HTTP client."""
    return httpx.AsyncClient(timeout=timeout)


async def request_json(http: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> Any:
    """
    Send a request and decode the JSON reply.

    No retries happen here; callers decide whether to retry.

    Args:
        http: Async HTTP client
        method: HTTP method
        url: Full request URL
        **kwargs: Passed to ``httpx.AsyncClient.request``

    Returns:
        Decoded JSON body

    Raises:
        NetworkError: Timeout, connection failure or 5xx reply
        VenueError: 4xx reply, with the body as payload
    """
    try:
        response = await http.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        logging.warning(f"Timeout: {method} {url}")
        raise NetworkError(f"Request timeout: {url}", {"method": method, "error": str(e)})
    except httpx.HTTPError as e:
        logging.warning(f"Network error: {method} {url} - {e}")
        raise NetworkError(f"Network error: {url}", {"method": method, "error": str(e)})

    logging.debug(f"{method} {url} -> {response.status_code}")

    if response.status_code >= 500:
        raise NetworkError(f"Server error: {response.status_code}",
                           {"url": url, "method": method, "response": response.text[:500]})
    if response.status_code >= 400:
        try:
            payload = response.json()
        except ValueError:
            payload = response.text[:500]
        logging.error(f"API error {response.status_code}: {method} {url}")
        raise VenueError(f"API error: {response.status_code}", payload)

    return response.json()
