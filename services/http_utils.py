"""
Shared request/classification helpers for the external service adapters
"""
import logging
from typing import Any, Dict, Optional

import httpx

from errors import ProviderError, TransportError

logger = logging.getLogger(__name__)

# No client-side read timeout: providers enforce their own generation limits
DEFAULT_TIMEOUT = httpx.Timeout(
    connect=30.0,    # 30s to establish connection
    read=None,       # wait for the provider
    write=30.0,      # 30s to send request
    pool=30.0        # 30s to acquire connection from pool
)


def extract_error_message(payload: Any, fallback: str) -> str:
    """
    Pull a human readable message out of a provider error body.

    Handles {"error": "..."}, {"error": {"message": ...}}, {"errors": {...}}
    and {"message": ...} shapes.
    """
    if isinstance(payload, dict):
        for key in ("error", "errors"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
        if payload.get("message"):
            return str(payload["message"])
    if isinstance(payload, str) and payload:
        return payload[:500]
    return fallback


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    service: str,
    **kwargs: Any,
) -> Any:
    """
    Send a request and classify the outcome.

    Returns:
        Parsed JSON body (or raw text when the body is not JSON)

    Raises:
        TransportError: network, timeout or protocol failure
        ProviderError: non-2xx response, message taken from the error body
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TransportError as e:
        logger.error(f"[{service}] Transport error calling {method} {url}: {str(e)}")
        raise TransportError(f"{service} request failed: {str(e)}") from e

    try:
        payload = response.json()
    except ValueError:
        payload = response.text

    if response.is_error:
        message = extract_error_message(payload, f"{service} returned HTTP {response.status_code}")
        logger.warning(f"[{service}] {method} {url} -> {response.status_code}: {message}")
        raise ProviderError(message, status_code=response.status_code, payload=payload)

    return payload


def build_client(base_url: str = "", headers: Optional[Dict[str, str]] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers or {},
        timeout=DEFAULT_TIMEOUT,
        transport=transport,
    )
