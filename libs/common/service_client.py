"""Reusable async HTTP client for internal service-to-service communication.

Collaborator services (payments, notifications) are only ever reached
through this helper, never through their tables.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from libs.auth.dependencies import service_role_jwt
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Default timeout for internal calls (seconds).
_DEFAULT_TIMEOUT = 10.0


async def internal_request(
    *,
    service_url: str,
    method: str,
    path: str,
    calling_service: str,
    json: Any = None,
    params: Optional[dict] = None,
    timeout: float = _DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """Make an authenticated internal service-to-service HTTP call.

    Args:
        service_url: Base URL of the target service (e.g. settings.PAYMENTS_SERVICE_URL).
        method: HTTP method (GET, POST, ...).
        path: URL path on the target service.
        calling_service: Name of the calling service for the JWT "sub" claim.
        json: Optional JSON body.
        params: Optional query parameters.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).

    Returns:
        The httpx.Response object.

    Raises:
        httpx.RequestError on connection failures and timeouts.
    """
    url = f"{service_url.rstrip('/')}{path}"
    headers = {"Authorization": f"Bearer {service_role_jwt(calling_service)}"}
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id
    headers["X-Caller-Service"] = calling_service

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.request(
            method,
            url,
            headers=headers,
            json=json,
            params=params,
        )
    return response


async def internal_post(
    *,
    service_url: str,
    path: str,
    calling_service: str,
    json: Any = None,
    timeout: float = _DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """Convenience wrapper for POST requests."""
    return await internal_request(
        service_url=service_url,
        method="POST",
        path=path,
        calling_service=calling_service,
        json=json,
        timeout=timeout,
        transport=transport,
    )
