"""
Shared HTTP plumbing for the integration clients.
Async implementation using httpx.
"""
import json
import logging
from typing import Any, Dict

import httpx

from ..exceptions import ApiError, AuthError, NetworkError

logger = logging.getLogger(__name__)


def bearer_headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Dict[str, str] | None = None,
    params: Dict[str, Any] | None = None,
    json_body: Any = None,
    data: Dict[str, Any] | None = None,
    timeout: float | None = None,
    service: str = "remote",
    auth_statuses: tuple = (),
) -> Any:
    """
    Make an async HTTP request and decode the JSON answer.

    Args:
        client: httpx client to send with
        method: HTTP method (GET, POST, ...)
        url: Absolute URL
        headers: Optional request headers
        params: Optional query parameters
        json_body: Optional JSON body
        data: Optional form body
        timeout: Per-request timeout, client default when None
        service: Service name used in error messages
        auth_statuses: Statuses reported as AuthError instead of ApiError

    Returns:
        Parsed JSON response, or None for an empty body

    Raises:
        AuthError: status listed in auth_statuses
        ApiError: any other non-2xx status
        NetworkError: connection failure or timeout
    """
    kwargs: Dict[str, Any] = {"headers": headers, "params": params}
    if json_body is not None:
        kwargs["json"] = json_body
    if data is not None:
        kwargs["data"] = data
    if timeout is not None:
        kwargs["timeout"] = timeout

    try:
        response = await client.request(method.upper(), url, **kwargs)
    except httpx.TimeoutException as e:
        logger.error(f"{service} request timed out: {method.upper()} {url}")
        raise NetworkError(f"{service} did not respond in time", title=f"{service} timeout") from e
    except httpx.TransportError as e:
        logger.error(f"Connection error to {service}: {e}")
        raise NetworkError(f"Could not reach {service}: {e}", title=f"{service} unreachable") from e

    if response.status_code in auth_statuses:
        logger.warning(f"{service} rejected credentials: {response.status_code}")
        raise AuthError(f"{service} rejected the access token ({response.status_code})")

    if not response.is_success:
        body = response.text
        logger.error(f"{service} error {response.status_code}: {body[:500]}")
        raise ApiError(
            response.status_code,
            body,
            description=f"{service} returned {response.status_code} {response.reason_phrase}",
            title=f"{service} error",
        )

    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError):
        # Some endpoints answer with plain text on success
        return response.text
