"""
HTTP plumbing shared by the courier and storefront adapters.

Wraps `requests` so every adapter maps transport failures and HTTP status
codes onto the same error taxonomy:

- 401/403            -> UpstreamAuthError
- 404                -> UpstreamNotFound
- other non-2xx      -> UpstreamTransientError
- timeout/connection -> UpstreamTransientError
- unparseable JSON   -> MalformedPayloadError
"""
from typing import Any, Dict, Optional

import requests

from courierhub.config import settings
from courierhub.services.errors import (
    MalformedPayloadError, UpstreamAuthError, UpstreamNotFound, UpstreamTransientError
)


def send(
    method: str,
    url: str,
    source: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    json_body: Any = None,
    data: Any = None,
    proxies: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> requests.Response:
    """
    Perform one upstream request and raise the mapped error on failure.

    Args:
        source: Upstream name used in error messages (e.g. "PostEx")
        proxies: Optional requests-style proxy mapping

    Returns:
        The successful requests.Response
    """
    try:
        response = requests.request(
            method,
            url,
            headers=headers,
            params=params,
            json=json_body,
            data=data,
            proxies=proxies,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        )
    except requests.exceptions.Timeout:
        raise UpstreamTransientError(f"{source} request timeout", 408)
    except requests.exceptions.RequestException as e:
        raise UpstreamTransientError(f"{source} connection error: {str(e)}", 0)

    if response.status_code in (401, 403):
        raise UpstreamAuthError(
            f"{source} rejected credentials (HTTP {response.status_code})", response.status_code
        )

    if response.status_code == 404:
        raise UpstreamNotFound(f"{source} resource not found", 404)

    if not response.ok:
        error_text = response.text[:200] if response.text else f"HTTP {response.status_code}"
        raise UpstreamTransientError(f"{source} API error: {error_text}", response.status_code)

    return response


def parse_json(response: requests.Response, source: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise MalformedPayloadError(f"{source} returned invalid JSON: {str(e)}", response.status_code)
