"""Kubernetes API failures that requests report as upstream errors.

``ApiException`` covers error statuses returned by the API server.  When the
server cannot be reached at all (connection refused, DNS, TLS) the aiohttp
transport underneath kubernetes_asyncio raises ``aiohttp.ClientError`` or a
bare ``OSError`` instead.
"""

from __future__ import annotations

import aiohttp
from kubernetes_asyncio.client.exceptions import ApiException

KUBE_API_ERRORS: tuple[type[Exception], ...] = (ApiException, aiohttp.ClientError, OSError)


def failure_reason(exc: Exception) -> str:
    """Short human-readable reason for a failed API call."""
    if isinstance(exc, ApiException):
        return str(exc.reason)
    return str(exc) or type(exc).__name__


def failure_status(exc: Exception) -> str:
    """HTTP status of the failure, or ``transport`` if no response arrived."""
    if isinstance(exc, ApiException):
        return str(exc.status)
    return "transport"
