"""Map mark-seen failures to short analytics error codes.

Only one of a handful of fixed codes ever leaves this module.  Exception
messages, URLs and hostnames are never copied into ``error_code``.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

ERROR_UNAUTHORIZED = "unauthorized"
ERROR_SERVER = "server_error"
ERROR_REQUEST = "request_error"
ERROR_NETWORK = "network_error"
ERROR_UNKNOWN = "unknown_error"

VALID_ERROR_CODES: frozenset[str] = frozenset({
    ERROR_UNAUTHORIZED,
    ERROR_SERVER,
    ERROR_REQUEST,
    ERROR_NETWORK,
    ERROR_UNKNOWN,
})

_NETWORK_SYSTEM_CODES = frozenset({"ECONNREFUSED", "ENOTFOUND", "ETIMEDOUT", "ECONNRESET"})

_NETWORK_EXCEPTIONS: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError)


def _read(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def _parse_http_status(error: Any) -> int | float | None:
    status = _read(error, "status")
    if status is None:
        status = _read(error, "status_code")
    if isinstance(status, bool) or not isinstance(status, (int, float)):
        return None
    if not math.isfinite(status):
        return None
    return status


def _parse_system_code(error: Any) -> str | None:
    code = _read(error, "code")
    if not isinstance(code, str):
        return None
    normalized = code.strip().upper()
    return normalized or None


def map_seen_failure_to_error_code(error: Any) -> str:
    """Return a fixed error code describing why marking posts seen failed."""
    status = _parse_http_status(error)
    if status in (401, 403):
        return ERROR_UNAUTHORIZED
    if status is not None and status >= 500:
        return ERROR_SERVER
    if status is not None and status >= 400:
        return ERROR_REQUEST

    system_code = _parse_system_code(error)
    if system_code in _NETWORK_SYSTEM_CODES:
        return ERROR_NETWORK

    if isinstance(error, _NETWORK_EXCEPTIONS):
        return ERROR_NETWORK

    return ERROR_UNKNOWN
