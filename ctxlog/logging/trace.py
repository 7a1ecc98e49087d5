"""Trace / request id helpers."""

from __future__ import annotations
import secrets, time

REQUEST_ID_HEADER = "X-Request-ID"


def new_trace_id(prefix: str = "req") -> str:
    ms = int(time.time() * 1000)
    return f"{prefix}_{ms}_{secrets.token_hex(6)}"


def request_id_from_headers(request_headers, response_headers=None) -> str:
    """Request id from the request header, else the response header, else ""."""
    rid = request_headers.get(REQUEST_ID_HEADER) or ""
    if not rid and response_headers is not None:
        rid = response_headers.get(REQUEST_ID_HEADER) or ""
    return rid
