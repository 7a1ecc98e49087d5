"""HTTP access log middleware.

One record per request, written after the handler returns. The record's
level follows the response status tier; successful requests to ignored
paths (health checks, metrics scrapes) write nothing. Access records carry
their own fields only: no context or registry enrichment.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, NamedTuple, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ctxlog.logging.fields import Field
from ctxlog.logging.logger import ContextLogger
from ctxlog.logging.trace import request_id_from_headers


class Tier(NamedTuple):
    level: int
    event: str
    name: str


SERVER_ERROR = Tier(logging.ERROR, "httpserver_server_error", "server_error")
CLIENT_ERROR = Tier(logging.WARNING, "httpserver_client_error", "client_error")
REDIRECTION = Tier(logging.DEBUG, "httpserver_redirection", "redirection")
SUCCESS = Tier(logging.DEBUG, "httpserver_success", "success")


def classify_status(status: int) -> Tier:
    if status >= 500:
        return SERVER_ERROR
    if status >= 400:
        return CLIENT_ERROR
    if status >= 300:
        return REDIRECTION
    return SUCCESS


def real_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",", 1)[0].strip()
    xri = request.headers.get("x-real-ip")
    if xri:
        return xri.strip()
    if request.client:
        return request.client.host or ""
    return ""


def request_uri(request: Request) -> str:
    """Request target as sent by the client: undecoded path plus query string."""
    raw = request.scope.get("raw_path")
    path = raw.decode("latin-1") if raw else request.scope.get("path", "")
    query = request.scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


class AccessLogMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, logger: ContextLogger, ignore_paths: Iterable[str] = (), metrics=None) -> None:
        super().__init__(app)
        self.logger = logger
        self.ignore_paths = frozenset(ignore_paths)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            # the framework turns this into a 500; log it as one and let it propagate
            self.emit(request, None, 500, time.perf_counter() - start)
            raise
        self.emit(request, response, response.status_code, time.perf_counter() - start)
        return response

    def emit(self, request: Request, response: Optional[Response], status: int, latency: float) -> None:
        tier = classify_status(status)
        if self.metrics is not None:
            self.metrics.observe_request(request.method, tier.name, latency)
        if tier is SUCCESS and request.url.path in self.ignore_paths:
            return
        fields = (
            Field("status", status),
            Field("latency", latency),
            Field("id", request_id_from_headers(request.headers, response.headers if response is not None else None)),
            Field("method", request.method),
            Field("uri", request_uri(request)),
            Field("host", request.headers.get("host") or (request.url.hostname or "")),
            Field("remote_ip", real_ip(request)),
        )
        self.logger.log_fields(tier.level, tier.event, fields)
