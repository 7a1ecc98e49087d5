from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, REGISTRY, generate_latest
from pydantic import BaseModel, Field

from ctxlog.config import VERSION, Settings, load_settings
from ctxlog.http import AccessLogMiddleware
from ctxlog.logging import REQUEST_ID_HEADER, ContextLogger, LogContext, LogField, new_trace_id, with_field
from ctxlog.telemetry import LogMetrics

SERVICE = "api-service"


class OrderIn(BaseModel):
    order_uid: str = Field(..., min_length=1, max_length=64)
    item_rid: str = Field(..., min_length=1, max_length=64)
    qty: int = Field(..., description="quantity, must be positive")


def request_context(request: Request) -> LogContext:
    """Per-request logging context: trace id plus the caller's user/client ids."""
    ctx = getattr(request.state, "log_context", None)
    if ctx is not None:
        return ctx
    ctx = LogContext.background().with_value(
        LogField.TRACE_ID, request.headers.get(REQUEST_ID_HEADER) or new_trace_id()
    )
    for header, key in (("X-User-ID", LogField.USER_ID), ("X-Client-ID", LogField.CLIENT_ID)):
        v = request.headers.get(header)
        if v:
            ctx = ctx.with_value(key, v)
    request.state.log_context = ctx
    return ctx


def get_logger(request: Request) -> ContextLogger:
    return request.app.state.logger


def create_app(
    settings: Optional[Settings] = None,
    *,
    logger: Optional[ContextLogger] = None,
    metrics: Optional[LogMetrics] = None,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    settings = settings or load_settings()
    registry = registry if registry is not None else REGISTRY
    metrics = metrics if metrics is not None else LogMetrics(settings.service_name, registry=registry)
    logger = logger or ContextLogger.from_settings(settings, metrics=metrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = LogContext.background()
        logger.infof(ctx, "startup", "service", settings.service_name, "version", VERSION, "env", settings.env)
        yield
        logger.info(ctx, "shutdown")
        logger.flush()

    app = FastAPI(title=SERVICE, version=VERSION, lifespan=lifespan)
    app.state.logger = logger
    app.state.orders = {}
    app.add_middleware(
        AccessLogMiddleware,
        logger=logger,
        ignore_paths=settings.access_log_ignore_paths,
        metrics=metrics,
    )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        ctx = request_context(request)
        logger.errorf(ctx, "unhandled_exception", exc, "path", str(request.url.path), "method", str(request.method))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error", "trace_id": ctx.value(LogField.TRACE_ID)},
        )

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "service": settings.service_name, "version": VERSION}

    @app.get("/metrics")
    def metrics_endpoint() -> PlainTextResponse:
        data = generate_latest(registry)
        return PlainTextResponse(content=data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    @app.post("/orders")
    def create_order(
        body: OrderIn,
        ctx: LogContext = Depends(request_context),
        log: ContextLogger = Depends(get_logger),
    ) -> Dict[str, Any]:
        ctx = with_field(ctx, LogField.ORDER_UID.value, body.order_uid)
        ctx = with_field(ctx, LogField.ITEM_RID.value, body.item_rid)
        if body.qty <= 0:
            log.warnf(ctx, "order_rejected", "reason", "non_positive_qty")
            raise HTTPException(status_code=400, detail="qty must be positive")
        app.state.orders[body.order_uid] = body.model_dump()
        log.info(ctx, "order_created")
        return {"ok": True, "order_uid": body.order_uid, "trace_id": ctx.value(LogField.TRACE_ID)}

    @app.get("/orders/{order_uid}")
    def get_order(
        order_uid: str,
        ctx: LogContext = Depends(request_context),
        log: ContextLogger = Depends(get_logger),
    ) -> Dict[str, Any]:
        ctx = with_field(ctx, LogField.ORDER_UID.value, order_uid)
        order = app.state.orders.get(order_uid)
        if order is None:
            log.debug(ctx, "order_not_found")
            raise HTTPException(status_code=404, detail="order not found")
        return order

    return app


app = create_app()
