"""Structured logging: line formatters, the stdout sink and ContextLogger."""

from __future__ import annotations

import errno
import io
import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, TextIO, Tuple

from ctxlog.telemetry.error_tracking import ErrorReporter

from .context import LogContext
from .fields import Field, FieldRegistry
from .merge import merge_fields

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}
LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
}

# fsync on a terminal or pipe fails with one of these; nothing was lost
BENIGN_SYNC_ERRNOS = frozenset({errno.EINVAL, errno.ENOTTY})


def parse_level(raw: Any) -> int:
    """DEBUG / WARN / ERROR map to their level; anything else is INFO."""
    return LEVELS.get(str(raw or "").strip().upper(), logging.INFO)


def level_name(level: int) -> str:
    return LEVEL_NAMES.get(level, logging.getLevelName(level).lower())


def rfc3339(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class _FieldsFormatter(logging.Formatter):
    def pairs(self, record: logging.LogRecord) -> List[Tuple[str, Any]]:
        out: List[Tuple[str, Any]] = [
            ("ts", rfc3339(record.created)),
            ("level", level_name(record.levelno)),
            ("logger", record.name),
            ("caller", f"{record.filename}:{record.lineno}"),
            ("msg", record.getMessage()),
        ]
        for f in getattr(record, "fields", ()) or ():
            out.append((str(f[0]), f[1]))
        if record.exc_info and record.exc_info[1] is not None:
            out.append(("stacktrace", "".join(traceback.format_exception(*record.exc_info)).rstrip()))
        return out


class KVFormatter(_FieldsFormatter):
    def format(self, record: logging.LogRecord) -> str:
        return " ".join([f"{k}={repr(v)}" for k, v in self.pairs(record)])


class JSONFormatter(_FieldsFormatter):
    """One JSON object per line. Duplicate keys are written as-is, in order."""

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        for k, v in self.pairs(record):
            try:
                encoded = json.dumps(v, ensure_ascii=False, default=str)
            except (TypeError, ValueError):
                encoded = json.dumps(str(v), ensure_ascii=False)
            parts.append(f"{json.dumps(k, ensure_ascii=False)}:{encoded}")
        return "{" + ",".join(parts) + "}"


FORMATTERS = {"json": JSONFormatter, "kv": KVFormatter}


def get_logger(name: str, stream: Optional[TextIO] = None, fmt: str = "json") -> logging.Logger:
    """Sink logger writing one line per record to stdout (or the given stream).

    An already configured logger is returned unchanged.

    Level gating belongs to ContextLogger, so the sink itself accepts everything.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)
    h = logging.StreamHandler(stream if stream is not None else sys.stdout)
    h.setFormatter(FORMATTERS[fmt]())
    logger.addHandler(h)
    logger.propagate = False
    return logger


def is_benign_sync_error(exc: BaseException) -> bool:
    if isinstance(exc, io.UnsupportedOperation):
        return True
    return isinstance(exc, OSError) and exc.errno in BENIGN_SYNC_ERRNOS


def _sync_stream(stream: Any) -> None:
    fileno = getattr(stream, "fileno", None)
    if fileno is None:
        return
    os.fsync(fileno())


def _exc_info(err: Any):
    if isinstance(err, BaseException) and err.__traceback__ is not None:
        return (type(err), err, err.__traceback__)
    return None


class ContextLogger:
    """Leveled logger that merges registry, context and call-site fields.

    One instance is built at startup and handed to everything that logs.
    Emit methods never raise and never return anything.

    The sink is the stdlib logger called ``name``. Its handler is installed
    by the first ContextLogger built under that name; later ones with the
    same name share it and their ``stream`` and ``fmt`` are ignored. Pass a
    distinct name (or an explicit ``sink``) to write somewhere else.
    """

    def __init__(
        self,
        name: str = "app",
        *,
        level: Any = "INFO",
        registry: Optional[FieldRegistry] = None,
        reporter: Optional[ErrorReporter] = None,
        metrics=None,
        stream: Optional[TextIO] = None,
        fmt: str = "json",
        flush_timeout: float = 3.0,
        sink: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        # set once; a plain int attribute read is atomic
        self._level = level if isinstance(level, int) else parse_level(level)
        self.registry = registry if registry is not None else FieldRegistry()
        self.reporter = reporter if reporter is not None else ErrorReporter()
        self.metrics = metrics
        self.flush_timeout = float(flush_timeout)
        self._sink = sink if sink is not None else get_logger(name, stream=stream, fmt=fmt)

    @classmethod
    def from_settings(cls, settings, *, registry=None, reporter=None, metrics=None, stream=None) -> "ContextLogger":
        if registry is None:
            registry = FieldRegistry(settings.log_context_fields)
        if reporter is None:
            reporter = ErrorReporter()
            reporter.configure(settings.sentry_dsn, settings.sentry_environment, settings.sentry_release)
        return cls(
            settings.service_name,
            level=settings.log_level,
            registry=registry,
            reporter=reporter,
            metrics=metrics,
            stream=stream,
            fmt=settings.log_format,
            flush_timeout=settings.flush_timeout_seconds,
        )

    @property
    def level(self) -> int:
        return self._level

    def enabled_for(self, level: int) -> bool:
        return level >= self._level

    # -----------------------------
    # leveled emit
    # -----------------------------

    def debug(self, ctx: Optional[LogContext], msg: str) -> None:
        self._log(logging.DEBUG, ctx, msg, ())

    def info(self, ctx: Optional[LogContext], msg: str) -> None:
        self._log(logging.INFO, ctx, msg, ())

    def warn(self, ctx: Optional[LogContext], msg: str) -> None:
        self._log(logging.WARNING, ctx, msg, ())

    def debugf(self, ctx: Optional[LogContext], msg: str, *fields: Any) -> None:
        self._log(logging.DEBUG, ctx, msg, fields)

    def infof(self, ctx: Optional[LogContext], msg: str, *fields: Any) -> None:
        self._log(logging.INFO, ctx, msg, fields)

    def warnf(self, ctx: Optional[LogContext], msg: str, *fields: Any) -> None:
        self._log(logging.WARNING, ctx, msg, fields)

    def error(self, ctx: Optional[LogContext], msg: str, err: Any) -> None:
        """Log msg at error level with err as the error field, then report it."""
        self._log_error(ctx, msg, err, ())

    def errorf(self, ctx: Optional[LogContext], msg: str, err: Any, *fields: Any) -> None:
        self._log_error(ctx, msg, err, fields)

    def send_error(self, ctx: Optional[LogContext], err: Any, *fields: Any) -> None:
        """Report err to error tracking without writing a log line."""
        res = merge_fields(ctx, fields, self.registry)
        self.reporter.capture_message(res.tags, err, str(err))
        if self.metrics is not None:
            self.metrics.observe_report("message")

    def log_fields(self, level: int, msg: str, fields: Iterable[Field]) -> None:
        """Write a record with exactly these fields, no context merge."""
        if not self.enabled_for(level):
            return
        self._write(level, msg, tuple(fields), None, 3)

    def _log(self, level: int, ctx: Optional[LogContext], msg: str, call_site: Sequence) -> None:
        if not self.enabled_for(level):
            return
        res = merge_fields(ctx, call_site, self.registry)
        self._write(level, msg, res.fields, None, 4)

    def _log_error(self, ctx: Optional[LogContext], msg: str, err: Any, call_site: Sequence) -> None:
        res = merge_fields(ctx, call_site, self.registry)
        fields = res.fields
        if err is not None:
            fields = fields + (Field("error", str(err)),)
        if self.enabled_for(logging.ERROR):
            self._write(logging.ERROR, msg, fields, _exc_info(err), 4)
        self.reporter.capture_error(res.tags, err, msg)
        if self.metrics is not None:
            self.metrics.observe_report("exception")

    def _write(self, level: int, msg: str, fields: Tuple[Field, ...], exc_info, stacklevel: int) -> None:
        # stacklevel points the record's caller at user code, not at this class
        self._sink.log(level, msg, exc_info=exc_info, extra={"fields": fields}, stacklevel=stacklevel)
        if self.metrics is not None:
            self.metrics.observe_record(level_name(level))

    # -----------------------------
    # drain
    # -----------------------------

    def flush(self) -> None:
        """Drain error tracking (bounded wait) and sync the sink. Never raises."""
        self.reporter.flush(self.flush_timeout)
        for h in self._sink.handlers:
            try:
                h.flush()
                _sync_stream(getattr(h, "stream", None))
            except Exception as e:
                if not is_benign_sync_error(e):
                    print(f"logger flush error: {e}", file=sys.stderr)
