import contextlib
import io
import json
import uuid

import pytest
from prometheus_client import CollectorRegistry

from ctxlog.logging import ContextLogger, FieldRegistry
from ctxlog.telemetry import ErrorReporter, LogMetrics
from ctxlog.telemetry import error_tracking


class FakeScope:
    def __init__(self):
        self.tags = {}
        self.level = None

    def set_tag(self, key, value):
        self.tags[key] = value

    def set_level(self, level):
        self.level = level


class FakeSentry:
    """Stands in for the sentry_sdk module: records what would be sent."""

    def __init__(self):
        self.inits = []
        self.events = []
        self.flushes = []
        self._scope = None

    def init(self, **kwargs):
        self.inits.append(kwargs)

    @contextlib.contextmanager
    def new_scope(self):
        self._scope = FakeScope()
        try:
            yield self._scope
        finally:
            self._scope = None

    def capture_exception(self, err):
        self.events.append({"kind": "exception", "payload": err, "tags": dict(self._scope.tags), "level": self._scope.level})

    def capture_message(self, msg):
        self.events.append({"kind": "message", "payload": msg, "tags": dict(self._scope.tags), "level": self._scope.level})

    def flush(self, timeout=None):
        self.flushes.append(timeout)


@pytest.fixture
def fake_sentry(monkeypatch):
    fake = FakeSentry()
    monkeypatch.setattr(error_tracking, "sentry_sdk", fake)
    return fake


@pytest.fixture
def reporter(fake_sentry):
    r = ErrorReporter()
    r.configure("https://key@sentry.example.com/1", "test", "1.2.3")
    return r


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def prom_registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(prom_registry):
    return LogMetrics("svc", registry=prom_registry)


@pytest.fixture
def make_logger(stream):
    def _make(level="DEBUG", registry=None, reporter=None, fmt="json", metrics=None):
        return ContextLogger(
            f"test-{uuid.uuid4().hex}",
            level=level,
            registry=registry if registry is not None else FieldRegistry(),
            reporter=reporter,
            metrics=metrics,
            stream=stream,
            fmt=fmt,
        )

    return _make


def read_records(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def read_record_pairs(stream):
    """Like read_records, but keeps duplicate keys as ordered (key, value) pairs."""
    return [json.loads(line, object_pairs_hook=list) for line in stream.getvalue().splitlines() if line.strip()]
