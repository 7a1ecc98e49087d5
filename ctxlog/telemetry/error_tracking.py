from __future__ import annotations

"""
Error tracking bridge (Sentry).

- configure() must run before the first report; until then (or with an empty
  DSN) every call is a silent no-op.
- Each report runs in its own scope: the merged tags, an `error` tag with the
  error text, level "error".
- Two submission styles stay separate: capture_error() sends the exception
  object (logger error path), capture_message() sends a message string
  (report-only path).
- Reporting failures never reach the caller.
"""

import sys
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration


class ErrorReporter:
    def __init__(self) -> None:
        self._enabled = False
        self.environment = ""
        self.release = ""

    def enabled(self) -> bool:
        return self._enabled

    def configure(self, dsn: str, environment: str = "", release: str = "") -> bool:
        """Initialize the Sentry client. Calling again re-initializes with the new values."""
        dsn = (dsn or "").strip()
        self.environment = (environment or "").strip()
        self.release = (release or "").strip()
        if not dsn:
            self._enabled = False
            return False
        try:
            sentry_sdk.init(
                dsn=dsn,
                environment=self.environment or None,
                release=self.release or None,
                # records are not events; only capture_error/capture_message report
                integrations=[LoggingIntegration(event_level=None)],
            )
        except Exception as e:
            # a bad DSN must not stop the service from starting
            print(f"error tracking disabled: {e}", file=sys.stderr)
            self._enabled = False
            return False
        self._enabled = True
        return True

    # -----------------------------
    # submission
    # -----------------------------

    def capture_error(self, tags: Dict[str, str], err: Any, msg: str) -> None:
        if not self._enabled:
            return
        try:
            with sentry_sdk.new_scope() as scope:
                self._prepare(scope, tags, err)
                if isinstance(err, BaseException):
                    sentry_sdk.capture_exception(err)
                else:
                    sentry_sdk.capture_message(msg)
        except Exception:
            return

    def capture_message(self, tags: Dict[str, str], err: Any, msg: str) -> None:
        if not self._enabled:
            return
        try:
            with sentry_sdk.new_scope() as scope:
                self._prepare(scope, tags, err)
                sentry_sdk.capture_message(msg)
        except Exception:
            return

    @staticmethod
    def _prepare(scope, tags: Optional[Dict[str, str]], err: Any) -> None:
        for k, v in (tags or {}).items():
            scope.set_tag(k, v)
        if err is not None:
            scope.set_tag("error", str(err))
        scope.set_level("error")

    def flush(self, timeout: float = 3.0) -> None:
        if not self._enabled:
            return
        try:
            sentry_sdk.flush(timeout=timeout)
        except Exception as e:
            print(f"error tracking flush error: {e}", file=sys.stderr)
