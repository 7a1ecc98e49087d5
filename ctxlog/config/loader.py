"""Configuration loader.

Design goals:
- Environment variables are the source of truth (12-factor style); a local
  `.env` fills in anything not already set.
- Values are read when Settings is constructed, not at import time.
- Invalid settings fail at startup, never at log time.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv(override=False)

VERSION = "0.1.0"

ALLOWED_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARN", "ERROR")
ALLOWED_LOG_FORMATS: set[str] = {"json", "kv"}


def _env_first(*names: str, default: str = "") -> str:
    """Return the first non-empty value among the given env keys."""
    for n in names:
        v = os.getenv(n)
        if v is not None and str(v).strip() != "":
            return str(v).strip()
    return default


def _parse_csv_env(name: str, *, fallback: str = "") -> tuple[str, ...]:
    """Parse comma/space separated env into a tuple (first occurrence wins).

    If env is empty, use fallback.
    """
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        raw = str(fallback).strip()
    if not raw:
        return tuple()
    seen = set()
    out = []
    for p in re.split(r"[\s,]+", raw):
        p = p.strip()
        if p and p not in seen:
            seen.add(p)
            out.append(p)
    return tuple(out)


def _log_level_env() -> str:
    # only DEBUG / WARN / ERROR are recognized; anything else means INFO
    raw = os.getenv("LOG_LEVEL", "").strip().upper()
    return raw if raw in ALLOWED_LOG_LEVELS else "INFO"


@dataclass(frozen=True)
class Settings:
    service_name: str = field(default_factory=lambda: _env_first("SERVICE_NAME", default="api-service"))
    env: str = field(default_factory=lambda: _env_first("ENV", "APP_ENV", default="dev"))

    # Logging
    log_level: str = field(default_factory=_log_level_env)
    log_format: str = field(default_factory=lambda: _env_first("LOG_FORMAT", default="json").lower())
    # Context keys added to every record when present on the request context
    log_context_fields: tuple[str, ...] = field(default_factory=lambda: _parse_csv_env("LOG_CONTEXT_FIELDS"))
    flush_timeout_seconds: float = field(default_factory=lambda: float(_env_first("FLUSH_TIMEOUT_SECONDS", default="3")))

    # Error tracking (Sentry); empty DSN disables reporting
    sentry_dsn: str = field(default_factory=lambda: _env_first("SENTRY_DSN"))
    sentry_environment: str = field(default_factory=lambda: _env_first("SENTRY_ENVIRONMENT", "ENV", "APP_ENV", default="dev"))
    sentry_release: str = field(default_factory=lambda: _env_first("SENTRY_RELEASE", default=VERSION))

    # HTTP access log: exact paths whose successful requests are not logged
    access_log_ignore_paths: tuple[str, ...] = field(
        default_factory=lambda: _parse_csv_env("ACCESS_LOG_IGNORE_PATHS", fallback="/health,/metrics")
    )

    def is_sentry_enabled(self) -> bool:
        return bool(self.sentry_dsn)


def load_settings() -> Settings:
    """Create Settings with basic validation."""
    s = Settings()
    if s.log_format not in ALLOWED_LOG_FORMATS:
        raise ValueError(
            f"Invalid LOG_FORMAT={s.log_format!r}. Allowed: {', '.join(sorted(ALLOWED_LOG_FORMATS))}"
        )
    if s.flush_timeout_seconds < 0:
        raise ValueError(f"Invalid FLUSH_TIMEOUT_SECONDS={s.flush_timeout_seconds!r}")
    return s
