"""Context-aware structured logging with error tracking and HTTP access logs."""

from ctxlog.config.loader import VERSION as __version__
