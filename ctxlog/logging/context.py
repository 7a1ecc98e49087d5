"""Request-scoped logging context.

A LogContext is an immutable chain of key/value nodes: deriving a child never
changes the parent, so one context can be shared by any number of threads or
tasks, and siblings derived from the same parent never see each other's values.

Fields attached with with_field() live in a FieldStore stored under a single
well-known key. Plain values attached with with_value() are what the field
registry looks up (userID, traceID, ...).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional, Tuple

from .fields import Field


class LogField(str, Enum):
    """Well-known per-request context keys."""

    TRACE_ID = "traceID"
    ORDER_UID = "orderUID"
    HANDLER = "handler"
    CLIENT_ID = "clientID"
    USER_ID = "userID"
    ITEM_SRID = "itemSRID"
    ITEM_RID = "itemRID"


# object() sentinel: unlike a string key it can never collide with a user key
FIELDS_KEY = object()

_MISSING = object()


@dataclass(frozen=True)
class FieldStore:
    """Persistent append-only list of fields (newest node points at the older ones)."""

    field: Optional[Field] = None
    parent: Optional["FieldStore"] = None
    size: int = 0

    def append(self, key: str, value: str) -> "FieldStore":
        return FieldStore(field=Field(key, value), parent=self, size=self.size + 1)

    def items(self) -> Tuple[Field, ...]:
        out = []
        node: Optional[FieldStore] = self
        while node is not None and node.field is not None:
            out.append(node.field)
            node = node.parent
        out.reverse()
        return tuple(out)

    def __iter__(self) -> Iterator[Field]:
        return iter(self.items())

    def __len__(self) -> int:
        return self.size


EMPTY_STORE = FieldStore()


@dataclass(frozen=True)
class LogContext:
    parent: Optional["LogContext"] = None
    key: Any = None
    val: Any = None

    @classmethod
    def background(cls) -> "LogContext":
        return _BACKGROUND

    def with_value(self, key: Any, value: Any) -> "LogContext":
        if isinstance(key, LogField):
            key = key.value
        return LogContext(parent=self, key=key, val=value)

    def value(self, key: Any, default: Any = None) -> Any:
        if isinstance(key, LogField):
            key = key.value
        node: Optional[LogContext] = self
        while node is not None:
            if node.parent is not None and node.key == key:
                return node.val
            node = node.parent
        return default

    def has(self, key: Any) -> bool:
        return self.value(key, _MISSING) is not _MISSING


_BACKGROUND = LogContext()


def ensure_context(ctx: Optional[LogContext]) -> LogContext:
    return ctx if ctx is not None else _BACKGROUND


def with_value(ctx: Optional[LogContext], key: Any, value: Any) -> LogContext:
    return ensure_context(ctx).with_value(key, value)


def context_fields(ctx: Optional[LogContext]) -> Tuple[Field, ...]:
    """Fields stored in ctx, in the order they were added.

    Foreign data under the fields key never fails the caller: a legacy flat
    ``[k1, v1, k2, v2, ...]`` string sequence is read pairwise (a trailing
    unpaired element is dropped), anything else counts as no fields.
    """
    raw = ensure_context(ctx).value(FIELDS_KEY)
    if raw is None:
        return ()
    if isinstance(raw, FieldStore):
        return raw.items()
    if isinstance(raw, (list, tuple)) and all(isinstance(x, str) for x in raw):
        return tuple(Field(raw[i], raw[i + 1]) for i in range(0, len(raw) - 1, 2))
    return ()


def with_field(ctx: Optional[LogContext], key: str, value: str) -> LogContext:
    """Return a child of ctx whose FieldStore has (key, value) appended."""
    ctx = ensure_context(ctx)
    raw = ctx.value(FIELDS_KEY)
    if isinstance(raw, FieldStore):
        store = raw
    else:
        store = EMPTY_STORE
        for f in context_fields(ctx):
            store = store.append(f.key, f.value)
    return ctx.with_value(FIELDS_KEY, store.append(key, value))
