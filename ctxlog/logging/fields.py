"""Field types, call-site field parsing and the process-wide field registry."""

from __future__ import annotations

import threading
from typing import Any, Iterable, NamedTuple, Sequence, Tuple


class Field(NamedTuple):
    key: str
    value: Any


def call_site_fields(items: Sequence[Any]) -> Tuple[Field, ...]:
    """Parse call-site fields.

    Accepts either typed Field values or the alternating ``key, value, ...``
    string form. A malformed sequence (odd length, mixed forms, non-string
    keys) yields no fields at all rather than misaligned ones.
    """
    if not items:
        return ()
    if all(isinstance(x, Field) for x in items):
        return tuple(items)
    if len(items) % 2 != 0:
        return ()
    if not all(isinstance(x, str) for x in items):
        return ()
    return tuple(Field(items[i], items[i + 1]) for i in range(0, len(items), 2))


class FieldRegistry:
    """Context keys whose values are added to every merged record.

    Registration is normally done once at startup. Late registration is still
    safe: appends are serialized and readers only ever see a complete tuple.
    """

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._keys: Tuple[str, ...] = ()
        for k in keys:
            self.register(k)

    def register(self, key: Any) -> None:
        key = str(getattr(key, "value", key))
        with self._lock:
            if key not in self._keys:
                self._keys = self._keys + (key,)

    def keys(self) -> Tuple[str, ...]:
        return self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self):
        return iter(self._keys)
