"""Merge of call-site, context and registry fields into one record."""

from __future__ import annotations

from typing import Dict, NamedTuple, Optional, Sequence, Tuple

from .context import LogContext, context_fields, ensure_context
from .fields import Field, FieldRegistry, call_site_fields


class MergeResult(NamedTuple):
    fields: Tuple[Field, ...]
    tags: Dict[str, str]


def registry_fields(ctx: Optional[LogContext], registry: Optional[FieldRegistry]) -> Tuple[Field, ...]:
    if registry is None:
        return ()
    ctx = ensure_context(ctx)
    out = []
    for key in registry.keys():
        v = ctx.value(key)
        if isinstance(v, str) and v != "":
            out.append(Field(key, v))
    return tuple(out)


def merge_fields(
    ctx: Optional[LogContext],
    call_site: Sequence = (),
    registry: Optional[FieldRegistry] = None,
) -> MergeResult:
    """Combine fields in order: call-site, context FieldStore, registry lookups.

    The field list keeps every entry, duplicates included. The tag map is
    built in the same order, so a later source overwrites an earlier one
    sharing its key.
    """
    fields = call_site_fields(call_site) + context_fields(ctx) + registry_fields(ctx, registry)
    tags: Dict[str, str] = {}
    for f in fields:
        tags[f.key] = str(f.value)
    return MergeResult(fields, tags)
