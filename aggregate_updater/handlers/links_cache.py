"""
Flat cache of link uploader names: {"uploaders": ["Alice", "Carol"]}.

Any created document with a `createdBy` field qualifies. Names are only ever
added; deletions are not reflected.
"""

from __future__ import annotations

from typing import Any, Optional

from aggregate_updater.aggregate_store import apply_update
from aggregate_updater.context import TaskContext
from aggregate_updater.errors import StoreError, ValidationSkip
from aggregate_updater.event_utils import EventKind, payload_str
from aggregate_updater.structured_log import log


TASK_NAME = "links_cache"


def add_name(names: Any, name: str) -> Optional[list[str]]:
    """
    Returns the sorted, de-duplicated list with `name` added, or None if it is already present.

    A bare string (a single name stored without its list) counts as a one-name
    list. Any other value, or a list holding non-strings, raises StoreError
    rather than being overwritten.
    """
    if names is None:
        current: list[str] = []
    elif isinstance(names, str):
        current = [names]
    elif isinstance(names, list) and all(isinstance(n, str) for n in names):
        current = names
    else:
        raise StoreError(f"unexpected_name_list:{type(names).__name__}")
    if name in current:
        return None
    return sorted(set(current) | {name})


def update_links_cache(ctx: TaskContext) -> dict[str, Any]:
    event = ctx.event
    if event.kind != EventKind.CREATE:
        raise ValidationSkip("non_create_event")

    uploader = payload_str(event.payload, "createdBy")
    if not uploader:
        raise ValidationSkip("no_uploader")

    def _mutate(current: dict[str, Any]) -> Optional[dict[str, Any]]:
        uploaders = add_name(current.get("uploaders"), uploader)
        if uploaders is None:
            return None
        current["uploaders"] = uploaders
        return current

    applied = apply_update(
        ctx.store,
        ctx.links_cache_ref,
        default={},
        mutate=_mutate,
        max_attempts=ctx.config.write_max_attempts,
    )
    log("links_cache.checked", severity="INFO", uploader=uploader, applied=applied)
    return {
        "kind": TASK_NAME,
        "applied": applied,
        "reason": "applied" if applied else "already_cached",
        "name": uploader,
    }
