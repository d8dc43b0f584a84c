"""
Note uploaders, globally and per subject:
  {"all": ["Dan", "Eve"], "PHY": ["Dan"], "CHE": ["Eve"]}

Subject keys are whatever abbreviations show up on created notes.
"""

from __future__ import annotations

from typing import Any, Optional

from aggregate_updater.aggregate_store import apply_update
from aggregate_updater.context import TaskContext
from aggregate_updater.errors import ValidationSkip
from aggregate_updater.event_utils import EventKind, payload_str
from aggregate_updater.handlers.links_cache import add_name
from aggregate_updater.structured_log import log


TASK_NAME = "uploader_cache"
ALL_KEY = "all"


def add_uploader(cache: dict[str, Any], *, name: str, category: str) -> bool:
    """
    Adds `name` to the global list and to `category`'s list, creating either on first use.

    Mutates `cache` in place; returns True if anything was inserted.
    """
    changed = False
    for key in (ALL_KEY, category):
        updated = add_name(cache.get(key), name)
        if updated is not None:
            cache[key] = updated
            changed = True
    return changed


def update_uploader_cache(ctx: TaskContext) -> dict[str, Any]:
    event = ctx.event
    if event.collection_id != ctx.config.note_collection_id:
        raise ValidationSkip("non_note_collection")
    if event.kind != EventKind.CREATE:
        raise ValidationSkip("non_create_event")

    name = payload_str(event.payload, "userName")
    category = payload_str(event.payload, "abbreviation")
    if not name or not category:
        raise ValidationSkip("missing_user_or_abbreviation")

    def _mutate(current: dict[str, Any]) -> Optional[dict[str, Any]]:
        return current if add_uploader(current, name=name, category=category) else None

    applied = apply_update(
        ctx.store,
        ctx.uploaders_cache_ref,
        default={},
        mutate=_mutate,
        max_attempts=ctx.config.write_max_attempts,
    )
    log("uploader_cache.checked", severity="INFO", uploader=name, category=category, applied=applied)
    return {
        "kind": TASK_NAME,
        "applied": applied,
        "reason": "applied" if applied else "already_cached",
        "name": name,
        "category": category,
    }
