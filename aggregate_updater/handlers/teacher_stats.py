"""
Per-user contribution counters.

Stats document shape (JSON list, highest total first):
  [{"name": "Alice", "notes": 3, "forms": 1, "youtube": 0, "total": 4}, ...]

`total` moves with every create/delete, including events on collections that
match none of the tracked categories, so it can drift above
notes + forms + youtube. Reconciliation is out of band.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from aggregate_updater.aggregate_store import apply_update
from aggregate_updater.context import TaskContext
from aggregate_updater.errors import ValidationSkip
from aggregate_updater.event_utils import EventKind, attribution_name
from aggregate_updater.structured_log import log


TASK_NAME = "teacher_stats"
COUNTERS = ("notes", "forms", "youtube", "total")


def _as_count(value: Any) -> int:
    """Counter value as an int; numeric strings are accepted, anything else counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return 0
    return 0


def _sort_total(entry: Any) -> float:
    """Sort key tolerant of legacy rows: non-dict rows and unreadable totals sort as 0."""
    if not isinstance(entry, dict):
        return 0.0
    total = entry.get("total")
    if isinstance(total, bool):
        return 0.0
    if isinstance(total, (int, float)):
        return float(total)
    if isinstance(total, str):
        try:
            return float(total.strip())
        except ValueError:
            return 0.0
    return 0.0


@dataclass
class StatsEntry:
    name: str
    notes: int = 0
    forms: int = 0
    youtube: int = 0
    total: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "StatsEntry":
        extra = {k: v for k, v in raw.items() if k != "name" and k not in COUNTERS}
        return cls(
            name=str(raw.get("name") or ""),
            notes=_as_count(raw.get("notes")),
            forms=_as_count(raw.get("forms")),
            youtube=_as_count(raw.get("youtube")),
            total=_as_count(raw.get("total")),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "notes": self.notes,
            "forms": self.forms,
            "youtube": self.youtube,
            "total": self.total,
            **self.extra,
        }

    def add(self, counter: str, delta: int) -> None:
        setattr(self, counter, getattr(self, counter) + delta)

    def clamp(self) -> None:
        for counter in COUNTERS:
            setattr(self, counter, max(0, getattr(self, counter)))


def matching_categories(ctx: TaskContext) -> list[str]:
    """Category counters whose configured collection is the event's collection."""
    c = ctx.config
    collection_id = ctx.event.collection_id
    tracked = (
        ("notes", c.note_collection_id),
        ("forms", c.form_collection_id),
        ("youtube", c.youtube_collection_id),
    )
    return [counter for counter, cid in tracked if cid == collection_id]


def apply_contribution(
    entries: list[Any],
    *,
    name: str,
    categories: Iterable[str],
    delta: int,
) -> list[Any]:
    """
    Returns the stats list with `delta` applied to `name`'s entry.

    The entry is created on first contribution and its counters are clamped
    at zero. Other rows are passed through untouched, whatever their shape.
    The list is stable-sorted by total, descending.
    """
    updated = list(entries)
    index = next(
        (i for i, e in enumerate(updated) if isinstance(e, dict) and e.get("name") == name),
        None,
    )
    entry = StatsEntry.from_dict(updated[index]) if index is not None else StatsEntry(name=name)

    for counter in categories:
        entry.add(counter, delta)
    entry.add("total", delta)
    entry.clamp()

    if index is None:
        updated.append(entry.to_dict())
    else:
        updated[index] = entry.to_dict()

    updated.sort(key=_sort_total, reverse=True)
    return updated


def update_teacher_stats(ctx: TaskContext) -> dict[str, Any]:
    event = ctx.event
    # Updates need the "before" state to attribute correctly; not handled.
    if event.kind == EventKind.UPDATE:
        raise ValidationSkip("update_event_not_counted")

    name = attribution_name(event.payload)
    if not name:
        raise ValidationSkip("no_attribution")

    delta = 1 if event.kind == EventKind.CREATE else -1
    categories = matching_categories(ctx)

    result: dict[str, Any] = {}

    def _mutate(current: list[Any]) -> list[Any]:
        updated = apply_contribution(current, name=name, categories=categories, delta=delta)
        result["entry"] = next(e for e in updated if isinstance(e, dict) and e.get("name") == name)
        return updated

    apply_update(
        ctx.store,
        ctx.stats_ref,
        default=[],
        mutate=_mutate,
        max_attempts=ctx.config.write_max_attempts,
    )
    log(
        "teacher_stats.updated",
        severity="INFO",
        name=name,
        delta=delta,
        categories=categories,
        collectionId=event.collection_id,
        total=result["entry"]["total"],
    )
    return {
        "kind": TASK_NAME,
        "applied": True,
        "reason": "applied",
        "name": name,
        "entry": result["entry"],
    }
