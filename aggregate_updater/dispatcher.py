from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from aggregate_updater.aggregate_store import AggregateStore
from aggregate_updater.config import UpdaterConfig
from aggregate_updater.context import TaskContext
from aggregate_updater.errors import ValidationSkip
from aggregate_updater.event_utils import parse_event
from aggregate_updater.handlers.links_cache import update_links_cache
from aggregate_updater.handlers.teacher_stats import update_teacher_stats
from aggregate_updater.handlers.uploader_cache import update_uploader_cache
from aggregate_updater.structured_log import log


TaskFn = Callable[[TaskContext], dict[str, Any]]

DEFAULT_TASKS: tuple[tuple[str, TaskFn], ...] = (
    ("teacher_stats", update_teacher_stats),
    ("links_cache", update_links_cache),
    ("uploader_cache", update_uploader_cache),
)


@dataclass(frozen=True)
class TaskOutcome:
    name: str
    status: str  # applied | noop | skipped | failed
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"task": self.name, "status": self.status, "reason": self.reason}


@dataclass(frozen=True)
class DispatchResult:
    ignored_reason: Optional[str] = None
    outcomes: list[TaskOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[TaskOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]


def _run_task(name: str, fn: TaskFn, ctx: TaskContext) -> TaskOutcome:
    """
    Runs one task in a worker thread. ValidationSkip stops here; anything else propagates to the join.
    """
    log("task.start", severity="DEBUG", task=name, event=ctx.event.name)
    try:
        result = fn(ctx)
    except ValidationSkip as e:
        log("task.skipped", severity="INFO", task=name, reason=e.reason, event=ctx.event.name)
        return TaskOutcome(name=name, status="skipped", reason=e.reason)

    applied = bool(result.get("applied"))
    reason = str(result.get("reason") or "")
    log("task.applied" if applied else "task.noop", severity="INFO", task=name, reason=reason)
    return TaskOutcome(name=name, status="applied" if applied else "noop", reason=reason)


async def run_all(
    ctx: TaskContext,
    tasks: Sequence[tuple[str, TaskFn]] = DEFAULT_TASKS,
) -> list[TaskOutcome]:
    """
    Runs every task to completion and returns one outcome per task, in order.

    A failing task never cancels or short-circuits the others.
    """
    results = await asyncio.gather(
        *(asyncio.to_thread(_run_task, name, fn, ctx) for name, fn in tasks),
        return_exceptions=True,
    )

    outcomes: list[TaskOutcome] = []
    for i, ((name, _fn), res) in enumerate(zip(tasks, results), start=1):
        if isinstance(res, TaskOutcome):
            outcomes.append(res)
            continue
        log(
            "task.failed",
            severity="ERROR",
            task=name,
            task_index=i,
            error_type=res.__class__.__name__,
            error=str(res),
            event=ctx.event.name,
        )
        outcomes.append(TaskOutcome(name=name, status="failed", reason=str(res)))
    return outcomes


async def dispatch_event(
    *,
    store: AggregateStore,
    config: UpdaterConfig,
    event_name: Any,
    payload: Optional[Mapping[str, Any]],
    tasks: Sequence[tuple[str, TaskFn]] = DEFAULT_TASKS,
) -> DispatchResult:
    try:
        event = parse_event(event_name, payload)
    except ValidationSkip as e:
        log("event.ignored", severity="WARNING", reason=e.reason, event=str(event_name or ""))
        return DispatchResult(ignored_reason=e.reason)

    ctx = TaskContext(store=store, config=config, event=event)
    outcomes = await run_all(ctx, tasks)
    result = DispatchResult(outcomes=outcomes)
    log(
        "dispatch.complete",
        severity="WARNING" if result.failed else "INFO",
        event=event.name,
        documentId=event.document_id or event.payload.get("$id"),
        outcomes=[o.to_dict() for o in outcomes],
    )
    return result
