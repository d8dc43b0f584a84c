"""
HTTP trigger for incremental aggregate updates.

The platform delivers one change event per request:
- header `x-appwrite-event`: `databases.<db>.collections.<collection>.documents[.<doc>].<op>`
- body: the changed document as a JSON object

Run locally with `python -m aggregate_updater.main` (uvicorn).
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from aggregate_updater.aggregate_store import AggregateStore
from aggregate_updater.config import UpdaterConfig, load_config
from aggregate_updater.dispatcher import dispatch_event
from aggregate_updater.errors import CriticalError
from aggregate_updater.firestore_store import FirestoreAggregateStore
from aggregate_updater.structured_log import SERVICE_NAME, log


EVENT_HEADER = "x-appwrite-event"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


app = FastAPI(title="Incremental Aggregate Updater", version="0.1.0")


@app.on_event("startup")
async def _startup() -> None:
    app.state.config = load_config()
    # Built lazily per process so client construction failures surface as request errors.
    app.state.store = None
    cfg: UpdaterConfig = app.state.config
    log(
        "startup",
        severity="INFO",
        database_id=cfg.database_id,
        stats_collection_id=cfg.stats_collection_id,
        cache_collection_id=cfg.cache_collection_id,
        write_max_attempts=cfg.write_max_attempts,
        env=os.getenv("ENV") or "unknown",
    )


def _get_store() -> AggregateStore:
    store: Optional[AggregateStore] = getattr(app.state, "store", None)
    if store is not None:
        return store
    cfg: UpdaterConfig = app.state.config
    try:
        store = FirestoreAggregateStore(project_id=cfg.project_id, databases=[cfg.database_id])
    except Exception as e:
        raise CriticalError(f"store_init_failed: {e}") from e
    app.state.store = store
    return store


@app.get("/healthz")
async def healthz() -> dict[str, Any]:
    return {"status": "ok", "service": SERVICE_NAME, "ts": _utc_now().isoformat()}


@app.get("/readyz")
async def readyz(response: Response) -> dict[str, Any]:
    ok = bool(getattr(app.state, "config", None))
    response.status_code = 200 if ok else 503
    return {"status": "ok" if ok else "not_ready", "service": SERVICE_NAME}


@app.post("/")
async def handle_event(req: Request) -> Any:
    event_name = str(req.headers.get(EVENT_HEADER) or "").strip()
    log("event.received", severity="INFO", event=event_name)

    try:
        body = await req.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        log("event.ignored", severity="WARNING", reason="payload_not_object", event=event_name)
        return {"success": True, "message": "Event ignored.", "reason": "payload_not_object"}

    try:
        store = _get_store()
        result = await dispatch_event(
            store=store,
            config=app.state.config,
            event_name=event_name,
            payload=body,
        )
    except Exception as e:
        log(
            "dispatch.critical",
            severity="CRITICAL",
            event=event_name,
            error_type=e.__class__.__name__,
            error=str(e),
        )
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    if result.ignored_reason is not None:
        return {"success": True, "message": "Event ignored.", "reason": result.ignored_reason}
    return {
        "success": True,
        "message": "Incremental updates processed.",
        "tasks": [o.to_dict() for o in result.outcomes],
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT") or "8080")
    uvicorn.run("aggregate_updater.main:app", host="0.0.0.0", port=port, log_level="warning", access_log=False)
