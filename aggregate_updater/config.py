from __future__ import annotations

import os
from dataclasses import dataclass

from aggregate_updater.structured_log import log


AGGREGATE_WRITE_MAX_ATTEMPTS_DEFAULT = "3"
DATABASE_ID_DEFAULT = "(default)"

# target -> legacy names still set by older deployments
_ENV_ALIASES: dict[str, list[str]] = {
    "GCP_PROJECT": ["GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT", "GCP_PROJECT_ID", "APPWRITE_PROJECT"],
    "DATABASE_ID": ["APPWRITE_DATABASE_ID"],
    "NOTE_COLLECTION_ID": ["APPWRITE_NOTE_COLLECTION_ID"],
    "FORM_COLLECTION_ID": ["APPWRITE_FORM_COLLECTION_ID"],
    "YOUTUBE_COLLECTION_ID": ["APPWRITE_YOUTUBE_COLLECTION_ID"],
}

REQUIRED_ENV = [
    "GCP_PROJECT",
    "STATS_COLLECTION_ID",
    "STATS_DOCUMENT_ID",
    "CACHE_COLLECTION_ID",
    "LINKS_UPLOADERS_CACHE_DOCUMENT_ID",
    "UPLOADERS_CACHE_DOCUMENT_ID",
    "NOTE_COLLECTION_ID",
    "FORM_COLLECTION_ID",
    "YOUTUBE_COLLECTION_ID",
]


@dataclass(frozen=True)
class UpdaterConfig:
    project_id: str
    database_id: str
    stats_collection_id: str
    stats_document_id: str
    cache_collection_id: str
    links_cache_document_id: str
    uploaders_cache_document_id: str
    note_collection_id: str
    form_collection_id: str
    youtube_collection_id: str
    write_max_attempts: int = int(AGGREGATE_WRITE_MAX_ATTEMPTS_DEFAULT)


def _env_value(name: str) -> str:
    """
    Stripped value of `name`, else of its first non-blank legacy alias, else "".
    The environment itself is never modified.
    """
    for candidate in [name, *_ENV_ALIASES.get(name, [])]:
        v = (os.getenv(candidate) or "").strip()
        if v:
            return v
    return ""


def _read_required_env(required: list[str]) -> dict[str, str]:
    """
    Reads every required variable at once; logs presence (never values) and
    raises listing all missing names so a misconfigured deploy fails on one pass.
    """
    values = {name: _env_value(name) for name in required}
    log("config.env_validation", severity="INFO", required_env={k: bool(v) for k, v in values.items()})
    missing = [name for name, v in values.items() if not v]
    if missing:
        log("config.env_missing", severity="CRITICAL", missing_env=missing)
        raise RuntimeError(f"Missing required env vars: {', '.join(missing)}")
    return values


def _int_env(name: str, *, default: str) -> int:
    raw = _env_value(name) or default
    try:
        return int(raw)
    except ValueError:
        return int(default)


def load_config() -> UpdaterConfig:
    env = _read_required_env(REQUIRED_ENV)

    return UpdaterConfig(
        project_id=env["GCP_PROJECT"],
        database_id=_env_value("DATABASE_ID") or DATABASE_ID_DEFAULT,
        stats_collection_id=env["STATS_COLLECTION_ID"],
        stats_document_id=env["STATS_DOCUMENT_ID"],
        cache_collection_id=env["CACHE_COLLECTION_ID"],
        links_cache_document_id=env["LINKS_UPLOADERS_CACHE_DOCUMENT_ID"],
        uploaders_cache_document_id=env["UPLOADERS_CACHE_DOCUMENT_ID"],
        note_collection_id=env["NOTE_COLLECTION_ID"],
        form_collection_id=env["FORM_COLLECTION_ID"],
        youtube_collection_id=env["YOUTUBE_COLLECTION_ID"],
        write_max_attempts=max(1, _int_env("AGGREGATE_WRITE_MAX_ATTEMPTS", default=AGGREGATE_WRITE_MAX_ATTEMPTS_DEFAULT)),
    )
