from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from aggregate_updater.errors import ValidationSkip


class EventKind(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    database_id: str
    collection_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    document_id: Optional[str] = None
    name: str = ""


def parse_event_name(name: Any) -> tuple[EventKind, str, str, Optional[str]]:
    """
    Parses a structured change-event name into (kind, database_id, collection_id, document_id).

    Accepted shapes:
    - databases.<db>.collections.<collection>.documents.<op>
    - databases.<db>.collections.<collection>.documents.<document>.<op>

    Raises ValidationSkip for anything else.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationSkip("missing_event_name")

    parts = name.strip().split(".")
    if len(parts) not in (6, 7):
        raise ValidationSkip(f"unexpected_segment_count:{len(parts)}")
    if parts[0] != "databases" or parts[2] != "collections" or parts[4] != "documents":
        raise ValidationSkip("unexpected_event_grammar")

    database_id = parts[1]
    collection_id = parts[3]
    if not database_id or not collection_id:
        raise ValidationSkip("empty_path_segment")

    document_id = parts[5] if len(parts) == 7 else None
    if document_id is not None and not document_id:
        raise ValidationSkip("empty_path_segment")

    try:
        kind = EventKind(parts[-1])
    except ValueError as e:
        raise ValidationSkip(f"unknown_operation:{parts[-1]}") from e

    return kind, database_id, collection_id, document_id


def parse_event(name: Any, payload: Optional[Mapping[str, Any]]) -> Event:
    kind, database_id, collection_id, document_id = parse_event_name(name)
    return Event(
        kind=kind,
        database_id=database_id,
        collection_id=collection_id,
        payload=dict(payload or {}),
        document_id=document_id,
        name=str(name).strip(),
    )


def payload_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    """
    Returns the field as a string: non-blank strings as-is, numbers via str().
    Booleans, containers, null and blank strings read as absent.
    """
    v = payload.get(key)
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str) and v.strip():
        return v
    return None


def attribution_name(payload: Mapping[str, Any]) -> Optional[str]:
    """`userName`, falling back to `createdBy`."""
    return payload_str(payload, "userName") or payload_str(payload, "createdBy")
