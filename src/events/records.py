from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ValidationError

from src.models.notification import Post


class InvalidPostEvent(ValueError):
    pass


def _firestore_value(field: Any) -> Any:
    if not isinstance(field, dict):
        return field
    for key in ("stringValue", "timestampValue", "integerValue"):
        if key in field:
            return field[key]
    return None


def _from_firestore_document(document: dict[str, Any]) -> dict[str, Any]:
    fields = document.get("fields") or {}
    if not isinstance(fields, dict):
        raise InvalidPostEvent("Document fields must be a JSON object")
    name = str(document.get("name") or "")
    return {
        "id": name.rsplit("/", 1)[-1] if name else _firestore_value(fields.get("id")),
        "petName": _firestore_value(fields.get("petName")),
        "createdAt": _firestore_value(fields.get("createdAt")) or document.get("createTime"),
    }


def parse_post_event(record: dict[str, Any]) -> Post:
    """Extract a Post from a post-created record.

    Accepts either a flat record (``id``, ``petName``, ``createdAt``) or a
    Firestore document-created event whose ``value`` holds the new document.
    """
    if not isinstance(record, dict):
        raise InvalidPostEvent("Post event must be a JSON object")

    raw = record
    if isinstance(record.get("value"), dict) and "fields" in record["value"]:
        raw = _from_firestore_document(record["value"])

    post_id = str(raw.get("id") or "").strip()
    if not post_id:
        raise InvalidPostEvent("Post event is missing an id")

    pet_name = raw.get("petName", raw.get("pet_name"))
    created_at = raw.get("createdAt", raw.get("created_at"))
    try:
        return Post(
            id=post_id,
            pet_name=pet_name if isinstance(pet_name, str) else None,
            created_at=created_at if isinstance(created_at, (str, datetime)) else None,
        )
    except ValidationError as exc:
        raise InvalidPostEvent(f"Malformed post event: {exc}") from exc
