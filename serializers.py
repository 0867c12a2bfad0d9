from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId

from errors import ValidationError


def to_object_id(value: str, label: str = "resource") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label} ID format")
    return ObjectId(value)


def isoformat_utc(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a trailing Z, e.g. 2024-05-01T12:30:00.000Z."""
    # naive values are UTC: that is what utcnow() and pymongo hand back
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _normalize(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return isoformat_utc(value)
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convert a Mongo document into a JSON-friendly dict (ids and dates as strings)."""
    if doc is None:
        return None
    return _normalize(dict(doc))
