"""
Bookmark index: a unique (account, event) pair set.
"""
import logging
from typing import Any, Dict, List

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from database import create_document, find_by_id, parse_object_id, to_str_id
from errors import ConflictError, NotFoundError, ValidationError
from events import event_summary, get_event_doc
from schemas import Bookmark
from security import CurrentUser

logger = logging.getLogger(__name__)


def _serialize(db, bookmark: Dict[str, Any], event=None) -> Dict[str, Any]:
    out = to_str_id(bookmark)
    if event is None:
        event = find_by_id(db, "event", bookmark.get("event_id"))
    out["event"] = event_summary(event)
    return out


def _require_event_id(event_id: str) -> str:
    if parse_object_id(event_id) is None:
        raise ValidationError("Invalid event ID", field="event_id")
    return event_id


def add_bookmark(db, current: CurrentUser, event_id: str) -> Dict[str, Any]:
    _require_event_id(event_id)
    event = get_event_doc(db, event_id)

    if db["bookmark"].find_one({"user_id": current.id, "event_id": event_id}):
        raise ConflictError("Event already bookmarked")
    try:
        bookmark_id = create_document(db, "bookmark", Bookmark(user_id=current.id, event_id=event_id))
    except DuplicateKeyError:
        raise ConflictError("Event already bookmarked")

    logger.info(f"Event {event_id} bookmarked by {current.id}")
    return _serialize(db, find_by_id(db, "bookmark", bookmark_id), event)


def remove_bookmark(db, current: CurrentUser, event_id: str) -> None:
    _require_event_id(event_id)
    removed = db["bookmark"].find_one_and_delete({"user_id": current.id, "event_id": event_id})
    if not removed:
        raise NotFoundError("Bookmark not found")
    logger.info(f"Bookmark on event {event_id} removed by {current.id}")


def is_bookmarked(db, current: CurrentUser, event_id: str) -> bool:
    _require_event_id(event_id)
    return db["bookmark"].find_one({"user_id": current.id, "event_id": event_id}) is not None


def list_bookmarks(db, current: CurrentUser) -> List[Dict[str, Any]]:
    docs = db["bookmark"].find({"user_id": current.id}).sort("created_at", DESCENDING)
    return [_serialize(db, d) for d in docs]
