"""
Event catalog: creation, listing, updates and the publication guards.

Events are never hard-deleted; cancelling sets ``event_status`` to
``cancelled`` and freezes the document.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

import config
from accounts import get_user, summary
from database import as_utc, create_document, find_by_id, to_str_id, utcnow
from errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from schemas import Event, EventCreate, EventUpdate
from security import CurrentUser
from societies import get_society

logger = logging.getLogger(__name__)

PUBLIC_STATUSES = ["published", "ongoing"]
LOCKED_STATUSES = ("published", "ongoing")

EVENT_TRANSITIONS = {
    "draft": {"published", "cancelled"},
    "published": {"ongoing", "cancelled"},
    "ongoing": {"completed", "cancelled"},
    "completed": {"cancelled"},
    "cancelled": set(),
}

DATETIME_FIELDS = (
    "start_datetime",
    "end_datetime",
    "registration_start_datetime",
    "registration_end_datetime",
)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "venue",
    "poster_url",
    "event_status",
    "event_type",
    "organizer_id",
    "start_datetime",
    "end_datetime",
    "registration_start_datetime",
    "registration_end_datetime",
    "max_teams",
    "registration_open",
)


def check_schedule(data: Dict[str, Any], require_future_start: bool = False,
                   now: Optional[datetime] = None) -> List[Dict[str, str]]:
    """Field-keyed violations of the event's time and team-size invariants."""
    errors = []
    start = as_utc(data.get("start_datetime"))
    end = as_utc(data.get("end_datetime"))
    reg_start = as_utc(data.get("registration_start_datetime"))
    reg_end = as_utc(data.get("registration_end_datetime"))

    if require_future_start and start and start <= (now or utcnow()):
        errors.append({"field": "start_datetime", "message": "Event start datetime must be in the future"})
    if start and end and end <= start:
        errors.append({"field": "end_datetime", "message": "Event end datetime must be after start datetime"})
    if start and reg_end and reg_end >= start:
        errors.append({
            "field": "registration_end_datetime",
            "message": "Registration end datetime must be before event start datetime",
        })
    if reg_start and reg_end and reg_end <= reg_start:
        errors.append({
            "field": "registration_end_datetime",
            "message": "Registration end datetime must be after registration start datetime",
        })

    min_size = data.get("min_team_size", 1)
    max_size = data.get("max_team_size", 1)
    if max_size < min_size:
        errors.append({
            "field": "max_team_size",
            "message": "Maximum team size must be greater than or equal to minimum team size",
        })
    return errors


def _check_form_fields(form_fields) -> List[Dict[str, str]]:
    seen = set()
    errors = []
    for field in form_fields:
        if field.field_id in seen:
            errors.append({"field": "form_fields", "message": f"Duplicate field_id '{field.field_id}'"})
        seen.add(field.field_id)
    return errors


def get_event_doc(db, event_id: str) -> Dict[str, Any]:
    event = find_by_id(db, "event", event_id)
    if not event:
        raise NotFoundError("Event not found")
    return event


def is_owner(event: Dict[str, Any], current: Optional[CurrentUser]) -> bool:
    return current is not None and event.get("organizer_id") == current.id


def event_summary(event: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Compact event shape embedded in registrations and bookmarks."""
    if not event:
        return None
    return {
        "id": str(event["_id"]),
        "title": event.get("title"),
        "event_type": event.get("event_type"),
        "start_datetime": event.get("start_datetime"),
        "end_datetime": event.get("end_datetime"),
        "venue": event.get("venue"),
        "poster_url": event.get("poster_url"),
        "registration_end_datetime": event.get("registration_end_datetime"),
    }


def ordered_form_fields(event: Dict[str, Any]) -> List[Dict[str, Any]]:
    return sorted(event.get("form_fields") or [], key=lambda f: f.get("order_index", 0))


def serialize_event(db, event: Dict[str, Any]) -> Dict[str, Any]:
    out = to_str_id(event)
    out["form_fields"] = ordered_form_fields(event)
    out["organizer"] = summary(get_user(db, event.get("organizer_id")))
    society_id = event.get("society_id")
    if society_id:
        society = find_by_id(db, "society", society_id)
        if society:
            out["society"] = {
                "id": str(society["_id"]),
                "name": society.get("name"),
                "logo_url": society.get("logo_url"),
            }
    return out


def create_event(db, current: CurrentUser, body: EventCreate, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Create an event organized by the caller.

    When a society is named the caller must be its head (admins are exempt).
    The team-size bounds only matter for team mode; individual events are
    stored with both bounds at 1.
    """
    data = body.model_dump()
    for name in DATETIME_FIELDS:
        data[name] = as_utc(data[name])
    if body.registration_mode == "individual":
        data["min_team_size"] = 1
        data["max_team_size"] = 1

    errors = check_schedule(data, require_future_start=True, now=now)
    errors.extend(_check_form_fields(body.form_fields))
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    if body.society_id:
        society = get_society(db, body.society_id)
        if not current.is_admin and society.get("head_id") != current.id:
            raise ForbiddenError("You are not authorized to create events for this society")

    event = Event(organizer_id=current.id, **data)
    event_id = create_document(db, "event", event)

    logger.info(f"Event created: {event.title} by {current.id}")
    return serialize_event(db, get_event_doc(db, event_id))


def list_events(
    db,
    current: Optional[CurrentUser],
    event_type: Optional[str] = None,
    event_status: Optional[str] = None,
    society_id: Optional[str] = None,
    skip: int = 0,
    limit: int = config.DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if event_type:
        filt["event_type"] = event_type
    if society_id:
        filt["society_id"] = society_id

    if current is None:
        filt["event_status"] = {"$in": [s for s in PUBLIC_STATUSES if not event_status or s == event_status]}
    elif event_status:
        filt["event_status"] = event_status
        if event_status == "draft" and not current.is_admin:
            filt["organizer_id"] = current.id
    else:
        filt["$or"] = [
            {"event_status": {"$in": PUBLIC_STATUSES}},
            {"organizer_id": current.id},
        ]

    skip = max(skip, 0)
    limit = min(max(limit, 1), config.MAX_PAGE_SIZE)
    total = db["event"].count_documents(filt)
    docs = db["event"].find(filt).sort("start_datetime", ASCENDING).skip(skip).limit(limit)
    events = [serialize_event(db, d) for d in docs]
    return {"count": len(events), "total": total, "events": events}


def list_my_events(db, current: CurrentUser) -> List[Dict[str, Any]]:
    docs = db["event"].find({"organizer_id": current.id}).sort("created_at", DESCENDING)
    return [serialize_event(db, d) for d in docs]


def get_visible_event(db, current: Optional[CurrentUser], event_id: str) -> Dict[str, Any]:
    """Raw event document; drafts only for their organizer or an admin."""
    event = get_event_doc(db, event_id)
    if event.get("event_status") == "draft":
        if not (is_owner(event, current) or (current is not None and current.is_admin)):
            raise NotFoundError("Event not found")
    return event


def get_event(db, current: Optional[CurrentUser], event_id: str) -> Dict[str, Any]:
    return serialize_event(db, get_visible_event(db, current, event_id))


def get_form_fields(db, current: Optional[CurrentUser], event_id: str) -> Dict[str, Any]:
    event = get_visible_event(db, current, event_id)
    return {"event_title": event.get("title"), "form_fields": ordered_form_fields(event)}


def _ensure_can_manage(event: Dict[str, Any], current: CurrentUser, action: str) -> None:
    if not is_owner(event, current) and not current.is_admin:
        raise ForbiddenError(f"You are not authorized to {action} this event")


def update_event(db, current: CurrentUser, event_id: str, body: EventUpdate,
                 now: Optional[datetime] = None) -> Dict[str, Any]:
    event = get_event_doc(db, event_id)
    _ensure_can_manage(event, current, "update")

    status = event.get("event_status")
    if status == "cancelled":
        raise InvalidStateError("Cancelled events cannot be modified")

    changes = {
        name: value
        for name, value in body.model_dump(exclude_unset=True).items()
        if name in UPDATABLE_FIELDS and (value is not None or name == "max_teams")
    }

    if status in LOCKED_STATUSES:
        if "event_type" in changes and changes["event_type"] != event.get("event_type"):
            raise InvalidStateError("Cannot change event type after publication")
        if "organizer_id" in changes and changes["organizer_id"] != event.get("organizer_id"):
            raise InvalidStateError("Cannot change organizer after publication")

    if "organizer_id" in changes and changes["organizer_id"] != event.get("organizer_id"):
        if not get_user(db, changes["organizer_id"]):
            raise NotFoundError("Organizer not found")

    new_status = changes.get("event_status")
    if new_status and new_status != status and new_status not in EVENT_TRANSITIONS[status]:
        raise InvalidStateError(f"Cannot change event status from {status} to {new_status}")

    for name in DATETIME_FIELDS:
        if name in changes:
            changes[name] = as_utc(changes[name])

    merged = {**event, **changes}
    errors = check_schedule(merged, require_future_start="start_datetime" in changes, now=now)
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    if changes:
        changes["updated_at"] = utcnow()
        db["event"].update_one({"_id": event["_id"]}, {"$set": changes})
        logger.info(f"Event updated: {event.get('title')} by {current.id}")

    return serialize_event(db, get_event_doc(db, event_id))


def cancel_event(db, current: CurrentUser, event_id: str) -> None:
    """Soft delete: the document stays, its status becomes cancelled."""
    event = get_event_doc(db, event_id)
    _ensure_can_manage(event, current, "delete")
    if event.get("event_status") == "cancelled":
        raise InvalidStateError("Event is already cancelled")

    db["event"].update_one(
        {"_id": event["_id"]},
        {"$set": {"event_status": "cancelled", "updated_at": utcnow()}},
    )
    logger.info(f"Event cancelled: {event.get('title')} by {current.id}")
