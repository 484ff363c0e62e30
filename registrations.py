"""
Registration lifecycle: individual and team sign-ups for a single event.

A registration is owned by its leader, who is always the first member
(role ``leader``, invite status ``auto_added``). Team registrations collect
further members as invitations; each invitee answers once, and the
registration is confirmed the first time the accepted head count falls
inside the event's team-size bounds.

Statuses only move forward::

    pending -> confirmed
    pending | confirmed | waitlisted -> cancelled
    cancelled, rejected: terminal

Capacity (``max_teams``) is enforced with a conditional increment of the
event's ``active_registrations`` counter, so two concurrent sign-ups cannot
both take the last slot.

Every write to ``members`` bumps ``members_version``. Leader-side edits
rewrite the whole array and only apply if the version they read is still
current, so they cannot overwrite an invitation answer made meanwhile.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

import config
from accounts import get_user, get_user_by_email, summary
from database import create_document, find_by_id, parse_object_id, to_str_id, utcnow, as_utc
from errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from events import event_summary, get_event_doc, is_owner
from forms import process_answers
from schemas import AccountInvitee, Member, MemberToAdd, PendingInvitee, Registration, RegistrationCreate
from security import CurrentUser

logger = logging.getLogger(__name__)

OPEN_EVENT_STATUSES = ("published", "ongoing")
ACTIVE_STATUSES = ("pending", "confirmed")
TERMINAL_STATUSES = ("cancelled", "rejected")
COUNTED_INVITE_STATUSES = ("accepted", "auto_added")


# ---------------------------------------------------------------------------
# Member helpers
# ---------------------------------------------------------------------------

def member_user_id(member: Dict[str, Any]) -> Optional[str]:
    invitee = member.get("invitee") or {}
    if invitee.get("kind") == "account":
        return invitee.get("user_id")
    return None


def member_email(member: Dict[str, Any]) -> Optional[str]:
    invitee = member.get("invitee") or {}
    if invitee.get("kind") == "pending":
        return invitee.get("email")
    return None


def accepted_count(members: List[Dict[str, Any]]) -> int:
    return sum(1 for m in members if m.get("invite_status") in COUNTED_INVITE_STATUSES)


def find_member_index(members: List[Dict[str, Any]], ref: str) -> Optional[int]:
    """Position of the member identified by account id or invitee email."""
    email = ref.strip().lower()
    for index, member in enumerate(members):
        if member_user_id(member) == ref:
            return index
        pending_email = member_email(member)
        if pending_email and pending_email.lower() == email:
            return index
    return None


def _member(invitee, now: datetime, role: str = "member", invite_status: str = "invited") -> Member:
    return Member(invitee=invitee, role=role, invite_status=invite_status, added_at=now)


def _visibility_filter(user_id: str) -> Dict[str, Any]:
    return {"$or": [
        {"leader_user_id": user_id},
        {"members": {"$elemMatch": {
            "invitee.user_id": user_id,
            "invite_status": {"$in": list(COUNTED_INVITE_STATUSES)},
        }}},
    ]}


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def serialize_registration(db, registration: Dict[str, Any], event: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Registration with its event, leader and member references resolved."""
    users: Dict[str, Optional[Dict[str, Any]]] = {}

    def user_summary(user_id):
        if user_id not in users:
            users[user_id] = summary(get_user(db, user_id))
        return users[user_id]

    if event is None:
        event = find_by_id(db, "event", registration.get("event_id"))

    out = to_str_id(registration)
    out["event"] = event_summary(event)
    out["leader"] = user_summary(registration.get("leader_user_id"))

    members = []
    for member in registration.get("members") or []:
        entry = {
            "role": member.get("role"),
            "invite_status": member.get("invite_status"),
            "added_at": member.get("added_at"),
            "responded_at": member.get("responded_at"),
        }
        user_id = member_user_id(member)
        if user_id:
            entry["user_id"] = user_id
            entry["user"] = user_summary(user_id)
        else:
            invitee = member.get("invitee") or {}
            entry["email"] = invitee.get("email")
            entry["name"] = invitee.get("name")
        members.append(entry)
    out["members"] = members
    return out


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def _ensure_registration_open(event: Dict[str, Any], now: datetime) -> None:
    if event.get("event_status") not in OPEN_EVENT_STATUSES:
        raise InvalidStateError("Registration is not open for this event")
    if not event.get("registration_open", True):
        raise InvalidStateError("Registration is currently closed")

    reg_start = as_utc(event.get("registration_start_datetime"))
    reg_end = as_utc(event.get("registration_end_datetime"))
    if reg_start and now < reg_start:
        raise InvalidStateError("Registration has not started yet")
    if reg_end and now > reg_end:
        raise InvalidStateError("Registration deadline has passed")


def _claim_slot(db, event: Dict[str, Any]) -> None:
    """Take one active-registration slot, or fail if the event is full."""
    filt: Dict[str, Any] = {"_id": event["_id"]}
    if event.get("max_teams"):
        filt["active_registrations"] = {"$lt": event["max_teams"]}
    result = db["event"].update_one(filt, {"$inc": {"active_registrations": 1}})
    if result.matched_count == 0:
        raise CapacityExceededError()


def _release_slot(db, event_id) -> None:
    oid = parse_object_id(event_id)
    db["event"].update_one(
        {"_id": oid, "active_registrations": {"$gt": 0}},
        {"$inc": {"active_registrations": -1}},
    )


def _build_team(db, event: Dict[str, Any], current: CurrentUser, body: RegistrationCreate,
                now: datetime) -> List[Member]:
    members = [_member(AccountInvitee(user_id=current.id), now, role="leader", invite_status="auto_added")]
    if event.get("registration_mode") != "team":
        return members

    if not body.team_name:
        raise ValidationError("Team name is required for team events", field="team_name")

    seen_ids = {current.id}
    seen_emails = set()

    for member_id in body.team_members:
        user = get_user(db, member_id)
        if not user:
            raise NotFoundError(f"User with ID {member_id} not found")
        if member_id in seen_ids:
            continue
        seen_ids.add(member_id)
        members.append(_member(AccountInvitee(user_id=member_id), now))

    for info in body.team_members_info:
        user = get_user_by_email(db, str(info.email))
        if user:
            user_id = str(user["_id"])
            if user_id in seen_ids:
                continue
            seen_ids.add(user_id)
            members.append(_member(AccountInvitee(user_id=user_id), now))
        else:
            email = str(info.email).lower()
            if email in seen_emails:
                continue
            seen_emails.add(email)
            members.append(_member(
                PendingInvitee(email=email, name=info.name),
                now,
                invite_status="pending_registration",
            ))

    min_size = event.get("min_team_size", 1)
    max_size = event.get("max_team_size", 1)
    if len(members) < min_size:
        raise ValidationError(f"Team must have at least {min_size} members", field="team_members")
    if len(members) > max_size:
        raise ValidationError(f"Team cannot have more than {max_size} members", field="team_members")
    return members


def create_registration(db, current: CurrentUser, body: RegistrationCreate,
                        now: Optional[datetime] = None) -> Dict[str, Any]:
    """Register the caller (and, for team events, their team) for an event."""
    now = now or utcnow()
    event = find_by_id(db, "event", body.event_id)
    if not event:
        raise NotFoundError("Event not found")

    _ensure_registration_open(event, now)

    if db["registration"].find_one({"event_id": body.event_id, "leader_user_id": current.id}):
        raise ConflictError("You are already registered for this event")

    _claim_slot(db, event)
    try:
        members = _build_team(db, event, current, body, now)
        registration = Registration(
            event_id=body.event_id,
            mode=event.get("registration_mode", "individual"),
            leader_user_id=current.id,
            team_name=body.team_name if event.get("registration_mode") == "team" else None,
            status="pending",
            members=members,
            answers=process_answers(event, body.form_answers),
        )
        registration_id = create_document(db, "registration", registration)
    except DuplicateKeyError:
        _release_slot(db, event["_id"])
        raise ConflictError("You are already registered for this event")
    except Exception:
        _release_slot(db, event["_id"])
        raise

    logger.info(f"Registration created for event {event.get('title')} by {current.id}")
    return serialize_registration(db, get_registration_doc(db, registration_id), event)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

def get_registration_doc(db, registration_id: str) -> Dict[str, Any]:
    registration = find_by_id(db, "registration", registration_id)
    if not registration:
        raise NotFoundError("Registration not found")
    return registration


def _can_view(registration: Dict[str, Any], event: Optional[Dict[str, Any]], current: CurrentUser) -> bool:
    if current.is_admin or registration.get("leader_user_id") == current.id:
        return True
    if event is not None and is_owner(event, current):
        return True
    return any(
        member_user_id(m) == current.id and m.get("invite_status") in COUNTED_INVITE_STATUSES
        for m in registration.get("members") or []
    )


def get_registration(db, current: CurrentUser, registration_id: str) -> Dict[str, Any]:
    registration = get_registration_doc(db, registration_id)
    event = find_by_id(db, "event", registration.get("event_id"))
    if not _can_view(registration, event, current):
        raise ForbiddenError("You are not authorized to view this registration")
    return serialize_registration(db, registration, event)


def list_registrations(
    db,
    current: CurrentUser,
    event_id: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = config.DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    """Registrations visible to the caller, newest first.

    For a given event the organizer and admins see everything; everybody else
    only sees registrations they lead or have joined.
    """
    filt: Dict[str, Any] = {}
    if event_id:
        if parse_object_id(event_id) is None:
            raise ValidationError("Invalid event ID", field="event_id")
        event = get_event_doc(db, event_id)
        filt["event_id"] = event_id
        if not is_owner(event, current) and not current.is_admin:
            filt.update(_visibility_filter(current.id))
    else:
        filt.update(_visibility_filter(current.id))

    if status:
        filt["status"] = status

    skip = max(skip, 0)
    limit = min(max(limit, 1), config.MAX_PAGE_SIZE)
    total = db["registration"].count_documents(filt)
    docs = db["registration"].find(filt).sort("created_at", DESCENDING).skip(skip).limit(limit)
    registrations = [serialize_registration(db, d) for d in docs]
    return {"count": len(registrations), "total": total, "registrations": registrations}


def list_pending_invitations(db, current: CurrentUser) -> List[Dict[str, Any]]:
    docs = db["registration"].find({
        "members": {"$elemMatch": {"invitee.user_id": current.id, "invite_status": "invited"}},
    }).sort("created_at", DESCENDING)
    return [serialize_registration(db, d) for d in docs]


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

def _maybe_confirm(db, registration: Dict[str, Any]) -> None:
    """Promote a pending team once its accepted head count is within bounds."""
    if registration.get("status") != "pending":
        return
    event = find_by_id(db, "event", registration.get("event_id"))
    if not event:
        return
    count = accepted_count(registration.get("members") or [])
    if event.get("min_team_size", 1) <= count <= event.get("max_team_size", 1):
        result = db["registration"].update_one(
            {"_id": registration["_id"], "status": "pending"},
            {"$set": {"status": "confirmed", "updated_at": utcnow()}},
        )
        if result.modified_count:
            logger.info(f"Registration {registration['_id']} confirmed with {count} accepted members")


def respond_to_invitation(db, current: CurrentUser, registration_id: str, action: str,
                          now: Optional[datetime] = None) -> Dict[str, Any]:
    """Accept or decline the caller's own invitation. Each invitation is answered once."""
    if action not in ("accept", "decline"):
        raise ValidationError('Invalid action. Must be "accept" or "decline"', field="action")

    registration = get_registration_doc(db, registration_id)
    members = registration.get("members") or []
    index = next((i for i, m in enumerate(members) if member_user_id(m) == current.id), None)
    if index is None:
        raise NotFoundError("You are not invited to this team")

    invite_status = members[index].get("invite_status")
    if invite_status != "invited":
        raise ConflictError(f"Invitation already {invite_status}")
    if registration.get("status") in TERMINAL_STATUSES:
        raise InvalidStateError(f"Registration has been {registration['status']}")

    new_status = "accepted" if action == "accept" else "declined"
    result = db["registration"].update_one(
        {
            "_id": registration["_id"],
            "members": {"$elemMatch": {"invitee.user_id": current.id, "invite_status": "invited"}},
        },
        {
            "$set": {
                "members.$.invite_status": new_status,
                "members.$.responded_at": now or utcnow(),
                "updated_at": utcnow(),
            },
            "$inc": {"members_version": 1},
        },
    )
    if result.matched_count == 0:
        raise ConflictError("Invitation already answered")

    registration = get_registration_doc(db, registration_id)
    if new_status == "accepted":
        _maybe_confirm(db, registration)
        registration = get_registration_doc(db, registration_id)

    logger.info(f"Member {current.id} {new_status} invitation for registration {registration_id}")
    return serialize_registration(db, registration)


def update_member_status(db, current: CurrentUser, registration_id: str, member_id: str,
                         invite_status: str) -> Dict[str, Any]:
    """Member-addressed variant of respond_to_invitation."""
    if parse_object_id(registration_id) is None or parse_object_id(member_id) is None:
        raise ValidationError("Invalid registration or member ID")
    registration = get_registration_doc(db, registration_id)
    if find_member_index(registration.get("members") or [], member_id) is None:
        raise NotFoundError("Member not found in this registration")
    if member_id != current.id:
        raise ForbiddenError("You can only update your own invite status")
    action = {"accepted": "accept", "declined": "decline"}.get(invite_status)
    if action is None:
        raise ValidationError('Invalid invite status. Must be "accepted" or "declined"', field="invite_status")
    return respond_to_invitation(db, current, registration_id, action)


# ---------------------------------------------------------------------------
# Team management
# ---------------------------------------------------------------------------

def _leader_registration(db, current: CurrentUser, registration_id: str, action: str) -> Dict[str, Any]:
    registration = get_registration_doc(db, registration_id)
    if registration.get("leader_user_id") != current.id:
        raise ForbiddenError(f"Only team leader can {action} members")
    if registration.get("mode") != "team":
        raise InvalidStateError("Individual registrations have no team members")
    if registration.get("status") in TERMINAL_STATUSES:
        raise InvalidStateError(f"Registration has been {registration['status']}")
    return registration


def _members_filter(registration: Dict[str, Any]) -> Dict[str, Any]:
    """Match the registration only if its members are unchanged since it was read."""
    version = registration.get("members_version")
    return {
        "_id": registration["_id"],
        "members_version": version if version is not None else {"$exists": False},
    }


def _save_members(db, registration: Dict[str, Any], members: List[Dict[str, Any]]) -> None:
    result = db["registration"].update_one(
        _members_filter(registration),
        {
            "$set": {"members": members, "updated_at": utcnow()},
            "$inc": {"members_version": 1},
        },
    )
    if result.matched_count == 0:
        raise ConflictError("Team was changed by another request, please retry")


def add_members(db, current: CurrentUser, registration_id: str, members_to_add: List[MemberToAdd],
                now: Optional[datetime] = None) -> Dict[str, Any]:
    """Invite more accounts into the leader's team.

    Accounts already on the team and unknown ids are skipped; the whole call
    is rejected if the team would exceed the event's maximum size.
    """
    now = now or utcnow()
    registration = _leader_registration(db, current, registration_id, "add")
    event = get_event_doc(db, registration["event_id"])

    members = list(registration.get("members") or [])
    present = {member_user_id(m) for m in members}
    added = 0
    for info in members_to_add:
        if info.id in present:
            continue
        user = get_user(db, info.id)
        if not user:
            logger.info(f"Skipping unknown user {info.id} for registration {registration_id}")
            continue
        present.add(info.id)
        members.append(_member(AccountInvitee(user_id=info.id), now).model_dump())
        added += 1

    max_size = event.get("max_team_size", 1)
    if len(members) > max_size:
        raise ValidationError(f"Team size cannot exceed {max_size} members", field="members_to_add")

    if added:
        _save_members(db, registration, members)
        logger.info(f"Added {added} members to registration {registration_id}")
    return serialize_registration(db, get_registration_doc(db, registration_id), event)


def remove_member(db, current: CurrentUser, registration_id: str, member_ref: str) -> Dict[str, Any]:
    """Drop a member by account id or invitee email.

    The leader can never be removed. Removing someone who counts towards the
    team (accepted or auto-added) must leave at least min_team_size of them,
    and no removal may leave fewer than min_team_size members in total.
    """
    registration = _leader_registration(db, current, registration_id, "remove")
    members = list(registration.get("members") or [])

    index = find_member_index(members, member_ref)
    if index is None:
        raise NotFoundError("Member not found in team")

    target = members[index]
    if target.get("role") == "leader":
        raise InvalidStateError("Cannot remove team leader")

    event = get_event_doc(db, registration["event_id"])
    min_size = event.get("min_team_size", 1)
    if target.get("invite_status") in COUNTED_INVITE_STATUSES and accepted_count(members) <= min_size:
        raise InvalidStateError(
            f"Cannot remove accepted member. Team must have at least {min_size} accepted members"
        )
    if len(members) - 1 < min_size:
        raise ValidationError(f"Team must have at least {min_size} members", field="member_id")

    del members[index]
    _save_members(db, registration, members)
    logger.info(f"Removed member {member_ref} from registration {registration_id}")
    return serialize_registration(db, get_registration_doc(db, registration_id), event)


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------

def cancel_registration(db, current: CurrentUser, registration_id: str) -> None:
    """Soft delete by the leader, any member with an account, or an admin."""
    if parse_object_id(registration_id) is None:
        raise ValidationError("Invalid registration ID")
    registration = get_registration_doc(db, registration_id)

    is_leader = registration.get("leader_user_id") == current.id
    is_member = any(member_user_id(m) == current.id for m in registration.get("members") or [])
    if not (is_leader or is_member or current.is_admin):
        raise ForbiddenError("You are not authorized to cancel this registration")

    status = registration.get("status")
    if status in TERMINAL_STATUSES:
        raise InvalidStateError(f"Registration is already {status}")

    result = db["registration"].update_one(
        {"_id": registration["_id"], "status": status},
        {"$set": {"status": "cancelled", "updated_at": utcnow()}},
    )
    if result.modified_count and status in ACTIVE_STATUSES:
        _release_slot(db, registration["event_id"])

    logger.info(f"Registration {registration_id} cancelled by {current.id}")
