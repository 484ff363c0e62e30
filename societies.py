"""
Organization registry: societies and their designated heads.
"""
import logging
from typing import Any, Dict, List

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from accounts import get_user, summary
from database import create_document, find_by_id, get_documents, to_str_id
from errors import ConflictError, NotFoundError
from schemas import Society, SocietyCreate
from security import CurrentUser

logger = logging.getLogger(__name__)


def get_society(db, society_id: str) -> Dict[str, Any]:
    society = find_by_id(db, "society", society_id)
    if not society:
        raise NotFoundError("Society not found")
    return society


def serialize(db, society: Dict[str, Any]) -> Dict[str, Any]:
    out = to_str_id(society)
    out["head"] = summary(get_user(db, society["head_id"]))
    return out


def create_society(db, current: CurrentUser, body: SocietyCreate) -> Dict[str, Any]:
    """Admin-only; the head must already have an account."""
    if not get_user(db, body.head_id):
        raise NotFoundError("Society head not found")
    if db["society"].find_one({"name": body.name.strip()}):
        raise ConflictError("Society name already exists")

    society = Society(
        name=body.name.strip(),
        description=body.description,
        head_id=body.head_id,
        contact_email=str(body.contact_email).lower(),
        logo_url=body.logo_url,
    )
    try:
        society_id = create_document(db, "society", society)
    except DuplicateKeyError:
        raise ConflictError("Society name already exists")

    logger.info(f"Society created: {society.name} by {current.id}")
    return serialize(db, get_society(db, society_id))


def list_societies(db) -> List[Dict[str, Any]]:
    docs = get_documents(db, "society", {"is_active": True}, sort=[("name", ASCENDING)])
    return [to_str_id(d) for d in docs]
