"""
Identity store: sign-up, login and account lookups.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from database import create_document, find_by_id, parse_object_id
from errors import AuthenticationError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from schemas import SignupRequest, User
from security import CurrentUser, create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

SELF_ASSIGNABLE_ROLES = ("student", "society_head")


def public_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "photo_url": user.get("photo_url"),
        "year_of_study": user.get("year_of_study"),
        "branch": user.get("branch"),
        "role": user.get("role"),
        "is_active": user.get("is_active", True),
        "created_at": user.get("created_at"),
    }


def summary(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """The {id, name, email} shape embedded in other resources."""
    if not user:
        return None
    return {"id": str(user["_id"]), "name": user.get("name"), "email": user.get("email")}


def get_user(db, user_id: str) -> Optional[Dict[str, Any]]:
    return find_by_id(db, "user", user_id)


def get_user_by_email(db, email: str) -> Optional[Dict[str, Any]]:
    return db["user"].find_one({"email": email.strip().lower()})


def register_account(db, body: SignupRequest) -> Dict[str, Any]:
    role = body.role or "student"
    if role not in SELF_ASSIGNABLE_ROLES:
        raise ForbiddenError(f"Role '{role}' cannot be self-assigned")

    email = str(body.email).lower()
    if get_user_by_email(db, email):
        raise ConflictError("Email already registered. Please use a different email or login.")

    user = User(
        name=body.name,
        email=email,
        password_hash=get_password_hash(body.password),
        role=role,
        phone=body.phone,
        year_of_study=body.year_of_study,
        branch=body.branch,
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise ConflictError("Email already registered. Please use a different email or login.")

    logger.info(f"New user registered: {email} ({role})")
    return public_profile(get_user(db, user_id))


def login(db, email: str, password: str) -> Dict[str, Any]:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise AuthenticationError("Invalid credentials")
    if not user.get("is_active", True):
        raise ForbiddenError("Account is deactivated. Please contact administrator.")

    token = create_access_token({
        "sub": str(user["_id"]),
        "email": user["email"],
        "role": user.get("role", "student"),
    })
    logger.info(f"User logged in: {user['email']}")
    return {"token": token, "user": public_profile(user)}


def get_profile(db, current: CurrentUser) -> Dict[str, Any]:
    user = get_user(db, current.id)
    if not user:
        raise NotFoundError("User not found")
    return public_profile(user)


def search_users(db, current: CurrentUser, query: Optional[str]) -> List[Dict[str, Any]]:
    """Active accounts whose name or email contains ``query``."""
    if not query or len(query.strip()) < 2:
        raise ValidationError("Search query must be at least 2 characters", field="query")

    pattern = re.escape(query.strip())
    conditions = [
        {"$or": [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]},
        {"is_active": True},
    ]
    current_oid = parse_object_id(current.id)
    if current_oid is not None:
        conditions.append({"_id": {"$ne": current_oid}})

    cursor = db["user"].find({"$and": conditions}).limit(10)
    return [summary(user) for user in cursor]
