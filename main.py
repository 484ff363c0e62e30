import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import accounts
import bookmarks
import config
import database
import events
import registrations
import societies
from database import ensure_indexes, get_db
from errors import CampusEventsError
from logging_config import setup_logging
from schemas import (
    AddMembersRequest,
    BookmarkCreate,
    EventCreate,
    EventUpdate,
    InvitationResponse,
    LoginRequest,
    MemberStatusUpdate,
    RegistrationCreate,
    SignupRequest,
    SocietyCreate,
)
from security import CurrentUser, get_current_user, get_optional_user, require_roles

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; requests needing the database will fail")
    yield


app = FastAPI(title="Campus Events API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL] if config.FRONTEND_URL != "*" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error envelopes

@app.exception_handler(CampusEventsError)
async def domain_error_handler(request: Request, exc: CampusEventsError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or None, "message": err.get("msg")})
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "validation", "message": "Validation failed", "errors": errors},
    )


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(
        status_code=409,
        content={"success": False, "error": "conflict", "message": "Resource already exists"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = "not_found" if exc.status_code == 404 else "http_error"
    message = f"Route {request.url.path} not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": kind, "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "internal", "message": "Internal server error"},
    )


@app.get("/")
def root():
    return {"service": "campus-events", "status": "ok"}


@app.get("/api/health")
def health():
    return {"status": "ok", "message": "Server is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        response["database"] = "❌ Error"
    return response


# Auth

@app.post("/api/auth/register", status_code=201)
def register(body: SignupRequest, db=Depends(get_db)):
    user = accounts.register_account(db, body)
    return {"success": True, "message": "User registered successfully", "user": user}


@app.post("/api/auth/login")
def login(body: LoginRequest, db=Depends(get_db)):
    result = accounts.login(db, str(body.email), body.password)
    return {"success": True, "message": "Login successful", **result}


@app.get("/api/auth/me")
def me(user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "user": accounts.get_profile(db, user)}


@app.get("/api/auth/search")
def search_users(query: Optional[str] = None, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "users": accounts.search_users(db, user, query)}


# Societies

@app.post("/api/societies", status_code=201)
def create_society(body: SocietyCreate, user: CurrentUser = Depends(require_roles("admin")), db=Depends(get_db)):
    society = societies.create_society(db, user, body)
    return {"success": True, "message": "Society created successfully", "society": society}


@app.get("/api/societies")
def list_societies(db=Depends(get_db)):
    items = societies.list_societies(db)
    return {"success": True, "count": len(items), "societies": items}


@app.get("/api/societies/{society_id}")
def get_society(society_id: str, db=Depends(get_db)):
    society = societies.get_society(db, society_id)
    return {"success": True, "society": societies.serialize(db, society)}


# Events

@app.post("/api/events", status_code=201)
def create_event(
    body: EventCreate,
    user: CurrentUser = Depends(require_roles("society_head", "admin")),
    db=Depends(get_db),
):
    event = events.create_event(db, user, body)
    return {"success": True, "message": "Event created successfully", "event": event}


@app.get("/api/events/my-events")
def my_events(user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    items = events.list_my_events(db, user)
    return {"success": True, "count": len(items), "events": items}


@app.get("/api/events")
def list_events(
    event_type: Optional[str] = None,
    event_status: Optional[str] = None,
    society_id: Optional[str] = None,
    skip: int = 0,
    limit: int = config.DEFAULT_PAGE_SIZE,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db=Depends(get_db),
):
    page = events.list_events(db, user, event_type, event_status, society_id, skip, limit)
    return {"success": True, **page}


@app.get("/api/events/{event_id}")
def get_event(event_id: str, user: Optional[CurrentUser] = Depends(get_optional_user), db=Depends(get_db)):
    return {"success": True, "event": events.get_event(db, user, event_id)}


@app.get("/api/events/{event_id}/form-fields")
def get_form_fields(event_id: str, user: Optional[CurrentUser] = Depends(get_optional_user), db=Depends(get_db)):
    return {"success": True, **events.get_form_fields(db, user, event_id)}


@app.put("/api/events/{event_id}")
def update_event(event_id: str, body: EventUpdate, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    event = events.update_event(db, user, event_id, body)
    return {"success": True, "message": "Event updated successfully", "event": event}


@app.delete("/api/events/{event_id}")
def cancel_event(event_id: str, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    events.cancel_event(db, user, event_id)
    return {"success": True, "message": "Event cancelled successfully"}


# Registrations

@app.post("/api/registrations", status_code=201)
def create_registration(body: RegistrationCreate, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    registration = registrations.create_registration(db, user, body)
    return {"success": True, "message": "Registration successful", "registration": registration}


@app.get("/api/registrations")
def list_registrations(
    event_id: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = config.DEFAULT_PAGE_SIZE,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
):
    page = registrations.list_registrations(db, user, event_id, status, skip, limit)
    return {"success": True, **page}


@app.get("/api/registrations/invitations/pending")
def pending_invitations(user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "invitations": registrations.list_pending_invitations(db, user)}


@app.get("/api/registrations/{registration_id}")
def get_registration(registration_id: str, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "registration": registrations.get_registration(db, user, registration_id)}


@app.put("/api/registrations/{registration_id}/invitation")
def respond_to_invitation(
    registration_id: str,
    body: InvitationResponse,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
):
    registration = registrations.respond_to_invitation(db, user, registration_id, body.action)
    return {"success": True, "message": f"Invitation {body.action}d successfully", "registration": registration}


@app.post("/api/registrations/{registration_id}/members")
def add_members(
    registration_id: str,
    body: AddMembersRequest,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
):
    registration = registrations.add_members(db, user, registration_id, body.members_to_add)
    return {"success": True, "message": "Team members added successfully", "registration": registration}


@app.put("/api/registrations/{registration_id}/members/{member_id}")
def update_member_status(
    registration_id: str,
    member_id: str,
    body: MemberStatusUpdate,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
):
    registration = registrations.update_member_status(db, user, registration_id, member_id, body.invite_status)
    return {"success": True, "message": f"Invitation {body.invite_status}", "registration": registration}


@app.delete("/api/registrations/{registration_id}/members/{member_id}")
def remove_member(
    registration_id: str,
    member_id: str,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
):
    registration = registrations.remove_member(db, user, registration_id, member_id)
    return {"success": True, "message": "Team member removed successfully", "registration": registration}


@app.delete("/api/registrations/{registration_id}")
def cancel_registration(registration_id: str, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    registrations.cancel_registration(db, user, registration_id)
    return {"success": True, "message": "Registration cancelled successfully"}


# Bookmarks

@app.post("/api/bookmarks", status_code=201)
def add_bookmark(body: BookmarkCreate, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    bookmark = bookmarks.add_bookmark(db, user, body.event_id)
    return {"success": True, "message": "Event bookmarked successfully", "bookmark": bookmark}


@app.get("/api/bookmarks")
def list_bookmarks(user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    items = bookmarks.list_bookmarks(db, user)
    return {"success": True, "count": len(items), "bookmarks": items}


@app.get("/api/bookmarks/check/{event_id}")
def check_bookmark(event_id: str, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "isBookmarked": bookmarks.is_bookmarked(db, user, event_id)}


@app.delete("/api/bookmarks/{event_id}")
def remove_bookmark(event_id: str, user: CurrentUser = Depends(get_current_user), db=Depends(get_db)):
    bookmarks.remove_bookmark(db, user, event_id)
    return {"success": True, "message": "Bookmark removed successfully"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
