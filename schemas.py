"""
Database Schemas for the Campus Events Service

Each Pydantic model in the first half represents a MongoDB collection (or a
sub-document embedded in one). Collection name is the lowercased class name.
The second half holds the request payloads accepted by the API.
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from bson.objectid import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

Role = Literal["student", "society_head", "admin"]
Branch = Literal["CSE", "ECE", "ME", "CE", "IT", "Other"]
EventType = Literal["workshop", "seminar", "competition", "cultural", "sports", "orientation", "hackathon"]
EventStatus = Literal["draft", "published", "ongoing", "completed", "cancelled"]
RegistrationMode = Literal["individual", "team"]
RegistrationStatus = Literal["pending", "confirmed", "waitlisted", "cancelled", "rejected"]
MemberRole = Literal["leader", "member"]
InviteStatus = Literal["auto_added", "invited", "accepted", "declined", "pending_registration"]


class FieldType(str, Enum):
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    NUMBER = "number"
    EMAIL = "email"
    PHONE = "phone"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    DATE = "date"
    FILE = "file"
    URL = "url"


CHOICE_FIELD_TYPES = {FieldType.SELECT.value, FieldType.MULTI_SELECT.value}


def _object_id_string(value: str, label: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValueError(f"Invalid {label}")
    return value


class MongoModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class User(MongoModel):
    name: str = Field(..., min_length=2, max_length=100, description="Full name")
    email: EmailStr = Field(..., description="Login email, unique")
    password_hash: str = Field(..., description="bcrypt hash (server-side only)")
    role: Role = Field("student", description="Access role")
    phone: Optional[str] = Field(None, pattern=r"^[\+]?[(]?[0-9]{3}[)]?[-\s\.]?[0-9]{3}[-\s\.]?[0-9]{4,6}$")
    year_of_study: Optional[int] = Field(None, ge=1, le=5)
    branch: Optional[Branch] = None
    photo_url: str = Field("https://via.placeholder.com/150")
    is_active: bool = Field(True, description="Deactivated accounts cannot log in")


class Society(MongoModel):
    name: str = Field(..., min_length=3, max_length=100, description="Society name, unique")
    description: Optional[str] = Field(None, max_length=500)
    head_id: str = Field(..., description="Account id of the society head")
    contact_email: EmailStr
    logo_url: Optional[str] = None
    is_active: bool = True


class FormField(MongoModel):
    """One typed input slot of an event's registration form.

    ``options`` only exists for the choice kinds; every other kind must leave
    it unset.
    """

    field_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    label: str = Field(..., min_length=1, max_length=100)
    field_type: FieldType
    is_required: bool = True
    options: Optional[List[str]] = None
    order_index: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _options_match_kind(self):
        if self.field_type in CHOICE_FIELD_TYPES:
            if not self.options:
                raise ValueError(f"Field '{self.label}' of type {self.field_type} needs at least one option")
        elif self.options is not None:
            raise ValueError(f"Field '{self.label}' of type {self.field_type} does not take options")
        return self


class Event(MongoModel):
    title: str = Field(..., description="Public event title")
    description: str = Field(..., description="Event details")
    event_type: EventType
    start_datetime: datetime
    end_datetime: datetime
    venue: str
    poster_url: Optional[str] = None
    society_id: Optional[str] = Field(None, description="Organizing society, if any")
    organizer_id: str = Field(..., description="Account id of the organizer")
    event_status: EventStatus = "draft"
    registration_open: bool = True
    registration_start_datetime: datetime
    registration_end_datetime: datetime
    registration_mode: RegistrationMode = "individual"
    min_team_size: int = Field(1, ge=1)
    max_team_size: int = Field(1, ge=1)
    max_teams: Optional[int] = Field(None, ge=1, description="Capacity cap on active registrations")
    form_fields: List[FormField] = Field(default_factory=list)
    active_registrations: int = Field(0, ge=0, description="Registrations currently pending or confirmed")


class AccountInvitee(MongoModel):
    kind: Literal["account"] = "account"
    user_id: str


class PendingInvitee(MongoModel):
    """Someone invited by email who has no account yet."""

    kind: Literal["pending"] = "pending"
    email: EmailStr
    name: Optional[str] = None


Invitee = Annotated[Union[AccountInvitee, PendingInvitee], Field(discriminator="kind")]


class Member(MongoModel):
    invitee: Invitee
    role: MemberRole = "member"
    invite_status: InviteStatus = "invited"
    added_at: datetime
    responded_at: Optional[datetime] = None


class Answer(MongoModel):
    field_id: str
    field_label: str
    value_text: Optional[str] = None
    value_number: Optional[Union[int, float]] = None
    value_date: Optional[datetime] = None


class Registration(MongoModel):
    event_id: str
    mode: RegistrationMode
    leader_user_id: str
    team_name: Optional[str] = Field(None, max_length=100)
    status: RegistrationStatus = "pending"
    members: List[Member] = Field(default_factory=list)
    answers: List[Answer] = Field(default_factory=list)
    members_version: int = Field(0, ge=0, description="Bumped on every write to members")


class Bookmark(MongoModel):
    user_id: str
    event_id: str


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------

class SignupRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = Field(None, pattern=r"^[\+]?[(]?[0-9]{3}[)]?[-\s\.]?[0-9]{3}[-\s\.]?[0-9]{4,6}$")
    year_of_study: Optional[int] = Field(None, ge=1, le=5)
    branch: Optional[Branch] = None
    role: Optional[Role] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class SocietyCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    head_id: str
    contact_email: EmailStr
    logo_url: Optional[str] = None

    @field_validator("head_id")
    @classmethod
    def _valid_head_id(cls, value: str) -> str:
        return _object_id_string(value, "head ID")


class EventCreate(BaseModel):
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10)
    event_type: EventType
    start_datetime: datetime
    end_datetime: datetime
    venue: str = Field(..., min_length=1, max_length=100)
    society_id: Optional[str] = None
    registration_mode: RegistrationMode = "individual"
    min_team_size: int = Field(1, ge=1)
    max_team_size: int = Field(1, ge=1)
    registration_start_datetime: datetime
    registration_end_datetime: datetime
    max_teams: Optional[int] = Field(None, ge=1)
    poster_url: Optional[str] = None
    form_fields: List[FormField] = Field(default_factory=list)
    event_status: Literal["draft", "published"] = "draft"

    @field_validator("title", "description", "venue")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("society_id")
    @classmethod
    def _valid_society_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _object_id_string(value, "society ID")


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, min_length=10)
    venue: Optional[str] = Field(None, max_length=100)
    poster_url: Optional[str] = None
    event_status: Optional[EventStatus] = None
    event_type: Optional[EventType] = None
    organizer_id: Optional[str] = None
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    registration_start_datetime: Optional[datetime] = None
    registration_end_datetime: Optional[datetime] = None
    max_teams: Optional[int] = Field(None, ge=1)
    registration_open: Optional[bool] = None

    @field_validator("organizer_id")
    @classmethod
    def _valid_organizer_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _object_id_string(value, "organizer ID")


class MemberInfo(BaseModel):
    email: EmailStr
    name: Optional[str] = None


class AnswerInput(BaseModel):
    field_id: str
    value: Any = None


class RegistrationCreate(BaseModel):
    event_id: str
    team_name: Optional[str] = Field(None, max_length=100)
    team_members: List[str] = Field(default_factory=list)
    team_members_info: List[MemberInfo] = Field(default_factory=list)
    form_answers: List[AnswerInput] = Field(default_factory=list)

    @field_validator("team_name")
    @classmethod
    def _strip_team_name(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else value


class InvitationResponse(BaseModel):
    action: Literal["accept", "decline"]


class MemberStatusUpdate(BaseModel):
    invite_status: Literal["accepted", "declined"]


class MemberToAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: Optional[str] = None
    email: Optional[EmailStr] = None


class AddMembersRequest(BaseModel):
    members_to_add: List[MemberToAdd] = Field(..., min_length=1)


class BookmarkCreate(BaseModel):
    event_id: str

    @field_validator("event_id")
    @classmethod
    def _valid_event_id(cls, value: str) -> str:
        return _object_id_string(value, "event ID")
