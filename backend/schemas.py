"""
Database schemas and request bodies for the Community Connect API.

Each document model maps to a MongoDB collection whose name is the
lowercased class name (``HelpRequest`` -> ``helprequest``). Foreign keys are
stored as ObjectId hex strings.

Request bodies accept both snake_case and the camelCase keys sent by the web
client (``resource_id`` or ``resourceId``).
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from config import DEFAULT_TRUST_SCORE

ResourceAvailability = Literal["available", "unavailable", "borrowed"]
SkillAvailability = Literal["available", "unavailable"]
HelpCategory = Literal[
    "Childcare", "Repairs", "Home Assistance", "Medical", "Transportation", "Groceries", "Other"
]
Urgency = Literal["low", "medium", "high"]
NotificationType = Literal[
    "message",
    "resource_created",
    "resource_returned",
    "resource_borrowed",
    "borrow_request",
    "request_approved",
    "request_declined",
    "skill_request",
    "skill_request_response",
    "skill_request_completed",
    "skill_review",
    "review",
    "help_offered",
    "help_completed",
    "event_update",
    "event_canceled",
    "event_rsvp",
]


# Collections

class User(BaseModel):
    name: str
    email: EmailStr
    password: Optional[str] = None  # hashed
    avatar: str = ""
    role: Literal["user", "admin"] = "user"
    trust_score: float = DEFAULT_TRUST_SCORE
    total_reviews: int = 0
    is_deleted: bool = False


class Resource(BaseModel):
    title: str
    description: str
    category: str = "Other"
    location: str
    owner_id: str
    availability: ResourceAvailability = "available"
    borrowed_by: Optional[str] = None
    image: Optional[str] = None
    is_deleted: bool = False


class BorrowRequest(BaseModel):
    resource_id: str
    borrower_id: str
    owner_id: str
    message: Optional[str] = None
    status: Literal["pending", "approved", "declined"] = "pending"


class Transaction(BaseModel):
    """A single borrow of a resource, from hand-over to return."""
    resource_id: str
    owner_id: str
    borrower_id: str
    borrow_request_id: Optional[str] = None
    status: Literal["ongoing", "returned", "cancelled"] = "ongoing"
    borrowed_at: datetime
    returned_at: Optional[datetime] = None
    owner_reviewed: bool = False
    borrower_reviewed: bool = False


class HelpRequest(BaseModel):
    title: str
    description: str
    category: HelpCategory
    location: str
    urgency: Urgency = "medium"
    status: Literal["pending", "in-progress", "completed", "canceled"] = "pending"
    requester_id: str
    helper_id: Optional[str] = None
    is_deleted: bool = False


class Event(BaseModel):
    title: str
    description: Optional[str] = None
    date: datetime
    location: str
    category: Optional[str] = None
    host_id: str
    attendees: List[str] = []
    is_deleted: bool = False


class BookedBy(BaseModel):
    user_id: str
    request_id: str
    name: str


class SkillSharing(BaseModel):
    title: str
    description: str
    category: Optional[str] = None
    location: str
    availability: SkillAvailability = "available"
    user_id: str
    booked_by: Optional[BookedBy] = None
    is_deleted: bool = False


class SkillRequest(BaseModel):
    skill_id: str
    requester_id: str
    provider_id: str
    message: Optional[str] = None
    status: Literal["pending", "accepted", "rejected", "completed", "canceled"] = "pending"
    response_message: Optional[str] = None
    responded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    requester_reviewed: bool = False
    provider_reviewed: bool = False


class Review(BaseModel):
    reviewer_id: str
    reviewed_user_id: str
    transaction_id: str
    resource_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class SkillReview(BaseModel):
    request_id: str
    skill_id: str
    reviewer_id: str
    reviewed_user_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    reviewer_role: Literal["requester", "provider"]


class Message(BaseModel):
    sender_id: str
    recipient_id: str
    content: str
    resource_id: Optional[str] = None
    read: bool = False
    is_deleted: bool = False


class Notification(BaseModel):
    user_id: str
    message: str
    type: NotificationType
    is_read: bool = False
    resource_id: Optional[str] = None
    action_by: Optional[str] = None
    link: Optional[str] = None


class UserStatus(BaseModel):
    user_id: str
    is_online: bool = False
    last_seen: datetime


# Request bodies

class RequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterIn(RequestBody):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginIn(RequestBody):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(RequestBody):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    avatar: Optional[str] = None


class ResourceIn(RequestBody):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = "Other"
    location: str = Field(..., min_length=1)
    availability: ResourceAvailability = "available"
    image: Optional[str] = None


class ResourceUpdate(RequestBody):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1)
    availability: Optional[Literal["available", "unavailable"]] = None
    image: Optional[str] = None


class BorrowIn(RequestBody):
    resource_id: str
    message: Optional[str] = None


class BorrowAction(RequestBody):
    action: str


class HelpRequestIn(RequestBody):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: HelpCategory
    location: str = Field(..., min_length=1)
    urgency: Urgency = "medium"


class HelpRequestUpdate(RequestBody):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[HelpCategory] = None
    location: Optional[str] = Field(None, min_length=1)
    urgency: Optional[Urgency] = None
    status: Optional[Literal["canceled"]] = None


class EventIn(RequestBody):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    date: datetime
    location: str = Field(..., min_length=1)
    category: Optional[str] = None


class EventUpdate(RequestBody):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    date: Optional[datetime] = None
    location: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None


class RsvpIn(RequestBody):
    event_id: str


class SkillIn(RequestBody):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: Optional[str] = None
    location: str = Field(..., min_length=1)
    availability: SkillAvailability = "available"


class SkillUpdate(RequestBody):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1)


class SkillSettings(RequestBody):
    availability: SkillAvailability


class SkillRequestIn(RequestBody):
    skill_id: str
    message: Optional[str] = None


class SkillRequestResponse(RequestBody):
    status: Literal["accepted", "rejected"]
    response_message: Optional[str] = None


class ReviewIn(RequestBody):
    transaction_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class SkillReviewIn(RequestBody):
    request_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class MessageIn(RequestBody):
    recipient_id: str
    content: str
    resource_id: Optional[str] = None


class StatusIn(RequestBody):
    is_online: bool
