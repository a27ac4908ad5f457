"""
Database Schemas for SkillSwap

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase of the class name (e.g., Userprofile -> "userprofile").
"""
from typing import List, Optional, Dict, Literal
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

Availability = Literal["Weekends", "Evenings", "Weekdays"]
Visibility = Literal["public", "private"]
Role = Literal["user", "admin"]
RequestStatus = Literal["pending", "accepted", "rejected"]


class ContactInfo(BaseModel):
    email: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    portfolio: Optional[str] = None


class Feedback(BaseModel):
    """A single review left on a profile after an accepted swap."""
    from_name: str = Field(..., description="Reviewer display name")
    from_user_id: str = Field(..., description="Reviewer user id")
    rating: int = Field(..., ge=1, le=5)
    comment: str
    created_at: datetime


class Userprofile(BaseModel):
    """
    Members of the platform. Created incomplete at sign-up and completed by the
    first profile save.
    Collection: "userprofile"
    """
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Unique email address")
    location: str = Field("", description="City or region")
    skills_offered: List[str] = Field(default_factory=list)
    skills_wanted: List[str] = Field(default_factory=list)
    availability: Availability = "Weekends"
    profile_photo_url: Optional[str] = Field(None, description="Hosted image URL")
    visibility: Visibility = "public"
    contact_info: Optional[ContactInfo] = None
    rating: float = Field(0, description="Mean of feedback ratings")
    feedback: List[Feedback] = Field(default_factory=list)
    is_banned: bool = False
    role: Role = "user"
    is_profile_complete: bool = False


class Skillrequest(BaseModel):
    """
    A directed skill swap proposal. Only the receiver may accept or reject it,
    and only while it is pending.
    Collection: "skillrequest"
    """
    from_user_id: str
    from_user_name: str
    from_user_photo: str = ""
    to_user_id: str
    to_user_name: str
    offered_skill: str
    wanted_skill: str
    message: str
    status: RequestStatus = "pending"
    is_read: bool = Field(False, description="Seen by the receiver")


class Chat(BaseModel):
    """
    Two-party conversation. ``participants`` is always sorted and the name and
    photo arrays follow the same order.
    Collection: "chat"
    """
    participants: List[str] = Field(..., min_length=2, max_length=2)
    pair_key: str = Field(..., description="Sorted participant ids joined by ':'")
    participant_names: List[str]
    participant_photos: List[str]
    last_message: str = ""
    last_message_time: Optional[datetime] = None
    last_message_sender: str = ""
    unread_count: Dict[str, int] = Field(default_factory=dict)


class Chatmessage(BaseModel):
    """
    Collection: "chatmessage"
    """
    chat_id: str
    sender_id: str
    sender_name: str
    sender_photo: str = ""
    message: str
    timestamp: datetime
    is_read: bool = False


class Adminmessage(BaseModel):
    """
    Platform-wide announcement written by an admin.
    Collection: "adminmessage"
    """
    message: str
    created_by: Optional[str] = None
    seen_by: List[str] = Field(default_factory=list)
