from datetime import datetime
from typing import Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from jam.models import DmPrivacy, FriendStatus, Visibility

T = TypeVar("T")


class RequestBody(BaseModel):
    model_config = ConfigDict(extra="forbid")


# Requests

class RegisterRequest(RequestBody):
    email: EmailStr
    password: str = Field(..., min_length=6)
    username: str = Field(..., min_length=3, max_length=20)
    display_name: Optional[str] = Field(None, min_length=1, max_length=50)

class LoginRequest(RequestBody):
    email: EmailStr
    password: str = Field(..., min_length=1)

class ProfileUpdate(RequestBody):
    username: Optional[str] = Field(None, min_length=3, max_length=20)
    display_name: Optional[str] = Field(None, max_length=50)
    avatar_url: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    dm_privacy: Optional[DmPrivacy] = None

class PostCreate(RequestBody):
    text: Optional[str] = Field(None, max_length=1000)
    audio_url: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC

class CommentCreate(RequestBody):
    content: Optional[str] = Field(None, max_length=1000)
    audio_url: Optional[str] = None

class MessageCreate(RequestBody):
    recipient_id: UUID
    text: Optional[str] = Field(None, max_length=1000)
    audio_url: Optional[str] = None


# Responses

class Page(BaseModel, Generic[T]):
    model_config = ConfigDict(populate_by_name=True)

    data: List[T]
    limit: int
    offset: int
    total: int
    has_more: bool = Field(alias="hasMore")

class Author(BaseModel):
    id: str
    username: str
    display_name: str = ""
    avatar_url: str = ""

    @classmethod
    def from_profile(cls, profile, **extra):
        return cls(
            id=profile.id,
            username=profile.username,
            display_name=profile.display_name or "",
            avatar_url=profile.avatar_url or "",
            **extra,
        )

class ProfileOut(Author):
    bio: str = ""
    dm_privacy: DmPrivacy = DmPrivacy.FRIENDS
    created_at: datetime

class AccountUser(BaseModel):
    id: str
    email: Optional[str] = None
    username: Optional[str] = None

class RegisterResponse(BaseModel):
    message: str
    access_token: Optional[str] = None
    user: AccountUser

class LoginResponse(BaseModel):
    access_token: Optional[str] = None
    user: AccountUser

class MeOut(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    display_name: str
    avatar_url: Optional[str] = None
    bio: str = ""
    dm_privacy: DmPrivacy = DmPrivacy.FRIENDS

class PostOut(BaseModel):
    id: str
    author_id: str
    text: str = ""
    audio_url: str = ""
    visibility: Visibility = Visibility.PUBLIC
    created_at: datetime
    author: Author
    likes_count: int = 0
    comments_count: int = 0
    is_liked: bool = False

class CommentOut(BaseModel):
    id: str
    post_id: str
    author_id: str
    author: Author
    text: str = ""
    audio_url: str = ""
    created_at: datetime
    likes_count: int = 0
    is_liked: bool = False

class LikerOut(Author):
    liked_at: datetime

class BlockOut(BaseModel):
    blocker_id: str
    blocked_id: str
    created_at: datetime

class BlockedUserOut(Author):
    blocked_at: datetime

class FollowOut(BaseModel):
    follower_id: str
    following_id: str
    created_at: datetime

class FollowUserOut(Author):
    bio: str = ""
    followed_at: datetime

class FriendOut(Author):
    friends_since: datetime

class FriendRequestOut(Author):
    requested_at: datetime

class FriendshipStatus(BaseModel):
    message: str
    status: FriendStatus

class MessageOut(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    text: Optional[str] = None
    audio_url: Optional[str] = None
    created_at: datetime

class ConversationOut(BaseModel):
    id: str
    other_user: Optional[Author] = None
    last_message: Optional[MessageOut] = None
    updated_at: datetime

class UserOut(Author):
    pass

class Detail(BaseModel):
    message: str
