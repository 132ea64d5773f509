import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from jam.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


def _values(enum_cls):
    return [member.value for member in enum_cls]


class DmPrivacy(str, enum.Enum):
    FRIENDS = "friends"
    EVERYONE = "everyone"


class FriendStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    FOLLOWERS = "followers"


class Profile(Base):
    __tablename__ = "profiles"

    # Shared with the identity provider's user id
    id = Column(Uuid(as_uuid=False), primary_key=True)
    username = Column(String(20), unique=True, index=True, nullable=False)
    display_name = Column(String(50))
    avatar_url = Column(Text)
    bio = Column(Text)
    dm_privacy = Column(
        Enum(DmPrivacy, name="dm_privacy", values_callable=_values),
        default=DmPrivacy.FRIENDS,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Post(Base):
    __tablename__ = "posts"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    author_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    # Comments are posts that point at their parent
    parent_id = Column(Uuid(as_uuid=False), ForeignKey("posts.id", ondelete="CASCADE"), index=True)
    text = Column(Text)
    audio_url = Column(Text)
    visibility = Column(
        Enum(Visibility, name="post_visibility", values_callable=_values),
        default=Visibility.PUBLIC,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    author = relationship("Profile")


class Like(Base):
    __tablename__ = "likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="likes_post_user_unique"),)

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    post_id = Column(Uuid(as_uuid=False), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("Profile")


class Friend(Base):
    __tablename__ = "friends"
    __table_args__ = (
        UniqueConstraint("user_low", "user_high", name="friends_pair_unique"),
        CheckConstraint("user_id <> friend_id", name="friends_no_self"),
        CheckConstraint("user_low < user_high", name="friends_canonical_pair"),
        Index("friends_status_idx", "status"),
    )

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    # user_id sent the request, friend_id received it
    user_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    friend_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    # The same two users in sorted order, so A->B and B->A collide
    user_low = Column(Uuid(as_uuid=False), nullable=False)
    user_high = Column(Uuid(as_uuid=False), nullable=False)
    status = Column(
        Enum(FriendStatus, name="friend_status", values_callable=_values),
        default=FriendStatus.PENDING,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("Profile", foreign_keys=[user_id])
    friend = relationship("Profile", foreign_keys=[friend_id])

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.user_low, self.user_high = sorted((str(self.user_id), str(self.friend_id)))


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="follows_follower_following_unique"),
        CheckConstraint("follower_id <> following_id", name="follows_no_self"),
    )

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    follower_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    following_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    follower = relationship("Profile", foreign_keys=[follower_id])
    following = relationship("Profile", foreign_keys=[following_id])


class Block(Base):
    __tablename__ = "blocks"
    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="blocks_blocker_blocked_unique"),
        CheckConstraint("blocker_id <> blocked_id", name="blocks_no_self"),
    )

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    blocker_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    blocked_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    blocked = relationship("Profile", foreign_keys=[blocked_id])


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("user_1", "user_2", name="conversations_users_unique"),
        CheckConstraint("user_1 < user_2", name="conversations_canonical_pair"),
    )

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    user_1 = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    user_2 = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    conversation_id = Column(
        Uuid(as_uuid=False), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id = Column(Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text)
    audio_url = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
