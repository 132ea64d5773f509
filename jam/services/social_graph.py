"""Blocks, friendships and follows, plus the rules that gate interactions
between two users (messaging, post visibility)."""

import logging
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from jam.errors import BadRequest, Forbidden, NotFound
from jam.models import Block, DmPrivacy, Follow, Friend, FriendStatus, Post, Profile, Visibility
from jam.pagination import PageParams, read_page
from jam.schemas import (
    BlockedUserOut,
    BlockOut,
    FollowOut,
    FollowUserOut,
    FriendOut,
    FriendRequestOut,
    FriendshipStatus,
    Page,
)

logger = logging.getLogger(__name__)


def require_profile(db: Session, user_id: str, detail: str = "User not found") -> Profile:
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise NotFound(detail)
    return profile


def commit_or_fail(db: Session, detail: str) -> None:
    """Commit, turning a constraint violation into BadRequest."""
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Write rejected by constraint: %s", exc.orig)
        raise BadRequest(detail)


def _pair(model_a, model_b, a: str, b: str):
    """Match an edge between a and b in either direction."""
    return or_(
        and_(model_a == a, model_b == b),
        and_(model_a == b, model_b == a),
    )


class SocialGraph:
    """Read-side checks shared by the messaging and post services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def is_blocked(self, user_a: str, user_b: str) -> bool:
        block = (
            self.db.query(Block.id)
            .filter(_pair(Block.blocker_id, Block.blocked_id, user_a, user_b))
            .first()
        )
        return block is not None

    def are_friends(self, user_a: str, user_b: str) -> bool:
        friendship = (
            self.db.query(Friend.id)
            .filter(
                _pair(Friend.user_id, Friend.friend_id, user_a, user_b),
                Friend.status == FriendStatus.ACCEPTED,
            )
            .first()
        )
        return friendship is not None

    def is_following(self, follower_id: str, following_id: str) -> bool:
        follow = (
            self.db.query(Follow.id)
            .filter(Follow.follower_id == follower_id, Follow.following_id == following_id)
            .first()
        )
        return follow is not None

    def check_can_message(self, sender_id: str, recipient_id: str) -> Profile:
        """Return the recipient profile, or raise if the message is not allowed.

        A block in either direction wins over everything else.
        """
        if self.is_blocked(sender_id, recipient_id):
            raise Forbidden("Cannot send message to this user")

        recipient = require_profile(self.db, recipient_id, "Recipient not found")

        if recipient.dm_privacy == DmPrivacy.EVERYONE:
            return recipient
        if self.are_friends(sender_id, recipient_id):
            return recipient
        raise Forbidden(
            "You can only send messages to friends or users who allow messages from everyone"
        )

    def can_view_post(self, viewer_id: Optional[str], post: Post) -> bool:
        if viewer_id is not None and viewer_id == post.author_id:
            return True
        if post.visibility == Visibility.PUBLIC:
            return True
        if viewer_id is None:
            return False
        return self.is_following(viewer_id, post.author_id)

    def visible_posts(self, viewer_id: Optional[str]):
        """SQL condition selecting the posts viewer_id may see."""
        if viewer_id is None:
            return Post.visibility == Visibility.PUBLIC
        followed = select(Follow.following_id).where(Follow.follower_id == viewer_id)
        return or_(
            Post.visibility == Visibility.PUBLIC,
            Post.author_id == viewer_id,
            Post.author_id.in_(followed),
        )


class BlockService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def block_user(self, blocker_id: str, blocked_id: str) -> BlockOut:
        if blocker_id == blocked_id:
            raise BadRequest("You cannot block yourself")
        require_profile(self.db, blocked_id)

        existing = (
            self.db.query(Block)
            .filter(Block.blocker_id == blocker_id, Block.blocked_id == blocked_id)
            .first()
        )
        if existing:
            raise BadRequest("User already blocked")

        block = Block(blocker_id=blocker_id, blocked_id=blocked_id)
        self.db.add(block)
        commit_or_fail(self.db, "Failed to block user")
        self.db.refresh(block)
        logger.info("User %s blocked %s", blocker_id, blocked_id)
        return BlockOut(blocker_id=block.blocker_id, blocked_id=block.blocked_id, created_at=block.created_at)

    def unblock_user(self, blocker_id: str, blocked_id: str) -> None:
        deleted = (
            self.db.query(Block)
            .filter(Block.blocker_id == blocker_id, Block.blocked_id == blocked_id)
            .delete(synchronize_session=False)
        )
        if not deleted:
            self.db.rollback()
            raise NotFound("Block not found")
        self.db.commit()

    def blocked_users(self, blocker_id: str, params: PageParams) -> Page:
        def fetch():
            query = self.db.query(Block).filter(Block.blocker_id == blocker_id)
            total = query.count()
            rows = (
                query.options(joinedload(Block.blocked))
                .order_by(Block.created_at.desc(), Block.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            data = [BlockedUserOut.from_profile(row.blocked, blocked_at=row.created_at) for row in rows]
            return data, total

        return read_page(self.db, "blocked_users", params, fetch)


class FriendService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _between(self, user_id: str, friend_id: str) -> Optional[Friend]:
        return (
            self.db.query(Friend)
            .filter(_pair(Friend.user_id, Friend.friend_id, user_id, friend_id))
            .first()
        )

    def request_friend(self, user_id: str, friend_id: str) -> FriendshipStatus:
        if user_id == friend_id:
            raise BadRequest("You cannot send friend request to yourself")
        require_profile(self.db, friend_id)

        existing = self._between(user_id, friend_id)
        if existing:
            return self._answer_existing(existing, user_id)

        self.db.add(Friend(user_id=user_id, friend_id=friend_id, status=FriendStatus.PENDING))
        try:
            self.db.commit()
        except IntegrityError:
            # The pair was written concurrently, possibly by the other user
            self.db.rollback()
            existing = self._between(user_id, friend_id)
            if existing is None:
                raise BadRequest("Failed to send friend request")
            logger.info("Friend request %s/%s raced, re-read pair", user_id, friend_id)
            return self._answer_existing(existing, user_id)
        return FriendshipStatus(message="Friend request sent", status=FriendStatus.PENDING)

    def _answer_existing(self, existing: Friend, user_id: str) -> FriendshipStatus:
        if existing.status == FriendStatus.ACCEPTED:
            raise BadRequest("Users are already friends")
        if existing.user_id == user_id:
            raise BadRequest("Friend request already sent")
        # The other user already asked; asking back accepts it
        existing.status = FriendStatus.ACCEPTED
        self.db.commit()
        return FriendshipStatus(message="Friend request accepted", status=FriendStatus.ACCEPTED)

    def accept_request(self, user_id: str, friend_id: str) -> FriendshipStatus:
        request = (
            self.db.query(Friend)
            .filter(
                Friend.user_id == friend_id,
                Friend.friend_id == user_id,
                Friend.status == FriendStatus.PENDING,
            )
            .first()
        )
        if not request:
            raise NotFound("Friend request not found")

        request.status = FriendStatus.ACCEPTED
        self.db.commit()
        return FriendshipStatus(message="Friend request accepted", status=FriendStatus.ACCEPTED)

    def delete_friend(self, user_id: str, friend_id: str) -> None:
        deleted = (
            self.db.query(Friend)
            .filter(_pair(Friend.user_id, Friend.friend_id, user_id, friend_id))
            .delete(synchronize_session=False)
        )
        if not deleted:
            self.db.rollback()
            raise NotFound("Friendship not found")
        self.db.commit()

    def friends(self, user_id: str, params: PageParams) -> Page:
        def fetch():
            query = self.db.query(Friend).filter(
                Friend.status == FriendStatus.ACCEPTED,
                or_(Friend.user_id == user_id, Friend.friend_id == user_id),
            )
            total = query.count()
            rows = (
                query.options(joinedload(Friend.user), joinedload(Friend.friend))
                .order_by(Friend.created_at.desc(), Friend.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            data = []
            for row in rows:
                other = row.friend if row.user_id == user_id else row.user
                data.append(FriendOut.from_profile(other, friends_since=row.created_at))
            return data, total

        return read_page(self.db, "friends", params, fetch)

    def incoming_requests(self, user_id: str, params: PageParams) -> Page:
        def fetch():
            query = self.db.query(Friend).filter(
                Friend.friend_id == user_id,
                Friend.status == FriendStatus.PENDING,
            )
            total = query.count()
            rows = (
                query.options(joinedload(Friend.user))
                .order_by(Friend.created_at.desc(), Friend.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            data = [FriendRequestOut.from_profile(row.user, requested_at=row.created_at) for row in rows]
            return data, total

        return read_page(self.db, "friend_requests", params, fetch)


class FollowService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def follow(self, follower_id: str, following_id: str) -> FollowOut:
        if follower_id == following_id:
            raise BadRequest("You cannot follow yourself")
        require_profile(self.db, following_id)

        existing = (
            self.db.query(Follow)
            .filter(Follow.follower_id == follower_id, Follow.following_id == following_id)
            .first()
        )
        if existing:
            raise BadRequest("Already following this user")

        follow = Follow(follower_id=follower_id, following_id=following_id)
        self.db.add(follow)
        commit_or_fail(self.db, "Failed to follow user")
        self.db.refresh(follow)
        return FollowOut(
            follower_id=follow.follower_id,
            following_id=follow.following_id,
            created_at=follow.created_at,
        )

    def unfollow(self, follower_id: str, following_id: str) -> None:
        deleted = (
            self.db.query(Follow)
            .filter(Follow.follower_id == follower_id, Follow.following_id == following_id)
            .delete(synchronize_session=False)
        )
        if not deleted:
            self.db.rollback()
            raise NotFound("Follow relationship not found")
        self.db.commit()

    def _list(self, name, params, condition, profile_attr, must_exist: Optional[str]) -> Page:
        def fetch():
            if must_exist:
                require_profile(self.db, must_exist)
            query = self.db.query(Follow).filter(condition)
            total = query.count()
            rows = (
                query.options(joinedload(profile_attr))
                .order_by(Follow.created_at.desc(), Follow.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            data = []
            for row in rows:
                profile = getattr(row, profile_attr.key)
                data.append(FollowUserOut.from_profile(profile, bio=profile.bio or "", followed_at=row.created_at))
            return data, total

        return read_page(self.db, name, params, fetch)

    def following(self, user_id: str, params: PageParams, check_user: bool = False) -> Page:
        """Users that user_id follows."""
        return self._list(
            "following", params, Follow.follower_id == user_id, Follow.following,
            user_id if check_user else None,
        )

    def followers(self, user_id: str, params: PageParams, check_user: bool = False) -> Page:
        """Users that follow user_id."""
        return self._list(
            "followers", params, Follow.following_id == user_id, Follow.follower,
            user_id if check_user else None,
        )
