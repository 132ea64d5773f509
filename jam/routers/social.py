from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from jam.database import get_db
from jam.identity import Identity, get_current_user
from jam.pagination import PageParams, page_params
from jam.schemas import (
    BlockedUserOut,
    BlockOut,
    Detail,
    FollowOut,
    FollowUserOut,
    FriendOut,
    FriendRequestOut,
    FriendshipStatus,
    Page,
)
from jam.services.social_graph import BlockService, FollowService, FriendService

blocks = APIRouter(prefix="/blocks", tags=["Blocks"])
friends = APIRouter(prefix="/friends", tags=["Friends"])
follows = APIRouter(prefix="/follows", tags=["Follows"])


def get_block_service(db: Session = Depends(get_db)) -> BlockService:
    return BlockService(db)


def get_friend_service(db: Session = Depends(get_db)) -> FriendService:
    return FriendService(db)


def get_follow_service(db: Session = Depends(get_db)) -> FollowService:
    return FollowService(db)


# Blocks

@blocks.post("/{user_id}", response_model=BlockOut, status_code=status.HTTP_201_CREATED)
def block_user(
    user_id: UUID,
    user: Identity = Depends(get_current_user),
    service: BlockService = Depends(get_block_service),
):
    return service.block_user(user.id, str(user_id))


@blocks.delete("/{user_id}", response_model=Detail)
def unblock_user(
    user_id: UUID,
    user: Identity = Depends(get_current_user),
    service: BlockService = Depends(get_block_service),
):
    service.unblock_user(user.id, str(user_id))
    return {"message": "User unblocked successfully"}


@blocks.get("", response_model=Page[BlockedUserOut])
def read_blocked_users(
    page: PageParams = Depends(page_params(50)),
    user: Identity = Depends(get_current_user),
    service: BlockService = Depends(get_block_service),
):
    return service.blocked_users(user.id, page)


# Friends

@friends.post("/{user_id}/request", response_model=FriendshipStatus, status_code=status.HTTP_201_CREATED)
def request_friend(
    user_id: UUID,
    user: Identity = Depends(get_current_user),
    service: FriendService = Depends(get_friend_service),
):
    return service.request_friend(user.id, str(user_id))


@friends.post("/{user_id}/accept", response_model=FriendshipStatus)
def accept_friend(
    user_id: UUID,
    user: Identity = Depends(get_current_user),
    service: FriendService = Depends(get_friend_service),
):
    return service.accept_request(user.id, str(user_id))


@friends.delete("/{user_id}", response_model=Detail)
def delete_friend(
    user_id: UUID,
    user: Identity = Depends(get_current_user),
    service: FriendService = Depends(get_friend_service),
):
    service.delete_friend(user.id, str(user_id))
    return {"message": "Friend removed successfully"}


@friends.get("", response_model=Page[FriendOut])
def read_friends(
    page: PageParams = Depends(page_params(50)),
    user: Identity = Depends(get_current_user),
    service: FriendService = Depends(get_friend_service),
):
    return service.friends(user.id, page)


@friends.get("/requests", response_model=Page[FriendRequestOut])
def read_friend_requests(
    page: PageParams = Depends(page_params(20)),
    user: Identity = Depends(get_current_user),
    service: FriendService = Depends(get_friend_service),
):
    return service.incoming_requests(user.id, page)


# Follows

@follows.post("/{user_id}", response_model=FollowOut, status_code=status.HTTP_201_CREATED)
def follow_user(
    user_id: UUID,
    user: Identity = Depends(get_current_user),
    service: FollowService = Depends(get_follow_service),
):
    return service.follow(user.id, str(user_id))


@follows.delete("/{user_id}", response_model=Detail)
def unfollow_user(
    user_id: UUID,
    user: Identity = Depends(get_current_user),
    service: FollowService = Depends(get_follow_service),
):
    service.unfollow(user.id, str(user_id))
    return {"message": "Successfully unfollowed user"}


@follows.get("/following", response_model=Page[FollowUserOut])
def read_my_following(
    page: PageParams = Depends(page_params(50)),
    user: Identity = Depends(get_current_user),
    service: FollowService = Depends(get_follow_service),
):
    return service.following(user.id, page)


@follows.get("/followers", response_model=Page[FollowUserOut])
def read_my_followers(
    page: PageParams = Depends(page_params(50)),
    user: Identity = Depends(get_current_user),
    service: FollowService = Depends(get_follow_service),
):
    return service.followers(user.id, page)


@follows.get("/{user_id}/following", response_model=Page[FollowUserOut])
def read_user_following(
    user_id: UUID,
    page: PageParams = Depends(page_params(50)),
    service: FollowService = Depends(get_follow_service),
):
    return service.following(str(user_id), page, check_user=True)


@follows.get("/{user_id}/followers", response_model=Page[FollowUserOut])
def read_user_followers(
    user_id: UUID,
    page: PageParams = Depends(page_params(50)),
    service: FollowService = Depends(get_follow_service),
):
    return service.followers(str(user_id), page, check_user=True)
