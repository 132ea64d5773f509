from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from jam.database import get_db
from jam.identity import Identity, get_current_user, get_optional_user
from jam.pagination import PageParams, page_params
from jam.schemas import CommentCreate, CommentOut, Detail, LikerOut, Page, PostCreate, PostOut
from jam.services.posts import PostService

router = APIRouter(prefix="/posts", tags=["Posts"])


def get_post_service(db: Session = Depends(get_db)) -> PostService:
    return PostService(db)


def _viewer(user: Optional[Identity]) -> Optional[str]:
    return user.id if user else None


@router.post("", response_model=PostOut, status_code=status.HTTP_201_CREATED)
def create_post(
    payload: PostCreate,
    user: Identity = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.create_post(user.id, payload)


@router.get("/feed", response_model=Page[PostOut])
def read_feed(
    page: PageParams = Depends(page_params(20)),
    user: Optional[Identity] = Depends(get_optional_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.feed(_viewer(user), page)


@router.get("/{post_id}", response_model=PostOut)
def read_post(
    post_id: UUID,
    user: Optional[Identity] = Depends(get_optional_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.get_post(str(post_id), _viewer(user))


@router.delete("/{post_id}", response_model=Detail)
def delete_post(
    post_id: UUID,
    user: Identity = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    posts.delete_post(str(post_id), user.id)
    return {"message": "Post deleted successfully"}


@router.post("/{post_id}/like", response_model=PostOut, tags=["Comments & Likes"])
def toggle_like(
    post_id: UUID,
    user: Identity = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.toggle_like(str(post_id), user.id)


@router.get("/{post_id}/likes", response_model=Page[LikerOut], tags=["Comments & Likes"])
def read_likes(
    post_id: UUID,
    page: PageParams = Depends(page_params(50)),
    posts: PostService = Depends(get_post_service),
):
    return posts.likes(str(post_id), page)


@router.get("/{post_id}/comments", response_model=Page[CommentOut], tags=["Comments & Likes"])
def read_comments(
    post_id: UUID,
    order: Literal["asc", "desc"] = Query("asc"),
    page: PageParams = Depends(page_params(20)),
    user: Optional[Identity] = Depends(get_optional_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.comments(str(post_id), _viewer(user), page, order)


@router.post(
    "/{post_id}/comments",
    response_model=CommentOut,
    status_code=status.HTTP_201_CREATED,
    tags=["Comments & Likes"],
)
def create_comment(
    post_id: UUID,
    payload: CommentCreate,
    user: Identity = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.create_comment(str(post_id), user.id, payload)
