from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from jam.database import get_db
from jam.identity import Identity, get_current_user, get_optional_user
from jam.pagination import PageParams, page_params
from jam.schemas import Page, PostOut, ProfileOut, ProfileUpdate
from jam.services.posts import PostService
from jam.services.profiles import ProfileService, profile_out

router = APIRouter(prefix="/profiles", tags=["Profiles"])


def get_profile_service(db: Session = Depends(get_db)) -> ProfileService:
    return ProfileService(db)


@router.get("/me", response_model=ProfileOut)
def read_my_profile(user: Identity = Depends(get_current_user), profiles: ProfileService = Depends(get_profile_service)):
    return profile_out(profiles.get_by_id(user.id))


@router.patch("/me", response_model=ProfileOut)
def update_my_profile(
    payload: ProfileUpdate,
    user: Identity = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
):
    return profiles.update(user.id, payload)


@router.get("/{username}", response_model=ProfileOut)
def read_profile(username: str, profiles: ProfileService = Depends(get_profile_service)):
    return profile_out(profiles.get_by_username(username))


@router.get("/{username}/posts", response_model=Page[PostOut])
def read_profile_posts(
    username: str,
    page: PageParams = Depends(page_params(20)),
    user: Optional[Identity] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return PostService(db).posts_by_username(username, user.id if user else None, page)
