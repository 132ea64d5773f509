from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from jam.errors import BadRequest, NotFound
from jam.models import Profile, utcnow
from jam.pagination import PageParams, read_page
from jam.schemas import Page, ProfileOut, ProfileUpdate, UserOut
from jam.services.social_graph import commit_or_fail


def profile_out(profile: Profile) -> ProfileOut:
    return ProfileOut.from_profile(
        profile,
        bio=profile.bio or "",
        dm_privacy=profile.dm_privacy,
        created_at=profile.created_at,
    )


class ProfileService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_id(self, user_id: str) -> Profile:
        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not profile:
            raise NotFound("Profile not found")
        return profile

    def get_by_username(self, username: str) -> Profile:
        profile = self.db.query(Profile).filter(Profile.username == username).first()
        if not profile:
            raise NotFound("Profile not found")
        return profile

    def username_taken(self, username: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(Profile.id).filter(Profile.username == username)
        if exclude_id is not None:
            query = query.filter(Profile.id != exclude_id)
        return query.first() is not None

    def update(self, user_id: str, payload: ProfileUpdate) -> ProfileOut:
        if payload.username and self.username_taken(payload.username, exclude_id=user_id):
            raise BadRequest("Username already taken")

        profile = self.get_by_id(user_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("username") is None:
            changes.pop("username", None)
        if changes.get("dm_privacy") is None:
            changes.pop("dm_privacy", None)
        for field, value in changes.items():
            setattr(profile, field, value)
        profile.updated_at = utcnow()
        commit_or_fail(self.db, "Failed to update profile")
        self.db.refresh(profile)
        return profile_out(profile)

    def search(self, params: PageParams, search: Optional[str] = None, exclude_id: Optional[str] = None) -> Page:
        def fetch():
            query = self.db.query(Profile)
            if exclude_id is not None:
                query = query.filter(Profile.id != exclude_id)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(Profile.username.ilike(pattern), Profile.display_name.ilike(pattern)))
            total = query.count()
            rows = query.order_by(Profile.username).limit(params.limit).offset(params.offset).all()
            return [UserOut.from_profile(row) for row in rows], total

        return read_page(self.db, "users", params, fetch)
