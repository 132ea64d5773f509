"""Registration and login against the identity provider.

Registration spans two systems: the provider account and the profile row.
The username is checked before the account exists, and an account whose
profile could not be written is deleted again on a best-effort basis.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jam.errors import BadRequest
from jam.identity import Identity, IdentityProvider, IdentityProviderError
from jam.models import Profile
from jam.schemas import AccountUser, LoginRequest, LoginResponse, MeOut, RegisterRequest, RegisterResponse
from jam.services.profiles import ProfileService

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: Session, identity: IdentityProvider, avatar_template: str) -> None:
        self.db = db
        self.identity = identity
        self.avatar_template = avatar_template
        self.profiles = ProfileService(db)

    def register(self, payload: RegisterRequest) -> RegisterResponse:
        if self.profiles.username_taken(payload.username):
            raise BadRequest("Username already taken")

        account = self.identity.sign_up(payload.email, payload.password)
        user = account.identity

        profile = Profile(
            id=user.id,
            username=payload.username,
            display_name=payload.display_name or payload.username,
            avatar_url=self.avatar_template.format(username=payload.username),
        )
        self.db.add(profile)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Profile insert failed for %s: %s", user.id, exc)
            self._discard_account(user)
            raise BadRequest("Failed to create profile")

        logger.info("Registered %s as %s", user.id, payload.username)
        return RegisterResponse(
            message="Registration successful",
            access_token=account.access_token,
            user=AccountUser(id=user.id, email=user.email, username=payload.username),
        )

    def _discard_account(self, user: Identity) -> None:
        try:
            self.identity.delete_user(user.id)
        except IdentityProviderError as exc:
            logger.error("Could not delete orphaned account %s: %s", user.id, exc)
        else:
            logger.info("Deleted orphaned account %s", user.id)

    def login(self, payload: LoginRequest) -> LoginResponse:
        account = self.identity.sign_in(payload.email, payload.password)
        return LoginResponse(
            access_token=account.access_token,
            user=AccountUser(id=account.identity.id, email=account.identity.email),
        )

    def me(self, user: Identity) -> MeOut:
        """The caller's profile, or a record derived from the email when it can't be read."""
        try:
            profile = self.db.query(Profile).filter(Profile.id == user.id).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Profile read failed for %s: %s", user.id, exc)
            profile = None

        if profile is None:
            fallback = (user.email or "").split("@")[0] or "user"
            return MeOut(id=user.id, username=fallback, email=user.email, display_name=fallback)

        return MeOut(
            id=profile.id,
            username=profile.username,
            email=user.email,
            display_name=profile.display_name or profile.username,
            avatar_url=profile.avatar_url or None,
            bio=profile.bio or "",
            dm_privacy=profile.dm_privacy,
        )
