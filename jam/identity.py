"""Thin client for the external identity provider (Supabase Auth REST API).

Only the handful of calls the API needs are wrapped: token verification,
sign-up, password sign-in and the admin delete used to undo a sign-up.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from jam.errors import BadRequest, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class SignUpResult:
    identity: Identity
    access_token: Optional[str] = None


class IdentityProviderError(Exception):
    """Raised when an admin call to the identity provider fails."""


def _error_message(response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    return body.get("msg") or body.get("error_description") or body.get("message") or default


def _identity_from(user: dict) -> Identity:
    return Identity(id=str(user["id"]).lower(), email=user.get("email"))


class IdentityProvider:
    def __init__(self, base_url: str, service_key: str, timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "apikey": service_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _url(self, path: str) -> str:
        return f"{self.base_url}/auth/v1/{path}"

    def verify_token(self, token: str) -> Identity:
        try:
            response = self.session.get(
                self._url("user"),
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("Token verification timed out after %ss", self.timeout)
            raise Unauthorized("Token verification timeout")
        except requests.RequestException as exc:
            logger.error("Token verification error: %s", exc)
            raise Unauthorized("Invalid token")

        if response.status_code != 200:
            raise Unauthorized("Invalid token")
        user = response.json()
        if not user or not user.get("id"):
            raise Unauthorized("Invalid token")
        return _identity_from(user)

    def sign_up(self, email: str, password: str) -> SignUpResult:
        try:
            response = self.session.post(
                self._url("signup"),
                json={"email": email, "password": password},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Sign-up request failed for %s: %s", email, exc)
            raise BadRequest("Failed to create user")

        if response.status_code not in (200, 201):
            raise BadRequest(_error_message(response, "Failed to create user"))

        body = response.json()
        # With email confirmation enabled the provider returns the bare user
        user = body.get("user") or body
        if not user.get("id"):
            raise BadRequest("Failed to create user")
        return SignUpResult(identity=_identity_from(user), access_token=body.get("access_token"))

    def sign_in(self, email: str, password: str) -> SignUpResult:
        try:
            response = self.session.post(
                self._url("token"),
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Sign-in request failed for %s: %s", email, exc)
            raise Unauthorized("Invalid login credentials")

        if response.status_code != 200:
            raise Unauthorized(_error_message(response, "Invalid login credentials"))

        body = response.json()
        return SignUpResult(identity=_identity_from(body["user"]), access_token=body.get("access_token"))

    def delete_user(self, user_id: str) -> None:
        try:
            response = self.session.delete(
                self._url(f"admin/users/{user_id}"),
                headers={"Authorization": f"Bearer {self.service_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise IdentityProviderError(str(exc)) from exc
        if response.status_code not in (200, 204):
            raise IdentityProviderError(_error_message(response, f"HTTP {response.status_code}"))


bearer_scheme = HTTPBearer(auto_error=False)


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No token provided")
    return identity.verify_token(credentials.credentials)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Optional[Identity]:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return identity.verify_token(credentials.credentials)
    except Unauthorized:
        return None
