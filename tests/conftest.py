import uuid
from dataclasses import dataclass, field

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from jam.database import Database
from jam.errors import BadRequest, Unauthorized
from jam.identity import Identity, IdentityProviderError, SignUpResult
from jam.main import create_app
from jam.models import DmPrivacy, Profile


class FakeIdentityProvider:
    """In-memory stand-in for the Supabase Auth client."""

    def __init__(self):
        self.accounts = {}
        self.tokens = {}
        self.deleted = []
        self.next_id = None
        self.fail_delete = False

    def _issue(self, identity):
        token = f"token-{identity.id}"
        self.tokens[token] = identity
        return token

    def add_account(self, email, password="password123"):
        identity = Identity(id=self.next_id or str(uuid.uuid4()), email=email)
        self.next_id = None
        self.accounts[email] = (identity, password)
        return identity, self._issue(identity)

    def verify_token(self, token):
        identity = self.tokens.get(token)
        if identity is None:
            raise Unauthorized("Invalid token")
        return identity

    def sign_up(self, email, password):
        if email in self.accounts:
            raise BadRequest("User already registered")
        identity, token = self.add_account(email, password)
        return SignUpResult(identity=identity, access_token=token)

    def sign_in(self, email, password):
        account = self.accounts.get(email)
        if account is None or account[1] != password:
            raise Unauthorized("Invalid login credentials")
        identity = account[0]
        return SignUpResult(identity=identity, access_token=self._issue(identity))

    def delete_user(self, user_id):
        if self.fail_delete:
            raise IdentityProviderError("provider unavailable")
        for email, (identity, _) in list(self.accounts.items()):
            if identity.id == user_id:
                del self.accounts[email]
        self.deleted.append(user_id)


@dataclass
class TestUser:
    __test__ = False

    id: str
    username: str
    token: str
    headers: dict = field(default_factory=dict)


@pytest.fixture
def database():
    db = Database("sqlite://", poolclass=StaticPool)
    yield db
    db.close()


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def client(database, identity):
    app = create_app(database=database, identity=identity)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def db(database):
    database.open()
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def make_user(database, identity):
    database.open()

    def _make(username, dm_privacy=DmPrivacy.FRIENDS, bio=None):
        account, token = identity.add_account(f"{username}@example.com")
        with database.session() as session:
            session.add(Profile(
                id=account.id,
                username=username,
                display_name=username.title(),
                bio=bio,
                dm_privacy=dm_privacy,
            ))
            session.commit()
        return TestUser(
            id=account.id,
            username=username,
            token=token,
            headers={"Authorization": f"Bearer {token}"},
        )

    return _make
