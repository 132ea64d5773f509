from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from jam.database import get_db
from jam.identity import Identity, get_current_user, get_identity_provider
from jam.schemas import LoginRequest, LoginResponse, MeOut, RegisterRequest, RegisterResponse
from jam.services.accounts import AccountService

router = APIRouter(prefix="/auth", tags=["Auth"])


def get_account_service(request: Request, db: Session = Depends(get_db)) -> AccountService:
    return AccountService(
        db,
        get_identity_provider(request),
        request.app.state.settings.DEFAULT_AVATAR_URL,
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, accounts: AccountService = Depends(get_account_service)):
    return accounts.register(payload)


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, accounts: AccountService = Depends(get_account_service)):
    return accounts.login(payload)


@router.get("/me", response_model=MeOut)
def read_me(user: Identity = Depends(get_current_user), accounts: AccountService = Depends(get_account_service)):
    return accounts.me(user)
