from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from jam.database import get_db
from jam.identity import Identity, get_optional_user
from jam.pagination import PageParams, page_params
from jam.schemas import Page, UserOut
from jam.services.profiles import ProfileService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=Page[UserOut])
def list_users(
    search: Optional[str] = Query(None, max_length=50),
    page: PageParams = Depends(page_params(20)),
    user: Optional[Identity] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return ProfileService(db).search(page, search=search, exclude_id=user.id if user else None)
