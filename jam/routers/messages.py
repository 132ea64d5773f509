from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from jam.database import get_db
from jam.identity import Identity, get_current_user
from jam.pagination import PageParams, page_params
from jam.schemas import ConversationOut, Detail, MessageCreate, MessageOut, Page
from jam.services.messages import MessageService

router = APIRouter(prefix="/messages", tags=["Messages"])


def get_message_service(db: Session = Depends(get_db)) -> MessageService:
    return MessageService(db)


@router.post("/send", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    payload: MessageCreate,
    user: Identity = Depends(get_current_user),
    messages: MessageService = Depends(get_message_service),
):
    return messages.send_message(user.id, payload)


@router.get("/conversations", response_model=Page[ConversationOut])
def read_conversations(
    page: PageParams = Depends(page_params(50)),
    user: Identity = Depends(get_current_user),
    messages: MessageService = Depends(get_message_service),
):
    return messages.conversations(user.id, page)


@router.get("/conversation/{user_id}", response_model=Page[MessageOut])
def read_conversation(
    user_id: UUID,
    page: PageParams = Depends(page_params(50)),
    user: Identity = Depends(get_current_user),
    messages: MessageService = Depends(get_message_service),
):
    return messages.messages_with(user.id, str(user_id), page)


@router.delete("/{message_id}", response_model=Detail)
def delete_message(
    message_id: UUID,
    user: Identity = Depends(get_current_user),
    messages: MessageService = Depends(get_message_service),
):
    messages.delete_message(str(message_id), user.id)
    return {"message": "Message deleted successfully"}
