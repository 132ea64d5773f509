"""Direct messages between two users.

Each unordered pair of users shares one conversation row. The pair is stored
canonically (``user_1 < user_2``) so either participant resolves to the same row.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jam.errors import BadRequest, Forbidden, NotFound
from jam.models import Conversation, Message, Profile
from jam.pagination import PageParams, read_page
from jam.schemas import Author, ConversationOut, MessageCreate, MessageOut, Page
from jam.services.social_graph import SocialGraph, commit_or_fail

logger = logging.getLogger(__name__)


def canonical_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    first, second = sorted((str(user_a), str(user_b)))
    return first, second


def message_out(message: Message) -> MessageOut:
    return MessageOut(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        text=message.text,
        audio_url=message.audio_url,
        created_at=message.created_at,
    )


class MessageService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.graph = SocialGraph(db)

    def find_conversation(self, user_a: str, user_b: str) -> Optional[Conversation]:
        user_1, user_2 = canonical_pair(user_a, user_b)
        return (
            self.db.query(Conversation)
            .filter(Conversation.user_1 == user_1, Conversation.user_2 == user_2)
            .first()
        )

    def resolve_conversation(self, user_a: str, user_b: str) -> Conversation:
        """Find or create the conversation between two users."""
        existing = self.find_conversation(user_a, user_b)
        if existing:
            return existing

        user_1, user_2 = canonical_pair(user_a, user_b)
        conversation = Conversation(user_1=user_1, user_2=user_2)
        self.db.add(conversation)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent insert of the same pair
            self.db.rollback()
            winner = self.find_conversation(user_a, user_b)
            if winner is None:
                raise BadRequest("Failed to create conversation")
            logger.info("Conversation %s/%s created concurrently, re-fetched", user_1, user_2)
            return winner
        self.db.refresh(conversation)
        return conversation

    def send_message(self, sender_id: str, payload: MessageCreate) -> MessageOut:
        recipient_id = str(payload.recipient_id)
        if sender_id == recipient_id:
            raise BadRequest("You cannot send message to yourself")
        if not payload.text and not payload.audio_url:
            raise BadRequest("Message must have either text or audio")

        self.graph.check_can_message(sender_id, recipient_id)

        conversation = self.resolve_conversation(sender_id, recipient_id)
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            text=payload.text or None,
            audio_url=payload.audio_url or None,
        )
        self.db.add(message)
        commit_or_fail(self.db, "Failed to send message")
        self.db.refresh(message)
        return message_out(message)

    def conversations(self, user_id: str, params: PageParams) -> Page:
        def fetch():
            last_at = (
                self.db.query(
                    Message.conversation_id.label("conversation_id"),
                    func.max(Message.created_at).label("last_at"),
                )
                .group_by(Message.conversation_id)
                .subquery()
            )
            mine = or_(Conversation.user_1 == user_id, Conversation.user_2 == user_id)
            total = self.db.query(Conversation).filter(mine).count()

            activity = func.coalesce(last_at.c.last_at, Conversation.created_at)
            rows = (
                self.db.query(Conversation, last_at.c.last_at)
                .outerjoin(last_at, last_at.c.conversation_id == Conversation.id)
                .filter(mine)
                .order_by(activity.desc(), Conversation.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            if not rows:
                return [], total

            other_ids = [conv.user_2 if conv.user_1 == user_id else conv.user_1 for conv, _ in rows]
            profiles = {
                profile.id: profile
                for profile in self.db.query(Profile).filter(Profile.id.in_(other_ids))
            }
            last_messages = {}
            latest = (
                self.db.query(Message)
                .join(
                    last_at,
                    (last_at.c.conversation_id == Message.conversation_id)
                    & (last_at.c.last_at == Message.created_at),
                )
                .filter(Message.conversation_id.in_([conv.id for conv, _ in rows]))
                .order_by(Message.id)
            )
            for message in latest:
                last_messages.setdefault(message.conversation_id, message)

            data = []
            for (conv, last), other_id in zip(rows, other_ids):
                profile = profiles.get(other_id)
                message = last_messages.get(conv.id)
                data.append(ConversationOut(
                    id=conv.id,
                    other_user=Author.from_profile(profile) if profile else None,
                    last_message=message_out(message) if message else None,
                    updated_at=message.created_at if message else conv.created_at,
                ))
            return data, total

        return read_page(self.db, "conversations", params, fetch)

    def messages_with(self, user_id: str, other_id: str, params: PageParams) -> Page:
        """Newest page of messages with other_id, returned oldest first."""
        def fetch():
            conversation = self.find_conversation(user_id, other_id)
            if conversation is None:
                return [], 0
            query = self.db.query(Message).filter(Message.conversation_id == conversation.id)
            total = query.count()
            rows = (
                query.order_by(Message.created_at.desc(), Message.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            return [message_out(message) for message in reversed(rows)], total

        return read_page(self.db, "messages_with_user", params, fetch)

    def delete_message(self, message_id: str, user_id: str) -> None:
        message = self.db.query(Message).filter(Message.id == message_id).first()
        if not message:
            raise NotFound("Message not found")
        if message.sender_id != user_id:
            raise Forbidden("You can only delete your own messages")
        self.db.delete(message)
        self.db.commit()
