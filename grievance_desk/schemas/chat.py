"""Pydantic schemas for chat messages and socket events."""

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlalchemy import inspect

from ..models import ChatMessage, MessageType, SenderRole
from .base import GrievanceBaseModel


class ChatMessageOut(GrievanceBaseModel):
    """A message as the room sees it. Students appear only as a role."""

    id: UUID
    tracking_id: str
    sender_role: SenderRole
    message: str
    message_type: MessageType
    is_read: bool
    created_at: datetime
    sender_name: str | None = None

    @classmethod
    def from_message(
        cls,
        message: ChatMessage,
        sender_name: str | None = None,
    ) -> "ChatMessageOut":
        if message.sender_role == SenderRole.STUDENT:
            sender_name = None
        elif sender_name is None and "admin" not in inspect(message).unloaded:
            sender_name = message.admin.name if message.admin else None
        return cls(
            id=message.id,
            tracking_id=message.tracking_id,
            sender_role=message.sender_role,
            message=message.message,
            message_type=message.message_type,
            is_read=message.is_read,
            created_at=message.created_at,
            sender_name=sender_name,
        )


class ChatHistoryOut(GrievanceBaseModel):
    tracking_id: str
    messages: list[ChatMessageOut]
    unread_count: int


class JoinChatEvent(GrievanceBaseModel):
    tracking_id: str = Field(..., min_length=1)


class SendMessageEvent(GrievanceBaseModel):
    tracking_id: str = Field(..., min_length=1)
    # Length rules live in the chat service so REST and socket agree
    message: str = ""


class TypingEvent(GrievanceBaseModel):
    tracking_id: str = Field(..., min_length=1)
    is_typing: bool = True


class PresenceOut(GrievanceBaseModel):
    role: str
    timestamp: datetime
