"""
Anonymous messaging between a filer and the staff handling their complaint.

Rooms are named after the tracking ID, never after a user. Student messages
carry only the role; staff messages keep the author because staff are not
anonymous.
"""

import logging
from collections import defaultdict
from typing import Any, Protocol, Sequence
from uuid import UUID

from fastapi import WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import AccessDeniedError, ForbiddenError, NotFoundError, ValidationError
from ..models import ChatMessage, Complaint, MessageType, SenderRole, UserRole, utcnow
from .authorization import Capability, has_capability
from .identity_mapping import IdentityMappingStore
from .tenancy import TenantScope

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
DEFAULT_HISTORY_LIMIT = 100

_STAFF_SENDERS = (SenderRole.ADMIN, SenderRole.COMMITTEE_ADMIN)


def room_name(tracking_id: str) -> str:
    return f"complaint_{tracking_id}"


def _senders_opposite(reader_role: UserRole | str) -> tuple[SenderRole, ...]:
    """Roles whose messages count as unread for ``reader_role``."""
    if UserRole(reader_role) == UserRole.STUDENT:
        return _STAFF_SENDERS
    return (SenderRole.STUDENT,)


# =============================================================================
# CHAT SERVICE
# =============================================================================


class ChatService:
    """Persistence and access control for complaint conversations."""

    def __init__(
        self,
        session: AsyncSession,
        mappings: IdentityMappingStore,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.session = session
        self.mappings = mappings
        self.history_limit = history_limit

    async def authorize_room(
        self,
        tracking_id: str,
        user_id: UUID,
        role: UserRole | str,
        scope: TenantScope,
    ) -> Complaint:
        """The filer and tenant staff may enter a room. Nobody else."""
        result = await self.session.execute(
            scope.apply(select(Complaint).where(Complaint.tracking_id == tracking_id), Complaint)
        )
        complaint = result.scalar_one_or_none()
        if complaint is None:
            raise NotFoundError("Complaint not found")

        if has_capability(role, Capability.CHAT_AS_STAFF):
            return complaint

        if not has_capability(role, Capability.CHAT_AS_FILER):
            raise ForbiddenError("Role may not join complaint chats")

        if not await self.mappings.verify_ownership(tracking_id, user_id, scope):
            raise AccessDeniedError("Access denied - not your complaint")
        return complaint

    async def get_history(
        self,
        tracking_id: str,
        reader_role: UserRole | str,
        scope: TenantScope,
        limit: int | None = None,
    ) -> Sequence[ChatMessage]:
        """The most recent messages, oldest first. Marks the other side's messages read."""
        limit = limit or self.history_limit
        query = scope.apply(
            select(ChatMessage).where(ChatMessage.tracking_id == tracking_id), ChatMessage
        ).order_by(ChatMessage.created_at.desc()).limit(limit)
        result = await self.session.execute(query)
        messages = list(reversed(result.scalars().all()))

        await self.session.execute(
            update(ChatMessage)
            .where(
                ChatMessage.tracking_id == tracking_id,
                ChatMessage.sender_role.in_(_senders_opposite(reader_role)),
                ChatMessage.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return messages

    async def send_message(
        self,
        tracking_id: str,
        text: str,
        sender_id: UUID,
        sender_role: UserRole | str,
        scope: TenantScope,
    ) -> ChatMessage:
        """Validate and store a message. Nothing is written for invalid input."""
        body = validate_message(text)
        role = SenderRole(UserRole(sender_role).value)

        message = ChatMessage(
            tracking_id=tracking_id,
            sender_role=role,
            admin_id=None if role == SenderRole.STUDENT else sender_id,
            message=body,
            message_type=MessageType.TEXT,
            is_read=False,
            **scope.stamp(),
        )
        self.session.add(message)
        await self.session.flush()

        logger.info(f"Message stored in {room_name(tracking_id)} by {role.value}")
        return message

    async def unread_count(
        self,
        tracking_id: str,
        reader_role: UserRole | str,
        scope: TenantScope,
    ) -> int:
        query = scope.apply(
            select(func.count(ChatMessage.id)).where(
                ChatMessage.tracking_id == tracking_id,
                ChatMessage.sender_role.in_(_senders_opposite(reader_role)),
                ChatMessage.is_read.is_(False),
            ),
            ChatMessage,
        )
        result = await self.session.execute(query)
        return result.scalar_one()


def validate_message(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")
    return text.strip()


# =============================================================================
# ROOM REGISTRY
# =============================================================================


class RoomMember(Protocol):
    async def send_json(self, data: Any, mode: str = "text") -> None: ...


class ChatRoomRegistry:
    """
    In-process room membership for connected chat sockets.

    Each process only sees its own sockets. Running several workers needs a
    shared broker in front of ``broadcast``.
    """

    def __init__(self):
        self._rooms: dict[str, set[RoomMember]] = defaultdict(set)

    def join(self, room: str, member: RoomMember) -> None:
        self._rooms[room].add(member)

    def leave(self, room: str, member: RoomMember) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(member)
        if not members:
            del self._rooms[room]

    def leave_all(self, member: RoomMember) -> list[str]:
        left = [room for room, members in self._rooms.items() if member in members]
        for room in left:
            self.leave(room, member)
        return left

    def members(self, room: str) -> set[RoomMember]:
        return set(self._rooms.get(room, ()))

    async def broadcast(
        self,
        room: str,
        event: str,
        data: Any,
        exclude: RoomMember | None = None,
    ) -> int:
        """Send ``event`` to every member of ``room``. Returns deliveries made."""
        payload = {"event": event, "data": jsonable_encoder(data)}
        delivered = 0
        for member in self.members(room):
            if member is exclude:
                continue
            try:
                await member.send_json(payload)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info(f"Dropping dead socket from {room}: {e}")
                self.leave_all(member)
        return delivered


chat_rooms = ChatRoomRegistry()
