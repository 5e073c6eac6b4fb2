"""Chat API: REST history and the real-time complaint rooms.

Socket frames are JSON objects ``{"event": <name>, "data": {...}}`` in both
directions. Client events: join_chat, send_message, typing, leave_chat.
Server events: chat_history, message_received, user_joined, user_typing,
user_left, error.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as SchemaValidationError

from ..core.config import get_settings
from ..core.database import get_session_context
from ..core.dependencies import (
    ActorDep,
    ChatServiceDep,
    CurrentActor,
    SessionFactories,
    SessionFactoriesDep,
    TenantScopeDep,
    resolve_actor,
)
from ..core.exceptions import GrievanceError
from ..models import utcnow
from ..schemas import (
    ApiResponse,
    ChatHistoryOut,
    ChatMessageOut,
    JoinChatEvent,
    PresenceOut,
    SendMessageEvent,
    TypingEvent,
)
from ..services.chat import ChatService, chat_rooms, room_name
from ..services.cipher import CipherService, get_cipher
from ..services.identity_mapping import IdentityMappingStore
from ..services.tenancy import TenantScope

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(tags=["chat"])
# Mounted at the application root, outside the API prefix
ws_router = APIRouter()

# Close codes in the application range (4000-4999)
CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403


# =============================================================================
# REST ENDPOINTS
# =============================================================================


@router.get("/chat/{tracking_id}/messages", response_model=ApiResponse[ChatHistoryOut])
async def get_messages(
    tracking_id: str,
    actor: ActorDep,
    scope: TenantScopeDep,
    chat: ChatServiceDep,
):
    """Conversation for one complaint. Reading marks the other side's messages read."""
    await chat.authorize_room(tracking_id, actor.id, actor.role, scope)
    unread = await chat.unread_count(tracking_id, actor.role, scope)
    messages = await chat.get_history(tracking_id, actor.role, scope)
    return ApiResponse.ok(
        ChatHistoryOut(
            tracking_id=tracking_id,
            messages=[ChatMessageOut.from_message(m) for m in messages],
            unread_count=unread,
        )
    )


@router.post(
    "/chat/{tracking_id}/messages",
    response_model=ApiResponse[ChatMessageOut],
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    tracking_id: str,
    data: SendMessageEvent,
    actor: ActorDep,
    scope: TenantScopeDep,
    chat: ChatServiceDep,
):
    """Send without a socket. Connected room members still receive it live."""
    await chat.authorize_room(tracking_id, actor.id, actor.role, scope)
    message = await chat.send_message(tracking_id, data.message, actor.id, actor.role, scope)
    out = ChatMessageOut.from_message(message, sender_name=actor.name)
    await chat_rooms.broadcast(
        room_name(tracking_id),
        "message_received",
        out.model_dump(mode="json", by_alias=True),
    )
    return ApiResponse.ok(out)


# =============================================================================
# WEBSOCKET
# =============================================================================


@asynccontextmanager
async def _chat_service(
    factories: SessionFactories,
    cipher: CipherService,
) -> AsyncIterator[ChatService]:
    """One short transaction per socket event, on both stores."""
    async with get_session_context(factories.complaints) as session:
        async with get_session_context(factories.identity, "identity store") as identity_session:
            yield ChatService(
                session,
                IdentityMappingStore(identity_session, cipher),
                history_limit=settings.chat_history_limit,
            )


async def _emit(websocket: WebSocket, event: str, data: dict) -> None:
    await websocket.send_json({"event": event, "data": data})


async def _emit_error(websocket: WebSocket, message: str) -> None:
    await _emit(websocket, "error", {"message": message})


def _presence(actor: CurrentActor) -> dict:
    return PresenceOut(role=actor.role.value, timestamp=utcnow()).model_dump(mode="json", by_alias=True)


class ChatConnection:
    """Event handlers for one authenticated socket."""

    def __init__(
        self,
        websocket: WebSocket,
        actor: CurrentActor,
        scope: TenantScope,
        factories: SessionFactories,
        cipher: CipherService,
    ):
        self.websocket = websocket
        self.actor = actor
        self.scope = scope
        self.factories = factories
        self.cipher = cipher
        self.joined: set[str] = set()

    async def dispatch(self, event: str | None, data: dict) -> None:
        handlers = {
            "join_chat": self.join_chat,
            "send_message": self.send_message,
            "typing": self.typing,
            "leave_chat": self.leave_chat,
        }
        handler = handlers.get(event or "")
        if handler is None:
            await _emit_error(self.websocket, f"Unknown event '{event}'")
            return
        try:
            await handler(data)
        except SchemaValidationError:
            await _emit_error(self.websocket, "Tracking ID is required")
        except GrievanceError as e:
            await _emit_error(self.websocket, e.message)

    async def join_chat(self, data: dict) -> None:
        request = JoinChatEvent.model_validate(data)
        tracking_id = request.tracking_id
        room = room_name(tracking_id)

        async with _chat_service(self.factories, self.cipher) as chat:
            await chat.authorize_room(tracking_id, self.actor.id, self.actor.role, self.scope)
            unread = await chat.unread_count(tracking_id, self.actor.role, self.scope)
            messages = await chat.get_history(tracking_id, self.actor.role, self.scope)
            history = ChatHistoryOut(
                tracking_id=tracking_id,
                messages=[ChatMessageOut.from_message(m) for m in messages],
                unread_count=unread,
            ).model_dump(mode="json", by_alias=True)

        chat_rooms.join(room, self.websocket)
        self.joined.add(room)
        logger.info(f"{self.actor.role.value} joined {room}")

        await _emit(self.websocket, "chat_history", history)
        await chat_rooms.broadcast(room, "user_joined", _presence(self.actor), exclude=self.websocket)

    async def send_message(self, data: dict) -> None:
        request = SendMessageEvent.model_validate(data)
        tracking_id = request.tracking_id

        async with _chat_service(self.factories, self.cipher) as chat:
            await chat.authorize_room(tracking_id, self.actor.id, self.actor.role, self.scope)
            message = await chat.send_message(
                tracking_id, request.message, self.actor.id, self.actor.role, self.scope
            )
            payload = ChatMessageOut.from_message(
                message, sender_name=self.actor.name
            ).model_dump(mode="json", by_alias=True)

        # Sender receives its own message too, as confirmation
        await chat_rooms.broadcast(room_name(tracking_id), "message_received", payload)
        if room_name(tracking_id) not in self.joined:
            await _emit(self.websocket, "message_received", payload)

    async def typing(self, data: dict) -> None:
        request = TypingEvent.model_validate(data)
        room = room_name(request.tracking_id)
        if room not in self.joined:
            return
        await chat_rooms.broadcast(
            room,
            "user_typing",
            {"role": self.actor.role.value, "isTyping": request.is_typing},
            exclude=self.websocket,
        )

    async def leave_chat(self, data: dict) -> None:
        request = JoinChatEvent.model_validate(data)
        room = room_name(request.tracking_id)
        if room not in self.joined:
            return
        chat_rooms.leave(room, self.websocket)
        self.joined.discard(room)
        logger.info(f"{self.actor.role.value} left {room}")
        await chat_rooms.broadcast(room, "user_left", _presence(self.actor))

    async def disconnect(self) -> None:
        for room in chat_rooms.leave_all(self.websocket):
            await chat_rooms.broadcast(room, "user_left", _presence(self.actor))
        self.joined.clear()


@ws_router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    factories: SessionFactoriesDep,
    cipher: Annotated[CipherService, Depends(get_cipher)],
    token: str | None = None,
):
    await websocket.accept()

    async with get_session_context(factories.complaints) as session:
        actor = await resolve_actor(session, token)

    if actor is None:
        await _emit_error(websocket, "Authentication failed")
        await websocket.close(code=CLOSE_UNAUTHENTICATED)
        return

    try:
        scope = actor.scope
        actor.ensure_tenant_active()
    except GrievanceError as e:
        await _emit_error(websocket, e.message)
        await websocket.close(code=CLOSE_FORBIDDEN)
        return

    connection = ChatConnection(websocket, actor, scope, factories, cipher)
    logger.info(f"Chat socket opened for {actor.role.value}")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await _emit_error(websocket, "Frames must be JSON")
                continue
            if not isinstance(frame, dict):
                await _emit_error(websocket, "Frames must be JSON objects")
                continue
            data = frame.get("data")
            await connection.dispatch(frame.get("event"), data if isinstance(data, dict) else {})
    except WebSocketDisconnect:
        logger.info(f"Chat socket closed for {actor.role.value}")
    finally:
        await connection.disconnect()
