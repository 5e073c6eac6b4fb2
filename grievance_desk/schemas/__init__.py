"""Grievance Desk API Schemas.

Schemas are organized by domain:
- base: response envelope, pagination
- complaints: filing, triage, identity reveal
- chat: messages and socket events
- auth: registration, login, current user
"""

from .auth import (
    AuthResult,
    LoginRequest,
    OrganizationRef,
    RegisterRequest,
    StaffAccountRequest,
    UserOut,
)
from .base import ApiResponse, GrievanceBaseModel, Page, PaginationParams, error_body
from .chat import (
    ChatHistoryOut,
    ChatMessageOut,
    JoinChatEvent,
    PresenceOut,
    SendMessageEvent,
    TypingEvent,
)
from .complaints import (
    AccessLogEntryOut,
    AdminNoteOut,
    AttachmentIn,
    AttachmentOut,
    ComplaintCreate,
    ComplaintDetail,
    ComplaintSummary,
    FiledComplaintOut,
    NoteCreate,
    PriorityUpdate,
    RevealedIdentityOut,
    RevealRequestBody,
    StatusHistoryOut,
    StatusUpdate,
    StudentIdentity,
    TrackedComplaint,
)

__all__ = [
    # Base
    "ApiResponse",
    "GrievanceBaseModel",
    "Page",
    "PaginationParams",
    "error_body",
    # Complaints
    "AttachmentIn",
    "ComplaintCreate",
    "StatusUpdate",
    "PriorityUpdate",
    "NoteCreate",
    "RevealRequestBody",
    "StatusHistoryOut",
    "AdminNoteOut",
    "AttachmentOut",
    "FiledComplaintOut",
    "TrackedComplaint",
    "ComplaintSummary",
    "ComplaintDetail",
    "StudentIdentity",
    "RevealedIdentityOut",
    "AccessLogEntryOut",
    # Chat
    "ChatMessageOut",
    "ChatHistoryOut",
    "JoinChatEvent",
    "SendMessageEvent",
    "TypingEvent",
    "PresenceOut",
    # Auth
    "RegisterRequest",
    "LoginRequest",
    "StaffAccountRequest",
    "UserOut",
    "OrganizationRef",
    "AuthResult",
]
