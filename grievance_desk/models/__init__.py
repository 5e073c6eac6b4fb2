"""SQLAlchemy ORM Models for Grievance Desk."""

from .base import Base, IdentityBase, SequenceMixin, TimestampMixin, UUIDMixin, utcnow
from .identity import (
    AccessOutcome,
    IdentityAccessLog,
    IdentityMapping,
    IdentityMappingTombstone,
    SOURCE_ADDRESS_MAX_LENGTH,
    SeverCause,
)
from .models import (
    # Enums
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
    MessageType,
    OrganizationStatus,
    SenderRole,
    UserRole,
    # Organization & User
    Organization,
    User,
    # Complaints
    AdminNote,
    Attachment,
    Complaint,
    StatusHistoryEntry,
    # Chat
    ChatMessage,
)

__all__ = [
    # Base
    "Base",
    "IdentityBase",
    "UUIDMixin",
    "SequenceMixin",
    "TimestampMixin",
    "utcnow",
    # Enums
    "ComplaintCategory",
    "ComplaintPriority",
    "ComplaintStatus",
    "MessageType",
    "OrganizationStatus",
    "SenderRole",
    "UserRole",
    "AccessOutcome",
    "SeverCause",
    # Organization & User
    "Organization",
    "User",
    # Complaints
    "Complaint",
    "StatusHistoryEntry",
    "AdminNote",
    "Attachment",
    # Chat
    "ChatMessage",
    # Identity store
    "IdentityMapping",
    "IdentityAccessLog",
    "IdentityMappingTombstone",
    "SOURCE_ADDRESS_MAX_LENGTH",
]
