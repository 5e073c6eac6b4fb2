"""Business logic services for Grievance Desk."""

from .accounts import AccountService, RegisterInput, slugify
from .authorization import (
    ACCESS_MATRIX,
    Capability,
    MinimumReasonPolicy,
    RevealPolicy,
    RevealRequest,
    has_capability,
    require_capability,
)
from .chat import MAX_MESSAGE_LENGTH, ChatRoomRegistry, ChatService, chat_rooms, room_name
from .cipher import CipherService, get_cipher
from .complaints import (
    STATUS_TRANSITIONS,
    AttachmentInput,
    ComplaintFilters,
    ComplaintLifecycleEngine,
    FileComplaintInput,
    FiledComplaint,
    RevealedIdentity,
)
from .identity_mapping import IdentityMappingStore
from .tenancy import TenantScope, ensure_tenant_active
from .tracking_ids import (
    MAX_GENERATION_ATTEMPTS,
    TRACKING_ID_ALPHABET,
    TRACKING_ID_LENGTH,
    generate_tracking_id,
    generate_unique_tracking_id,
    is_valid_tracking_id,
)

__all__ = [
    # Tracking IDs
    "TRACKING_ID_LENGTH",
    "TRACKING_ID_ALPHABET",
    "MAX_GENERATION_ATTEMPTS",
    "generate_tracking_id",
    "generate_unique_tracking_id",
    "is_valid_tracking_id",
    # Cipher
    "CipherService",
    "get_cipher",
    # Identity store
    "IdentityMappingStore",
    # Tenancy and authorization
    "TenantScope",
    "ensure_tenant_active",
    "ACCESS_MATRIX",
    "Capability",
    "has_capability",
    "require_capability",
    "RevealPolicy",
    "RevealRequest",
    "MinimumReasonPolicy",
    # Lifecycle engine
    "ComplaintLifecycleEngine",
    "FileComplaintInput",
    "AttachmentInput",
    "ComplaintFilters",
    "FiledComplaint",
    "RevealedIdentity",
    "STATUS_TRANSITIONS",
    # Chat
    "ChatService",
    "ChatRoomRegistry",
    "chat_rooms",
    "room_name",
    "MAX_MESSAGE_LENGTH",
    # Accounts
    "AccountService",
    "RegisterInput",
    "slugify",
]
