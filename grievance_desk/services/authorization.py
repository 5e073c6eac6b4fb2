"""
Authorization policy: who may do what, in one place.

Roles map to capabilities through ACCESS_MATRIX. Identity reveal additionally
passes through a pluggable RevealPolicy so deployments can demand more than a
stated reason (dual approval, ticket references) without touching the
lifecycle engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from uuid import UUID

from ..core.exceptions import ForbiddenError, ValidationError
from ..models import UserRole


class Capability(str, Enum):
    FILE_COMPLAINT = "file_complaint"
    TRACK_OWN_COMPLAINT = "track_own_complaint"
    CHAT_AS_FILER = "chat_as_filer"
    LIST_TENANT_COMPLAINTS = "list_tenant_complaints"
    VIEW_COMPLAINT_DETAIL = "view_complaint_detail"
    UPDATE_STATUS = "update_status"
    SET_PRIORITY = "set_priority"
    ADD_ADMIN_NOTE = "add_admin_note"
    CHAT_AS_STAFF = "chat_as_staff"
    REVEAL_IDENTITY = "reveal_identity"
    VIEW_ACCESS_LOG = "view_access_log"
    CREATE_STAFF_ACCOUNT = "create_staff_account"


_STAFF = frozenset({
    Capability.LIST_TENANT_COMPLAINTS,
    Capability.VIEW_COMPLAINT_DETAIL,
    Capability.UPDATE_STATUS,
    Capability.SET_PRIORITY,
    Capability.ADD_ADMIN_NOTE,
    Capability.CHAT_AS_STAFF,
})

ACCESS_MATRIX: dict[UserRole, frozenset[Capability]] = {
    UserRole.STUDENT: frozenset({
        Capability.FILE_COMPLAINT,
        Capability.TRACK_OWN_COMPLAINT,
        Capability.CHAT_AS_FILER,
    }),
    UserRole.COMMITTEE_ADMIN: _STAFF,
    UserRole.ADMIN: _STAFF | {
        Capability.REVEAL_IDENTITY,
        Capability.VIEW_ACCESS_LOG,
        Capability.CREATE_STAFF_ACCOUNT,
    },
}


def has_capability(role: UserRole | str, capability: Capability) -> bool:
    try:
        role = UserRole(role)
    except ValueError:
        return False
    return capability in ACCESS_MATRIX.get(role, frozenset())


def require_capability(role: UserRole | str, capability: Capability) -> None:
    if not has_capability(role, capability):
        raise ForbiddenError(f"Role '{role}' may not {capability.value.replace('_', ' ')}")


# =============================================================================
# REVEAL POLICY
# =============================================================================


@dataclass(frozen=True)
class RevealRequest:
    """Everything a policy may inspect before an identity is disclosed."""
    complaint_ref: str
    actor_id: UUID
    actor_role: UserRole
    reason: str
    source_address: str | None


class RevealPolicy(Protocol):
    async def evaluate(self, request: RevealRequest) -> None:
        """Raise ValidationError or ForbiddenError to refuse the reveal."""
        ...


class MinimumReasonPolicy:
    """Require a stated reason of at least ``min_length`` characters."""

    def __init__(self, min_length: int = 10):
        self.min_length = min_length

    async def evaluate(self, request: RevealRequest) -> None:
        reason = (request.reason or "").strip()
        if len(reason) < self.min_length:
            raise ValidationError(
                f"Please provide a detailed reason (minimum {self.min_length} characters)"
            )
