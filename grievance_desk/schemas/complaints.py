"""Pydantic schemas for complaints and identity reveal."""

from datetime import datetime
from uuid import UUID

from pydantic import Field, HttpUrl

from ..models import AccessOutcome, ComplaintCategory, ComplaintPriority, ComplaintStatus
from .base import GrievanceBaseModel


# =============================================================================
# REQUESTS
# =============================================================================


class AttachmentIn(GrievanceBaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    url: HttpUrl


class ComplaintCreate(GrievanceBaseModel):
    """Filing request. There is deliberately no field for who is filing."""

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=20, max_length=5000)
    category: ComplaintCategory
    attachments: list[AttachmentIn] = Field(default_factory=list, max_length=10)


class StatusUpdate(GrievanceBaseModel):
    status: ComplaintStatus
    comment: str | None = Field(default=None, max_length=1000)


class PriorityUpdate(GrievanceBaseModel):
    priority: ComplaintPriority


class NoteCreate(GrievanceBaseModel):
    note: str = Field(..., min_length=1, max_length=5000)


class RevealRequestBody(GrievanceBaseModel):
    # Length is enforced by the reveal policy so the limit stays configurable
    reason: str = ""


# =============================================================================
# RESPONSES
# =============================================================================


class StatusHistoryOut(GrievanceBaseModel):
    status: ComplaintStatus
    previous_status: ComplaintStatus | None = None
    changed_by: UUID
    changed_at: datetime
    comment: str | None = None


class AdminNoteOut(GrievanceBaseModel):
    note: str
    added_by: UUID
    added_at: datetime


class AttachmentOut(GrievanceBaseModel):
    filename: str
    url: str
    uploaded_at: datetime


class FiledComplaintOut(GrievanceBaseModel):
    tracking_id: str
    title: str
    category: ComplaintCategory
    status: ComplaintStatus
    created_at: datetime


class TrackedComplaint(GrievanceBaseModel):
    """Filer view: no staff notes, no reveal record."""

    tracking_id: str
    title: str
    description: str
    category: ComplaintCategory
    status: ComplaintStatus
    priority: ComplaintPriority
    status_history: list[StatusHistoryOut] = []
    attachments: list[AttachmentOut] = []
    created_at: datetime
    updated_at: datetime


class ComplaintSummary(GrievanceBaseModel):
    """List view for staff. Admin notes are never part of it."""

    id: UUID
    tracking_id: str
    title: str
    category: ComplaintCategory
    status: ComplaintStatus
    priority: ComplaintPriority
    identity_revealed: bool
    created_at: datetime
    updated_at: datetime


class ComplaintDetail(ComplaintSummary):
    """Staff detail view. Still nothing that identifies the filer."""

    description: str
    status_history: list[StatusHistoryOut] = []
    admin_notes: list[AdminNoteOut] = []
    attachments: list[AttachmentOut] = []
    identity_revealed_by: UUID | None = None
    identity_revealed_at: datetime | None = None


class StudentIdentity(GrievanceBaseModel):
    name: str
    email: str
    student_id: str | None = None
    department: str | None = None
    year: int | None = None


class RevealedIdentityOut(GrievanceBaseModel):
    student: StudentIdentity
    revealed_by: str
    revealed_at: datetime
    reason: str


class AccessLogEntryOut(GrievanceBaseModel):
    tracking_id: str
    accessor_id: UUID
    accessed_at: datetime
    reason: str
    source_address: str | None = None
    outcome: AccessOutcome
