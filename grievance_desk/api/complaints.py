"""Complaint API routes.

Filers reach their complaints by tracking ID only. Staff routes take either a
tracking ID or the internal complaint ID and never expose who filed.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from ..core.dependencies import (
    ActorDep,
    ClientAddressDep,
    CurrentActor,
    EngineDep,
    MappingStoreDep,
    TenantScopeDep,
    capability_required,
)
from ..core.exceptions import ValidationError
from ..models import ComplaintCategory, ComplaintPriority, ComplaintStatus
from ..schemas import (
    AccessLogEntryOut,
    ApiResponse,
    ComplaintCreate,
    ComplaintDetail,
    ComplaintSummary,
    FiledComplaintOut,
    NoteCreate,
    Page,
    PaginationParams,
    PriorityUpdate,
    RevealedIdentityOut,
    RevealRequestBody,
    StatusUpdate,
    StudentIdentity,
    TrackedComplaint,
)
from ..services.authorization import Capability
from ..services.complaints import AttachmentInput, ComplaintFilters, FileComplaintInput
from ..services.tracking_ids import is_valid_tracking_id

router = APIRouter(prefix="/complaints", tags=["complaints"])


def _actor_with(capability: Capability):
    return Annotated[CurrentActor, Depends(capability_required(capability))]


Filer = _actor_with(Capability.FILE_COMPLAINT)
Tracker = _actor_with(Capability.TRACK_OWN_COMPLAINT)
Viewer = _actor_with(Capability.VIEW_COMPLAINT_DETAIL)
Lister = _actor_with(Capability.LIST_TENANT_COMPLAINTS)
StatusEditor = _actor_with(Capability.UPDATE_STATUS)
PriorityEditor = _actor_with(Capability.SET_PRIORITY)
NoteAuthor = _actor_with(Capability.ADD_ADMIN_NOTE)
Auditor = _actor_with(Capability.VIEW_ACCESS_LOG)


# =============================================================================
# FILER ENDPOINTS
# =============================================================================


@router.post(
    "",
    response_model=ApiResponse[FiledComplaintOut],
    status_code=status.HTTP_201_CREATED,
)
async def file_complaint(
    data: ComplaintCreate,
    actor: Filer,
    scope: TenantScopeDep,
    engine: EngineDep,
):
    """File a complaint anonymously. The tracking ID is the filer's only handle."""
    filed = await engine.file_complaint(
        actor.id,
        scope,
        FileComplaintInput(
            title=data.title,
            description=data.description,
            category=data.category,
            attachments=[
                AttachmentInput(filename=a.filename, url=str(a.url)) for a in data.attachments
            ],
        ),
    )
    return ApiResponse.ok(
        FiledComplaintOut.model_validate(filed.complaint),
        "Complaint filed successfully. Save your tracking ID to check status.",
    )


@router.get("/track/{tracking_id}", response_model=ApiResponse[TrackedComplaint])
async def track_complaint(
    tracking_id: str,
    actor: Tracker,
    scope: TenantScopeDep,
    engine: EngineDep,
):
    """Filer view of one complaint, after an ownership check."""
    if not is_valid_tracking_id(tracking_id):
        raise ValidationError("Invalid tracking ID format")
    complaint = await engine.get_by_tracking(tracking_id, actor.id, scope)
    return ApiResponse.ok(TrackedComplaint.model_validate(complaint))


@router.get("/my-complaints", response_model=ApiResponse[list[TrackedComplaint]])
async def my_complaints(
    actor: Tracker,
    scope: TenantScopeDep,
    engine: EngineDep,
):
    complaints = await engine.list_for_filer(actor.id, scope)
    return ApiResponse.ok([TrackedComplaint.model_validate(c) for c in complaints])


# =============================================================================
# STAFF ENDPOINTS
# =============================================================================


@router.get("", response_model=ApiResponse[Page[ComplaintSummary]])
async def list_complaints(
    actor: Lister,
    scope: TenantScopeDep,
    engine: EngineDep,
    pagination: Annotated[PaginationParams, Query()],
    status_filter: Annotated[ComplaintStatus | None, Query(alias="status")] = None,
    category: ComplaintCategory | None = None,
    priority: ComplaintPriority | None = None,
):
    """Complaints in the caller's tenant, newest first. No identities, no notes."""
    complaints, total = await engine.list_for_tenant(
        scope,
        ComplaintFilters(status=status_filter, category=category, priority=priority),
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return ApiResponse.ok(
        Page.create(
            [ComplaintSummary.model_validate(c) for c in complaints],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
        )
    )


@router.get("/{complaint_ref}", response_model=ApiResponse[ComplaintDetail])
async def get_complaint(
    complaint_ref: str,
    actor: Viewer,
    scope: TenantScopeDep,
    engine: EngineDep,
):
    complaint = await engine.get_for_tenant(complaint_ref, scope)
    return ApiResponse.ok(ComplaintDetail.model_validate(complaint))


@router.put("/{complaint_ref}/status", response_model=ApiResponse[ComplaintDetail])
async def update_status(
    complaint_ref: str,
    data: StatusUpdate,
    actor: StatusEditor,
    scope: TenantScopeDep,
    engine: EngineDep,
):
    complaint = await engine.update_status(
        complaint_ref, scope, data.status, changed_by=actor.id, comment=data.comment
    )
    return ApiResponse.ok(
        ComplaintDetail.model_validate(complaint), "Complaint status updated successfully"
    )


@router.put("/{complaint_ref}/priority", response_model=ApiResponse[ComplaintDetail])
async def update_priority(
    complaint_ref: str,
    data: PriorityUpdate,
    actor: PriorityEditor,
    scope: TenantScopeDep,
    engine: EngineDep,
):
    complaint = await engine.update_priority(complaint_ref, scope, data.priority)
    return ApiResponse.ok(ComplaintDetail.model_validate(complaint), "Priority updated")


@router.post("/{complaint_ref}/notes", response_model=ApiResponse[ComplaintDetail])
async def add_note(
    complaint_ref: str,
    data: NoteCreate,
    actor: NoteAuthor,
    scope: TenantScopeDep,
    engine: EngineDep,
):
    complaint = await engine.add_admin_note(complaint_ref, scope, data.note, added_by=actor.id)
    return ApiResponse.ok(ComplaintDetail.model_validate(complaint), "Note added")


# =============================================================================
# IDENTITY DISCLOSURE (ADMIN ONLY)
# =============================================================================


@router.post(
    "/{complaint_ref}/reveal-identity",
    response_model=ApiResponse[RevealedIdentityOut],
)
async def reveal_identity(
    complaint_ref: str,
    data: RevealRequestBody,
    actor: ActorDep,
    scope: TenantScopeDep,
    engine: EngineDep,
    source_address: ClientAddressDep,
):
    """
    Reveal who filed a complaint.

    Restricted to full admins, requires a stated reason, and is written to the
    identity access log whether or not it succeeds.
    """
    revealed = await engine.reveal_identity(
        complaint_ref,
        scope,
        actor_id=actor.id,
        actor_role=actor.role,
        reason=data.reason,
        source_address=source_address,
        actor_name=actor.name,
    )
    return ApiResponse.ok(
        RevealedIdentityOut(
            student=StudentIdentity(
                name=revealed.name,
                email=revealed.email,
                **revealed.student_meta,
            ),
            revealed_by=revealed.revealed_by,
            revealed_at=revealed.revealed_at,
            reason=revealed.reason,
        ),
        "Identity revealed. This action has been logged.",
    )


@router.get(
    "/{complaint_ref}/access-log",
    response_model=ApiResponse[list[AccessLogEntryOut]],
)
async def access_log(
    complaint_ref: str,
    actor: Auditor,
    scope: TenantScopeDep,
    engine: EngineDep,
    mappings: MappingStoreDep,
):
    """Who asked for this complaint's filer, when, why, and what happened."""
    complaint = await engine.get_for_tenant(complaint_ref, scope)
    entries = await mappings.get_access_log(complaint.tracking_id, scope)
    return ApiResponse.ok([AccessLogEntryOut.model_validate(e) for e in entries])
