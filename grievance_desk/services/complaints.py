"""
Complaint Lifecycle Engine: filing, tracking, triage and identity reveal.

This module implements the identity-decoupling principle:
- A complaint row never carries its filer
- The filer is sealed in the identity store under the tracking ID
- Students reach their complaints through ownership checks, never by user ID
- Staff work on complaints without ever seeing who filed them
- Disclosure goes through one logged path, restricted to full admins
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    AccessDeniedError,
    DuplicateKeyError,
    ForbiddenError,
    MappingStoreError,
    MappingInconsistencyError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    AdminNote,
    Attachment,
    Complaint,
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
    StatusHistoryEntry,
    User,
    UserRole,
    utcnow,
)
from .authorization import (
    Capability,
    MinimumReasonPolicy,
    RevealPolicy,
    RevealRequest,
    has_capability,
)
from .identity_mapping import IdentityMappingStore
from .tenancy import TenantScope
from .tracking_ids import generate_unique_tracking_id, is_valid_tracking_id

logger = logging.getLogger(__name__)


TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 200
DESCRIPTION_MIN_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 5000

# Used only when the deployment opts into a strict workflow
STATUS_TRANSITIONS: dict[ComplaintStatus, frozenset[ComplaintStatus]] = {
    ComplaintStatus.PENDING: frozenset({
        ComplaintStatus.UNDER_REVIEW,
        ComplaintStatus.IN_PROGRESS,
        ComplaintStatus.CLOSED,
    }),
    ComplaintStatus.UNDER_REVIEW: frozenset({
        ComplaintStatus.IN_PROGRESS,
        ComplaintStatus.RESOLVED,
        ComplaintStatus.CLOSED,
    }),
    ComplaintStatus.IN_PROGRESS: frozenset({
        ComplaintStatus.UNDER_REVIEW,
        ComplaintStatus.RESOLVED,
        ComplaintStatus.CLOSED,
    }),
    ComplaintStatus.RESOLVED: frozenset({
        ComplaintStatus.IN_PROGRESS,
        ComplaintStatus.CLOSED,
    }),
    ComplaintStatus.CLOSED: frozenset(),
}


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class AttachmentInput:
    filename: str
    url: str


@dataclass
class FileComplaintInput:
    """Input for filing a complaint. Nothing here identifies the filer."""
    title: str
    description: str
    category: ComplaintCategory | str
    attachments: list[AttachmentInput] = field(default_factory=list)


@dataclass
class ComplaintFilters:
    status: ComplaintStatus | None = None
    category: ComplaintCategory | None = None
    priority: ComplaintPriority | None = None


@dataclass
class FiledComplaint:
    tracking_id: str
    complaint: Complaint


@dataclass
class RevealedIdentity:
    """What an admin learns from a reveal."""
    name: str
    email: str
    student_meta: dict
    revealed_by: str
    revealed_at: datetime
    reason: str
    first_reveal: bool


# =============================================================================
# LIFECYCLE ENGINE
# =============================================================================


class ComplaintLifecycleEngine:
    """
    Complaint operations over the complaint store and the identity store.

    The engine flushes but does not commit the complaint session; the caller
    owns that transaction. The identity store commits its own writes.
    """

    def __init__(
        self,
        session: AsyncSession,
        mappings: IdentityMappingStore,
        reveal_policy: RevealPolicy | None = None,
        mapping_ttl: timedelta | None = None,
        enforce_workflow: bool = False,
    ):
        self.session = session
        self.mappings = mappings
        self.reveal_policy = reveal_policy or MinimumReasonPolicy()
        self.mapping_ttl = mapping_ttl
        self.enforce_workflow = enforce_workflow

    # =========================================================================
    # FILING
    # =========================================================================

    async def file_complaint(
        self,
        filer_id: UUID,
        scope: TenantScope,
        data: FileComplaintInput,
    ) -> FiledComplaint:
        """
        File a complaint anonymously.

        1. Validate the input
        2. Allocate a tracking ID free in both stores
        3. Write the complaint with no filer reference
        4. Seal the filer under the tracking ID in the identity store

        If step 4 fails, step 3 is rolled back so no complaint is left
        without an owner.
        """
        title, description, category = self._validate_filing(data)

        tracking_id = await generate_unique_tracking_id(self._tracking_id_taken)

        complaint = Complaint(
            tracking_id=tracking_id,
            title=title,
            description=description,
            category=category,
            priority=ComplaintPriority.MEDIUM,
            status=ComplaintStatus.PENDING,
            identity_revealed=False,
            status_history=[],
            admin_notes=[],
            attachments=[
                Attachment(filename=a.filename, url=a.url) for a in data.attachments
            ],
            **scope.stamp(),
        )
        self.session.add(complaint)

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateKeyError(f"Tracking ID {tracking_id} was taken concurrently") from e

        try:
            await self.mappings.create_mapping(
                tracking_id, filer_id, scope, ttl=self.mapping_ttl
            )
        except (MappingStoreError, DuplicateKeyError) as e:
            await self.session.rollback()
            logger.critical(
                f"Identity mapping write failed for {tracking_id}; complaint rolled back: {e}"
            )
            raise MappingInconsistencyError() from e

        logger.info(f"Complaint filed anonymously with tracking ID {tracking_id}")
        return FiledComplaint(tracking_id=tracking_id, complaint=complaint)

    # =========================================================================
    # FILER ACCESS
    # =========================================================================

    async def verify_ownership(
        self,
        tracking_id: str,
        filer_id: UUID,
        scope: TenantScope,
    ) -> bool:
        return await self.mappings.verify_ownership(tracking_id, filer_id, scope)

    async def get_by_tracking(
        self,
        tracking_id: str,
        filer_id: UUID,
        scope: TenantScope,
    ) -> Complaint:
        """Filer view of one complaint. Existence is checked before ownership."""
        complaint = await self._get_by_tracking_id(tracking_id, scope)
        if complaint is None:
            raise NotFoundError("Complaint not found with this tracking ID")

        if not await self.mappings.verify_ownership(tracking_id, filer_id, scope):
            raise AccessDeniedError("Access denied. This tracking ID does not belong to you.")

        return complaint

    async def list_for_filer(
        self,
        filer_id: UUID,
        scope: TenantScope,
    ) -> Sequence[Complaint]:
        tracking_ids = await self.mappings.tracking_ids_for_filer(filer_id, scope)
        if not tracking_ids:
            return []

        query = scope.apply(
            select(Complaint).where(Complaint.tracking_id.in_(tracking_ids)), Complaint
        ).order_by(Complaint.created_at.desc())
        result = await self.session.execute(query)
        return result.scalars().all()

    # =========================================================================
    # STAFF ACCESS
    # =========================================================================

    async def list_for_tenant(
        self,
        scope: TenantScope,
        filters: ComplaintFilters | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[Complaint], int]:
        """Complaints in the tenant, newest first, with the unpaginated total."""
        filters = filters or ComplaintFilters()
        query = scope.apply(select(Complaint), Complaint)

        if filters.status:
            query = query.where(Complaint.status == filters.status)
        if filters.category:
            query = query.where(Complaint.category == filters.category)
        if filters.priority:
            query = query.where(Complaint.priority == filters.priority)

        count_result = await self.session.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar_one()

        result = await self.session.execute(
            query.order_by(Complaint.created_at.desc()).offset(offset).limit(limit)
        )
        return result.scalars().all(), total

    async def get_for_tenant(self, ref: str, scope: TenantScope) -> Complaint:
        return await self._get_scoped_or_raise(ref, scope)

    async def update_status(
        self,
        ref: str,
        scope: TenantScope,
        new_status: ComplaintStatus | str,
        changed_by: UUID,
        comment: str | None = None,
    ) -> Complaint:
        """Set the status and append the transition to the history."""
        new_status = self._coerce(ComplaintStatus, new_status, "status")
        complaint = await self._get_scoped_or_raise(ref, scope)
        previous = complaint.status

        if self.enforce_workflow and new_status not in STATUS_TRANSITIONS[previous]:
            raise ValidationError(
                f"Cannot move a complaint from {previous.value} to {new_status.value}"
            )

        complaint.status = new_status
        complaint.status_history.append(
            StatusHistoryEntry(
                status=new_status,
                previous_status=previous,
                changed_by=changed_by,
                comment=(comment or "").strip() or None,
            )
        )
        await self.session.flush()

        logger.info(
            f"Complaint {complaint.tracking_id} status {previous.value} -> {new_status.value}"
        )
        return complaint

    async def update_priority(
        self,
        ref: str,
        scope: TenantScope,
        priority: ComplaintPriority | str,
    ) -> Complaint:
        priority = self._coerce(ComplaintPriority, priority, "priority")
        complaint = await self._get_scoped_or_raise(ref, scope)
        complaint.priority = priority
        await self.session.flush()
        return complaint

    async def add_admin_note(
        self,
        ref: str,
        scope: TenantScope,
        note: str,
        added_by: UUID,
    ) -> Complaint:
        note = (note or "").strip()
        if not note:
            raise ValidationError("Note cannot be empty")

        complaint = await self._get_scoped_or_raise(ref, scope)
        complaint.admin_notes.append(AdminNote(note=note, added_by=added_by))
        await self.session.flush()
        return complaint

    # =========================================================================
    # IDENTITY REVEAL
    # =========================================================================

    async def reveal_identity(
        self,
        ref: str,
        scope: TenantScope,
        actor_id: UUID,
        actor_role: UserRole,
        reason: str,
        source_address: str | None = None,
        actor_name: str | None = None,
    ) -> RevealedIdentity:
        """
        Disclose the filer of a complaint.

        Checks run in order: capability, reveal policy, complaint in tenant,
        then the identity store (which logs the attempt whatever happens).
        The reveal flag is set once; later reveals are logged but keep the
        first revealer and time.
        """
        if not has_capability(actor_role, Capability.REVEAL_IDENTITY):
            raise ForbiddenError("Only full administrators can reveal student identity")

        reason = (reason or "").strip()
        await self.reveal_policy.evaluate(
            RevealRequest(
                complaint_ref=ref,
                actor_id=actor_id,
                actor_role=UserRole(actor_role),
                reason=reason,
                source_address=source_address,
            )
        )

        complaint = await self._get_scoped_or_raise(ref, scope)

        filer_ref = await self.mappings.get_identity_with_logging(
            complaint.tracking_id,
            scope,
            accessor_id=actor_id,
            reason=reason,
            source_address=source_address,
        )

        student = await self._load_user(filer_ref)
        if student is None:
            raise NotFoundError("Student not found")

        first_reveal = not complaint.identity_revealed
        if first_reveal:
            complaint.identity_revealed = True
            complaint.identity_revealed_by = actor_id
            complaint.identity_revealed_at = utcnow()
            await self.session.flush()

        logger.warning(
            f"Identity revealed for complaint {complaint.tracking_id} by admin {actor_id}"
            f"{'' if first_reveal else ' (repeat)'}"
        )

        return RevealedIdentity(
            name=student.name,
            email=student.email,
            student_meta={
                "student_id": student.student_id,
                "department": student.department,
                "year": student.year,
            },
            revealed_by=actor_name or str(actor_id),
            revealed_at=complaint.identity_revealed_at,
            reason=reason,
            first_reveal=first_reveal,
        )

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _tracking_id_taken(self, candidate: str) -> bool:
        result = await self.session.execute(
            select(Complaint.id).where(Complaint.tracking_id == candidate)
        )
        if result.first() is not None:
            return True
        return await self.mappings.exists(candidate)

    async def _get_by_tracking_id(self, tracking_id: str, scope: TenantScope) -> Complaint | None:
        query = scope.apply(
            select(Complaint).where(Complaint.tracking_id == tracking_id), Complaint
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _get_scoped_or_raise(self, ref: str, scope: TenantScope) -> Complaint:
        """Resolve a tracking ID or internal UUID within the tenant.

        Complaints in other tenants are reported as missing.
        """
        complaint = None
        if is_valid_tracking_id(ref):
            complaint = await self._get_by_tracking_id(ref, scope)
        else:
            try:
                complaint_id = UUID(str(ref))
            except ValueError:
                complaint_id = None
            if complaint_id is not None:
                query = scope.apply(select(Complaint).where(Complaint.id == complaint_id), Complaint)
                result = await self.session.execute(query)
                complaint = result.scalar_one_or_none()

        if complaint is None:
            raise NotFoundError("Complaint not found")
        return complaint

    async def _load_user(self, filer_ref: str) -> User | None:
        try:
            user_id = UUID(filer_ref)
        except ValueError:
            logger.error("Decrypted filer reference is not a user ID")
            return None
        return await self.session.get(User, user_id)

    @staticmethod
    def _coerce(enum_cls, value, label: str):
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(e.value for e in enum_cls)
            raise ValidationError(f"Invalid {label} '{value}'. Allowed: {allowed}")

    def _validate_filing(self, data: FileComplaintInput) -> tuple[str, str, ComplaintCategory]:
        title = (data.title or "").strip()
        description = (data.description or "").strip()
        if not title or not description or not data.category:
            raise ValidationError("Please provide title, description, and category")

        if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
            raise ValidationError(
                f"Title must be {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters"
            )
        if not DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Description must be {DESCRIPTION_MIN_LENGTH}-{DESCRIPTION_MAX_LENGTH} characters"
            )

        category = self._coerce(ComplaintCategory, data.category, "category")
        for attachment in data.attachments:
            if not attachment.filename or not attachment.url:
                raise ValidationError("Attachments need a filename and a url")

        return title, description, category
