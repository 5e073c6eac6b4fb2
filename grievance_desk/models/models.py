"""SQLAlchemy ORM models for the complaint store.

Nothing in this module may reference the user who filed a complaint. The only
link between a complaint and its filer is the tracking ID, which resolves to
an identity exclusively through the identity store (see ``identity.py``).
"""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, SequenceMixin, TimestampMixin, UUIDMixin, utcnow


# =============================================================================
# ENUMS
# =============================================================================


def _values(enum_cls: type[PyEnum]) -> list[str]:
    return [e.value for e in enum_cls]


class UserRole(str, PyEnum):
    STUDENT = "student"
    ADMIN = "admin"
    COMMITTEE_ADMIN = "committee-admin"


class SenderRole(str, PyEnum):
    STUDENT = "student"
    ADMIN = "admin"
    COMMITTEE_ADMIN = "committee-admin"
    SYSTEM = "system"


class OrganizationStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ComplaintCategory(str, PyEnum):
    HARASSMENT = "harassment"
    DISCRIMINATION = "discrimination"
    ACADEMIC_MISCONDUCT = "academic-misconduct"
    INFRASTRUCTURE = "infrastructure"
    SAFETY = "safety"
    ADMINISTRATION = "administration"
    OTHER = "other"


class ComplaintPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ComplaintStatus(str, PyEnum):
    PENDING = "pending"
    UNDER_REVIEW = "under-review"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class MessageType(str, PyEnum):
    TEXT = "text"
    SYSTEM = "system"


ComplaintStatusType = Enum(
    ComplaintStatus, name="complaint_status", values_callable=_values
)


# =============================================================================
# ORGANIZATION & USER MODELS
# =============================================================================


class Organization(Base, UUIDMixin, TimestampMixin):
    """Tenant: one college or institution."""

    __tablename__ = "organizations"

    slug: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(255), unique=True)
    address: Mapped[str | None] = mapped_column(String(500))
    contact_email: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[OrganizationStatus] = mapped_column(
        Enum(OrganizationStatus, name="organization_status", values_callable=_values),
        default=OrganizationStatus.ACTIVE,
        nullable=False,
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    settings: Mapped[dict] = mapped_column(JSONType, default=dict)

    members: Mapped[list["User"]] = relationship(back_populates="organization")

    __table_args__ = (
        CheckConstraint(
            "slug = lower(slug)",
            name="slug_format",
        ),
    )


class User(Base, UUIDMixin, TimestampMixin):
    """Application user. Students, admins and committee admins."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=_values),
        default=UserRole.STUDENT,
        nullable=False,
    )
    organization_id: Mapped[UUID | None] = mapped_column(ForeignKey("organizations.id"))
    # Legacy free-text institution name, kept for tenants predating organizations
    college: Mapped[str | None] = mapped_column(String(100))
    student_id: Mapped[str | None] = mapped_column(String(50))
    department: Mapped[str | None] = mapped_column(String(100))
    year: Mapped[int | None] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column()

    organization: Mapped["Organization | None"] = relationship(
        back_populates="members", lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("year IS NULL OR (year >= 1 AND year <= 5)", name="year_range"),
        Index("idx_users_org_role", "organization_id", "role"),
        Index("idx_users_college_role", "college", "role"),
    )


# =============================================================================
# COMPLAINT MODELS
# =============================================================================


class Complaint(Base, UUIDMixin, TimestampMixin):
    """A filed complaint. Deliberately carries no filer reference."""

    __tablename__ = "complaints"

    tracking_id: Mapped[str] = mapped_column(String(12), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[ComplaintCategory] = mapped_column(
        Enum(ComplaintCategory, name="complaint_category", values_callable=_values),
        nullable=False,
    )
    priority: Mapped[ComplaintPriority] = mapped_column(
        Enum(ComplaintPriority, name="complaint_priority", values_callable=_values),
        default=ComplaintPriority.MEDIUM,
        nullable=False,
    )
    status: Mapped[ComplaintStatus] = mapped_column(
        ComplaintStatusType,
        default=ComplaintStatus.PENDING,
        nullable=False,
    )

    # Tenant stamp
    organization_id: Mapped[UUID | None] = mapped_column(ForeignKey("organizations.id"))
    college: Mapped[str | None] = mapped_column(String(100))

    # Identity disclosure record (who revealed, never who filed)
    identity_revealed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    identity_revealed_by: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"))
    identity_revealed_at: Mapped[datetime | None] = mapped_column()

    status_history: Mapped[list["StatusHistoryEntry"]] = relationship(
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="StatusHistoryEntry.id",
        lazy="selectin",
    )
    admin_notes: Mapped[list["AdminNote"]] = relationship(
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="AdminNote.id",
        lazy="selectin",
    )
    attachments: Mapped[list["Attachment"]] = relationship(
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="Attachment.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_complaints_org_status", "organization_id", "status"),
        Index("idx_complaints_college_status", "college", "status"),
        Index("idx_complaints_category", "category", "organization_id"),
        Index("idx_complaints_created_at", "created_at"),
    )


class StatusHistoryEntry(Base, SequenceMixin):
    """Append-only record of a status transition."""

    __tablename__ = "complaint_status_history"

    complaint_id: Mapped[UUID] = mapped_column(
        ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[ComplaintStatus] = mapped_column(
        ComplaintStatusType,
        nullable=False,
    )
    previous_status: Mapped[ComplaintStatus | None] = mapped_column(
        ComplaintStatusType,
    )
    changed_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text)

    complaint: Mapped["Complaint"] = relationship(back_populates="status_history")

    __table_args__ = (
        Index("idx_status_history_complaint", "complaint_id"),
    )


class AdminNote(Base, SequenceMixin):
    """Internal note. The author is always a staff member."""

    __tablename__ = "complaint_admin_notes"

    complaint_id: Mapped[UUID] = mapped_column(
        ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False
    )
    note: Mapped[str] = mapped_column(Text, nullable=False)
    added_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    added_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    complaint: Mapped["Complaint"] = relationship(back_populates="admin_notes")

    __table_args__ = (
        Index("idx_admin_notes_complaint", "complaint_id"),
    )


class Attachment(Base, SequenceMixin):
    """Attachment metadata only; file bytes live elsewhere."""

    __tablename__ = "complaint_attachments"

    complaint_id: Mapped[UUID] = mapped_column(
        ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    complaint: Mapped["Complaint"] = relationship(back_populates="attachments")


# =============================================================================
# CHAT MODELS
# =============================================================================


class ChatMessage(Base, UUIDMixin):
    """Message in a complaint conversation. Students appear only as a role."""

    __tablename__ = "chat_messages"

    tracking_id: Mapped[str] = mapped_column(String(12), nullable=False)
    sender_role: Mapped[SenderRole] = mapped_column(
        Enum(SenderRole, name="sender_role", values_callable=_values),
        nullable=False,
    )
    # Staff are not anonymous; set only for staff-authored messages
    admin_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[MessageType] = mapped_column(
        Enum(MessageType, name="message_type", values_callable=_values),
        default=MessageType.TEXT,
        nullable=False,
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column()
    organization_id: Mapped[UUID | None] = mapped_column(ForeignKey("organizations.id"))
    college: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    admin: Mapped["User | None"] = relationship(lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "sender_role = 'student' AND admin_id IS NULL OR sender_role <> 'student'",
            name="student_messages_anonymous",
        ),
        Index("idx_chat_messages_tracking_time", "tracking_id", "created_at"),
        Index("idx_chat_messages_unread", "tracking_id", "is_read", "sender_role"),
    )
