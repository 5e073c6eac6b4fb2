"""SQLAlchemy models for the identity store.

These tables live in their own database. The mapping row is the only place a
tracking ID can be turned back into a person, and only with the cipher key.
"""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import IdentityBase, SequenceMixin, UUIDMixin, utcnow

SOURCE_ADDRESS_MAX_LENGTH = 64


class AccessOutcome(str, PyEnum):
    DISCLOSED = "disclosed"
    MAPPING_MISSING = "mapping_missing"
    DECRYPTION_FAILED = "decryption_failed"


class SeverCause(str, PyEnum):
    EXPIRED = "expired"
    DANGLING = "dangling"
    OPERATOR = "operator"


class IdentityMapping(IdentityBase, UUIDMixin):
    """Encrypted tracking ID -> filer link."""

    __tablename__ = "identity_mappings"

    tracking_id: Mapped[str] = mapped_column(String(12), unique=True, nullable=False)
    # "ivhex:cipherhex", sealed with the process-wide key
    encrypted_filer_id: Mapped[str] = mapped_column(Text, nullable=False)
    organization_id: Mapped[UUID | None] = mapped_column()
    college: Mapped[str | None] = mapped_column(String(100))
    expires_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_identity_mappings_org", "organization_id"),
        Index("idx_identity_mappings_college", "college"),
        Index("idx_identity_mappings_expires", "expires_at"),
    )


class IdentityAccessLog(IdentityBase, SequenceMixin):
    """Append-only record of every disclosure attempt.

    Keyed by tracking ID rather than by mapping row so entries survive a purge
    and attempts against a missing mapping are still recorded.
    """

    __tablename__ = "identity_access_log"

    tracking_id: Mapped[str] = mapped_column(String(12), nullable=False)
    accessor_id: Mapped[UUID] = mapped_column(nullable=False)
    accessed_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    source_address: Mapped[str | None] = mapped_column(String(SOURCE_ADDRESS_MAX_LENGTH))
    outcome: Mapped[AccessOutcome] = mapped_column(
        Enum(AccessOutcome, name="access_outcome", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    organization_id: Mapped[UUID | None] = mapped_column()
    college: Mapped[str | None] = mapped_column(String(100))

    __table_args__ = (
        Index("idx_identity_access_log_tracking", "tracking_id", "accessed_at"),
        Index("idx_identity_access_log_accessor", "accessor_id", "accessed_at"),
    )


class IdentityMappingTombstone(IdentityBase):
    """Marks a link that was severed on purpose."""

    __tablename__ = "identity_mapping_tombstones"

    tracking_id: Mapped[str] = mapped_column(String(12), primary_key=True)
    cause: Mapped[SeverCause] = mapped_column(
        Enum(SeverCause, name="sever_cause", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    severed_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
