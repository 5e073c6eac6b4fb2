"""
Identity Mapping Store: the only place a tracking ID resolves to a person.

Guarantees:
1. The filer identifier is stored encrypted, never in the clear
2. Every disclosure attempt is written to the access log and committed
   before the identifier (or the failure) is handed back
3. Every lookup is tenant-scoped
4. Severing a link is permanent and leaves a tombstone, never a complaint change

This store commits its own session per write. Audit entries must be durable
even when the caller's complaint-store transaction later rolls back.
"""

import hmac
import logging
from datetime import datetime, timedelta
from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    DecryptionError,
    DuplicateKeyError,
    MappingStoreError,
    NotFoundError,
)
from ..models import (
    AccessOutcome,
    IdentityAccessLog,
    IdentityMapping,
    IdentityMappingTombstone,
    SOURCE_ADDRESS_MAX_LENGTH,
    SeverCause,
    utcnow,
)
from .cipher import CipherService
from .tenancy import TenantScope

logger = logging.getLogger(__name__)


class IdentityMappingStore:
    """Encrypted tracking ID -> filer links and their access log."""

    def __init__(self, session: AsyncSession, cipher: CipherService):
        self._session = session
        self._cipher = cipher

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    async def create_mapping(
        self,
        tracking_id: str,
        filer_id: UUID,
        scope: TenantScope,
        ttl: timedelta | None = None,
    ) -> IdentityMapping:
        """Persist the encrypted link. With ``ttl`` the link expires and is purged."""
        mapping = IdentityMapping(
            tracking_id=tracking_id,
            encrypted_filer_id=self._cipher.encrypt(str(filer_id)),
            expires_at=utcnow() + ttl if ttl else None,
            **scope.stamp(),
        )
        self._session.add(mapping)
        await self._commit("create_mapping", tracking_id)
        return mapping

    async def delete_mapping(
        self,
        tracking_id: str,
        cause: SeverCause = SeverCause.OPERATOR,
    ) -> bool:
        """Sever one link for good. Returns False if there was none."""
        result = await self._session.execute(
            delete(IdentityMapping).where(IdentityMapping.tracking_id == tracking_id)
        )
        if not result.rowcount:
            return False
        await self._tombstone([tracking_id], cause)
        await self._commit("delete_mapping", tracking_id)
        logger.warning(f"Identity link severed for {tracking_id} ({cause.value})")
        return True

    async def purge_expired(self, now: datetime | None = None) -> list[str]:
        """Delete every mapping whose expiry has passed."""
        now = now or utcnow()
        result = await self._session.execute(
            select(IdentityMapping.tracking_id).where(
                IdentityMapping.expires_at.is_not(None),
                IdentityMapping.expires_at <= now,
            )
        )
        expired = list(result.scalars().all())
        if not expired:
            return []

        await self._session.execute(
            delete(IdentityMapping).where(IdentityMapping.tracking_id.in_(expired))
        )
        await self._tombstone(expired, SeverCause.EXPIRED)
        await self._commit("purge_expired", f"{len(expired)} mappings")
        logger.info(f"Purged {len(expired)} expired identity mappings")
        return expired

    # =========================================================================
    # READ PATH
    # =========================================================================

    async def exists(self, tracking_id: str) -> bool:
        result = await self._session.execute(
            select(IdentityMapping.id).where(IdentityMapping.tracking_id == tracking_id)
        )
        return result.first() is not None

    async def verify_ownership(
        self,
        tracking_id: str,
        filer_id: UUID,
        scope: TenantScope,
    ) -> bool:
        """True iff ``filer_id`` is the identity sealed under ``tracking_id``.

        Never returns or logs the stored identifier.
        """
        mapping = await self._get_mapping(tracking_id, scope)
        if mapping is None:
            return False
        return self._sealed_identity_matches(mapping, filer_id)

    async def tracking_ids_for_filer(
        self,
        filer_id: UUID,
        scope: TenantScope,
    ) -> list[str]:
        """Tracking IDs belonging to ``filer_id`` within the tenant."""
        query = scope.apply(
            select(IdentityMapping).where(self._live_clause()), IdentityMapping
        ).order_by(IdentityMapping.created_at.desc())
        result = await self._session.execute(query)
        return [
            mapping.tracking_id
            for mapping in result.scalars().all()
            if self._sealed_identity_matches(mapping, filer_id)
        ]

    async def get_identity_with_logging(
        self,
        tracking_id: str,
        scope: TenantScope,
        accessor_id: UUID,
        reason: str,
        source_address: str | None,
    ) -> str:
        """
        Decrypt the filer identifier for disclosure.

        The access-log entry is committed before this returns or raises,
        whatever the outcome.
        """
        mapping = await self._get_mapping(tracking_id, scope)

        entry = IdentityAccessLog(
            tracking_id=tracking_id,
            accessor_id=accessor_id,
            reason=reason,
            source_address=source_address[:SOURCE_ADDRESS_MAX_LENGTH] if source_address else None,
            outcome=AccessOutcome.DISCLOSED,
            **scope.stamp(),
        )

        if mapping is None:
            entry.outcome = AccessOutcome.MAPPING_MISSING
            await self._append_access(entry)
            raise NotFoundError("Identity mapping not found")

        try:
            filer_id = self._cipher.decrypt(mapping.encrypted_filer_id)
        except DecryptionError:
            entry.outcome = AccessOutcome.DECRYPTION_FAILED
            await self._append_access(entry)
            logger.critical(
                f"Identity mapping for {tracking_id} failed to decrypt during reveal. "
                "Possible key rotation without migration, or tampering."
            )
            raise

        await self._append_access(entry)
        return filer_id

    async def get_access_log(
        self,
        tracking_id: str,
        scope: TenantScope,
    ) -> Sequence[IdentityAccessLog]:
        query = scope.apply(
            select(IdentityAccessLog).where(IdentityAccessLog.tracking_id == tracking_id),
            IdentityAccessLog,
        ).order_by(IdentityAccessLog.id)
        result = await self._session.execute(query)
        return result.scalars().all()

    # =========================================================================
    # RECONCILIATION SUPPORT
    # =========================================================================

    async def all_tracking_ids(self) -> set[str]:
        result = await self._session.execute(select(IdentityMapping.tracking_id))
        return set(result.scalars().all())

    async def mapping_created_at(self) -> dict[str, datetime]:
        result = await self._session.execute(
            select(IdentityMapping.tracking_id, IdentityMapping.created_at)
        )
        return {tracking_id: created_at for tracking_id, created_at in result.all()}

    async def tombstoned_tracking_ids(self) -> set[str]:
        result = await self._session.execute(select(IdentityMappingTombstone.tracking_id))
        return set(result.scalars().all())

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    @staticmethod
    def _live_clause():
        return or_(
            IdentityMapping.expires_at.is_(None),
            IdentityMapping.expires_at > utcnow(),
        )

    async def _get_mapping(
        self,
        tracking_id: str,
        scope: TenantScope,
    ) -> IdentityMapping | None:
        query = scope.apply(
            select(IdentityMapping).where(
                IdentityMapping.tracking_id == tracking_id,
                self._live_clause(),
            ),
            IdentityMapping,
        )
        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Mapping lookup failed for {tracking_id}") from e
        return result.scalar_one_or_none()

    def _sealed_identity_matches(self, mapping: IdentityMapping, filer_id: UUID) -> bool:
        try:
            stored = self._cipher.decrypt(mapping.encrypted_filer_id)
        except DecryptionError:
            logger.error(f"Identity mapping for {mapping.tracking_id} failed to decrypt")
            return False
        return hmac.compare_digest(stored.encode("utf-8"), str(filer_id).encode("utf-8"))

    async def _append_access(self, entry: IdentityAccessLog) -> None:
        self._session.add(entry)
        await self._commit("access_log_append", entry.tracking_id)

    async def _tombstone(self, tracking_ids: list[str], cause: SeverCause) -> None:
        existing = await self.tombstoned_tracking_ids()
        for tracking_id in tracking_ids:
            if tracking_id not in existing:
                self._session.add(IdentityMappingTombstone(tracking_id=tracking_id, cause=cause))

    async def _commit(self, operation: str, subject: str) -> None:
        try:
            await self._session.commit()
        except IntegrityError as e:
            await self._session.rollback()
            raise DuplicateKeyError(f"{operation} conflicted for {subject}") from e
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(f"Identity store {operation} failed for {subject}: {e}")
            raise MappingStoreError(f"{operation} failed for {subject}") from e
