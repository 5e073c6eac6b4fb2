"""
Mapping Maintenance Job: keeps the two stores consistent.

This module runs as a scheduled job (via cron or similar) to:
1. Purge identity mappings whose TTL has passed
2. Delete dangling mappings whose complaint write never committed
3. Report complaints that lost their mapping without a tombstone

Typical cron schedule: */30 * * * * (every 30 minutes)
"""

import asyncio
import logging
import sys
import traceback
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import async_session_factory, identity_session_factory
from ..models import Complaint, SeverCause, utcnow
from ..services.cipher import CipherService, get_cipher
from ..services.identity_mapping import IdentityMappingStore

logger = logging.getLogger(__name__)


# =============================================================================
# ALERTING
# =============================================================================


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
    webhook_url: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """
    Log an alert and, when a webhook is configured, post it there.

    Returns True if the webhook accepted the alert.
    """
    log_message = f"[MAPPING ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"

    if severity == "critical":
        logger.critical(log_message)
    else:
        logger.error(log_message)

    if webhook_url is None:
        webhook_url = get_settings().alert_webhook_url
    if not webhook_url:
        return False

    payload = {
        "title": title,
        "message": message,
        "severity": severity,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": "grievance-desk-mapping-maintenance",
        "details": details or {},
    }

    try:
        if client is not None:
            response = await client.post(webhook_url, json=payload, timeout=10)
        else:
            async with httpx.AsyncClient() as owned_client:
                response = await owned_client.post(webhook_url, json=payload, timeout=10)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Failed to send webhook alert: {e}")
        return False
    return True


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# =============================================================================
# JOB
# =============================================================================


async def run_mapping_maintenance(
    complaint_sessions: async_sessionmaker[AsyncSession] | None = None,
    identity_sessions: async_sessionmaker[AsyncSession] | None = None,
    cipher: CipherService | None = None,
    now: datetime | None = None,
    grace: timedelta | None = None,
    webhook_url: str | None = None,
    alert_client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """
    Main entry point for the maintenance job.

    A mapping with no complaint is only deleted once it is older than the
    grace period, so a filing still in flight is never touched.

    Returns:
        Job result summary
    """
    settings = get_settings()
    complaint_sessions = complaint_sessions or async_session_factory
    identity_sessions = identity_sessions or identity_session_factory
    cipher = cipher or get_cipher()
    now = now or utcnow()
    grace = grace if grace is not None else timedelta(minutes=settings.dangling_mapping_grace_minutes)

    logger.info(f"Starting mapping maintenance at {now.isoformat()}")

    results: dict[str, Any] = {
        "started_at": now.isoformat(),
        "completed_at": None,
        "expired_purged": [],
        "dangling_deleted": [],
        "orphaned_complaints": [],
        "alert_sent": False,
    }

    try:
        # Step 1: TTL purge
        async with identity_sessions() as identity_session:
            store = IdentityMappingStore(identity_session, cipher)
            results["expired_purged"] = await store.purge_expired(now)

        # Step 2: Snapshot both stores
        async with complaint_sessions() as session:
            result = await session.execute(select(Complaint.tracking_id))
            complaint_ids = set(result.scalars().all())

        async with identity_sessions() as identity_session:
            store = IdentityMappingStore(identity_session, cipher)
            mapping_ages = await store.mapping_created_at()
            tombstoned = await store.tombstoned_tracking_ids()

            # Step 3: Dangling mappings past the grace period
            cutoff = now - grace
            for tracking_id, created_at in sorted(mapping_ages.items()):
                if tracking_id in complaint_ids or _as_utc(created_at) > cutoff:
                    continue
                if await store.delete_mapping(tracking_id, SeverCause.DANGLING):
                    results["dangling_deleted"].append(tracking_id)

        # Step 4: Complaints whose owner link vanished without record
        orphaned = sorted(complaint_ids - set(mapping_ages) - tombstoned)
        results["orphaned_complaints"] = orphaned

    except Exception as e:
        logger.error(f"Mapping maintenance failed: {e}")
        await send_alert(
            title="Mapping Maintenance Failed",
            message="The identity mapping maintenance job crashed unexpectedly.",
            severity="critical",
            details={
                "error": str(e),
                "traceback": traceback.format_exc()[-500:],
                "started_at": results["started_at"],
            },
            webhook_url=webhook_url,
            client=alert_client,
        )
        raise

    results["completed_at"] = utcnow().isoformat()

    logger.info(
        f"Mapping maintenance completed: {len(results['expired_purged'])} expired, "
        f"{len(results['dangling_deleted'])} dangling, "
        f"{len(results['orphaned_complaints'])} orphaned"
    )

    if results["orphaned_complaints"]:
        results["alert_sent"] = await send_alert(
            title="Complaints Without Identity Mapping",
            message=(
                f"{len(results['orphaned_complaints'])} complaints have no identity mapping "
                "and no tombstone. Their filers can no longer track them."
            ),
            severity="critical",
            details={"tracking_ids": results["orphaned_complaints"][:20]},
            webhook_url=webhook_url,
            client=alert_client,
        )

    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the maintenance job."""
    import argparse

    parser = argparse.ArgumentParser(description="Run identity mapping maintenance")
    parser.add_argument(
        "--grace-minutes",
        type=int,
        default=None,
        help="Minimum age of a mapping without complaint before it is deleted",
    )
    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    grace = timedelta(minutes=args.grace_minutes) if args.grace_minutes is not None else None

    try:
        results = asyncio.run(run_mapping_maintenance(grace=grace))
    except Exception as e:
        logger.error(f"Job failed: {e}")
        sys.exit(1)
    logger.info(f"Job completed: {results}")


if __name__ == "__main__":
    main()
