"""Reconcile progress rollups.

Recomputes every topic rollup and the module rollup of each enrollment from
the lesson_progress rows. Safe to run against a live cluster: recompute is
idempotent and takes the same per-unit locks the API takes (Redis locks when
Redis is reachable).

Use after a partial cascade failure, a catalog change (lessons added,
removed or unpublished), or a bulk import of lesson records.

Usage:
    cd api && python -m scripts.reconcile_progress
    cd api && python -m scripts.reconcile_progress --module-id <uuid>
"""

import argparse
import asyncio
from uuid import UUID

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra_asyncio.cluster import Cluster

from edutrack.config import get_settings
from edutrack.core.exceptions import NotFoundError
from edutrack.core.redis import init_redis, shutdown_redis
from edutrack.progress.exceptions import ProgressLockTimeoutError
from edutrack.progress.service import ProgressService, create_progress_service


logger = structlog.get_logger(__name__)


async def list_enrollment_ids(
    service: ProgressService, session, keyspace: str, module_id: UUID | None
) -> list[UUID]:
    """Enrollments to reconcile: one module's, or every enrollment."""
    if module_id is not None:
        enrollments = await service.store.list_module_enrollments(module_id)
        return [e.id for e in enrollments]

    rows = await session.aexecute(f"SELECT id FROM {keyspace}.module_enrollments")
    return [row.id for row in rows]


async def reconcile(
    service: ProgressService, enrollment_ids: list[UUID]
) -> tuple[int, int]:
    """Reconcile each enrollment.

    Returns:
        Tuple of (reconciled_count, skipped_count)
    """
    reconciled = 0
    skipped = 0

    for enrollment_id in enrollment_ids:
        try:
            result = await service.reconcile_enrollment(enrollment_id)
        except (NotFoundError, ProgressLockTimeoutError) as e:
            logger.warning(
                "reconcile_skipped", enrollment_id=str(enrollment_id), reason=e.code
            )
            skipped += 1
            continue

        logger.info(
            "reconcile_applied",
            enrollment_id=str(enrollment_id),
            topics=len(result.topics),
            percentage=result.module.percentage if result.module else None,
        )
        reconciled += 1

    return reconciled, skipped


async def run_reconciliation(module_id: UUID | None = None) -> None:
    """Connect, reconcile, disconnect."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    logger.info(
        "reconcile_starting",
        keyspace=keyspace,
        hosts=settings.cassandra_hosts,
        module_id=str(module_id) if module_id else None,
    )

    auth_provider = None
    if settings.cassandra_username and settings.cassandra_password:
        auth_provider = PlainTextAuthProvider(
            username=settings.cassandra_username,
            password=settings.cassandra_password,
        )

    cluster = Cluster(
        contact_points=settings.cassandra_hosts,
        port=settings.cassandra_port,
        auth_provider=auth_provider,
        protocol_version=settings.cassandra_protocol_version,
    )

    session = cluster.connect()
    session.set_keyspace(keyspace)

    redis_client = None
    if settings.redis_enabled:
        try:
            redis_client = await init_redis()
        except Exception as e:
            logger.warning("redis_init_skipped", error=str(e))

    try:
        service = create_progress_service(session, settings, redis_client)
        enrollment_ids = await list_enrollment_ids(
            service, session, keyspace, module_id
        )
        reconciled, skipped = await reconcile(service, enrollment_ids)
        logger.info(
            "reconcile_completed",
            total=len(enrollment_ids),
            reconciled=reconciled,
            skipped=skipped,
        )
    finally:
        await shutdown_redis()
        session.shutdown()
        cluster.shutdown()


def main() -> None:
    parser = argparse.ArgumentParser(description="Rebuild progress rollups")
    parser.add_argument(
        "--module-id",
        type=UUID,
        default=None,
        help="Only reconcile enrollments of this module",
    )
    args = parser.parse_args()
    asyncio.run(run_reconciliation(args.module_id))


if __name__ == "__main__":
    main()
