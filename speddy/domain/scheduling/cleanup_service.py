"""
Orphaned instance cleanup

The calendar read path only detects orphans and queues their ids; deletion
happens afterwards, either as an ARQ job or as a background task in the web
process. A cleanup that never runs is harmless: the next read detects the same
orphans again and still hides them.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ...config import ORPHAN_CLEANUP_MODE
from ...database import SessionLocal
from .repository import ScheduleSessionRepository

logger = logging.getLogger(__name__)

CLEANUP_TASK_NAME = "delete_orphaned_instances_task"


class OrphanCleanupQueue:
    """Orphaned instance ids waiting to be deleted"""

    def __init__(self):
        self._pending: list[str] = []

    def enqueue(self, instance_ids: Iterable[str]) -> None:
        for instance_id in instance_ids:
            if instance_id not in self._pending:
                self._pending.append(instance_id)

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    def drain(self) -> list[str]:
        instance_ids, self._pending = self._pending, []
        return instance_ids

    def __len__(self) -> int:
        return len(self._pending)


def delete_orphaned_instances(
    db: Session, instance_ids: list[str], repo: Optional[ScheduleSessionRepository] = None
) -> int:
    """Delete orphaned instances, logging rather than raising on storage errors"""
    if not instance_ids:
        return 0

    repo = repo or ScheduleSessionRepository()
    try:
        deleted = repo.delete_orphaned_instances(db, instance_ids)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Error deleting {len(instance_ids)} orphaned instances: {e}")
        return 0

    logger.info(f"🧹 Deleted {deleted}/{len(instance_ids)} orphaned instances")
    return deleted


def run_inline_cleanup(instance_ids: list[str]) -> int:
    db = SessionLocal()
    try:
        return delete_orphaned_instances(db, instance_ids)
    finally:
        db.close()


async def enqueue_cleanup_job(instance_ids: list[str]) -> str:
    """Queue the deletion on the ARQ worker and return the job id"""
    from arq import create_pool

    from ...worker import get_redis_settings

    pool = await create_pool(get_redis_settings())
    try:
        job = await pool.enqueue_job(CLEANUP_TASK_NAME, instance_ids)
        return job.job_id
    finally:
        await pool.close()


async def dispatch_orphan_cleanup(instance_ids: list[str], mode: str = ORPHAN_CLEANUP_MODE) -> None:
    """Hand orphaned ids to the configured cleanup backend"""
    if not instance_ids:
        return

    if mode == "disabled":
        logger.info(f"Orphan cleanup disabled - leaving {len(instance_ids)} instances in place")
        return

    if mode == "queue":
        try:
            job_id = await enqueue_cleanup_job(instance_ids)
            logger.info(f"📋 Orphan cleanup job queued: {job_id} ({len(instance_ids)} instances)")
            return
        except Exception as e:
            logger.warning(f"⚠️ Failed to queue orphan cleanup, deleting inline instead: {e}")

    await run_in_threadpool(run_inline_cleanup, instance_ids)


def get_orphan_cleanup_dispatcher():
    """Dependency returning the coroutine used to dispatch orphan cleanup"""
    return dispatch_orphan_cleanup
