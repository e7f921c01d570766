import asyncio
from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from speddy.domain.scheduling import cleanup_service
from speddy.domain.scheduling.cleanup_service import (
    OrphanCleanupQueue,
    delete_orphaned_instances,
    dispatch_orphan_cleanup,
)
from speddy.domain.scheduling.repository import ScheduleSessionRepository
from speddy.models import ScheduleSession
from tests.factories import FRIDAY, NEXT_WEDNESDAY, WEDNESDAY


class FailingDeleteRepository(ScheduleSessionRepository):
    def delete_orphaned_instances(self, *args, **kwargs):
        raise SQLAlchemyError("delete failed")


class TestOrphanCleanupQueue:
    def test_enqueue_deduplicates_in_order(self):
        queue = OrphanCleanupQueue()
        queue.enqueue(["a", "b"])
        queue.enqueue(["b", "c"])

        assert queue.pending == ["a", "b", "c"]
        assert len(queue) == 3

    def test_drain_empties_queue(self):
        queue = OrphanCleanupQueue()
        queue.enqueue(["a"])

        assert queue.drain() == ["a"]
        assert queue.drain() == []
        assert len(queue) == 0


class TestDeleteOrphanedInstances:
    def test_deletes_incomplete_instances_only(self, db, make_template, make_instance):
        template = make_template()
        orphan = make_instance(NEXT_WEDNESDAY)
        completed = make_instance(WEDNESDAY, completed_at=datetime(2025, 3, 12, 9, 30))

        deleted = delete_orphaned_instances(db, [orphan.id, completed.id, template.id])

        assert deleted == 1
        remaining = {row.id for row in db.query(ScheduleSession).all()}
        assert remaining == {template.id, completed.id}

    def test_already_deleted_rows_are_not_an_error(self, db, make_instance):
        orphan = make_instance(FRIDAY, day_of_week=5)

        assert delete_orphaned_instances(db, [orphan.id]) == 1
        assert delete_orphaned_instances(db, [orphan.id]) == 0

    def test_empty_list(self, db):
        assert delete_orphaned_instances(db, []) == 0

    def test_storage_failure_is_logged_not_raised(self, db, make_instance):
        orphan = make_instance(FRIDAY, day_of_week=5)

        assert delete_orphaned_instances(db, [orphan.id], repo=FailingDeleteRepository()) == 0
        assert db.query(ScheduleSession).count() == 1


class TestDispatch:
    @pytest.fixture
    def calls(self, monkeypatch):
        recorded = {"queued": [], "inline": []}

        async def fake_enqueue(instance_ids):
            recorded["queued"].append(instance_ids)
            return "job-1"

        def fake_inline(instance_ids):
            recorded["inline"].append(instance_ids)
            return len(instance_ids)

        monkeypatch.setattr(cleanup_service, "enqueue_cleanup_job", fake_enqueue)
        monkeypatch.setattr(cleanup_service, "run_inline_cleanup", fake_inline)
        return recorded

    def test_queue_mode_enqueues_job(self, calls):
        asyncio.run(dispatch_orphan_cleanup(["a"], mode="queue"))

        assert calls == {"queued": [["a"]], "inline": []}

    def test_queue_failure_falls_back_to_inline(self, calls, monkeypatch):
        async def unreachable(instance_ids):
            raise ConnectionError("redis down")

        monkeypatch.setattr(cleanup_service, "enqueue_cleanup_job", unreachable)

        asyncio.run(dispatch_orphan_cleanup(["a"], mode="queue"))

        assert calls["inline"] == [["a"]]

    def test_inline_mode(self, calls):
        asyncio.run(dispatch_orphan_cleanup(["a", "b"], mode="inline"))

        assert calls == {"queued": [], "inline": [["a", "b"]]}

    def test_disabled_mode_does_nothing(self, calls):
        asyncio.run(dispatch_orphan_cleanup(["a"], mode="disabled"))

        assert calls == {"queued": [], "inline": []}

    def test_nothing_to_dispatch(self, calls):
        asyncio.run(dispatch_orphan_cleanup([], mode="inline"))

        assert calls == {"queued": [], "inline": []}
