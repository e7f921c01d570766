"""
Session materialization

Builds the set of sessions a viewer sees for a date range: stored instances,
minus orphans whose template is gone, plus virtual instances for every
template occurrence that has no stored row yet. Nothing is written on this
path; orphans are only queued for cleanup.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Callable, Iterable, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .cleanup_service import OrphanCleanupQueue
from .policies import normalize_role
from .repository import ScheduleSessionRepository
from .sessions import ScheduledSession, SlotKey
from .time_calculator import iso_day_of_week, iter_dates, weekdays_in_range

logger = logging.getLogger(__name__)


class TemplateIndex:
    """Templates indexed by structural key and by weekday"""

    def __init__(self, templates: Iterable[ScheduledSession]):
        self._keys = set()
        self._by_day: dict[int, list[ScheduledSession]] = defaultdict(list)
        for template in templates:
            self._keys.add(template.template_key)
            self._by_day[template.day_of_week].append(template)

    def matches(self, instance: ScheduledSession) -> bool:
        return instance.template_key in self._keys

    def for_day(self, day_of_week: int) -> list[ScheduledSession]:
        return self._by_day.get(day_of_week, [])

    def __len__(self) -> int:
        return sum(len(templates) for templates in self._by_day.values())


class SessionGeneratorService:
    """Materializes calendar sessions from templates and stored instances"""

    def __init__(
        self,
        db: Session,
        repo: Optional[ScheduleSessionRepository] = None,
        cleanup_queue: Optional[OrphanCleanupQueue] = None,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.repo = repo or ScheduleSessionRepository()
        self.cleanup_queue = cleanup_queue if cleanup_queue is not None else OrphanCleanupQueue()
        self.today = today

    def get_sessions_for_date_range(
        self,
        viewer_id: str,
        start_date: date,
        end_date: date,
        viewer_role: Optional[str] = None,
    ) -> list[ScheduledSession]:
        """
        Sessions visible to the viewer between start_date and end_date.

        A failed instance fetch yields an empty list and a failed template fetch
        yields the stored instances alone; neither raises.
        """
        if start_date > end_date:
            raise HTTPException(status_code=400, detail="startDate must be on or before endDate")

        role = normalize_role(viewer_role)

        try:
            instance_rows = self.repo.get_instances_in_range(
                self.db, viewer_id, role, start_date, end_date
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"❌ Failed to fetch instances for viewer {viewer_id} "
                f"({start_date} - {end_date}): {e}"
            )
            return []

        instances = [ScheduledSession.from_row(row) for row in instance_rows]

        try:
            template_rows = self.repo.get_templates_for_days(
                self.db, viewer_id, role, weekdays_in_range(start_date, end_date)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to fetch templates for viewer {viewer_id}: {e}")
            return self._ordered(instances)

        index = TemplateIndex(ScheduledSession.from_row(row) for row in template_rows)

        sessions = self._drop_orphans(instances, index)
        sessions.extend(self._fill_gaps(sessions, index, start_date, end_date))
        self._attach_curriculum(sessions)

        logger.debug(
            f"Materialized {len(sessions)} sessions for viewer {viewer_id} "
            f"({len(instances)} stored, {len(index)} templates)"
        )
        return self._ordered(sessions)

    def _drop_orphans(
        self, instances: list[ScheduledSession], index: TemplateIndex
    ) -> list[ScheduledSession]:
        """Keep history and matched instances; queue the rest for deletion"""
        today = self.today()
        valid = []
        orphaned_ids = []

        for instance in instances:
            if instance.is_completed or instance.session_date < today:
                valid.append(instance)
            elif index.matches(instance):
                valid.append(instance)
            else:
                orphaned_ids.append(instance.id)
                logger.info(
                    f"Detected orphaned instance {instance.id}: student={instance.student_id} "
                    f"date={instance.session_date} start={instance.start_time} "
                    f"day={instance.day_of_week}"
                )

        if orphaned_ids:
            logger.warning(f"🧹 Queueing {len(orphaned_ids)} orphaned instances for cleanup")
            self.cleanup_queue.enqueue(orphaned_ids)

        return valid

    @staticmethod
    def _fill_gaps(
        sessions: list[ScheduledSession], index: TemplateIndex, start_date: date, end_date: date
    ) -> list[ScheduledSession]:
        """Virtual instances for template occurrences with no stored row"""
        existing: dict[SlotKey, ScheduledSession] = {s.slot_key: s for s in sessions}
        virtual = []

        for current in iter_dates(start_date, end_date):
            for template in index.for_day(iso_day_of_week(current)):
                key = (template.student_id, current, template.start_time)
                if key in existing:
                    continue
                instance = ScheduledSession.materialize(template, current)
                existing[key] = instance
                virtual.append(instance)

        return virtual

    def _attach_curriculum(self, sessions: list[ScheduledSession]) -> None:
        """Merge curriculum tracking by group (preferred) or by stored session id"""
        session_ids = [s.id for s in sessions if s.is_persisted]
        group_ids = sorted({s.group_id for s in sessions if s.group_id})
        if not session_ids and not group_ids:
            return

        try:
            rows = self.repo.get_curriculum(self.db, session_ids, group_ids)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to fetch curriculum tracking: {e}")
            return

        by_session: dict[str, list[dict]] = defaultdict(list)
        by_group: dict[str, list[dict]] = defaultdict(list)
        for row in rows:
            entry = {"curriculum_type": row.curriculum_type, "curriculum_level": row.curriculum_level}
            if row.session_id:
                by_session[row.session_id].append(entry)
            if row.group_id:
                by_group[row.group_id].append(entry)

        for session in sessions:
            if session.group_id and session.group_id in by_group:
                session.curriculum_tracking = by_group[session.group_id]
            elif session.is_persisted and session.id in by_session:
                session.curriculum_tracking = by_session[session.id]

    @staticmethod
    def _ordered(sessions: list[ScheduledSession]) -> list[ScheduledSession]:
        return sorted(sessions, key=lambda s: (s.session_date, s.start_time, s.student_id))
