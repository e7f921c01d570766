"""Schedule session repository - Database operations for templates and instances"""

from datetime import date, datetime
from typing import Iterable, Iterator, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import CurriculumTracking, ScheduleSession
from .policies import visibility_filter


class ScheduleSessionRepository:
    """Repository for schedule_sessions database operations"""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def get_instances_in_range(
        db: Session, viewer_id: str, role: Optional[str], start_date: date, end_date: date
    ) -> list[ScheduleSession]:
        """Dated instances between start_date and end_date visible to the viewer"""
        return (
            db.query(ScheduleSession)
            .filter(
                ScheduleSession.session_date.isnot(None),
                ScheduleSession.session_date >= start_date,
                ScheduleSession.session_date <= end_date,
                visibility_filter(viewer_id, role),
            )
            .all()
        )

    @staticmethod
    def get_templates_for_days(
        db: Session, viewer_id: str, role: Optional[str], days: Iterable[int]
    ) -> list[ScheduleSession]:
        """Templates on the given weekdays visible to the viewer"""
        days = list(days)
        if not days:
            return []
        return (
            db.query(ScheduleSession)
            .filter(
                ScheduleSession.session_date.is_(None),
                ScheduleSession.day_of_week.in_(days),
                visibility_filter(viewer_id, role),
            )
            .all()
        )

    @staticmethod
    def get_session_by_id(db: Session, session_id: str) -> Optional[ScheduleSession]:
        return db.query(ScheduleSession).filter(ScheduleSession.id == session_id).first()

    @staticmethod
    def get_sessions_by_ids(db: Session, session_ids: Iterable[str]) -> list[ScheduleSession]:
        session_ids = list(session_ids)
        if not session_ids:
            return []
        return db.query(ScheduleSession).filter(ScheduleSession.id.in_(session_ids)).all()

    @staticmethod
    def find_instance_by_slot(
        db: Session, student_id: str, provider_id: str, session_date: date, start_time
    ) -> Optional[ScheduleSession]:
        """The instance occupying a unique (student, provider, date, start) slot"""
        return (
            db.query(ScheduleSession)
            .filter(
                ScheduleSession.student_id == student_id,
                ScheduleSession.provider_id == provider_id,
                ScheduleSession.session_date == session_date,
                ScheduleSession.start_time == start_time,
            )
            .first()
        )

    @staticmethod
    def get_existing_instance_dates(
        db: Session, template: ScheduleSession, dates: Iterable[date]
    ) -> set[date]:
        """Dates whose instance slot (student, provider, date, start) is already taken"""
        dates = list(dates)
        if not dates:
            return set()
        rows = (
            db.query(ScheduleSession.session_date)
            .filter(
                ScheduleSession.student_id == template.student_id,
                ScheduleSession.provider_id == template.provider_id,
                ScheduleSession.start_time == template.start_time,
                ScheduleSession.session_date.in_(dates),
            )
            .all()
        )
        return {row[0] for row in rows if row[0] is not None}

    @staticmethod
    def iter_template_pages(db: Session, page_size: int) -> Iterator[list[ScheduleSession]]:
        """All complete templates, page by page in a stable order"""
        offset = 0
        while True:
            page = (
                db.query(ScheduleSession)
                .filter(
                    ScheduleSession.session_date.is_(None),
                    ScheduleSession.day_of_week.isnot(None),
                    ScheduleSession.start_time.isnot(None),
                    ScheduleSession.end_time.isnot(None),
                )
                .order_by(ScheduleSession.id)
                .offset(offset)
                .limit(page_size)
                .all()
            )
            if not page:
                return
            yield page
            if len(page) < page_size:
                return
            offset += page_size

    @staticmethod
    def get_curriculum(
        db: Session, session_ids: list[str], group_ids: list[str]
    ) -> list[CurriculumTracking]:
        """Curriculum rows linked to any of the sessions or groups"""
        criteria = []
        if session_ids:
            criteria.append(CurriculumTracking.session_id.in_(session_ids))
        if group_ids:
            criteria.append(CurriculumTracking.group_id.in_(group_ids))
        if not criteria:
            return []
        return db.query(CurriculumTracking).filter(or_(*criteria)).all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def insert_instance(db: Session, **values) -> ScheduleSession:
        """Insert one dated instance; IntegrityError propagates after rollback"""
        if values.get("session_date") is None:
            raise ValueError("Instances require a session_date")
        instance = ScheduleSession(**values)
        db.add(instance)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(instance)
        return instance

    @staticmethod
    def bulk_insert_instances(db: Session, rows: list[dict]) -> list[ScheduleSession]:
        instances = [ScheduleSession(**values) for values in rows]
        db.add_all(instances)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        for instance in instances:
            db.refresh(instance)
        return instances

    @staticmethod
    def update_instance_fields(db: Session, instance_id: str, **values) -> Optional[ScheduleSession]:
        """
        Update columns of a dated instance.

        The session_date filter keeps this path from ever touching a template;
        returns None when no instance row matched.
        """
        matched = (
            db.query(ScheduleSession)
            .filter(ScheduleSession.id == instance_id, ScheduleSession.session_date.isnot(None))
            .update({**values, "updated_at": datetime.now()}, synchronize_session=False)
        )
        if not matched:
            db.rollback()
            return None
        db.commit()
        instance = db.query(ScheduleSession).filter(ScheduleSession.id == instance_id).first()
        if instance is not None:
            db.refresh(instance)
        return instance

    @staticmethod
    def delete_orphaned_instances(db: Session, instance_ids: list[str]) -> int:
        """
        Delete incomplete instances by id.

        Templates and completed instances are never deleted here, and ids that
        are already gone are simply not counted.
        """
        if not instance_ids:
            return 0
        deleted = (
            db.query(ScheduleSession)
            .filter(
                ScheduleSession.id.in_(instance_ids),
                ScheduleSession.session_date.isnot(None),
                ScheduleSession.completed_at.is_(None),
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    @staticmethod
    def set_group(
        db: Session, session_ids: list[str], group_id: Optional[str], group_name: Optional[str]
    ) -> list[ScheduleSession]:
        """Tag (or clear) the named sessions in one transaction"""
        (
            db.query(ScheduleSession)
            .filter(ScheduleSession.id.in_(session_ids))
            .update(
                {"group_id": group_id, "group_name": group_name, "updated_at": datetime.now()},
                synchronize_session=False,
            )
        )
        db.commit()
        sessions = db.query(ScheduleSession).filter(ScheduleSession.id.in_(session_ids)).all()
        for session in sessions:
            db.refresh(session)
        return sessions

    @staticmethod
    def propagate_group_to_instances(
        db: Session,
        template: ScheduleSession,
        group_id: Optional[str],
        group_name: Optional[str],
        from_date: date,
    ) -> int:
        """Copy a template's group tag onto its live instances"""
        updated = (
            db.query(ScheduleSession)
            .filter(
                ScheduleSession.student_id == template.student_id,
                ScheduleSession.day_of_week == template.day_of_week,
                ScheduleSession.start_time == template.start_time,
                ScheduleSession.session_date.isnot(None),
                ScheduleSession.session_date >= from_date,
            )
            .update(
                {"group_id": group_id, "group_name": group_name, "updated_at": datetime.now()},
                synchronize_session=False,
            )
        )
        db.commit()
        return updated
