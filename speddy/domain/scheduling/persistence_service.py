"""
Instance persistence

Turns virtual instances into stored rows on their first mutation and updates
the mutable fields of stored instances. Templates are never written here.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .policies import can_manage_session
from .repository import ScheduleSessionRepository
from .sessions import DurableRef, EphemeralRef, ScheduledSession, template_key

logger = logging.getLogger(__name__)


class SessionPersistenceService:
    """Service layer for saving session instances"""

    def __init__(self, db: Session, repo: Optional[ScheduleSessionRepository] = None):
        self.db = db
        self.repo = repo or ScheduleSessionRepository()

    def authorize(self, requester_id: str, session: ScheduledSession) -> None:
        """
        Check a client-supplied session against what is stored.

        Stored instances must exist, be instances and be manageable by the
        requester; virtual instances must come from a manageable template and
        keep its student, weekday and start time on a date that falls on that
        weekday.
        """
        if isinstance(session.ref, DurableRef):
            row = self.repo.get_session_by_id(self.db, session.ref.id)
            if row is None:
                raise HTTPException(status_code=404, detail="Session not found")
            if row.session_date is None:
                raise HTTPException(
                    status_code=400, detail="Templates cannot be saved as session instances"
                )
        else:
            row = self.repo.get_session_by_id(self.db, session.ref.template_id)
            if row is None or row.session_date is not None:
                raise HTTPException(status_code=404, detail="Template session not found")
            if template_key(row.student_id, row.day_of_week, row.start_time) != session.template_key:
                raise HTTPException(status_code=400, detail="Session does not match its template")
            if session.session_date != session.ref.session_date:
                raise HTTPException(status_code=400, detail="Session date does not match its reference")
            if session.ref.session_date.isoweekday() != row.day_of_week:
                raise HTTPException(
                    status_code=400, detail="Session date does not fall on its template's weekday"
                )

        if not can_manage_session(requester_id, row):
            logger.warning(f"⚠️ User {requester_id} attempted to save session {session.ref}")
            raise HTTPException(status_code=403, detail="You can only update your own sessions")

    def save_session_instance(self, session: ScheduledSession) -> Optional[ScheduledSession]:
        """
        Insert a virtual instance or update a stored one.

        Returns the stored instance, or None when the session is not an
        instance (no session_date) or the write failed.
        """
        if session.session_date is None:
            logger.error(
                f"❌ Refusing to save session {session.ref} without session_date "
                f"(templates cannot be saved as instances)"
            )
            return None

        if isinstance(session.ref, EphemeralRef):
            return self._insert_instance(session)
        return self._update_instance(session.ref, session.mutable_values())

    def _load_template(self, session: ScheduledSession) -> Optional[ScheduledSession]:
        try:
            row = self.repo.get_session_by_id(self.db, session.ref.template_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error loading template {session.ref.template_id}: {e}")
            return None

        if row is None or row.session_date is not None:
            logger.error(f"❌ Template {session.ref.template_id} not found - instance not created")
            return None
        if session.ref.session_date.isoweekday() != row.day_of_week:
            logger.error(
                f"❌ {session.ref.session_date} is not on weekday {row.day_of_week} "
                f"of template {row.id} - instance not created"
            )
            return None
        return ScheduledSession.from_row(row)

    def _insert_instance(self, session: ScheduledSession) -> Optional[ScheduledSession]:
        template = self._load_template(session)
        if template is None:
            return None

        values = session.insert_values(template)
        logger.info(
            f"Inserting session instance: student={values['student_id']} "
            f"provider={values['provider_id']} date={values['session_date']} start={values['start_time']}"
        )

        try:
            row = self.repo.insert_instance(self.db, **values)
        except IntegrityError:
            # Another request promoted the same virtual instance first
            logger.info(
                f"Instance slot already taken for student={values['student_id']} "
                f"date={values['session_date']} start={values['start_time']} - updating winner"
            )
            return self._update_existing_slot(values, session)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error creating session instance {values}: {e}", exc_info=True)
            return None

        logger.info(f"✅ Created session instance {row.id}")
        return ScheduledSession.from_row(row)

    def _update_existing_slot(self, values: dict, session: ScheduledSession) -> Optional[ScheduledSession]:
        try:
            winner = self.repo.find_instance_by_slot(
                self.db,
                values["student_id"],
                values["provider_id"],
                values["session_date"],
                values["start_time"],
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error locating conflicting session instance: {e}")
            return None

        if winner is None:
            logger.error(
                f"❌ Duplicate instance reported but no row found for student={values['student_id']} "
                f"date={values['session_date']} start={values['start_time']}"
            )
            return None

        # Fields the losing request left empty keep the winner's values
        changes = {name: value for name, value in session.mutable_values().items() if value is not None}
        if not changes:
            return ScheduledSession.from_row(winner)
        return self._update_instance(DurableRef(winner.id), changes)

    def _update_instance(self, ref: DurableRef, changes: dict) -> Optional[ScheduledSession]:
        try:
            row = self.repo.update_instance_fields(self.db, ref.id, **changes)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Error updating session instance {ref.id}: {e}", exc_info=True)
            return None

        if row is None:
            logger.error(f"❌ Session instance {ref.id} not found or is a template - not updated")
            return None
        return ScheduledSession.from_row(row)

    def ensure_sessions_persisted(self, sessions: list[ScheduledSession]) -> list[ScheduledSession]:
        """Store every virtual session in the list, keeping input order"""
        persisted = []
        for session in sessions:
            if session.is_persisted:
                persisted.append(session)
                continue

            saved = self.save_session_instance(session)
            if saved is None:
                raise HTTPException(status_code=500, detail="Failed to persist sessions")
            persisted.append(saved)

        promoted = sum(1 for s in sessions if not s.is_persisted)
        if promoted:
            logger.info(f"✅ Persisted {promoted} temporary sessions")
        return persisted

    def mark_completed(
        self, session: ScheduledSession, completed_by: str, completed_at: Optional[datetime] = None
    ) -> Optional[ScheduledSession]:
        return self.save_session_instance(
            session.with_changes(completed_at=completed_at or datetime.now(), completed_by=completed_by)
        )

    def mark_incomplete(self, session: ScheduledSession) -> Optional[ScheduledSession]:
        return self.save_session_instance(session.with_changes(completed_at=None, completed_by=None))

    def update_notes(self, session: ScheduledSession, notes: Optional[str]) -> Optional[ScheduledSession]:
        return self.save_session_instance(session.with_changes(session_notes=notes or None))
