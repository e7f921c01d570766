"""
Session grouping

Tags a set of sessions with a shared group id and name (or clears the tag),
then carries the change over to the live instances of every template in the
set. Authorization is checked for every session before anything is written.
"""

import logging
import uuid
from datetime import date
from typing import Callable, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...analytics import measure_performance, track_event
from ...models import ScheduleSession
from ...shared.validators import validate_group_name
from .policies import unauthorized_session_ids
from .repository import ScheduleSessionRepository

logger = logging.getLogger(__name__)


class SessionGroupingService:
    """Service layer for grouping and ungrouping sessions"""

    def __init__(
        self,
        db: Session,
        repo: Optional[ScheduleSessionRepository] = None,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.repo = repo or ScheduleSessionRepository()
        self.today = today

    def group_sessions(
        self,
        requester_id: str,
        session_ids: list[str],
        group_name: Optional[str],
        group_id: Optional[str] = None,
    ) -> tuple[str, list[ScheduleSession]]:
        """Tag the sessions with one group; returns (group_id, updated sessions)"""
        perf = measure_performance("group_sessions", "api")
        session_ids = self._unique(session_ids)

        if len(session_ids) < 2:
            perf.end(success=False, error="validation")
            raise HTTPException(
                status_code=400, detail="At least 2 session IDs are required to create a group"
            )
        try:
            group_name = validate_group_name(group_name)
        except ValueError as e:
            perf.end(success=False, error="validation")
            raise HTTPException(status_code=400, detail=str(e)) from e

        group_id = group_id or str(uuid.uuid4())
        logger.info(
            f"Grouping {len(session_ids)} sessions for user {requester_id} "
            f"as '{group_name}' ({group_id})"
        )

        self._authorize(requester_id, session_ids, "group", perf)

        try:
            updated = self.repo.set_group(self.db, session_ids, group_id, group_name)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"❌ Error updating sessions with group info: user={requester_id} "
                f"sessions={session_ids} group={group_id} error={e}"
            )
            track_event(
                "session_grouping_failed",
                userId=requester_id,
                error=str(e),
                sessionCount=len(session_ids),
            )
            perf.end(success=False, error="database")
            raise HTTPException(status_code=500, detail="Failed to group sessions") from e

        self._propagate(updated, group_id, group_name, requester_id)

        logger.info(f"✅ Sessions grouped: user={requester_id} group={group_id} count={len(updated)}")
        track_event(
            "sessions_grouped",
            userId=requester_id,
            groupId=group_id,
            groupName=group_name,
            sessionCount=len(updated),
        )
        perf.end(success=True, groupId=group_id, sessionCount=len(updated))
        return group_id, updated

    def ungroup_sessions(self, requester_id: str, session_ids: list[str]) -> list[ScheduleSession]:
        """Clear the group tag from the sessions and their live instances"""
        perf = measure_performance("ungroup_sessions", "api")
        session_ids = self._unique(session_ids)

        if not session_ids:
            perf.end(success=False, error="validation")
            raise HTTPException(status_code=400, detail="At least 1 session ID is required")

        logger.info(f"Ungrouping {len(session_ids)} sessions for user {requester_id}")

        self._authorize(requester_id, session_ids, "ungroup", perf)

        try:
            updated = self.repo.set_group(self.db, session_ids, None, None)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"❌ Error clearing group info: user={requester_id} sessions={session_ids} error={e}"
            )
            track_event(
                "session_ungrouping_failed",
                userId=requester_id,
                error=str(e),
                sessionCount=len(session_ids),
            )
            perf.end(success=False, error="database")
            raise HTTPException(status_code=500, detail="Failed to ungroup sessions") from e

        self._propagate(updated, None, None, requester_id)

        logger.info(f"✅ Sessions ungrouped: user={requester_id} count={len(updated)}")
        track_event("sessions_ungrouped", userId=requester_id, sessionCount=len(updated))
        perf.end(success=True, sessionCount=len(updated))
        return updated

    def _authorize(self, requester_id: str, session_ids: list[str], action: str, perf) -> None:
        """Every named session must exist and be manageable by the requester"""
        try:
            sessions = self.repo.get_sessions_by_ids(self.db, session_ids)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"❌ Error fetching sessions to {action}: user={requester_id} "
                f"sessions={session_ids} error={e}"
            )
            perf.end(success=False, error="database")
            raise HTTPException(status_code=500, detail="Failed to fetch sessions") from e

        found = {s.id for s in sessions}
        missing = [sid for sid in session_ids if sid not in found]
        if missing:
            logger.warning(f"⚠️ Sessions not found for {action}: user={requester_id} missing={missing}")
            perf.end(success=False, error="not_found")
            raise HTTPException(status_code=404, detail="One or more sessions were not found")

        rejected = unauthorized_session_ids(requester_id, sessions)
        if rejected:
            logger.warning(
                f"⚠️ Attempted to {action} sessions not owned or assigned: "
                f"user={requester_id} rejected={rejected}"
            )
            perf.end(success=False, error="forbidden")
            raise HTTPException(
                status_code=403,
                detail=f"You can only {action} sessions that you own or are assigned to deliver",
            )

    def _propagate(
        self,
        sessions: list[ScheduleSession],
        group_id: Optional[str],
        group_name: Optional[str],
        requester_id: str,
    ) -> None:
        """Best-effort copy of the tag onto live instances of each template"""
        today = self.today()
        templates = [s for s in sessions if s.session_date is None]

        for template in templates:
            try:
                count = self.repo.propagate_group_to_instances(
                    self.db, template, group_id, group_name, today
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(
                    f"⚠️ Failed to update instances for template {template.id}: "
                    f"user={requester_id} group={group_id} error={e}"
                )
                continue
            logger.debug(f"Updated {count} instances of template {template.id}")

        if templates:
            logger.info(
                f"Updated live instances of {len(templates)} templates: "
                f"user={requester_id} group={group_id}"
            )

    @staticmethod
    def _unique(session_ids) -> list[str]:
        if not isinstance(session_ids, list):
            return []
        return list(dict.fromkeys(sid for sid in session_ids if isinstance(sid, str) and sid))
