"""Scheduling router - FastAPI endpoints for calendar sessions and grouping"""

import logging
from datetime import date
from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile
from .cleanup_service import get_orphan_cleanup_dispatcher
from .generator_service import SessionGeneratorService
from .grouping_service import SessionGroupingService
from .instance_service import SessionInstanceService
from .persistence_service import SessionPersistenceService
from .policies import can_manage_session
from .repository import ScheduleSessionRepository
from .schemas import (
    GenerateInstancesRequest,
    GenerateInstancesResponse,
    GroupSessionsRequest,
    GroupSessionsResponse,
    PersistSessionsRequest,
    PersistSessionsResponse,
    SaveSessionResponse,
    SessionListResponse,
    SessionSchema,
    UngroupSessionsRequest,
    UngroupSessionsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["Sessions"])


def get_clock() -> Callable[[], date]:
    """Source of "today" for past/live decisions"""
    return date.today


def get_generator_service(
    db: Session = Depends(get_db), today: Callable[[], date] = Depends(get_clock)
) -> SessionGeneratorService:
    return SessionGeneratorService(db, today=today)


def get_persistence_service(db: Session = Depends(get_db)) -> SessionPersistenceService:
    return SessionPersistenceService(db)


def get_instance_service(
    db: Session = Depends(get_db), today: Callable[[], date] = Depends(get_clock)
) -> SessionInstanceService:
    return SessionInstanceService(db, today=today)


def get_grouping_service(
    db: Session = Depends(get_db), today: Callable[[], date] = Depends(get_clock)
) -> SessionGroupingService:
    return SessionGroupingService(db, today=today)


# ============================================================================
# CALENDAR
# ============================================================================


@router.get("", response_model=SessionListResponse)
async def get_sessions(
    background_tasks: BackgroundTasks,
    startDate: date = Query(...),
    endDate: date = Query(...),
    current_user: Profile = Depends(get_current_user),
    service: SessionGeneratorService = Depends(get_generator_service),
    dispatch_cleanup=Depends(get_orphan_cleanup_dispatcher),
):
    """Sessions for the current user's calendar, virtual instances included"""
    sessions = service.get_sessions_for_date_range(
        current_user.id, startDate, endDate, current_user.role
    )

    orphaned_ids = service.cleanup_queue.drain()
    if orphaned_ids:
        background_tasks.add_task(dispatch_cleanup, orphaned_ids)

    return SessionListResponse(sessions=[SessionSchema.from_session(s) for s in sessions])


@router.post("/instances", response_model=SaveSessionResponse)
async def save_session_instance(
    data: SessionSchema,
    current_user: Profile = Depends(get_current_user),
    service: SessionPersistenceService = Depends(get_persistence_service),
):
    """Store a completion, note or other instance change"""
    session = data.to_session()
    if session.session_date is None:
        raise HTTPException(status_code=400, detail="Cannot save a session without session_date")

    service.authorize(current_user.id, session)
    saved = service.save_session_instance(session)
    if saved is None:
        raise HTTPException(status_code=500, detail="Failed to save session")

    return SaveSessionResponse(success=True, session=SessionSchema.from_session(saved))


@router.post("/instances/persist", response_model=PersistSessionsResponse)
async def persist_sessions(
    data: PersistSessionsRequest,
    current_user: Profile = Depends(get_current_user),
    service: SessionPersistenceService = Depends(get_persistence_service),
):
    """Store any virtual sessions in the list (used before grouping them)"""
    sessions = [item.to_session() for item in data.sessions]
    for session in sessions:
        if session.session_date is None:
            raise HTTPException(
                status_code=400, detail="Cannot persist a session without session_date"
            )
        service.authorize(current_user.id, session)

    persisted = service.ensure_sessions_persisted(sessions)
    return PersistSessionsResponse(
        success=True, sessions=[SessionSchema.from_session(s) for s in persisted]
    )


@router.post("/templates/{template_id}/instances", response_model=GenerateInstancesResponse)
async def generate_template_instances(
    template_id: str,
    data: GenerateInstancesRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SessionInstanceService = Depends(get_instance_service),
):
    """Store upcoming instances of a template (until the school year ends by default)"""
    template = ScheduleSessionRepository.get_session_by_id(db, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template session not found")
    if not can_manage_session(current_user.id, template):
        raise HTTPException(status_code=403, detail="You can only generate instances for your own sessions")

    result = service.create_instances_from_template(
        template, weeks_ahead=data.weeksAhead, until_date=data.untilDate
    )
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)

    return GenerateInstancesResponse(
        success=True,
        instancesCreated=result.instances_created,
        instances=[SessionSchema.from_session(s) for s in result.instances],
    )


# ============================================================================
# GROUPING
# ============================================================================


@router.post("/group", response_model=GroupSessionsResponse)
async def group_sessions(
    data: GroupSessionsRequest,
    current_user: Profile = Depends(get_current_user),
    service: SessionGroupingService = Depends(get_grouping_service),
):
    """Group sessions together under one name"""
    group_id, sessions = service.group_sessions(
        current_user.id, data.sessionIds or [], data.groupName, data.groupId
    )
    return GroupSessionsResponse(
        success=True, groupId=group_id, sessions=[SessionSchema.from_row(s) for s in sessions]
    )


@router.post("/ungroup", response_model=UngroupSessionsResponse)
async def ungroup_sessions(
    data: UngroupSessionsRequest,
    current_user: Profile = Depends(get_current_user),
    service: SessionGroupingService = Depends(get_grouping_service),
):
    """Remove sessions from their group"""
    sessions = service.ungroup_sessions(current_user.id, data.sessionIds or [])
    return UngroupSessionsResponse(
        success=True, sessions=[SessionSchema.from_row(s) for s in sessions]
    )
