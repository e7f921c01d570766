"""
Role handling and authorization policies for schedule sessions.

Visibility decides which rows a viewer's calendar reads. The management policy
decides who may group, ungroup or generate instances for a session.
"""

from typing import Optional

from sqlalchemy import or_

from ...models import ScheduleSession

SEA_ROLE = "sea"

# Roles whose sessions may be delivered to them as an assigned specialist
SPECIALIST_SOURCE_ROLES = frozenset({"resource", "speech", "ot", "counseling", "specialist"})


def normalize_role(role: Optional[str]) -> str:
    return (role or "").strip().lower()


def is_specialist_source_role(role: Optional[str]) -> bool:
    return normalize_role(role) in SPECIALIST_SOURCE_ROLES


def visibility_filter(viewer_id: str, role: Optional[str]):
    """
    SQL criterion for the sessions a viewer sees.

    Specialist-source roles also see sessions assigned to them as specialist,
    SEAs see sessions assigned to them as SEA, everyone else only owned rows.
    """
    normalized = normalize_role(role)
    if is_specialist_source_role(normalized):
        return or_(
            ScheduleSession.provider_id == viewer_id,
            ScheduleSession.assigned_to_specialist_id == viewer_id,
        )
    if normalized == SEA_ROLE:
        return or_(
            ScheduleSession.provider_id == viewer_id,
            ScheduleSession.assigned_to_sea_id == viewer_id,
        )
    return ScheduleSession.provider_id == viewer_id


def can_manage_session(requester_id: str, session) -> bool:
    """
    Whether the requester may change a session's grouping or generate its instances.

    Owners manage their sessions; an assigned specialist or SEA manages the
    sessions they deliver. The delivered_by column alone is not trusted.
    """
    if not requester_id:
        return False
    return requester_id in (
        session.provider_id,
        session.assigned_to_specialist_id,
        session.assigned_to_sea_id,
    )


def unauthorized_session_ids(requester_id: str, sessions) -> list[str]:
    return [s.id for s in sessions if not can_manage_session(requester_id, s)]
