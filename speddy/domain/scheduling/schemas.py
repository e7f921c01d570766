"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ...models import DeliveredBy, ScheduleSession
from ...shared.validators import validate_day_of_week
from .sessions import DurableRef, EphemeralRef, ScheduledSession


class DurableRefSchema(BaseModel):
    kind: Literal["durable"] = "durable"
    id: str


class EphemeralRefSchema(BaseModel):
    kind: Literal["ephemeral"] = "ephemeral"
    templateId: str
    sessionDate: date


SessionRefSchema = Annotated[Union[DurableRefSchema, EphemeralRefSchema], Field(discriminator="kind")]


class CurriculumEntry(BaseModel):
    curriculum_type: str
    curriculum_level: str


class SessionSchema(BaseModel):
    """A template, stored instance or virtual instance as the calendar sees it"""

    id: Optional[str] = None
    ref: SessionRefSchema
    provider_id: str
    student_id: str
    day_of_week: int
    start_time: time
    end_time: time
    service_type: str = ""
    delivered_by: str = DeliveredBy.PROVIDER
    assigned_to_specialist_id: Optional[str] = None
    assigned_to_sea_id: Optional[str] = None
    session_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    session_notes: Optional[str] = None
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    template_id: Optional[str] = None
    created_at: Optional[datetime] = None
    curriculum_tracking: Optional[list[CurriculumEntry]] = None

    @field_validator("day_of_week")
    @classmethod
    def validate_day(cls, v):
        return validate_day_of_week(v)

    @field_validator("delivered_by")
    @classmethod
    def validate_delivered_by(cls, v):
        if v not in DeliveredBy.ALL:
            raise ValueError(f"delivered_by must be one of {', '.join(DeliveredBy.ALL)}")
        return v

    @classmethod
    def from_session(cls, session: ScheduledSession) -> "SessionSchema":
        if isinstance(session.ref, DurableRef):
            ref = DurableRefSchema(id=session.ref.id)
        else:
            ref = EphemeralRefSchema(
                templateId=session.ref.template_id, sessionDate=session.ref.session_date
            )
        data = session.to_dict()
        data["ref"] = ref
        return cls(**data)

    @classmethod
    def from_row(cls, row: ScheduleSession) -> "SessionSchema":
        return cls.from_session(ScheduledSession.from_row(row))

    def to_session(self) -> ScheduledSession:
        if isinstance(self.ref, DurableRefSchema):
            ref = DurableRef(self.ref.id)
            session_date = self.session_date
        else:
            ref = EphemeralRef(self.ref.templateId, self.ref.sessionDate)
            session_date = self.session_date or self.ref.sessionDate

        return ScheduledSession(
            ref=ref,
            provider_id=self.provider_id,
            student_id=self.student_id,
            day_of_week=self.day_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
            service_type=self.service_type,
            delivered_by=self.delivered_by,
            assigned_to_specialist_id=self.assigned_to_specialist_id,
            assigned_to_sea_id=self.assigned_to_sea_id,
            session_date=session_date,
            completed_at=self.completed_at,
            completed_by=self.completed_by,
            session_notes=self.session_notes,
            group_id=self.group_id,
            group_name=self.group_name,
            template_id=self.template_id or (ref.template_id if isinstance(ref, EphemeralRef) else None),
            created_at=self.created_at,
        )


class SessionListResponse(BaseModel):
    sessions: list[SessionSchema]


class SaveSessionResponse(BaseModel):
    success: bool
    session: SessionSchema


class PersistSessionsRequest(BaseModel):
    sessions: list[SessionSchema]


class PersistSessionsResponse(BaseModel):
    success: bool
    sessions: list[SessionSchema]


class GroupSessionsRequest(BaseModel):
    """Body of POST /api/sessions/group; counts and names are checked by the service"""

    sessionIds: Optional[list[str]] = None
    groupName: Optional[str] = None
    groupId: Optional[str] = None


class GroupSessionsResponse(BaseModel):
    success: bool
    groupId: str
    sessions: list[SessionSchema]


class UngroupSessionsRequest(BaseModel):
    sessionIds: Optional[list[str]] = None


class UngroupSessionsResponse(BaseModel):
    success: bool
    sessions: list[SessionSchema]


class GenerateInstancesRequest(BaseModel):
    weeksAhead: Optional[int] = Field(None, ge=1, le=60)
    untilDate: Optional[date] = None


class GenerateInstancesResponse(BaseModel):
    success: bool
    instancesCreated: int
    instances: list[SessionSchema]
