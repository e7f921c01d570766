"""
In-memory session records and their identity.

A session the calendar shows is either durable (a stored row, DurableRef) or
virtual (computed from a template for one date, EphemeralRef). The two are
separate types so that a virtual instance can never be written back under a
made-up id: persisting one always means inserting a new row.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, time
from typing import ClassVar, Optional, Union

from ...models import DeliveredBy, ScheduleSession


@dataclass(frozen=True)
class DurableRef:
    id: str

    kind: ClassVar[str] = "durable"


@dataclass(frozen=True)
class EphemeralRef:
    template_id: str
    session_date: date

    kind: ClassVar[str] = "ephemeral"


SessionRef = Union[DurableRef, EphemeralRef]

# Copied from the template when an instance is materialized or inserted
STRUCTURAL_FIELDS = (
    "provider_id",
    "student_id",
    "day_of_week",
    "start_time",
    "end_time",
    "service_type",
    "delivered_by",
    "assigned_to_specialist_id",
    "assigned_to_sea_id",
)

# The only columns an update of a durable instance may touch
MUTABLE_FIELDS = ("completed_at", "completed_by", "session_notes")

GROUP_FIELDS = ("group_id", "group_name")

TemplateKey = tuple[str, int, time]
SlotKey = tuple[str, date, time]


def template_key(student_id: str, day_of_week: int, start_time: time) -> TemplateKey:
    """Structural link between a template and its instances"""
    return (student_id, day_of_week, start_time)


@dataclass
class ScheduledSession:
    ref: SessionRef
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
    curriculum_tracking: Optional[list[dict]] = field(default=None)

    @property
    def id(self) -> Optional[str]:
        """Database id, None for virtual instances"""
        if isinstance(self.ref, DurableRef):
            return self.ref.id
        return None

    @property
    def is_persisted(self) -> bool:
        return isinstance(self.ref, DurableRef)

    @property
    def is_template(self) -> bool:
        return self.session_date is None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def template_key(self) -> TemplateKey:
        return template_key(self.student_id, self.day_of_week, self.start_time)

    @property
    def slot_key(self) -> SlotKey:
        return (self.student_id, self.session_date, self.start_time)

    @classmethod
    def from_row(cls, row: ScheduleSession) -> "ScheduledSession":
        return cls(
            ref=DurableRef(row.id),
            provider_id=row.provider_id,
            student_id=row.student_id,
            day_of_week=row.day_of_week,
            start_time=row.start_time,
            end_time=row.end_time,
            service_type=row.service_type,
            delivered_by=row.delivered_by,
            assigned_to_specialist_id=row.assigned_to_specialist_id,
            assigned_to_sea_id=row.assigned_to_sea_id,
            session_date=row.session_date,
            completed_at=row.completed_at,
            completed_by=row.completed_by,
            session_notes=row.session_notes,
            group_id=row.group_id,
            group_name=row.group_name,
            template_id=row.template_id,
            created_at=row.created_at,
        )

    @classmethod
    def materialize(cls, template: "ScheduledSession", session_date: date) -> "ScheduledSession":
        """Virtual instance of a stored template on one date"""
        if not isinstance(template.ref, DurableRef) or not template.is_template:
            raise ValueError("Only stored templates can be materialized")

        return cls(
            ref=EphemeralRef(template.ref.id, session_date),
            session_date=session_date,
            group_id=template.group_id,
            group_name=template.group_name,
            template_id=template.ref.id,
            created_at=datetime.now(),
            **{name: getattr(template, name) for name in STRUCTURAL_FIELDS},
        )

    def with_changes(self, **changes) -> "ScheduledSession":
        return replace(self, **changes)

    def insert_values(self, template: "ScheduledSession") -> dict:
        """
        Column values for inserting this virtual session as a durable instance.

        Structural columns come from the stored template; only the mutable and
        group fields are taken from this session.
        """
        values = {name: getattr(template, name) for name in STRUCTURAL_FIELDS}
        values.update({name: getattr(self, name) for name in MUTABLE_FIELDS})
        values.update({name: getattr(self, name) or None for name in GROUP_FIELDS})
        values["session_date"] = self.ref.session_date
        values["template_id"] = template.ref.id
        return values

    def mutable_values(self) -> dict:
        return {name: getattr(self, name) for name in MUTABLE_FIELDS}

    def to_dict(self) -> dict:
        result = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "ref"}
        result["id"] = self.id
        result["ref"] = self.ref
        return result
