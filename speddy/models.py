"""
Scheduling models

A schedule_sessions row is either a recurring weekly template (session_date is
NULL) or a dated instance of one. Instances are linked to their template only
structurally, by (student_id, day_of_week, start_time), so that an instance
outlives the deletion of its template.
"""

import uuid

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, Text, Time, text
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID primary key"""
    return str(uuid.uuid4())


class DeliveredBy:
    PROVIDER = "provider"
    SPECIALIST = "specialist"
    SEA = "sea"

    ALL = (PROVIDER, SPECIALIST, SEA)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    # provider, resource, speech, ot, counseling, specialist, sea, site_admin, district_admin...
    role = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Profile {self.id} {self.role}>"


class ScheduleSession(Base):
    """A recurring template or one dated occurrence of it"""

    __tablename__ = "schedule_sessions"

    id = Column(String(36), primary_key=True, default=generate_id)

    # Ownership
    provider_id = Column(String(36), nullable=False, index=True)
    student_id = Column(String(36), nullable=False, index=True)

    # Weekly slot (1 = Monday ... 7 = Sunday)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    service_type = Column(String(100), nullable=False, default="")

    # Delivery assignment: provider, specialist or sea
    delivered_by = Column(String(20), nullable=False, default=DeliveredBy.PROVIDER)
    assigned_to_specialist_id = Column(String(36), nullable=True, index=True)
    assigned_to_sea_id = Column(String(36), nullable=True, index=True)

    # NULL for templates, the concrete date for instances
    session_date = Column(Date, nullable=True, index=True)

    # Instance state
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(String(36), nullable=True)
    session_notes = Column(Text, nullable=True)

    # Group tag shared by sessions delivered together
    group_id = Column(String(36), nullable=True, index=True)
    group_name = Column(String(255), nullable=True)

    # Set by eager generation for reference only; matching never uses it
    template_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # Template lookups by weekday
        Index("idx_schedule_sessions_day_template", "day_of_week", "session_date"),
        # Structural template <-> instance match
        Index("idx_schedule_sessions_slot", "student_id", "day_of_week", "start_time"),
        # One durable instance per student slot and date
        Index(
            "uq_schedule_sessions_instance_slot",
            "student_id",
            "provider_id",
            "session_date",
            "start_time",
            unique=True,
            postgresql_where=text("session_date IS NOT NULL"),
            sqlite_where=text("session_date IS NOT NULL"),
        ),
    )

    @property
    def is_template(self) -> bool:
        return self.session_date is None

    def __repr__(self):
        kind = "template" if self.session_date is None else str(self.session_date)
        return f"<ScheduleSession {self.id} {kind} day={self.day_of_week} {self.start_time}>"


class CurriculumTracking(Base):
    """Curriculum progress attached to a session or to a whole group"""

    __tablename__ = "curriculum_tracking"

    id = Column(String(36), primary_key=True, default=generate_id)
    session_id = Column(String(36), nullable=True, index=True)
    group_id = Column(String(36), nullable=True, index=True)
    curriculum_type = Column(String(100), nullable=False)
    curriculum_level = Column(String(100), nullable=False)

    created_at = Column(DateTime, server_default=func.now())
