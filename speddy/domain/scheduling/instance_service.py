"""
Eager instance generation

Writes dated instances for a template ahead of time (by default until the end
of the school year) instead of waiting for the calendar to materialize them.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import TEMPLATE_PAGE_SIZE
from ...models import ScheduleSession
from .repository import ScheduleSessionRepository
from .sessions import STRUCTURAL_FIELDS, ScheduledSession
from .time_calculator import generation_end_date, occurrences

logger = logging.getLogger(__name__)


@dataclass
class InstanceGenerationResult:
    success: bool
    instances_created: int = 0
    instances: list[ScheduledSession] = field(default_factory=list)
    error: Optional[str] = None


class SessionInstanceService:
    """Service layer for generating stored instances from templates"""

    def __init__(
        self,
        db: Session,
        repo: Optional[ScheduleSessionRepository] = None,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.repo = repo or ScheduleSessionRepository()
        self.today = today

    @staticmethod
    def validate_template(template: ScheduleSession) -> Optional[str]:
        """Error message when the row cannot seed instances, else None"""
        if template.session_date is not None:
            return "Session already has a date - not a template"
        if not template.day_of_week or not template.start_time or not template.end_time:
            return "Template session must have day_of_week, start_time, and end_time"
        if not template.student_id or not template.provider_id:
            return "Template session must have student_id and provider_id"
        return None

    def create_instances_from_template(
        self,
        template: ScheduleSession,
        weeks_ahead: Optional[int] = None,
        until_date: Optional[date] = None,
    ) -> InstanceGenerationResult:
        """Store every missing occurrence of the template from today until the end date"""
        error = self.validate_template(template)
        if error:
            return InstanceGenerationResult(success=False, error=error)

        today = self.today()
        end_date = generation_end_date(today, weeks_ahead, until_date)
        dates = occurrences(template.day_of_week, today, end_date)
        if not dates:
            return InstanceGenerationResult(success=True)

        try:
            existing = self.repo.get_existing_instance_dates(self.db, template, dates)
        except SQLAlchemyError as e:
            self.db.rollback()
            return InstanceGenerationResult(
                success=False, error=f"Failed to check existing instances: {e}"
            )

        to_insert = [d for d in dates if d not in existing]
        if not to_insert:
            return InstanceGenerationResult(success=True)

        rows = [
            {
                **{name: getattr(template, name) for name in STRUCTURAL_FIELDS},
                "session_date": session_date,
                "group_id": template.group_id,
                "group_name": template.group_name,
                "template_id": template.id,
            }
            for session_date in to_insert
        ]

        try:
            created = self.repo.bulk_insert_instances(self.db, rows)
        except SQLAlchemyError as e:
            self.db.rollback()
            return InstanceGenerationResult(success=False, error=f"Failed to create instances: {e}")

        logger.info(f"✅ Created {len(created)} instances for template {template.id} until {end_date}")
        return InstanceGenerationResult(
            success=True,
            instances_created=len(created),
            instances=[ScheduledSession.from_row(row) for row in created],
        )

    def generate_instances_for_all_templates(
        self,
        weeks_ahead: Optional[int] = None,
        until_date: Optional[date] = None,
        page_size: int = TEMPLATE_PAGE_SIZE,
    ) -> dict:
        """Run eager generation for every complete template"""
        end_date = generation_end_date(self.today(), weeks_ahead, until_date)
        total = 0
        created = 0
        errors: list[str] = []

        try:
            templates = [t for page in self.repo.iter_template_pages(self.db, page_size) for t in page]
        except SQLAlchemyError as e:
            self.db.rollback()
            return {
                "total": 0,
                "created": 0,
                "errors": [f"Failed to fetch templates: {e}"],
                "end_date": end_date.isoformat(),
            }

        for template in templates:
            total += 1
            result = self.create_instances_from_template(template, until_date=end_date)
            if result.success:
                created += result.instances_created
            else:
                errors.append(f"Template {template.id}: {result.error}")

        logger.info(
            f"📅 Instance generation finished: {total} templates, {created} instances created, "
            f"{len(errors)} errors (until {end_date})"
        )
        return {"total": total, "created": created, "errors": errors, "end_date": end_date.isoformat()}
