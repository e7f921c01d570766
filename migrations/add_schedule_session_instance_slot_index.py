"""
Add instance bookkeeping to schedule_sessions

Changes:
- template_id VARCHAR(36) back-reference on generated instances
- idx_schedule_sessions_day_template (day_of_week, session_date) for template lookups
- idx_schedule_sessions_slot (student_id, day_of_week, start_time)
- uq_schedule_sessions_instance_slot, unique on
  (student_id, provider_id, session_date, start_time) for dated rows only

Duplicate instances must be removed before the unique index can be built;
the oldest row of each slot is kept, completed rows win over incomplete ones.
"""

# Ensure this script can be run directly from repo root
import sys
from pathlib import Path

CURRENT_DIR = Path(__file__).resolve().parent
ROOT_DIR = CURRENT_DIR.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import text
from speddy.database import engine


def upgrade():
    with engine.connect() as conn:
        conn.execute(
            text(
                """
                ALTER TABLE schedule_sessions
                ADD COLUMN IF NOT EXISTS template_id VARCHAR(36);
                """
            )
        )
        conn.execute(
            text(
                """
                CREATE INDEX IF NOT EXISTS idx_schedule_sessions_day_template
                ON schedule_sessions (day_of_week, session_date);
                """
            )
        )
        conn.execute(
            text(
                """
                CREATE INDEX IF NOT EXISTS idx_schedule_sessions_slot
                ON schedule_sessions (student_id, day_of_week, start_time);
                """
            )
        )

        removed = conn.execute(
            text(
                """
                DELETE FROM schedule_sessions
                WHERE id IN (
                    SELECT id FROM (
                        SELECT id, ROW_NUMBER() OVER (
                            PARTITION BY student_id, provider_id, session_date, start_time
                            ORDER BY (completed_at IS NULL), created_at, id
                        ) AS rn
                        FROM schedule_sessions
                        WHERE session_date IS NOT NULL
                    ) ranked
                    WHERE ranked.rn > 1
                );
                """
            )
        )
        print(f"🧹 Removed {removed.rowcount} duplicate session instances")

        conn.execute(
            text(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS uq_schedule_sessions_instance_slot
                ON schedule_sessions (student_id, provider_id, session_date, start_time)
                WHERE session_date IS NOT NULL;
                """
            )
        )
        conn.commit()
        print("✅ Migration add_schedule_session_instance_slot_index applied successfully")


def downgrade():
    with engine.connect() as conn:
        conn.execute(text("DROP INDEX IF EXISTS uq_schedule_sessions_instance_slot"))
        conn.execute(text("DROP INDEX IF EXISTS idx_schedule_sessions_slot"))
        conn.execute(text("DROP INDEX IF EXISTS idx_schedule_sessions_day_template"))
        conn.execute(text("ALTER TABLE schedule_sessions DROP COLUMN IF EXISTS template_id"))
        conn.commit()
        print("Migration add_schedule_session_instance_slot_index rolled back")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage schedule session instance slot migration")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        downgrade()
    else:
        upgrade()
