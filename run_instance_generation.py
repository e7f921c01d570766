"""
Generate stored session instances for every template
Usage: python run_instance_generation.py [--weeks N | --until YYYY-MM-DD]
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from speddy.database import SessionLocal
from speddy.domain.scheduling.instance_service import SessionInstanceService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def main(weeks_ahead=None, until_date=None) -> int:
    db = SessionLocal()
    try:
        result = SessionInstanceService(db).generate_instances_for_all_templates(
            weeks_ahead=weeks_ahead, until_date=until_date
        )
    finally:
        db.close()

    logger.info(
        f"📋 Templates: {result['total']}, instances created: {result['created']}, "
        f"until: {result['end_date']}"
    )
    for error in result["errors"]:
        logger.error(f"❌ {error}")
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate session instances from templates")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--weeks", type=int, help="Weeks ahead to generate")
    group.add_argument("--until", type=date.fromisoformat, help="Last date to generate (inclusive)")
    args = parser.parse_args()

    try:
        sys.exit(main(weeks_ahead=args.weeks, until_date=args.until))
    except Exception as e:
        logger.error(f"❌ Instance generation failed: {e}")
        sys.exit(1)
