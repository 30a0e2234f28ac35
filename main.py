"""
Planner Sync — Entry Point.

Daily job: `python main.py` (from cron) generates today's recurring task
instances and removes old completed ones.
"""

import logging

from src.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.core.scheduler import main

if __name__ == "__main__":
    main()
