# backend/mentorship/init_db.py
"""
Create all tables for the configured database.

    python -m mentorship.init_db
"""

import logging

from mentorship.core.config import settings
from mentorship.database import init_db

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    logger.info("Creating database tables...")
    init_db()
    logger.info("Tables created successfully")


if __name__ == "__main__":
    main()
