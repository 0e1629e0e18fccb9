"""Initialize database tables."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from medreminder.db.config import engine as default_engine
from medreminder.models.intake_log import IntakeLogEntry  # noqa: F401
from medreminder.models.medicine import Medicine  # noqa: F401
from medreminder.models.occurrence import Occurrence  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables in the database."""
    target = engine or default_engine
    logger.info("Creating reminder tables...")
    SQLModel.metadata.create_all(target)
    logger.info("Reminder tables ready.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
