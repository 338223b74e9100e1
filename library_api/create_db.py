import logging

from .config import get_settings
from .database import Base, SessionLocal, engine
from . import models  # noqa: F401  registers the tables on Base.metadata
from .seed import seed_defaults


logger = logging.getLogger(__name__)


def init_db(bind=engine, session_factory=SessionLocal) -> None:
    """Create the tables and seed the default roles, permissions and admin account."""
    settings = get_settings()
    Base.metadata.create_all(bind)
    db = session_factory()
    try:
        seed_defaults(db, settings)
    finally:
        db.close()
    logger.info("Database and tables ready")


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)
    init_db()
