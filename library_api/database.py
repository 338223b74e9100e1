import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base


DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./library.db"

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 10
# the offset stays within a 64-bit integer
MAX_PAGE = 1_000_000
MAX_PER_PAGE = 100


# get the database session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def to_positive_int(value: Optional[str], default: int, maximum: int) -> int:
    """Coerce a query-string value, falling back to ``default`` outside ``1..maximum``."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if 0 < number <= maximum else default


def paginate(query, page: Optional[str] = None, perpage: Optional[str] = None):
    page_number = to_positive_int(page, DEFAULT_PAGE, MAX_PAGE)
    per_page = to_positive_int(perpage, DEFAULT_PER_PAGE, MAX_PER_PAGE)
    return query.offset(per_page * (page_number - 1)).limit(per_page)
