"""
Database connection and initialization utilities.
"""

import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from coordinator.config import DATABASE_URL, DB_ECHO

logger = logging.getLogger(__name__)

# Create engine
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    echo=DB_ECHO
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Initialize database - create all tables."""
    from coordinator.db.models import Base
    Base.metadata.create_all(bind=bind or engine)
    logger.info(f"Database initialized at: {(bind or engine).url}")

