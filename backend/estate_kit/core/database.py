"""
Database configuration and session management
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import logging

from estate_kit.core.config import settings, DATABASE_URL
from estate_kit.models.base import Base

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False):
    """
    Create a SQLAlchemy engine. An in-memory SQLite database lives on a
    single shared connection; file databases get a connection per thread.
    """
    if url.startswith("sqlite"):
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            poolclass=StaticPool if in_memory else None,
            echo=echo,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=10,
        max_overflow=20,
        echo=echo,  # Log SQL queries in debug mode
    )


# Shared engine for the API process
engine = build_engine(DATABASE_URL, echo=settings.DEBUG)

# Create SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False  # Keep objects accessible after commit
)

def create_tables(bind=None):
    """
    Create all database tables
    Note: In production, use Alembic migrations instead
    """
    import estate_kit.models  # noqa: F401  registers every table on Base.metadata

    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise
