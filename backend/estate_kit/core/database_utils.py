"""
Database utility functions for transactional scopes and health checks
"""

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Optional
import logging
import time

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

@contextmanager
def session_scope(session_factory: SessionFactory) -> Generator[Session, None, None]:
    """
    Transactional scope: commit on success, roll back on any error
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def check_database_connection(session_factory: Optional[sessionmaker] = None) -> bool:
    """
    Check if database connection is working
    """
    if session_factory is None:
        from estate_kit.core.database import SessionLocal
        session_factory = SessionLocal

    try:
        with session_scope(session_factory) as db:
            db.execute(text("SELECT 1"))
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False

def database_health(session_factory: SessionFactory) -> Dict[str, Any]:
    """
    Connection status and round-trip latency for the health endpoint
    """
    health_status: Dict[str, Any] = {"status": "unknown", "connection": False, "details": {}}

    try:
        with session_scope(session_factory) as db:
            start_time = time.time()
            db.execute(text("SELECT 1"))
            health_status["connection"] = True
            health_status["details"]["query_time_ms"] = round((time.time() - start_time) * 1000, 2)
        health_status["status"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["details"]["error"] = str(e)
        logger.error(f"Database health check failed: {e}")

    return health_status
