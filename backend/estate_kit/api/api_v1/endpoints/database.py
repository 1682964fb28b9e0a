"""
Database health endpoint
"""

from fastapi import APIRouter, HTTPException, status
import logging

from estate_kit.core.database import SessionLocal
from estate_kit.core.database_utils import database_health

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health")
def health():
    """
    Database connectivity and round-trip latency
    """
    health_status = database_health(SessionLocal)
    if health_status["status"] != "healthy":
        logger.error(f"Database unhealthy: {health_status['details']}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=health_status)
    return health_status
