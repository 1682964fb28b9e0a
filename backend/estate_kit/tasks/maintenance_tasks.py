"""
Background tasks for session and delegate housekeeping
"""

import logging
import asyncio
from typing import Any, Callable, Dict
from celery import shared_task

from estate_kit.api.deps import get_audit_service, get_delegate_service, get_metrics
from estate_kit.core.config import settings
from estate_kit.services.session_manager import SessionManager
from estate_kit.services.session_store import RedisSessionStore

logger = logging.getLogger(__name__)


async def sweep_sessions_periodically(get_manager: Callable[[], SessionManager], interval: float) -> None:
    """
    In-process cleanup loop for the memory session backend, whose sessions
    only exist inside the API process. Runs until cancelled.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await get_manager().cleanup_expired_sessions()
        except Exception as e:
            logger.error(f"In-process session cleanup failed: {e}")


async def cleanup_expired_sessions_async() -> int:
    """
    Run one cleanup pass against Redis with a client bound to the current event loop
    """
    if settings.SESSION_BACKEND == "memory":
        raise RuntimeError("The memory session backend is swept inside the API process, not by Celery")

    store = RedisSessionStore.from_url(settings.REDIS_URL)

    # Cleanup never talks to the identity provider
    manager = SessionManager(
        identity_provider=None,
        store=store,
        audit=get_audit_service(),
        metrics=get_metrics(),
        session_ttl=settings.SESSION_TTL_SECONDS,
        max_concurrent_sessions=settings.MAX_CONCURRENT_SESSIONS,
        dependency_timeout=settings.DEPENDENCY_TIMEOUT_SECONDS,
    )
    try:
        return await manager.cleanup_expired_sessions()
    finally:
        await store.close()


@shared_task(bind=True, max_retries=3)
def cleanup_expired_sessions(self) -> Dict[str, Any]:
    """
    Remove sessions whose last access is older than the session TTL

    Returns:
        Dict with the number of sessions removed
    """
    if settings.SESSION_BACKEND == "memory":
        logger.warning("Skipping Celery session cleanup: the memory backend is swept by the API process")
        return {'status': 'skipped', 'reason': 'memory session backend'}

    try:
        removed = asyncio.run(cleanup_expired_sessions_async())
        return {'status': 'success', 'sessions_removed': removed}
    except Exception as e:
        logger.error(f"Session cleanup failed: {e}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))


@shared_task(bind=True, max_retries=3)
def expire_overdue_delegates(self) -> Dict[str, Any]:
    """
    Mark pending and active delegates past their expiry as expired

    Returns:
        Dict with the number of delegates expired
    """
    try:
        expired = get_delegate_service().expire_overdue_delegates()
        return {'status': 'success', 'delegates_expired': expired}
    except Exception as e:
        logger.error(f"Delegate expiry sweep failed: {e}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))
