"""
Maintenance tasks: Celery jobs and the in-process sweep of the memory backend
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import fakeredis
import pytest

from conftest import CHROME_UA, audit_rows
from estate_kit.models.audit import AuditEventType
from estate_kit.schemas.session import SessionRecord, UserProfile
from estate_kit.services.session_store import RedisSessionStore
from estate_kit.tasks import maintenance_tasks

pytestmark = pytest.mark.unit


def test_delegate_sweep_reports_count(monkeypatch):
    service = Mock()
    service.expire_overdue_delegates.return_value = 2
    monkeypatch.setattr(maintenance_tasks, "get_delegate_service", lambda: service)

    result = maintenance_tasks.expire_overdue_delegates.run()

    assert result == {"status": "success", "delegates_expired": 2}


def test_celery_session_cleanup_refuses_memory_backend(monkeypatch):
    monkeypatch.setattr(maintenance_tasks.settings, "SESSION_BACKEND", "memory")

    result = maintenance_tasks.cleanup_expired_sessions.run()

    assert result["status"] == "skipped"
    with pytest.raises(RuntimeError):
        asyncio.run(maintenance_tasks.cleanup_expired_sessions_async())


def test_celery_session_cleanup_purges_redis(monkeypatch, audit_service, metrics, session_factory):
    server = fakeredis.FakeServer()
    now = datetime.now(timezone.utc)
    stale = SessionRecord(
        session_id="stale",
        user_id="auth0|alice",
        user=UserProfile(user_id="auth0|alice"),
        device_fingerprint="fp",
        ip_address="203.0.113.10",
        created_at=now - timedelta(hours=3),
        last_accessed_at=now - timedelta(hours=3),
        expires_at=now + timedelta(hours=7),
    )

    async def seed():
        store = RedisSessionStore(fakeredis.FakeAsyncRedis(server=server, decode_responses=True))
        await store.create(stale, ttl=36000, max_sessions=3)
        await store.close()

    asyncio.run(seed())
    monkeypatch.setattr(maintenance_tasks.settings, "SESSION_BACKEND", "redis")
    monkeypatch.setattr(
        maintenance_tasks.RedisSessionStore,
        "from_url",
        classmethod(lambda cls, url: cls(fakeredis.FakeAsyncRedis(server=server, decode_responses=True))),
    )
    monkeypatch.setattr(maintenance_tasks, "get_audit_service", lambda: audit_service)
    monkeypatch.setattr(maintenance_tasks, "get_metrics", lambda: metrics)

    result = maintenance_tasks.cleanup_expired_sessions.run()

    assert result == {"status": "success", "sessions_removed": 1}
    assert len(audit_rows(session_factory, AuditEventType.SYSTEM_MAINTENANCE)) == 1


@pytest.mark.asyncio
async def test_in_process_sweep_cleans_the_live_store(session_manager, session_store, session_factory):
    await session_manager.authenticate("token-alice", "203.0.113.10", CHROME_UA)
    session_manager.clock.advance(2 * session_manager.session_ttl)

    sweeper = asyncio.create_task(
        maintenance_tasks.sweep_sessions_periodically(lambda: session_manager, 0.01)
    )
    try:
        for _ in range(200):
            if audit_rows(session_factory, AuditEventType.SYSTEM_MAINTENANCE):
                break
            await asyncio.sleep(0.01)
    finally:
        sweeper.cancel()

    entries = audit_rows(session_factory, AuditEventType.SYSTEM_MAINTENANCE)
    assert len(entries) == 1
    assert entries[0].details["removed"] == 1
    assert await session_store.count_user_sessions("auth0|alice") == 0


@pytest.mark.asyncio
async def test_in_process_sweep_survives_failures():
    manager = Mock()
    calls = 0

    async def failing_cleanup():
        nonlocal calls
        calls += 1
        raise ConnectionError("store unavailable")

    manager.cleanup_expired_sessions = failing_cleanup
    sweeper = asyncio.create_task(maintenance_tasks.sweep_sessions_periodically(lambda: manager, 0.01))
    await asyncio.sleep(0.1)
    sweeper.cancel()

    assert calls > 1
