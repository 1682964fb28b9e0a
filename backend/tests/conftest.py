"""
Shared fixtures: per-test SQLite database, frozen clock, fake identity provider
and fully wired services.
"""

import os

# Must be set before estate_kit.core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "test")

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry
from sqlalchemy.orm import sessionmaker

import estate_kit.models  # noqa: F401
from estate_kit.core.database import build_engine
from estate_kit.core.encryption import FieldEncryption
from estate_kit.core.exceptions import AuthenticationError
from estate_kit.core.metrics import PrometheusMetrics
from estate_kit.models.audit import AuditLog
from estate_kit.models.base import Base
from estate_kit.schemas.session import TokenClaims, UserProfile
from estate_kit.services.audit_service import AuditService
from estate_kit.services.delegate_service import DelegateService
from estate_kit.services.session_manager import SessionManager
from estate_kit.services.session_store import InMemorySessionStore
from estate_kit.services.subscription_service import SubscriptionService

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)


class FrozenClock:
    """Deterministic clock; advance() moves time forward"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeIdentityProvider:
    """Maps known credentials to user profiles"""

    def __init__(self, delay: float = 0.0):
        self.tokens: Dict[str, str] = {}
        self.profiles: Dict[str, Optional[UserProfile]] = {}
        self.delay = delay
        self.verify_calls = 0

    def register(
        self,
        credential: str,
        user_id: str,
        email: str = None,
        with_profile: bool = True,
        verified: bool = True,
    ) -> None:
        self.tokens[credential] = user_id
        self.profiles[user_id] = (
            UserProfile(
                user_id=user_id,
                email=email or f"{user_id.split('|')[-1]}@example.com",
                email_verified=verified,
            )
            if with_profile else None
        )

    async def verify_token(self, credential: str) -> TokenClaims:
        self.verify_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if credential not in self.tokens:
            raise AuthenticationError("invalid signature")
        return TokenClaims(subject=self.tokens[credential])

    async def get_user_info(self, subject: str) -> Optional[UserProfile]:
        return self.profiles.get(subject)


def audit_rows(session_factory, event_type=None) -> List[AuditLog]:
    """All audit rows in insertion order, optionally filtered by event type"""
    with session_factory() as db:
        query = db.query(AuditLog)
        if event_type is not None:
            query = query.filter(AuditLog.event_type == event_type)
        return query.order_by(AuditLog.created_at).all()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def engine(tmp_path):
    # File backed so audit writes from worker threads get their own connections
    engine = build_engine(f"sqlite:///{tmp_path / 'estate_kit.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def encryption() -> FieldEncryption:
    return FieldEncryption("test-field-encryption-secret", salt="test-salt", iterations=1000)


@pytest.fixture
def metrics() -> PrometheusMetrics:
    return PrometheusMetrics(CollectorRegistry())


@pytest.fixture
def audit_service(session_factory, encryption) -> AuditService:
    return AuditService(session_factory, encryption)


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    provider = FakeIdentityProvider()
    provider.register("token-alice", "auth0|alice")
    provider.register("token-bob", "auth0|bob")
    return provider


@pytest.fixture
def session_store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def session_manager(identity_provider, session_store, audit_service, metrics, clock) -> SessionManager:
    return SessionManager(
        identity_provider=identity_provider,
        store=session_store,
        audit=audit_service,
        metrics=metrics,
        session_ttl=3600,
        max_concurrent_sessions=3,
        dependency_timeout=0.5,
        clock=clock,
    )


@pytest.fixture
def delegate_service(session_factory, encryption, audit_service, metrics, clock) -> DelegateService:
    return DelegateService(
        session_factory,
        encryption,
        audit_service,
        metrics,
        default_ttl_days=90,
        clock=clock,
    )


@pytest.fixture
def subscription_service(session_factory, audit_service, clock) -> SubscriptionService:
    return SubscriptionService(session_factory, audit_service, clock=clock)
