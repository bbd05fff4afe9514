"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown (in-memory SQLite with working SAVEPOINTs)
- An in-process Redis stand-in for rate limits and the token deny-list
- A recording notification channel
- A fixed security policy
- Factories for users, tokens and device sessions
- FastAPI test client with all collaborators overridden
"""

import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth_config import AuthConfig, RateLimitPolicy, VerificationMethod
from app.core.database import Base, get_db, init_db
from app.core.deps import get_auth_config, get_notifier, get_rate_limiter
from app.core.identity import LocalIdentityProvider, issue_access_token
from app.core.rate_limiter import RateLimiter
from app.core.timeutils import utcnow
from app.core.trust import AuthMethod, DeviceFingerprint, TrustDecision, tier_for
from app.crud import device as crud_device
from app.crud import device_session as crud_session
from app.crud import user as crud_user
from app.services.audit_log import AuditLog
from app.services.device_session_service import DeviceSessionService
from app.services.step_up import StepUpPolicy
from app.services.verification import VerificationDispatcher
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN itself
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "SecurePass123"

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)
WINDOWS_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FakeRedis:
    """
    In-process stand-in for the Redis commands the app uses.

    Expiry is tracked with wall-clock deadlines; `fail` makes every command
    raise, to exercise the fail-open paths.
    """

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.deadlines: Dict[str, float] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis unavailable")

    def _purge(self, key: str) -> None:
        deadline = self.deadlines.get(key)
        if deadline is not None and deadline <= time.time():
            self.store.pop(key, None)
            self.deadlines.pop(key, None)

    def incr(self, key: str) -> int:
        self._check()
        self._purge(key)
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    def ttl(self, key: str) -> int:
        self._check()
        self._purge(key)
        if key not in self.store:
            return -2
        deadline = self.deadlines.get(key)
        if deadline is None:
            return -1
        return max(int(deadline - time.time()), 0)

    def expire(self, key: str, seconds: int) -> bool:
        self._check()
        if key not in self.store:
            return False
        self.deadlines[key] = time.time() + seconds
        return True

    def setex(self, key: str, seconds: int, value: Any) -> bool:
        self._check()
        self.store[key] = value
        self.deadlines[key] = time.time() + seconds
        return True

    def exists(self, key: str) -> int:
        self._check()
        self._purge(key)
        return 1 if key in self.store else 0

    def delete(self, key: str) -> int:
        self._check()
        self.deadlines.pop(key, None)
        return 1 if self.store.pop(key, None) is not None else 0

    def ping(self) -> bool:
        self._check()
        return True

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis_client: FakeRedis):
        self.redis_client = redis_client
        self.commands: List[Tuple[str, tuple]] = []

    def incr(self, key: str) -> "FakePipeline":
        self.commands.append(("incr", (key,)))
        return self

    def ttl(self, key: str) -> "FakePipeline":
        self.commands.append(("ttl", (key,)))
        return self

    def execute(self) -> List[Any]:
        self.redis_client._check()
        results = [getattr(self.redis_client, name)(*args) for name, args in self.commands]
        self.commands = []
        return results


class RecordingNotifier:
    """Notification channel that keeps every send for assertions."""

    def __init__(self):
        self.sent: List[Tuple[Any, Any, Dict[str, Any]]] = []

    def send(self, user_id, template, context) -> bool:
        self.sent.append((user_id, template, context))
        return True

    def of_template(self, template) -> List[Dict[str, Any]]:
        return [context for _, sent_template, context in self.sent if sent_template == template]

    def last_code(self, template) -> Optional[str]:
        contexts = self.of_template(template)
        return contexts[-1]["code"] if contexts else None


@pytest.fixture
def db_session():
    """
    Create a fresh database session for each test.
    Tables are created from the models (Alembic manages production) and
    dropped after the test completes.
    """
    init_db()
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def limiter(fake_redis):
    return RateLimiter(redis_client=fake_redis)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def auth_config():
    """Every method enabled, generous attempt limits, 10 minute grace for revokes."""
    return AuthConfig(
        enabled_methods=frozenset(VerificationMethod),
        default_grace_minutes=5,
        grace_periods={"revoke_device": 10, "revoke_all_devices": 10, "disable_2fa": 5},
        rate_limits=RateLimitPolicy(verify_attempts=100, auth_requests=100, api_requests=1000),
    )


@pytest.fixture
def identity_provider(db_session, fake_redis):
    return LocalIdentityProvider(db_session, fake_redis)


@pytest.fixture
def audit(db_session):
    return AuditLog(db_session)


@pytest.fixture
def session_service(db_session, auth_config, identity_provider, notifier):
    return DeviceSessionService(db_session, auth_config, identity_provider, notifier)


@pytest.fixture
def step_up(db_session, auth_config):
    return StepUpPolicy(db_session, auth_config)


@pytest.fixture
def dispatcher(db_session, auth_config, identity_provider, notifier, limiter, step_up):
    return VerificationDispatcher(db_session, auth_config, identity_provider, notifier, limiter, step_up=step_up)


@pytest.fixture
def make_user(db_session):
    """Factory: create a user with the shared test password."""
    def _make_user(email: str = "alice@example.com", password: Optional[str] = PASSWORD, email_verified: bool = True):
        return crud_user.create_user(db_session, email, password=password, email_verified=email_verified)
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def caller_for(identity_provider):
    """Factory: the CurrentUser a token for `user` resolves to."""
    def _caller_for(user, auth_method: AuthMethod = AuthMethod.PASSWORD, new_user: bool = False):
        return identity_provider.get_current_user(issue_access_token(user, auth_method, new_user=new_user))
    return _caller_for


@pytest.fixture
def make_session(db_session, auth_config):
    """
    Factory: insert a device session directly, bypassing the trust policy.
    """
    def _make_session(
        user,
        fingerprint: Optional[DeviceFingerprint] = None,
        trusted: bool = True,
        score: int = 100,
        expires_in: timedelta = timedelta(days=30),
    ):
        fingerprint = fingerprint or DeviceFingerprint("MacBook", "Chrome", "Mac OS X 14.1", "198.51.100.7")
        device = crud_device.find_or_create_device(db_session, user.id, fingerprint)
        decision = TrustDecision(
            score=score,
            tier=tier_for(score, auth_config.trust),
            is_trusted=trusted,
            needs_verification=not trusted,
        )
        return crud_session.create_device_session(db_session, user.id, device.id, decision, utcnow() + expires_in)
    return _make_session


@pytest.fixture
def client(db_session, auth_config, limiter, notifier):
    """
    FastAPI test client with overridden database, policy, rate limiter and
    notification dependencies.

    The lifespan is not entered, so no connection to the real database is made.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_config] = lambda: auth_config
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_notifier] = lambda: notifier

    yield TestClient(app)

    app.dependency_overrides.clear()


def auth_headers(token: str, user_agent: str = WINDOWS_CHROME_UA, ip: str = "198.51.100.7") -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "User-Agent": user_agent,
        "X-Forwarded-For": ip,
    }
