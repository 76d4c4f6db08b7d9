import os
import sys
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
os.environ.setdefault("REFRESH_TOKEN_PEPPER", "fedcba9876543210fedcba9876543210fedcba9876543210fedcba9876543210")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.database import Base  # noqa: E402
from app.models.user import Role, User, utcnow  # noqa: E402
from app.repositories.session_repository import SessionRepository  # noqa: E402
from app.repositories.user_repository import UserRepository  # noqa: E402
from app.services.auth_service import AuthService  # noqa: E402
from app.services.passwords import BcryptPasswordHasher  # noqa: E402
from app.services.session_guard import SessionGuard  # noqa: E402
from app.services.tokens import AccessTokenCodec, RefreshTokenHasher  # noqa: E402

SECRET_KEY = os.environ["SECRET_KEY"]
PEPPER = os.environ["REFRESH_TOKEN_PEPPER"]
PASSWORD = "TestPass123!"


class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def passwords():
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture
def codec():
    return AccessTokenCodec(SECRET_KEY)


@pytest.fixture
def refresh_hasher():
    return RefreshTokenHasher(PEPPER)


@pytest.fixture
def make_service(db, codec, passwords, refresh_hasher, clock):
    def _make(sessions: SessionRepository | None = None) -> AuthService:
        return AuthService(
            sessions=sessions or SessionRepository(db),
            users=UserRepository(db),
            codec=codec,
            passwords=passwords,
            refresh_hasher=refresh_hasher,
            access_token_ttl=timedelta(minutes=15),
            refresh_token_ttl=timedelta(days=7),
            clock=clock,
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def guard(db, codec, clock):
    return SessionGuard(codec=codec, sessions=SessionRepository(db), skew_seconds=3, clock=clock)


@pytest.fixture
def make_user(db, passwords):
    def _make(email: str = "guia@example.com", *, active: bool = True, role: Role = Role.GUIA) -> User:
        user = User(
            email=email,
            password_hash=passwords.hash_password(PASSWORD),
            first_name="Ana",
            last_name="Mesa",
            role=role,
            active=active,
        )
        return UserRepository(db).add(user)

    return _make
