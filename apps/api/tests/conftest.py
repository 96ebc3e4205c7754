"""Shared test fixtures for the Prototype Hub API test suite.

Uses an in-memory SQLite database for fast, isolated model/route tests.
SQLAlchemy adapts UUID and JSON column types to SQLite-compatible equivalents.
Each test gets a fresh database and a fresh in-memory storage fake.
"""

import io
import uuid
import zipfile
from collections.abc import AsyncGenerator
from datetime import datetime, timezone, timedelta
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import Settings, get_settings
from app.db.models import Base, Prototype, User
from app.db.session import get_db
from app.main import create_app
from app.storage.client import get_storage


# ---------------------------------------------------------------------------
# JWT test constants
# ---------------------------------------------------------------------------

TEST_JWT_SECRET = "test-secret-for-unit-tests"

STUB_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
STUB_PROTOTYPE_ID = uuid.UUID("00000000-0000-0000-0000-000000000100")

PUBLIC_BASE = "https://example.supabase.co/storage/v1/object/public/prototype-deployments"


def make_jwt(
    sub: str | uuid.UUID = STUB_USER_ID,
    *,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    email: str = "designer@prototype.local",
    expired: bool = False,
) -> str:
    """Mint a HS256 JWT matching Supabase's format."""
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)
    payload = {
        "sub": str(sub),
        "aud": audience,
        "email": email,
        "exp": exp,
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def build_zip(members: dict[str, bytes | str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Storage fake
# ---------------------------------------------------------------------------


class FakeStorage:
    """In-memory stand-in for PrototypeStorage.

    ``fail_download`` / ``fail_publish`` / ``no_public_url`` switch on the
    matching failure so pipeline error paths can be exercised.
    """

    def __init__(self) -> None:
        self.uploads: dict[str, bytes] = {}
        self.published: dict[str, tuple[bytes, str]] = {}
        self.fail_download = False
        self.fail_publish: set[str] = set()
        self.no_public_url = False
        self.bucket_checks = 0

    async def ensure_buckets(self) -> None:
        self.bucket_checks += 1

    async def download_upload(self, path: str) -> bytes:
        if self.fail_download:
            raise RuntimeError("object not found")
        return self.uploads[path]

    async def store_upload(self, path: str, data: bytes, content_type: str) -> None:
        self.uploads[path] = data

    async def publish(self, path: str, data: bytes, content_type: str) -> None:
        if path in self.fail_publish:
            raise RuntimeError(f"publish rejected: {path}")
        self.published[path] = (data, content_type)

    def public_url(self, path: str) -> Optional[str]:
        if self.no_public_url:
            return None
        return f"{PUBLIC_BASE}/{path}"


# ---------------------------------------------------------------------------
# Database + app
# ---------------------------------------------------------------------------


@pytest.fixture
def jwt_token() -> str:
    """A valid JWT for the stub user."""
    return make_jwt()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
async def async_engine():
    """Create a fresh async SQLite engine for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a test DB session."""
    async with session_factory() as session:
        yield session


def _override_settings() -> Settings:
    """Return Settings with the test JWT secret and a Figma token."""
    return Settings(
        supabase_jwt_secret=TEST_JWT_SECRET,
        supabase_service_key="service-role-key",
        database_url="sqlite+aiosqlite:///:memory:",
        figma_access_token="figma-test-token",
        figma_api_base="https://figma.test/v1",
        sentry_dsn="",
        debug=False,
    )


@pytest.fixture
def app(session_factory, storage):
    """Create a FastAPI app with DB, settings and storage overridden.

    The SlowAPI rate limiter uses an in-memory storage that persists across
    requests within the same process, so its buckets are reset per test.
    """
    from app.core.limiter import limiter

    limiter.reset()

    test_app = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_settings] = _override_settings
    test_app.dependency_overrides[get_storage] = lambda: storage
    return test_app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the test app (no auth)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def authed_client(app, jwt_token) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client carrying a valid bearer token for the stub user."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {jwt_token}"},
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Seed data helpers
# ---------------------------------------------------------------------------


@pytest.fixture
async def seeded_user(db_session) -> User:
    user = User(id=STUB_USER_ID, email="designer@prototype.local")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def add_prototype(db_session, seeded_user, storage):
    """Factory: insert a prototype row and, optionally, its stored upload."""

    async def _add(
        *,
        prototype_id: uuid.UUID = STUB_PROTOTYPE_ID,
        file_path: Optional[str] = "default",
        upload: Optional[bytes] = None,
        status: str = "pending",
        deployment_url: Optional[str] = None,
        created_by: uuid.UUID = STUB_USER_ID,
    ) -> Prototype:
        if file_path == "default":
            file_path = f"{created_by}/{prototype_id}.zip"
        prototype = Prototype(
            id=prototype_id,
            name="Checkout flow",
            created_by=created_by,
            tech_stack="zip-package",
            files={},
            file_path=file_path,
            deployment_status=status,
            deployment_url=deployment_url,
        )
        db_session.add(prototype)
        await db_session.commit()
        if upload is not None and file_path:
            storage.uploads[file_path] = upload
        return prototype

    return _add


@pytest.fixture
def fetch_prototype(session_factory):
    """Read a prototype row through a fresh session (no identity-map caching)."""

    async def _fetch(prototype_id: uuid.UUID = STUB_PROTOTYPE_ID) -> Prototype:
        async with session_factory() as session:
            return await session.get(Prototype, prototype_id)

    return _fetch


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def mint_jwt():
    return make_jwt


@pytest.fixture
def public_base() -> str:
    return PUBLIC_BASE
