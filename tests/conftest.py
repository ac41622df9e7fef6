"""Shared test fixtures: file-backed async SQLite DB, seed factories, test client."""

import logging
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models so metadata is populated
import app.models  # noqa: F401
from app.core.config import Settings
from app.core.database import get_session
from app.core.security import create_jwt, hash_password
from app.main import app
from app.models.merchant import Merchant
from app.models.queue import Queue
from app.models.tenant import Tenant
from app.models.user import TenantUser, TenantUserRole, User
from app.tenancy.principal import PrincipalKind
from app.tenancy.security_log import SecurityEventLog

PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="session")
def password_hash() -> str:
    return hash_password(PASSWORD)


@pytest.fixture
async def engine(tmp_path):
    # A file, not :memory:, so every session sees the same database
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def security_log(session_factory) -> SecurityEventLog:
    return SecurityEventLog(session_factory)


@pytest.fixture
def settings() -> Settings:
    """Fallback off, so an unknown tenant is a 400 rather than the oldest tenant."""
    return Settings(single_tenant_fallback=False)


@pytest.fixture
def security_events(caplog):
    """Callable returning the security event names logged so far."""
    caplog.set_level(logging.INFO, logger="app.security")

    def _events(level: str | None = None) -> list[str]:
        return [
            record.security_event
            for record in caplog.records
            if hasattr(record, "security_event")
            and (level is None or record.security_level == level)
        ]

    return _events


@pytest.fixture
async def client(session_factory, security_log, settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session and isolation collaborators overridden."""

    async def _override_session():
        # One session per request; concurrent requests must not share one
        async with session_factory() as sess:
            yield sess

    previous = (app.state.session_factory, app.state.security_log)
    app.dependency_overrides[get_session] = _override_session
    app.state.session_factory = session_factory
    app.state.security_log = security_log
    app.state.settings = settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.session_factory, app.state.security_log = previous
    app.state.settings = None


# ── Seed factories ───────────────────────────────────────────

@pytest.fixture
def make_tenant(session):
    async def _make(slug: str, *, id: str | None = None, is_active: bool = True, **kwargs) -> Tenant:
        tenant = Tenant(name=slug.title(), slug=slug, is_active=is_active, **kwargs)
        if id is not None:
            tenant.id = id
        session.add(tenant)
        await session.commit()
        return tenant

    return _make


@pytest.fixture
def make_merchant(session, password_hash):
    async def _make(email: str, tenant_id: str | None, **kwargs) -> Merchant:
        merchant = Merchant(
            email=email,
            business_name=kwargs.pop("business_name", email.split("@")[0].title()),
            password_hash=password_hash,
            tenant_id=tenant_id,
            **kwargs,
        )
        session.add(merchant)
        await session.commit()
        return merchant

    return _make


@pytest.fixture
def make_queue(session):
    async def _make(merchant_id: str, name: str = "Main", **kwargs) -> Queue:
        queue = Queue(merchant_id=merchant_id, name=name, **kwargs)
        session.add(queue)
        await session.commit()
        return queue

    return _make


@pytest.fixture
def make_tenant_user(session, password_hash):
    async def _make(
        email: str,
        tenant_id: str | None = None,
        *,
        role: TenantUserRole = TenantUserRole.STAFF,
        membership_active: bool = True,
    ) -> User:
        user = User(email=email, password_hash=password_hash, name=email.split("@")[0])
        session.add(user)
        await session.flush()
        if tenant_id is not None:
            session.add(
                TenantUser(user_id=user.id, tenant_id=tenant_id, role=role, is_active=membership_active)
            )
        await session.commit()
        return user

    return _make


# ── Auth headers ─────────────────────────────────────────────

@pytest.fixture
def merchant_headers():
    def _headers(merchant: Merchant, tenant_id: str | None = None) -> dict[str, str]:
        token = create_jwt(
            subject=merchant.id,
            kind=PrincipalKind.MERCHANT,
            tenant_id=merchant.tenant_id,
            claims={"email": merchant.email, "business_name": merchant.business_name},
        )
        headers = {"Authorization": f"Bearer {token}"}
        if tenant_id is not None:
            headers["X-Tenant-ID"] = tenant_id
        return headers

    return _headers


@pytest.fixture
def user_headers():
    def _headers(user: User, tenant_id: str, header_tenant_id: str | None = None) -> dict[str, str]:
        token = create_jwt(subject=user.id, kind=PrincipalKind.TENANT_USER, tenant_id=tenant_id)
        return {
            "Authorization": f"Bearer {token}",
            "X-Tenant-ID": header_tenant_id or tenant_id,
        }

    return _headers
