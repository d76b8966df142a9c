"""
Pytest configuration and fixtures for testing.

This harness will prefer a real Postgres for tests. If the environment
variable `TEST_DATABASE_URL` is set (e.g., in CI or local dev), it will use
that. Otherwise it will spin up an ephemeral Postgres via testcontainers.

Using Postgres in tests ensures UUID, JSONB and DISTINCT ON behave like
production and removes the need for SQLite-specific hacks.
"""

import os
import pytest
from typing import AsyncGenerator, Iterable, Optional
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
import sqlalchemy as sa
from testcontainers.postgres import PostgresContainer

from app.main import app
from app.core.context import RequestContext
from app.core.security import (
    APPLICATION_ADMIN,
    ORGANIZATION_ADMIN,
    ORGANIZATION_USER,
    SUPER_USER,
    OrgMembership,
    Principal,
    get_current_principal,
)
from app.db.models import Base, CategoryCatalog
from app.db.base import get_session

# Prefer env var (CI or developer override)
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

ORG = "org-1"
OTHER_ORG = "org-2"


def _asyncpg_url(url: str) -> str:
    if url.startswith("postgresql+psycopg2://"):
        return url.replace("postgresql+psycopg2://", "postgresql+asyncpg://")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://")
    return url


def make_principal(
    sub: str = "user-1",
    org_id: Optional[str] = ORG,
    roles: Iterable[str] = (ORGANIZATION_USER,),
    categories: Iterable[str] = (),
    realm_roles: Iterable[str] = (),
) -> Principal:
    organizations = {}
    if org_id is not None:
        organizations[org_id] = OrgMembership(roles=frozenset(roles), categories=frozenset(categories))
    return Principal(
        sub=sub,
        preferred_username=sub,
        organizations=organizations,
        realm_roles=frozenset(realm_roles),
    )


@pytest.fixture(scope="session")
def postgres_container():
    """Provide an asyncpg-compatible DB URL for tests.

    If TEST_DATABASE_URL env var is present, use that. Otherwise spin up a
    Postgres container for the duration of the test session.
    """
    if TEST_DATABASE_URL:
        yield _asyncpg_url(TEST_DATABASE_URL)
    else:
        with PostgresContainer("postgres:15") as pg:
            # testcontainers may return a sync URL
            yield _asyncpg_url(pg.get_connection_url())


@pytest.fixture(scope="session")
def postgres_db(postgres_container):
    """Session-scoped fixture that returns the DB URL and ensures the schema exists.

    Kept synchronous so no asyncpg connection is bound to a different event
    loop than the per-test ones. The async engine is created per-test in
    `test_session`.
    """
    db_url = postgres_container

    sync_url = db_url.replace("postgresql+asyncpg://", "postgresql+psycopg2://")
    sync_engine = sa.create_engine(sync_url)
    with sync_engine.begin() as conn:
        conn.execute(sa.text("CREATE EXTENSION IF NOT EXISTS pgcrypto;"))

    with sync_engine.begin() as conn:
        Base.metadata.create_all(bind=conn)

    yield db_url

    with sync_engine.begin() as conn:
        Base.metadata.drop_all(bind=conn)
    sync_engine.dispose()


@pytest.fixture
async def test_session(postgres_db) -> AsyncGenerator[AsyncSession, None]:
    """Create a transactional test database session.

    Tests run inside a nested transaction on a single connection; the outer
    transaction is rolled back when the test finishes, so services and
    routers may commit freely.
    """
    engine = create_async_engine(postgres_db, echo=False)

    conn = await engine.connect()
    trans = await conn.begin()
    await conn.begin_nested()

    async_session = sessionmaker(
        bind=conn, class_=AsyncSession, expire_on_commit=False
    )

    try:
        async with async_session() as session:
            yield session
    finally:
        try:
            await trans.rollback()
        finally:
            await conn.close()
            await engine.dispose()


@pytest.fixture
async def committed_sessions(postgres_db):
    """Session factory on its own engine; every session gets its own connection.

    Rows are really committed, so concurrent sessions see each other. All
    tables are emptied afterwards.
    """
    engine = create_async_engine(postgres_db, echo=False)
    factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield factory
    finally:
        async with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())
        await engine.dispose()


CATALOG = ("environment", "social", "governance")


@pytest.fixture
async def catalog(test_session):
    """Active catalog categories that questions are filed under."""
    for name in CATALOG:
        test_session.add(CategoryCatalog(name=name, template_id=f"tpl-{name}"))
    await test_session.flush()


@pytest.fixture
def make_ctx(test_session):
    """Build a RequestContext on the test session for a given principal."""

    def _make(principal: Principal) -> RequestContext:
        return RequestContext(test_session, principal)

    return _make


@pytest.fixture
def super_user() -> Principal:
    return make_principal(sub="root", org_id=None, realm_roles=(SUPER_USER,))


@pytest.fixture
def app_admin() -> Principal:
    return make_principal(sub="platform-admin", org_id=None, realm_roles=(APPLICATION_ADMIN,))


@pytest.fixture
def org_admin() -> Principal:
    return make_principal(sub="org-admin", roles=(ORGANIZATION_ADMIN,), categories=("environment", "social"))


@pytest.fixture
def org_user() -> Principal:
    return make_principal(sub="org-user", roles=(ORGANIZATION_USER,), categories=("environment", "social"))


class ActingPrincipal:
    """The principal the test client authenticates as; tests switch it freely."""

    def __init__(self, principal: Principal):
        self.current = principal


@pytest.fixture
def acting(super_user) -> ActingPrincipal:
    return ActingPrincipal(super_user)


@pytest.fixture
async def client(test_session: AsyncSession, acting: ActingPrincipal) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database session and the bearer principal overridden."""

    async def override_get_session():
        yield test_session

    async def override_get_current_principal():
        return acting.current

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_current_principal] = override_get_current_principal

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_client(test_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Test client that goes through real bearer token validation."""

    async def override_get_session():
        yield test_session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
