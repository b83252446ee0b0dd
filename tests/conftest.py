"""
Pytest fixtures for testing.

Provides:
- Async database session (SQLite in-memory)
- In-memory cache with a controllable clock
- Resolver / manager wired to both
- Factory for users, permissions, roles and role links
- HTTP client with dependency overrides
"""

from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from permguard.core.config import PermissionSettings
from permguard.implementations.cache.memory import MemoryCacheBackend
from permguard.models import Base, Permission, Role, RolePermission, User, UserRole
from permguard.services.manager import PermissionManager
from permguard.services.resolver import PermissionResolver
from permguard.services.scope import ScopeEvaluator


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Monotonic clock tests can move forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session; services commit on it like they would in a request."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(default_ttl=3600, clock=clock)


@pytest.fixture
def permission_settings() -> PermissionSettings:
    return PermissionSettings()


@pytest.fixture
def resolver(db: AsyncSession, cache, permission_settings) -> PermissionResolver:
    return PermissionResolver(db, cache, permission_settings)


@pytest.fixture
def scope_evaluator(db: AsyncSession, resolver: PermissionResolver) -> ScopeEvaluator:
    return ScopeEvaluator(db, resolver)


@pytest.fixture
def manager(db: AsyncSession, cache, permission_settings) -> PermissionManager:
    return PermissionManager(db, cache, permission_settings)


# ============ Factory Fixtures ============


class Factory:
    """Creates committed test data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def user(self, name: str = "Test User", email: str | None = None) -> User:
        user = User(
            email=email or f"test-{uuid4().hex[:8]}@example.com",
            name=name,
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def permission(
        self,
        code: str,
        module: str | None = None,
        type: str = "operation",
        status: bool = True,
    ) -> Permission:
        permission = Permission(
            code=code,
            name=code.replace(":", " ").title(),
            module=module or code.split(":")[0],
            type=type,
            status=status,
        )
        self.db.add(permission)
        await self.db.commit()
        return permission

    async def role(
        self,
        code: str,
        grants: list[tuple[Permission, str]],
        status: bool = True,
    ) -> Role:
        role = Role(
            code=code,
            name=code.title(),
            status=status,
            permissions=[
                RolePermission(permission_id=p.id, permission=p, data_scope=scope)
                for p, scope in grants
            ],
        )
        self.db.add(role)
        await self.db.commit()
        return role

    async def link(
        self,
        user: User,
        role: Role,
        department_id: str | None = None,
        status: bool = True,
    ) -> UserRole:
        link = UserRole(
            user_id=user.id,
            role_id=role.id,
            role=role,
            department_id=department_id,
            status=status,
        )
        self.db.add(link)
        await self.db.commit()
        return link


@pytest.fixture
def factory(db: AsyncSession) -> Factory:
    return Factory(db)


ADMIN_PERMISSIONS = [
    "system:permission:view",
    "system:permission:manage",
    "system:permission:assign",
    "system:role:view",
    "system:role:manage",
    "system:role:assign",
    "system:template:view",
    "system:template:manage",
    "system:rule:view",
    "system:rule:manage",
    "system:log:view",
]


@pytest_asyncio.fixture
async def admin(factory: Factory) -> User:
    """User holding every administrative permission."""
    user = await factory.user(name="Admin")
    permissions = [await factory.permission(code) for code in ADMIN_PERMISSIONS]
    role = await factory.role("ADMIN", [(p, "all") for p in permissions])
    await factory.link(user, role)
    return user


@pytest_asyncio.fixture(scope="function")
async def client(db: AsyncSession, cache) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with database session and cache overrides.
    """
    from permguard.main import app
    from permguard.api.dependencies import get_cache, get_db

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
