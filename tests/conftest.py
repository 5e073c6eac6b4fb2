"""
Shared fixtures: two SQLite stores per test, a fixed cipher key, seeded users.

Environment must be set before the application package is imported, since
settings are read once at import.
"""

import os

TEST_ENCRYPTION_KEY = "6a1f0c3e9b2d47a8c5e1f09b3d7a2c4e8f6b1d0a9c3e5f7b2d4a6c8e0f1b3d5a"

os.environ.setdefault("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("IDENTITY_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENVIRONMENT", "development")

from dataclasses import dataclass
from pathlib import Path
import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from grievance_desk.core.database import (
    build_session_factory,
    get_identity_session,
    get_session,
    get_session_context,
)
from grievance_desk.core.dependencies import SessionFactories, get_session_factories
from grievance_desk.core.security import create_access_token, hash_password
from grievance_desk.models import (
    Base,
    IdentityBase,
    Organization,
    OrganizationStatus,
    User,
    UserRole,
)
from grievance_desk.services.cipher import CipherService, get_cipher
from grievance_desk.services.complaints import ComplaintLifecycleEngine, FileComplaintInput
from grievance_desk.services.identity_mapping import IdentityMappingStore
from grievance_desk.services.tenancy import TenantScope

TEST_PASSWORD = "correct-horse-battery"


# =============================================================================
# STORES
# =============================================================================


@dataclass
class Stores:
    complaint_engine: AsyncEngine
    identity_engine: AsyncEngine
    complaints: async_sessionmaker[AsyncSession]
    identity: async_sessionmaker[AsyncSession]

    @property
    def factories(self) -> SessionFactories:
        return SessionFactories(self.complaints, self.identity)

    async def dispose(self) -> None:
        await self.complaint_engine.dispose()
        await self.identity_engine.dispose()


async def make_stores(directory: Path) -> Stores:
    """Separate SQLite files so the two stores never share a lock."""
    complaint_engine = create_async_engine(
        f"sqlite+aiosqlite:///{directory / 'complaints.db'}", poolclass=NullPool
    )
    identity_engine = create_async_engine(
        f"sqlite+aiosqlite:///{directory / 'identity.db'}", poolclass=NullPool
    )
    async with complaint_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with identity_engine.begin() as conn:
        await conn.run_sync(IdentityBase.metadata.create_all)

    return Stores(
        complaint_engine=complaint_engine,
        identity_engine=identity_engine,
        complaints=build_session_factory(complaint_engine),
        identity=build_session_factory(identity_engine),
    )


@pytest.fixture
async def stores(tmp_path: Path):
    stores = await make_stores(tmp_path)
    yield stores
    await stores.dispose()


@pytest.fixture
async def session(stores: Stores):
    async with stores.complaints() as session:
        yield session


@pytest.fixture
async def identity_session(stores: Stores):
    async with stores.identity() as session:
        yield session


@pytest.fixture
def cipher() -> CipherService:
    return CipherService(bytes.fromhex(TEST_ENCRYPTION_KEY))


@pytest.fixture
def mappings(identity_session: AsyncSession, cipher: CipherService) -> IdentityMappingStore:
    return IdentityMappingStore(identity_session, cipher)


@pytest.fixture
def engine(session: AsyncSession, mappings: IdentityMappingStore) -> ComplaintLifecycleEngine:
    return ComplaintLifecycleEngine(session, mappings)


# =============================================================================
# SEED DATA
# =============================================================================


async def create_org(
    session: AsyncSession,
    name: str = "Riverside College",
    status: OrganizationStatus = OrganizationStatus.ACTIVE,
) -> Organization:
    org = Organization(
        name=name,
        slug=name.lower().replace(" ", "-"),
        status=status,
        is_verified=True,
        settings={},
    )
    session.add(org)
    await session.flush()
    return org


async def create_user(
    session: AsyncSession,
    org: Organization | None,
    role: UserRole = UserRole.STUDENT,
    name: str = "Asha Verma",
    email: str | None = None,
    college: str | None = None,
) -> User:
    user = User(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}.{role.value}@example.edu",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        organization_id=org.id if org else None,
        college=college or (org.name if org else None),
        student_id="S-1024" if role == UserRole.STUDENT else None,
        department="Physics" if role == UserRole.STUDENT else None,
        year=2 if role == UserRole.STUDENT else None,
        is_active=True,
        is_verified=True,
    )
    session.add(user)
    await session.flush()
    return user


def scope_of(user: User) -> TenantScope:
    return TenantScope.for_actor(user.organization_id, user.college)


def valid_complaint(**overrides) -> FileComplaintInput:
    data = {
        "title": "Broken lab equipment",
        "description": "The fume hood in lab 3 has not worked for two weeks now.",
        "category": "infrastructure",
    }
    data.update(overrides)
    return FileComplaintInput(**data)


@dataclass
class Campus:
    """One organization with a student, a committee admin and an admin."""
    org: Organization
    student: User
    committee: User
    admin: User


@pytest.fixture
async def campus(session: AsyncSession) -> Campus:
    org = await create_org(session)
    campus = Campus(
        org=org,
        student=await create_user(session, org, UserRole.STUDENT, "Asha Verma"),
        committee=await create_user(session, org, UserRole.COMMITTEE_ADMIN, "Ravi Menon"),
        admin=await create_user(session, org, UserRole.ADMIN, "Dean Okafor"),
    )
    await session.commit()
    return campus


def bearer(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.role.value, user.organization_id)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# APPLICATION
# =============================================================================


def override_dependencies(app, stores: Stores, cipher: CipherService) -> None:
    async def complaint_session():
        async with get_session_context(stores.complaints) as session:
            yield session

    async def identity_store_session():
        async with get_session_context(stores.identity, "identity store") as session:
            yield session

    app.dependency_overrides[get_session] = complaint_session
    app.dependency_overrides[get_identity_session] = identity_store_session
    app.dependency_overrides[get_cipher] = lambda: cipher
    app.dependency_overrides[get_session_factories] = lambda: stores.factories


@pytest.fixture
def app(stores: Stores, cipher: CipherService):
    from grievance_desk.main import app

    override_dependencies(app, stores, cipher)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
