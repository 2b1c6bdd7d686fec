"""
Pytest Configuration and Shared Fixtures

Every test gets a fresh in-memory SQLite database, an HTTP client bound to the
app with ``get_db`` pointed at that database, and a fake Cloudinary uploader.
"""

import os
from itertools import count

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["CLOUDINARY_CLOUD_NAME"] = "test-cloud"
os.environ["CLOUDINARY_API_KEY"] = "test-key"
os.environ["CLOUDINARY_API_SECRET"] = "test-secret"

import cloudinary.uploader
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from edu_admin.database import get_db
from edu_admin.main import app
from edu_admin.models import Base
from edu_admin.models.users import User, ROLE_SYSTEM_ADMIN, ROLE_ENTITY_ADMIN
from edu_admin.models.tenants import Company, School
from edu_admin.models.catalogue import Region, Program, Provider, Subject, DataStructure
from edu_admin.services.auth import create_access_token, get_password_hash, get_or_create_role

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_ids = count(1)


@pytest_asyncio.fixture()
async def session_factory():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def storage_calls(monkeypatch):
    """Replace the Cloudinary uploader; records every upload and destroy."""
    calls = {"upload": [], "destroy": []}

    def fake_upload(file, **options):
        calls["upload"].append(options)
        public_id = f"{options['folder']}/{options['public_id']}"
        return {
            "public_id": public_id,
            "secure_url": f"https://res.cloudinary.com/test-cloud/{options['resource_type']}/upload/{public_id}",
            "bytes": len(file),
            "resource_type": options["resource_type"],
        }

    def fake_destroy(public_id, **options):
        calls["destroy"].append(public_id)
        return {"result": "ok"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    monkeypatch.setattr(cloudinary.uploader, "destroy", fake_destroy)
    return calls


async def create_user(db: AsyncSession, role_name: str, company_id=None) -> User:
    role = await get_or_create_role(db, role_name)
    n = next(_ids)
    user = User(
        full_name=f"{role_name} {n}",
        email=f"{role_name}{n}@example.com",
        hashed_password=get_password_hash("password123"),
        role_id=role.id,
        company_id=company_id,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture()
async def company(db_session):
    company = Company(name="Acme Learning", code="ACME", status="active")
    db_session.add(company)
    await db_session.commit()
    await db_session.refresh(company)
    return company


@pytest_asyncio.fixture()
async def other_company(db_session):
    company = Company(name="Globex Schools", code="GLBX", status="active")
    db_session.add(company)
    await db_session.commit()
    await db_session.refresh(company)
    return company


@pytest_asyncio.fixture()
async def school(db_session, company):
    school = School(name="Acme North", code="AN", company_id=company.id, status="active")
    db_session.add(school)
    await db_session.commit()
    await db_session.refresh(school)
    return school


@pytest_asyncio.fixture()
async def system_admin(db_session):
    return await create_user(db_session, ROLE_SYSTEM_ADMIN)


@pytest_asyncio.fixture()
async def entity_admin(db_session, company):
    return await create_user(db_session, ROLE_ENTITY_ADMIN, company_id=company.id)


@pytest.fixture()
def admin_headers(system_admin):
    return auth_headers(system_admin)


@pytest.fixture()
def entity_headers(entity_admin):
    return auth_headers(entity_admin)


@pytest_asyncio.fixture()
async def data_structure(db_session):
    region = Region(name="Middle East", code="ME")
    program = Program(name="IGCSE", code="IGCSE")
    provider = Provider(name="Cambridge", code="CIE")
    subject = Subject(name="Chemistry", code="0620")
    db_session.add_all([region, program, provider, subject])
    await db_session.flush()

    ds = DataStructure(
        region_id=region.id,
        program_id=program.id,
        provider_id=provider.id,
        subject_id=subject.id,
    )
    db_session.add(ds)
    await db_session.commit()
    await db_session.refresh(ds)
    return ds
