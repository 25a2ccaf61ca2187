import os

os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hr_api.database import Base, get_db
from hr_api.main import app
from hr_api.middleware.auth import get_current_user
from hr_api.models.employee import Employee


@pytest.fixture
async def engine(tmp_path):
    """On-disk SQLite database per test. Transactions start with BEGIN IMMEDIATE
    so concurrent writers queue up the way row locks make them on Postgres."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hr_test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


async def _add_employees(session: AsyncSession, *ids: str, role: str = "employee") -> list[Employee]:
    employees = [
        Employee(
            id=emp_id,
            employee_code=f"CODE-{emp_id}",
            first_name="Test",
            last_name=emp_id,
            email=f"{emp_id.lower()}@hrenterprise.test",
            role=role,
        )
        for emp_id in ids
    ]
    session.add_all(employees)
    await session.flush()
    return employees


@pytest.fixture
def add_employees():
    """await add_employees(session, "E1", "E2", role="admin")"""
    return _add_employees


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def login():
    """Switch the authenticated caller: login("E2") or login("A1", role="admin")."""
    identity: dict = {}

    def _login(employee_id: str, role: str = "employee") -> None:
        identity.clear()
        identity.update(
            user_id=f"user-{employee_id}",
            employee_id=employee_id,
            role=role,
            email=f"{employee_id.lower()}@hrenterprise.test",
        )

    app.dependency_overrides[get_current_user] = lambda: dict(identity)
    yield _login
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
async def client(session_factory):
    async def _get_test_db():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.pop(get_db, None)
