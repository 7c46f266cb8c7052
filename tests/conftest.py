import os

# The app builds its engine at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from edufin.config import settings
from edufin.database import Base, get_db
from edufin.main import app
from edufin.models import User, Student, Institution, FeeStructure, EmiPlan


def make_token(user_id: int, expires_in: timedelta = timedelta(hours=1)) -> str:
    payload = {"sub": str(user_id), "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def seed(session_factory):
    """Admin, two parents, one institution with a 10000 fee, a 3 month plan and a student."""
    async with session_factory() as session:
        admin = User(full_name="Platform Admin", email="admin@edufin.test", role="admin")
        parent = User(full_name="Ada Parent", email="ada@edufin.test", role="parent")
        other_parent = User(full_name="Ben Parent", email="ben@edufin.test", role="parent")
        institution = Institution(name="Greenfield School", type="school")
        session.add_all([admin, parent, other_parent, institution])
        await session.flush()

        fee_structure = FeeStructure(
            institution_id=institution.id,
            name="Term 1 Tuition",
            amount=Decimal("10000.00"),
            academic_year="2026-2027",
            semester="First",
        )
        plan = EmiPlan(name="3 Month Plan", installments=3)
        student = Student(parent_id=parent.id, institution_id=institution.id, name="Tobi", class_name="JSS1")
        session.add_all([fee_structure, plan, student])
        await session.commit()

        return SimpleNamespace(
            admin_id=admin.id,
            parent_id=parent.id,
            other_parent_id=other_parent.id,
            institution_id=institution.id,
            fee_structure_id=fee_structure.id,
            plan_id=plan.id,
            student_id=student.id,
        )


@pytest.fixture
def admin_headers(seed):
    return auth_headers(seed.admin_id)


@pytest.fixture
def parent_headers(seed):
    return auth_headers(seed.parent_id)


@pytest.fixture
def other_parent_headers(seed):
    return auth_headers(seed.other_parent_id)


@pytest.fixture
def create_application(client, seed, parent_headers):
    async def _create(with_plan: bool = True, student_id: int = None):
        body = {
            "student_id": student_id or seed.student_id,
            "fee_structure_id": seed.fee_structure_id,
        }
        if with_plan:
            body["emi_plan_id"] = seed.plan_id
        response = await client.post("/api/applications", json=body, headers=parent_headers)
        assert response.status_code == 201, response.text
        return response.json()["application"]
    return _create


@pytest.fixture
def approved_application(client, create_application, admin_headers, parent_headers):
    """An application that went through submit and approval, with its schedule."""
    async def _approved():
        application = await create_application()
        response = await client.post(f"/api/applications/{application['id']}/submit", headers=parent_headers)
        assert response.status_code == 200, response.text
        response = await client.patch(
            f"/api/applications/{application['id']}", json={"action": "approve"}, headers=admin_headers
        )
        assert response.status_code == 200, response.text
        return application
    return _approved
