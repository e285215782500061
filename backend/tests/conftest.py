import os
import tempfile
import uuid

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "100000"
os.environ["GOOGLE_TRANSLATE_API_KEY"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="society-uploads-")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import models  # noqa: F401
from core.database import get_session
from main import app
from models.issue import Issue, IssueCategory
from models.user import User, UserRole
from utils.security import create_access_token, hash_password

PASSWORD = "Passw0rd!"


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(engine):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    app.state.cache.clear()
    app.state.rate_limiter.reset()
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    def _make(role: UserRole = UserRole.resident, **fields) -> User:
        fields.setdefault("name", f"{role.value.title()} User")
        fields.setdefault("email", f"{role.value}-{uuid.uuid4().hex[:8]}@example.com")
        user = User(password_hash=hash_password(PASSWORD), role=role, **fields)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def resident(make_user):
    return make_user(UserRole.resident, block_number="A", apartment_number="101")


@pytest.fixture
def other_resident(make_user):
    return make_user(UserRole.resident, block_number="B", apartment_number="202")


@pytest.fixture
def committee(make_user):
    return make_user(UserRole.committee, permissions=["assign_issues", "view_reports"])


@pytest.fixture
def technician(make_user):
    return make_user(UserRole.technician, specializations=["plumbing"])


@pytest.fixture
def make_issue(session):
    def _make(reporter: User, **fields) -> Issue:
        fields.setdefault("title", "Water leak in corridor")
        fields.setdefault("description", "Water is leaking near the lift lobby")
        fields.setdefault("category", IssueCategory.water)
        issue = Issue(reported_by=reporter.id, **fields)
        session.add(issue)
        session.commit()
        session.refresh(issue)
        return issue

    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
