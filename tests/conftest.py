import pytest
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("SMTP_HOST", None)

from app.database import Base, get_db
from app.main import app
from app.services.employee_ids import employee_id_assigner
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test; services commit and roll back freely."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def reset_employee_id_throttle():
    employee_id_assigner.reset()
    yield
    employee_id_assigner.reset()


@pytest.fixture(scope="function")
def make_user(db_session):
    """Factory for users of any role."""
    from app.models.user import User, UserRole
    from app.services import auth as auth_service

    counter = {"n": 0}

    def _make_user(role=UserRole.EMPLOYEE, email=None, password="Password123!", **fields):
        counter["n"] += 1
        user = User(
            email=email or f"{role.value.lower()}{counter['n']}@example.com",
            hashed_password=auth_service.get_password_hash(password),
            role=role,
            is_active=True,
            full_name=fields.pop("full_name", f"{role.value.title()} {counter['n']}"),
            **fields
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture(scope="function")
def admin_user(make_user):
    from app.models.user import UserRole
    return make_user(UserRole.ADMIN, email="admin@example.com", full_name="System Admin")


@pytest.fixture(scope="function")
def hr_user(make_user):
    from app.models.user import UserRole
    return make_user(UserRole.HR, email="hr@example.com", full_name="HR Officer")


@pytest.fixture(scope="function")
def employee(make_user):
    from app.models.user import UserRole
    return make_user(UserRole.EMPLOYEE, email="employee@example.com", full_name="Jane Employee")


@pytest.fixture(scope="function")
def casual_leave(db_session):
    from app.services.leave_categories import LeaveCategoryRegistry
    return LeaveCategoryRegistry(db_session).create("Casual Leave")


@pytest.fixture(scope="function")
def short_leave(db_session):
    from app.services.leave_categories import LeaveCategoryRegistry
    return LeaveCategoryRegistry(db_session).create("Short Day Leave")


@pytest.fixture(scope="function")
def auth_headers():
    """Helper fixture to build bearer headers for a user."""
    from app.services.auth import create_access_token

    def _auth_headers(user):
        token = create_access_token(data={"sub": user.email, "role": user.role.value, "user_id": user.id})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
