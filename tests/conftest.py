"""Pytest configuration and fixtures."""

import io
import os
from collections.abc import Generator
from uuid import uuid4

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DEBUG"] = "false"
os.environ["LLM_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models import Base, User, UserRole
from app.imports.sessions import get_session_store

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Columns added at runtime are not in the ORM metadata; dropping the
        # tables removes them as well.
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_import_sessions() -> Generator[None, None, None]:
    """Start every test with an empty import session store."""
    get_session_store().clear()
    yield
    get_session_store().clear()


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Test client bound to the test database, with assisted mapping off."""
    # Import here to ensure env vars are set
    from app.dependencies import get_db
    from app.imports.assisted import NullMappingOracle, get_mapping_oracle
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mapping_oracle] = NullMappingOracle
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _add_user(db: Session, email: str, full_name: str, role: UserRole) -> User:
    user = User(id=str(uuid4()), email=email, full_name=full_name, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db: Session) -> User:
    """A technician, allowed to import."""
    return _add_user(db, "tech@example.com", "Test Technician", UserRole.TECHNICIAN)


@pytest.fixture
def test_viewer(db: Session) -> User:
    """A read-only user."""
    return _add_user(db, "viewer@example.com", "Test Viewer", UserRole.VIEWER)


def _signed_in_as(client: TestClient, user: User) -> Generator[TestClient, None, None]:
    from app.dependencies import get_current_user
    from app.main import app

    app.dependency_overrides[get_current_user] = lambda: user
    yield client
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def authenticated_client(client: TestClient, test_user: User) -> Generator[TestClient, None, None]:
    """Test client acting as the technician."""
    yield from _signed_in_as(client, test_user)


@pytest.fixture
def viewer_client(client: TestClient, test_viewer: User) -> Generator[TestClient, None, None]:
    """Test client acting as the viewer."""
    yield from _signed_in_as(client, test_viewer)


def _make_csv(rows: list[list[str]], delimiter: str = ",") -> bytes:
    return "\n".join(delimiter.join(row) for row in rows).encode("utf-8") + b"\n"


def _make_workbook(rows: list[list], sheet_names: tuple[str, ...] = ("Sheet1",)) -> bytes:
    workbook = Workbook()
    first = workbook.active
    first.title = sheet_names[0]
    for row in rows:
        first.append(row)
    for name in sheet_names[1:]:
        workbook.create_sheet(name).append(["ignored"])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_csv():
    """Build CSV file bytes from a list of rows."""
    return _make_csv


@pytest.fixture
def make_workbook():
    """Build .xlsx file bytes whose first sheet holds the given rows."""
    return _make_workbook
