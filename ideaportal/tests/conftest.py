import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Keep the app's own engine, uploads and logs out of the working tree, and use
# HTTP-friendly cookies regardless of any local config.yaml.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="ideaportal-tests-"))
os.environ["IDEAPORTAL_SECURE_COOKIES"] = "false"
os.environ["IDEAPORTAL_DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'app.db'}"
os.environ["IDEAPORTAL_UPLOAD_DIR"] = str(_TEST_ROOT / "uploads")
os.environ["IDEAPORTAL_LOG_DIR"] = str(_TEST_ROOT / "logs")
os.environ.setdefault("IDEAPORTAL_JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-0123456789")
os.environ.pop("IDEAPORTAL_ADMIN_USERNAME", None)
os.environ.pop("IDEAPORTAL_ADMIN_PASSWORD", None)

from ideaportal.data.user_manager import UserManager  # noqa: E402
from ideaportal.database import Base, get_db  # noqa: E402
from ideaportal.main import app  # noqa: E402
from ideaportal.utils.security import get_password_hash  # noqa: E402

DEFAULT_PASSWORD = "Password123"
ADMIN_USERNAME_FOR_TEST = "admin@ideaportal.test"

TEST_DATABASE_URL = "sqlite:///:memory:"  # Use in-memory SQLite for tests
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session")
def create_test_tables():
    """Create all database tables once per session before tests run."""
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="function")
def db_session(create_test_tables):
    """
    Provides a transactional database session for a test.
    Rolls back changes after the test.
    Overrides the main app's get_db dependency.
    """
    connection = engine.connect()
    transaction = connection.begin()
    db = TestingSessionLocal(bind=connection)

    original_get_db = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = lambda: db

    try:
        yield db
    finally:
        db.close()
        transaction.rollback()
        connection.close()
        if original_get_db:
            app.dependency_overrides[get_db] = original_get_db
        else:
            del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def client(db_session: Session):
    """Provides a TestClient instance for making requests to the FastAPI app."""
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def user_manager(db_session: Session) -> UserManager:
    manager = UserManager()
    manager.set_db(db_session)
    return manager


@pytest.fixture(scope="function")
def make_user(user_manager: UserManager):
    """Factory creating users directly through the manager."""

    def _make_user(
        username: str,
        role: str = "user",
        display_name: str = None,
        department: str = None,
        password: str = DEFAULT_PASSWORD,
    ):
        return user_manager.add_user(
            username=username,
            hashed_password=get_password_hash(password),
            display_name=display_name or username.split("@")[0].title(),
            department=department,
            role=role,
        )

    return _make_user


@pytest.fixture(scope="function")
def login_as(db_session: Session):
    """
    Returns a function producing a TestClient logged in as the given user.
    Each call gets its own client so several users can act in one test.
    """
    clients = []

    def _login_as(username: str, password: str = DEFAULT_PASSWORD) -> TestClient:
        c = TestClient(app)
        response = c.post("/api/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        clients.append(c)
        return c

    yield _login_as
    for c in clients:
        c.close()


@pytest.fixture(scope="function")
def admin_user(make_user):
    return make_user(ADMIN_USERNAME_FOR_TEST, role="admin", display_name="Admin User")


@pytest.fixture(scope="function")
def admin_client(admin_user, login_as) -> TestClient:
    return login_as(admin_user.username)


@pytest.fixture(scope="function")
def alice(make_user):
    return make_user("alice@ideaportal.test", display_name="Alice", department="Product")


@pytest.fixture(scope="function")
def bob(make_user):
    return make_user("bob@ideaportal.test", display_name="Bob", department="Finance")


@pytest.fixture(scope="function")
def alice_client(alice, login_as) -> TestClient:
    return login_as(alice.username)


@pytest.fixture(scope="function")
def bob_client(bob, login_as) -> TestClient:
    return login_as(bob.username)


@pytest.fixture(scope="function")
def submit_idea():
    """POSTs a JSON submission with sensible defaults and returns the body."""

    def _submit(client: TestClient, **overrides):
        payload = {
            "title": "Slow API Response Times",
            "description": "Dashboards take several seconds to load.",
            "category": "pain-point",
            "department": "Tech & Systems",
        }
        payload.update(overrides)
        response = client.post("/api/ideas", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _submit
