"""
Pytest configuration and fixtures for Learning API backend tests.

Provides:
- Test database setup/teardown
- Generation log store bound to a per-test transaction
- Fake model client and FastAPI test client
- Auth header fixtures
"""

import pytest
import os
from typing import Callable, Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Connection
from sqlalchemy.orm import sessionmaker, Session

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test_learning_api.db"
os.environ["OPENAI_API_KEY"] = "test-key-not-real"
os.environ["JWT_SECRET"] = "test-secret-key-for-learning-api-tests"

from learning_api.main import app
from learning_api.database import Base
from learning_api.dependencies.auth import create_access_token
from learning_api.dependencies.services import get_log_store, get_model_client
from learning_api.models.models import GenerationLog
from learning_api.services.generation_log_service import GenerationLogStore
from learning_api.services.generation_types import GenerationRequest

from tests.mocks import SCENARIO_REQUEST, FakeModelClient


# Test database setup
TEST_DATABASE_URL = "sqlite:///./test_learning_api.db"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database tables once per test session"""
    Base.metadata.create_all(bind=test_engine)
    yield
    # Cleanup after all tests
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()
    # Remove test database file
    if os.path.exists("./test_learning_api.db"):
        os.remove("./test_learning_api.db")


@pytest.fixture(scope="function")
def connection() -> Generator[Connection, None, None]:
    """One connection per test inside a transaction that is rolled back afterwards"""
    conn = test_engine.connect()
    transaction = conn.begin()

    yield conn

    transaction.rollback()
    conn.close()


@pytest.fixture(scope="function")
def session_factory(connection: Connection) -> Callable[[], Session]:
    """Session factory whose sessions all join the test transaction"""
    return lambda: TestingSessionLocal(bind=connection)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for each test, with rollback after"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def log_store(session_factory) -> GenerationLogStore:
    return GenerationLogStore(session_factory)


def count_logs(db: Session) -> int:
    return db.query(GenerationLog).count()


# =========================================================================
# Request Fixtures
# =========================================================================

@pytest.fixture
def scenario_request() -> GenerationRequest:
    """English, grade 3, curriculum, 5 hard problems with explanations"""
    return GenerationRequest.from_payload(SCENARIO_REQUEST)


@pytest.fixture
def scenario_payload() -> Dict:
    return dict(SCENARIO_REQUEST)


# =========================================================================
# Model / App Fixtures
# =========================================================================

@pytest.fixture
def fake_model() -> FakeModelClient:
    """Fake model client returning a valid 5-problem set"""
    return FakeModelClient()


@pytest.fixture(scope="function")
def client(fake_model: FakeModelClient, log_store: GenerationLogStore) -> Generator[TestClient, None, None]:
    """Provide FastAPI test client with the fake model and the test log store"""
    app.dependency_overrides[get_model_client] = lambda: fake_model
    app.dependency_overrides[get_log_store] = lambda: log_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =========================================================================
# Auth Fixtures
# =========================================================================

TEST_USER_ID = "test-user-123"
OTHER_USER_ID = "other-user-456"


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(TEST_USER_ID)}"}


@pytest.fixture
def other_auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(OTHER_USER_ID)}"}
