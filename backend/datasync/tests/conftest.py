"""Pytest configuration for datasync integration tests

WHAT: Provides shared fixtures for HTTP endpoint and service-level tests
WHY: Ensures consistent test setup, database isolation and fake providers
     (BigQuery, Secret Manager, Redis) so no test touches a real backend
REFERENCES:
    - datasync/main.py: FastAPI application
    - datasync/database.py: Database configuration
    - datasync/deps.py: Dependency injection (provider handles are overridable)
"""

import pytest
import os
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

# Ensure backend is in path
import sys
from pathlib import Path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment (datasync.database and datasync.security read these at import)
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")

from datasync.errors import CredentialExists, DependencyError  # noqa: E402
from datasync.services.connector_provisioner import AccessGrant  # noqa: E402


# ============================================================================
# Fake Providers
# ============================================================================

class FakeDatasets:
    """In-memory DatasetProvider.

    Every call is appended to `calls`. Put a method name in `fail_once` to
    make its next call raise DependencyError.
    """

    DEFAULT_ACCESS = (
        AccessGrant(role="OWNER", entity_type="specialGroup", entity_id="projectOwners"),
    )

    def __init__(self):
        self.datasets = {}
        self.calls = []
        self.fail_once = set()

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_once:
            self.fail_once.discard(name)
            raise DependencyError(f"{name} failed")

    def exists(self, dataset_id):
        self._record("exists", dataset_id)
        return dataset_id in self.datasets

    def create(self, dataset_id, *, location, labels):
        self._record("create", dataset_id)
        self.datasets.setdefault(dataset_id, {
            "location": location,
            "labels": dict(labels),
            "access": list(self.DEFAULT_ACCESS),
        })

    def get_access(self, dataset_id):
        self._record("get_access", dataset_id)
        return tuple(self.datasets[dataset_id]["access"])

    def set_access(self, dataset_id, entries):
        self._record("set_access", dataset_id)
        self.datasets[dataset_id]["access"] = list(entries)

    def call_names(self):
        return [call[0] for call in self.calls]


class FakeSecretStore:
    """In-memory SecretStore. Containers map to their list of payload versions."""

    project = "test-project"

    def __init__(self):
        self.secrets = {}
        self.labels = {}
        self.fail_once = set()

    def container_name(self, secret_id):
        return f"projects/{self.project}/secrets/{secret_id}"

    def create_container(self, secret_id, *, labels):
        if "create_container" in self.fail_once:
            self.fail_once.discard("create_container")
            raise DependencyError("create_secret failed")
        name = self.container_name(secret_id)
        if name in self.secrets:
            raise CredentialExists(secret_id)
        self.secrets[name] = []
        self.labels[name] = dict(labels)
        return name

    def add_version(self, container_name, payload):
        if "add_version" in self.fail_once:
            self.fail_once.discard("add_version")
            raise DependencyError("add_secret_version failed")
        self.secrets[container_name].append(payload)
        return f"{container_name}/versions/{len(self.secrets[container_name])}"

    def has_version(self, container_name):
        return bool(self.secrets.get(container_name))


class FakeRedis:
    """Subset of redis.Redis used by OAuthNonceStore (TTL is recorded, not enforced).

    Command names added to `fail_once` raise ConnectionError on their next call.
    """

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail_once = set()

    def _maybe_fail(self, command):
        if command in self.fail_once:
            self.fail_once.discard(command)
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    def setex(self, key, ttl, value):
        self._maybe_fail("setex")
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def getdel(self, key):
        self._maybe_fail("getdel")
        self.ttls.pop(key, None)
        return self.store.pop(key, None)

    def expire_all(self):
        self.store.clear()
        self.ttls.clear()

    def close(self):
        pass


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """Create in-memory test database engine.

    StaticPool keeps one connection so sessions opened by the app in
    TestClient worker threads see the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    from datasync.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(session_factory) -> Generator[Session, None, None]:
    """Create test database session."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Provider Fixtures
# ============================================================================

@pytest.fixture
def fake_datasets():
    return FakeDatasets()


@pytest.fixture
def fake_secrets():
    return FakeSecretStore()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def test_settings():
    """Settings with both OAuth apps configured and non-secure cookies for http://testserver."""
    from datasync.deps import Settings

    return Settings(
        ENVIRONMENT="test",
        COOKIE_SECURE=False,
        GCP_PROJECT="test-project",
        INGEST_SERVICE_ACCOUNT="ingest-sa@test-project.iam.gserviceaccount.com",
        SHOPIFY_CLIENT_ID="shopify-client-id",
        SHOPIFY_CLIENT_SECRET="shopify-client-secret",
        SHOPIFY_REDIRECT_URI="http://testserver/auth/shopify/callback",
        GOOGLE_CLIENT_ID="google-client-id",
        GOOGLE_CLIENT_SECRET="google-client-secret",
        GOOGLE_REDIRECT_URI="http://testserver/auth/google/callback",
        SENTRY_DSN=None,
    )


@pytest.fixture
def provisioner(fake_datasets, test_settings):
    from datasync.services.connector_provisioner import ConnectorProvisioner

    return ConnectorProvisioner(
        fake_datasets,
        ingest_member=test_settings.INGEST_SERVICE_ACCOUNT,
        location=test_settings.BIGQUERY_LOCATION,
        managed_by=test_settings.DATASET_MANAGED_BY_LABEL,
    )


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(session_factory, fake_datasets, fake_secrets, fake_redis, test_settings):
    """Create FastAPI test application with fake providers.

    TestClient is used without a context manager, so the lifespan (which
    would build real GCP clients) never runs.
    """
    from datasync.main import create_app
    from datasync.database import get_db
    from datasync import deps

    test_app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[deps.get_settings] = lambda: test_settings
    test_app.dependency_overrides[deps.get_dataset_provider] = lambda: fake_datasets
    test_app.dependency_overrides[deps.get_secret_store] = lambda: fake_secrets
    test_app.dependency_overrides[deps.get_redis_client] = lambda: fake_redis

    return test_app


@pytest.fixture
def anon_client(app) -> TestClient:
    """TestClient without a session cookie."""
    return TestClient(app)


def _client_for(app, user) -> TestClient:
    from datasync.security import create_access_token

    return TestClient(app, cookies={"access_token": f"Bearer {create_access_token(user.email)}"})


@pytest.fixture
def client(app, test_user) -> TestClient:
    """TestClient authenticated as test_user."""
    return _client_for(app, test_user)


@pytest.fixture
def other_client(app, other_user) -> TestClient:
    """TestClient authenticated as other_user (for isolation tests)."""
    return _client_for(app, other_user)


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def test_user(test_db_session):
    """Create test user."""
    from datasync.services import identity_directory

    return identity_directory.resolve(test_db_session, "owner@example.com")


@pytest.fixture
def other_user(test_db_session):
    """Create second test user (for isolation tests)."""
    from datasync.services import identity_directory

    return identity_directory.resolve(test_db_session, "intruder@example.com")


@pytest.fixture
def test_workspace(test_db_session, test_user):
    """Create test workspace owned by test_user."""
    from datasync.services import workspace_registry

    return workspace_registry.create(test_db_session, test_user, "Test Workspace")
