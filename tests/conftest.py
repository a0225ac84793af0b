import pytest
from fastapi.testclient import TestClient

from auth import ProviderVerifier, SelfIssuedVerifier, TokenAuthenticator, get_authenticator
from config import Settings, get_settings
from database import get_store
from main import app
from tests.helpers import JWT_SECRET, PROJECT_ID, InMemoryStore, StubJWKClient


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, JWT_SECRET=JWT_SECRET, FIREBASE_PROJECT_ID=PROJECT_ID)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def jwks() -> StubJWKClient:
    return StubJWKClient()


@pytest.fixture
def authenticator(settings, jwks) -> TokenAuthenticator:
    return TokenAuthenticator([SelfIssuedVerifier(settings), ProviderVerifier(PROJECT_ID, jwks)])


@pytest.fixture
def client(settings, store, authenticator):
    """App client with collaborators swapped out; lifespan (and MongoDB) is never started."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_authenticator] = lambda: authenticator
    app.state.project_id = PROJECT_ID
    yield TestClient(app)
    app.dependency_overrides.clear()
