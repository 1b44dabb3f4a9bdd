"""Pytest configuration and fixtures."""
import pytest
from fastapi.testclient import TestClient

from blogcluster.api.deps import get_automation_client
from blogcluster.core.config import Settings
from blogcluster.core.db import Database
from blogcluster.main import create_app
from blogcluster.services.automation import AutomationClient

from tests.fixtures.app_fixtures import EngineStub, make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine() -> EngineStub:
    return EngineStub()


@pytest.fixture
def app(settings, engine):
    app = create_app(settings)
    app.dependency_overrides[get_automation_client] = lambda: AutomationClient(
        settings, transport=engine.transport
    )
    return app


@pytest.fixture
def client(app):
    # Entering the context runs the lifespan, which builds app.state.db
    with TestClient(app) as c:
        yield c


@pytest.fixture
def app_session(client):
    """Session on the app's own database, for seeding and assertions."""
    session = client.app.state.db.session()
    yield session
    session.close()


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()
