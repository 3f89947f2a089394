import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app


@pytest.fixture
def settings():
    return Settings(max_csv_upload_bytes=2048, max_json_body_bytes=4096, cors_origins=["*"])


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def state(app):
    return app.state.tracker


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
