"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from chat_relay.config import reset_config
from chat_relay.main import create_app


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Load defaults (in-memory store) regardless of the developer's shell or cwd."""
    monkeypatch.delenv("REDISURI", raising=False)
    monkeypatch.delenv("SOCKET_CLIENT_URL", raising=False)
    monkeypatch.setenv("RELAY_SETTINGS_FILE", str(tmp_path / "relay.settings.yaml"))
    monkeypatch.setenv("RELAY_SECRETS_FILE", str(tmp_path / "relay.secrets.yaml"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def api_client():
    """Provide a TestClient with the lifespan running (store, registry, sessions)."""
    with TestClient(create_app()) as client:
        yield client
