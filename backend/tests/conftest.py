"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from roomchat.chat.lifecycle import ChatState, MetricsHook, SessionLifecycleController
from roomchat.chat.manager import manager
from roomchat.main import app
from roomchat.monitoring.service import monitoring


class RecordingMetrics(MetricsHook):
    """MetricsHook that just counts calls."""

    def __init__(self):
        self.connections = 0
        self.messages = 0
        self.errors = 0

    def increment_socket_connections(self):
        self.connections += 1

    def increment_messages(self):
        self.messages += 1

    def increment_errors(self):
        self.errors += 1


@pytest.fixture
def metrics():
    return RecordingMetrics()


@pytest.fixture
def controller(metrics):
    """A controller over fresh default state (general/random/tech)."""
    return SessionLifecycleController(ChatState(), metrics=metrics)


@pytest.fixture
def state(controller):
    return controller.state


@pytest.fixture
def join(controller):
    """Connect and join in one step; returns the join events."""
    def _join(token, username, **extra):
        controller.connect(token)
        return controller.dispatch(token, "user:join", {"username": username, **extra})
    return _join


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app."""
    return TestClient(app)


def _reset_chat():
    manager.sockets.clear()
    manager.controller.state.reset()


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset the shared chat state and counters around each test."""
    _reset_chat()
    monitoring.reset_metrics()
    yield
    _reset_chat()
    monitoring.reset_metrics()
