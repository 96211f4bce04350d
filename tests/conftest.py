"""
Shared fixtures for the payflow engine tests.
"""

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from payflow_engine.core.config import reset_settings
from payflow_engine.engine.context import ExecutionContext
from payflow_engine.models.database import create_db_engine, create_session_factory, init_db
from payflow_engine.services.api_adapters import base as adapter_base
from payflow_engine.services.api_adapters.base import AdapterContext

PROVIDER_ENV_VARS = (
    "OPENAI_API_KEY",
    "RESEND_TOKEN",
    "RESEND_EMAIL",
    "TELEGRAM_BOT_TOKEN",
    "REDIS_URL",
    "APP_URL",
    "CYCLE_POLICY",
    "MAX_CONCURRENT_NODES",
    "INTERPOLATION_PRESERVE_TYPES",
    "LIVE_NODE_UPDATES",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Every test starts from default settings with no provider keys."""
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def restore_adapters():
    """Undo set_adapter overrides made by a test."""
    saved = dict(adapter_base._adapter_instances)
    yield
    adapter_base._adapter_instances.clear()
    adapter_base._adapter_instances.update(saved)


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://", echo=False)
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def make_context():
    def factory(trigger_output: Dict[str, Any] = None, **kwargs) -> ExecutionContext:
        params = {"execution_id": "exec-1", "user_id": "user-1", "workflow_id": "wf-1"}
        params.update(kwargs)
        return ExecutionContext(trigger_output=trigger_output or {}, **params)

    return factory


@pytest.fixture
def adapter_context():
    return AdapterContext(user_id="user-1", execution_id="exec-1", workflow_id="wf-1", node_id="node-1")


class RecordingTransport:
    """Collects requests and answers them with a handler."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last_request.content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def mock_http():
    """Build a RecordingTransport from a handler or a fixed JSON response."""

    def factory(handler=None, status_code: int = 200, json_body: Any = None) -> RecordingTransport:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status_code, json=json_body if json_body is not None else {})
        return RecordingTransport(handler)

    return factory
