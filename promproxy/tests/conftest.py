import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from promproxy.app.main import create_app
from promproxy.app.core.config import Settings
from promproxy.app.core.metrics import metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def secret_file(tmp_path):
    return tmp_path / "api_key.secret"


@pytest.fixture
def make_client(secret_file):
    """Build a TestClient for an app with the given settings overrides."""
    clients = []

    def _make(**overrides) -> TestClient:
        values = {
            "prometheus_url": "http://prometheus.test:9090",
            "secret_file_path": str(secret_file),
        }
        values.update(overrides)
        client = TestClient(create_app(Settings(**values)))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def prometheus_response():
    """Build a mocked httpx response carrying a Prometheus query API payload."""

    def _build(result=None, result_type="vector", status="success", warnings=None, status_code=200):
        payload = {"status": status}
        if status == "success":
            payload["data"] = {"resultType": result_type, "result": result or []}
        else:
            payload["errorType"] = "bad_data"
            payload["error"] = "parse error at char 5: unexpected character"
        if warnings:
            payload["warnings"] = warnings

        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = payload
        return response

    return _build


def vector_sample(value, name="ollama-ollama_3-1"):
    return {"metric": {"name": name}, "value": [1700000000.0, str(value)]}


@pytest.fixture
def sample():
    return vector_sample
