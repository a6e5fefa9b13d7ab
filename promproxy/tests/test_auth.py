import pytest
from unittest.mock import AsyncMock, patch
from promproxy.app.core.keystore import KeyStoreError
from promproxy.app.core.metrics import metrics

TEST_API_KEY = "a" * 64
CPU_PATH = "/cpu_usage/30/ollama-ollama_3-1"


@pytest.fixture
def secured_client(make_client):
    return make_client(secure_api_with_key=True, secure_api_key=TEST_API_KEY)


@pytest.fixture
def mock_prometheus(prometheus_response, sample):
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = prometheus_response([sample(0.42)])
        yield mock_get


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "InvalidFormat"},
        {"Authorization": "Bearer wrong-token"},
        {"Authorization": f"Bearer {TEST_API_KEY}"},
    ],
)
def test_disabled_gate_accepts_everything(make_client, mock_prometheus, headers):
    client = make_client(secure_api_with_key=False)

    response = client.get(CPU_PATH, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"average_cpu_usage": 0.42}


def test_disabled_gate_does_not_create_secret_file(make_client, mock_prometheus, secret_file):
    client = make_client(secure_api_with_key=False)

    client.get(CPU_PATH)

    assert not secret_file.exists()


def test_missing_header(secured_client, mock_prometheus):
    response = secured_client.get(CPU_PATH)

    assert response.status_code == 401
    assert response.json() == {"error": "Authorization header is missing"}
    mock_prometheus.assert_not_called()


@pytest.mark.parametrize(
    "header",
    [
        "InvalidFormat",
        f"Token {TEST_API_KEY}",
        f"bearer {TEST_API_KEY}",
        f"Bearer  {TEST_API_KEY}",
        f"Bearer {TEST_API_KEY} extra",
    ],
)
def test_malformed_header(secured_client, mock_prometheus, header):
    response = secured_client.get(CPU_PATH, headers={"Authorization": header})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid Authorization header format"}
    mock_prometheus.assert_not_called()


def test_wrong_token(secured_client, mock_prometheus):
    response = secured_client.get(CPU_PATH, headers={"Authorization": "Bearer " + "b" * 64})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    mock_prometheus.assert_not_called()


def test_empty_token(secured_client, mock_prometheus):
    response = secured_client.get(CPU_PATH, headers={"Authorization": "Bearer "})

    assert response.status_code == 401
    mock_prometheus.assert_not_called()


def test_valid_token(secured_client, mock_prometheus):
    response = secured_client.get(CPU_PATH, headers={"Authorization": f"Bearer {TEST_API_KEY}"})

    assert response.status_code == 200
    assert response.json() == {"average_cpu_usage": 0.42}
    mock_prometheus.assert_called_once()


def test_health_and_metrics_are_exempt(secured_client):
    response = secured_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "auth": "enabled"}
    assert secured_client.get("/metrics").status_code == 200


def test_generated_key_is_bootstrapped_at_startup(make_client, secret_file, mock_prometheus):
    client = make_client(secure_api_with_key=True)

    # The key exists before any request has been served
    assert secret_file.exists()
    api_key = secret_file.read_text()
    assert len(api_key) == 64

    response = client.get(CPU_PATH, headers={"Authorization": f"Bearer {api_key}"})
    assert response.status_code == 200


def test_existing_secret_file_is_reused(make_client, secret_file, mock_prometheus):
    secret_file.write_text("persisted-key")
    client = make_client(secure_api_with_key=True)

    ok = client.get(CPU_PATH, headers={"Authorization": "Bearer persisted-key"})
    rejected = client.get(CPU_PATH, headers={"Authorization": f"Bearer {TEST_API_KEY}"})

    assert ok.status_code == 200
    assert rejected.status_code == 401
    assert secret_file.read_text() == "persisted-key"


def test_override_wins_over_secret_file(make_client, secret_file, mock_prometheus):
    secret_file.write_text("persisted-key")
    client = make_client(secure_api_with_key=True, secure_api_key=TEST_API_KEY)

    response = client.get(CPU_PATH, headers={"Authorization": f"Bearer {TEST_API_KEY}"})

    assert response.status_code == 200


def test_key_bootstrap_failure_aborts_startup(make_client, tmp_path):
    with pytest.raises(KeyStoreError, match="Failed to write API key"):
        make_client(
            secure_api_with_key=True,
            secret_file_path=str(tmp_path / "missing-dir" / "api_key.secret"),
        )


def test_auth_failures_are_counted(secured_client, mock_prometheus):
    secured_client.get(CPU_PATH)
    secured_client.get(CPU_PATH, headers={"Authorization": "InvalidFormat"})
    secured_client.get(CPU_PATH, headers={"Authorization": "Bearer nope"})

    assert metrics.get_metrics()["auth_failures_total"] == {
        "missing": 1,
        "malformed": 1,
        "invalid_token": 1,
    }
