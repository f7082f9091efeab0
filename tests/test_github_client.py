import pytest
import requests
from unittest.mock import MagicMock

from app.core.exceptions import GitHubAPIError
from app.services.github import EnvironmentPublicKey, GitHubClient


def make_response(status_code=200, body=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.reason = reason
    if body is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    """Mock requests session with a real headers dict."""
    mock_session = MagicMock()
    mock_session.headers = {}
    return mock_session


@pytest.fixture
def client(session):
    return GitHubClient("ghp_test", base_url="https://github.test/api/", timeout=5, session=session)


def test_session_headers(client, session):
    assert session.headers["Authorization"] == "Bearer ghp_test"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert "X-GitHub-Api-Version" in session.headers


def test_default_base_url_and_timeout_from_settings(session):
    client = GitHubClient("ghp_test", session=session)
    assert client.base_url == "https://github.test/api"
    assert client.timeout == 10.0


def test_get_repository_id(client, session):
    session.request.return_value = make_response(body={"id": 123, "name": "app"})

    assert client.get_repository_id("acme", "app") == 123
    session.request.assert_called_once_with(
        "GET", "https://github.test/api/repos/acme/app", json=None, timeout=5
    )


def test_get_repository_id_missing_field(client, session):
    session.request.return_value = make_response(body={"name": "app"})

    with pytest.raises(GitHubAPIError, match="missing 'id'"):
        client.get_repository_id("acme", "app")


def test_error_uses_server_message(client, session):
    session.request.return_value = make_response(404, {"message": "Not Found"}, reason="Not Found")

    with pytest.raises(GitHubAPIError) as excinfo:
        client.get_repository_id("acme", "missing")
    assert excinfo.value.status_code == 404
    assert excinfo.value.message == "Not Found"


def test_error_without_json_body(client, session):
    session.request.return_value = make_response(502, reason="Bad Gateway")

    with pytest.raises(GitHubAPIError) as excinfo:
        client.get_repository_id("acme", "app")
    assert excinfo.value.message == "502 Bad Gateway"


def test_transport_error(client, session):
    session.request.side_effect = requests.ConnectionError("Connection refused")

    with pytest.raises(GitHubAPIError) as excinfo:
        client.get_repository_id("acme", "app")
    assert excinfo.value.status_code is None
    assert "Connection refused" in excinfo.value.message


def test_environment_exists(client, session):
    session.request.return_value = make_response(body={"name": "prod"})

    assert client.environment_exists("acme", "app", "prod") is True
    assert session.request.call_args.args == ("GET", "https://github.test/api/repos/acme/app/environments/prod")


def test_environment_missing(client, session):
    session.request.return_value = make_response(404, {"message": "Not Found"})

    assert client.environment_exists("acme", "app", "prod") is False


def test_environment_check_other_error_raises(client, session):
    session.request.return_value = make_response(401, {"message": "Bad credentials"})

    with pytest.raises(GitHubAPIError, match="Bad credentials"):
        client.environment_exists("acme", "app", "prod")


def test_environment_name_is_escaped(client, session):
    session.request.return_value = make_response(body={})

    client.create_or_update_environment("acme", "app", "staging/eu west")

    method, url = session.request.call_args.args
    assert method == "PUT"
    assert url == "https://github.test/api/repos/acme/app/environments/staging%2Feu%20west"
    assert session.request.call_args.kwargs["json"] == {}


def test_get_environment_public_key(client, session):
    session.request.return_value = make_response(body={"key": "a2V5", "key_id": 568250167242549743})

    key = client.get_environment_public_key(4242, "prod")

    assert key == EnvironmentPublicKey(key="a2V5", key_id="568250167242549743")
    assert session.request.call_args.args[1] == (
        "https://github.test/api/repositories/4242/environments/prod/secrets/public-key"
    )


def test_put_environment_secret(client, session):
    session.request.return_value = make_response(201, body={})

    client.put_environment_secret(4242, "prod", "API_KEY", "c2VhbGVk", "key-123")

    session.request.assert_called_once_with(
        "PUT",
        "https://github.test/api/repositories/4242/environments/prod/secrets/API_KEY",
        json={"encrypted_value": "c2VhbGVk", "key_id": "key-123"},
        timeout=5,
    )


def test_create_environment_variable(client, session):
    session.request.return_value = make_response(201, body={})

    client.create_environment_variable(4242, "prod", "FOO", "bar")

    session.request.assert_called_once_with(
        "POST",
        "https://github.test/api/repositories/4242/environments/prod/variables",
        json={"name": "FOO", "value": "bar"},
        timeout=5,
    )


def test_create_existing_variable_is_unprocessable(client, session):
    session.request.return_value = make_response(422, {"message": "Already exists - Variable already exists"})

    with pytest.raises(GitHubAPIError) as excinfo:
        client.create_environment_variable(4242, "prod", "FOO", "bar")
    assert excinfo.value.is_unprocessable


def test_update_environment_variable(client, session):
    session.request.return_value = make_response(204)

    client.update_environment_variable(4242, "prod", "FOO", "baz")

    session.request.assert_called_once_with(
        "PUT",
        "https://github.test/api/repositories/4242/environments/prod/variables/FOO",
        json={"name": "FOO", "value": "baz"},
        timeout=5,
    )


def test_context_manager_closes_session(session):
    with GitHubClient("ghp_test", session=session):
        pass
    session.close.assert_called_once()


def test_header_encoding_error(client, session):
    session.request.side_effect = UnicodeEncodeError("latin-1", "Bearer ghp_abc→", 14, 15, "ordinal not in range(256)")

    with pytest.raises(GitHubAPIError) as excinfo:
        client.get_repository_id("acme", "app")
    assert excinfo.value.status_code is None


@pytest.mark.parametrize("key", [None, 12345])
def test_public_key_must_be_a_string(client, session, key):
    session.request.return_value = make_response(body={"key": key, "key_id": "1"})

    with pytest.raises(GitHubAPIError, match="missing 'key'"):
        client.get_environment_public_key(4242, "prod")
