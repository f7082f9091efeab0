import pytest
import os
from unittest.mock import MagicMock
from nacl import encoding, public

# Set test environment variables
os.environ["GITHUB_API_URL"] = "https://github.test/api"
os.environ["CACHE_PUBLIC_KEY"] = "false"

from app.services.github import EnvironmentPublicKey, GitHubClient
from app.services.provisioner import Provisioner


@pytest.fixture
def private_key():
    """Key pair standing in for the environment's secret store."""
    return public.PrivateKey.generate()


@pytest.fixture
def environment_key(private_key):
    return EnvironmentPublicKey(
        key=private_key.public_key.encode(encoding.Base64Encoder()).decode("utf-8"),
        key_id="key-123",
    )


@pytest.fixture
def mock_client(environment_key):
    """GitHub client where every call succeeds and the environment already exists."""
    client = MagicMock(spec=GitHubClient)
    client.get_repository_id.return_value = 4242
    client.environment_exists.return_value = True
    client.get_environment_public_key.return_value = environment_key
    return client


@pytest.fixture
def client_factory(mock_client):
    return MagicMock(return_value=mock_client)


@pytest.fixture
def provisioner(client_factory):
    return Provisioner(client_factory=client_factory, cache_public_key=False)
