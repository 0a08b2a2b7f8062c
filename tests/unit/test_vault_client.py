"""
Unit tests for vault_client module.
"""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import InvalidPath, VaultError

from recordsync.utils.vault_client import VaultClient


class TestVaultClient:
    """Test suite for VaultClient class."""

    @pytest.fixture
    def mock_hvac_client(self):
        """Mock hvac.Client for testing."""
        with patch("recordsync.utils.vault_client.hvac.Client") as mock:
            client_instance = MagicMock()
            client_instance.is_authenticated.return_value = True
            mock.return_value = client_instance
            yield mock

    @pytest.fixture
    def client(self, mock_hvac_client):
        return VaultClient(vault_url="http://test:8200", vault_token="test-token")

    def _secret(self, mock_hvac_client, data):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = {"data": {"data": data}}

    def test_init_with_parameters(self, mock_hvac_client):
        client = VaultClient(vault_url="http://test-vault:8200", vault_token="test-token")

        assert client.vault_url == "http://test-vault:8200"
        assert client.mount_point == "secret"
        mock_hvac_client.assert_called_once_with(url="http://test-vault:8200", token="test-token", verify=True)

    def test_init_with_env_vars(self, mock_hvac_client, monkeypatch):
        monkeypatch.setenv("VAULT_ADDR", "http://env-vault:8200")
        monkeypatch.setenv("VAULT_TOKEN", "env-token")

        client = VaultClient()

        assert client.vault_url == "http://env-vault:8200"
        assert client.vault_token == "env-token"

    def test_init_missing_url_raises_error(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)
        with pytest.raises(ValueError, match="Vault URL must be provided"):
            VaultClient(vault_token="test-token")

    def test_init_missing_token_raises_error(self, monkeypatch):
        monkeypatch.delenv("VAULT_TOKEN", raising=False)
        with pytest.raises(ValueError, match="Vault token must be provided"):
            VaultClient(vault_url="http://test:8200")

    def test_init_authentication_failure(self, mock_hvac_client):
        mock_hvac_client.return_value.is_authenticated.return_value = False

        with pytest.raises(VaultError, match="Failed to authenticate"):
            VaultClient(vault_url="http://test:8200", vault_token="bad-token")

    def test_get_secret_success(self, client, mock_hvac_client):
        self._secret(mock_hvac_client, {"username": "u", "password": "p"})

        assert client.get_secret("postgres-credentials") == {"username": "u", "password": "p"}
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="postgres-credentials",
            mount_point="secret"
        )

    def test_get_secret_not_found(self, client, mock_hvac_client):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.side_effect = InvalidPath("Not found")

        with pytest.raises(InvalidPath):
            client.get_secret("nonexistent")

    def test_get_secret_empty_response(self, client, mock_hvac_client):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = {}

        with pytest.raises(InvalidPath, match="No data found"):
            client.get_secret("empty-secret")

    def test_get_secret_other_failure(self, client, mock_hvac_client):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.side_effect = ConnectionError("down")

        with pytest.raises(VaultError, match="Secret retrieval failed"):
            client.get_secret("postgres-credentials")

    def test_get_database_credentials_maps_keys(self, client, mock_hvac_client):
        self._secret(mock_hvac_client, {
            "username": "pg-user",
            "password": "pg-pass",
            "dbname": "billing",
            "host": "",
            "extra": "ignored",
        })

        credentials = client.get_database_credentials("postgres")

        assert credentials == {"user": "pg-user", "password": "pg-pass", "database": "billing"}

    def test_health_check_success(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": False}

        status = client.health_check()

        assert status
        assert status.authenticated is True
        assert status.error is None

    def test_health_check_not_authenticated(self, client, mock_hvac_client):
        mock_hvac_client.return_value.is_authenticated.return_value = False

        status = client.health_check()

        assert not status
        assert status.error == "Not authenticated"

    def test_health_check_sealed(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": True}

        status = client.health_check()

        assert not status
        assert status.sealed is True
        assert status.error == "Vault is sealed"

    def test_context_manager(self, mock_hvac_client):
        with VaultClient(vault_url="http://test:8200", vault_token="t") as client:
            assert client.client is not None

        assert client.client is None
