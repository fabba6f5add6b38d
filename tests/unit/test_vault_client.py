"""
Unit tests for vault_client module.
"""

import pytest
from unittest.mock import MagicMock, patch
from hvac.exceptions import VaultError, InvalidPath

from src.utils.vault_client import VaultClient


def secret_response(data):
    return {"data": {"data": data}}


class TestVaultClient:
    """Test suite for VaultClient class."""

    @pytest.fixture
    def mock_hvac_client(self):
        """Mock hvac.Client for testing."""
        with patch('src.utils.vault_client.hvac.Client') as mock:
            client_instance = MagicMock()
            client_instance.is_authenticated.return_value = True
            mock.return_value = client_instance
            yield mock

    @pytest.fixture
    def client(self, mock_hvac_client):
        return VaultClient(vault_url="http://test:8200", vault_token="test-token")

    def test_init_with_env_vars(self, mock_hvac_client, monkeypatch):
        """Test VaultClient initialization with environment variables."""
        monkeypatch.setenv("VAULT_ADDR", "http://env-vault:8200")
        monkeypatch.setenv("VAULT_TOKEN", "env-token")

        client = VaultClient()

        assert client.vault_url == "http://env-vault:8200"
        assert client.vault_token == "env-token"

    def test_init_missing_url_raises_error(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)

        with pytest.raises(ValueError, match="Vault URL must be provided"):
            VaultClient(vault_token="test-token")

    def test_init_authentication_failure(self, mock_hvac_client):
        mock_hvac_client.return_value.is_authenticated.return_value = False

        with pytest.raises(VaultError, match="Failed to authenticate"):
            VaultClient(vault_url="http://test:8200", vault_token="bad-token")

    def test_get_secret_empty_response(self, client, mock_hvac_client):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = {}

        with pytest.raises(InvalidPath, match="No data found"):
            client.get_secret("empty-secret")

    def test_get_supabase_credentials(self, client, mock_hvac_client):
        """Test retrieving the Supabase URL and anon key."""
        mock_kv = mock_hvac_client.return_value.secrets.kv.v2
        mock_kv.read_secret_version.return_value = secret_response({
            "url": "https://project.supabase.co",
            "anon_key": "anon",
            "service_role_key": "not-returned",
        })

        creds = client.get_supabase_credentials()

        assert creds == {"url": "https://project.supabase.co", "anon_key": "anon"}
        mock_kv.read_secret_version.assert_called_once_with(
            path="supabase-credentials",
            mount_point="secret"
        )

    def test_get_supabase_credentials_missing_key(self, client, mock_hvac_client):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = secret_response({
            "url": "https://project.supabase.co",
        })

        with pytest.raises(ValueError, match="anon_key"):
            client.get_supabase_credentials()

    def test_health_check_success(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": False}

        status = client.health_check()

        assert bool(status) is True
        assert status.sealed is False

    def test_health_check_sealed(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": True}

        status = client.health_check()

        assert bool(status) is False
        assert status.error == "Vault is sealed"

    def test_context_manager(self, mock_hvac_client):
        with VaultClient(vault_url="http://test:8200", vault_token="test-token") as client:
            assert client.client is not None

        assert client.client is None
