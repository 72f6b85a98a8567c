"""Tests for VaultClient - HashiCorp Vault secrets management."""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath, VaultError as HvacVaultError

import clients.vault_client as vault_module
from clients.vault_client import VaultClient, VaultError, get_database_url, get_stripe_config


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault.example.com")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(vault_env):
    mock = MagicMock()
    mock.auth.approle.login.return_value = {"auth": {"client_token": "s.token"}}
    mock.is_authenticated.return_value = True
    with patch("clients.vault_client.hvac.Client", return_value=mock):
        yield mock


@pytest.fixture
def reset_vault_singleton():
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


def secret_response(data: dict) -> dict:
    return {"data": {"data": data}}


class TestVaultClientInit:
    """Initialization and authentication."""

    def test_missing_vault_addr_raises(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR")
        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_ROLE_ID")
        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_authenticates_with_approle(self, hvac_client):
        VaultClient()

        hvac_client.auth.approle.login.assert_called_once_with(role_id="role", secret_id="secret")
        assert hvac_client.token == "s.token"

    def test_invalid_approle_raises_permission_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = HvacVaultError("invalid role id")
        with pytest.raises(PermissionError, match="AppRole"):
            VaultClient()

    def test_unauthenticated_token_raises(self, hvac_client):
        hvac_client.is_authenticated.return_value = False
        with pytest.raises(PermissionError):
            VaultClient()


class TestGetSecret:
    """Secret retrieval."""

    def test_paths_scoped_to_prefix(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = secret_response({"url": "postgres://x"})

        assert VaultClient().get_secret("database", "url") == "postgres://x"
        kwargs = hvac_client.secrets.kv.v2.read_secret_version.call_args.kwargs
        assert kwargs["path"] == "quotes/database"

    def test_missing_path(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = InvalidPath()
        with pytest.raises(PermissionError, match="not found"):
            VaultClient().get_secret("nowhere", "url")

    def test_forbidden_path(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = Forbidden()
        with pytest.raises(PermissionError, match="Access denied"):
            VaultClient().get_secret("database", "url")

    def test_vault_failure(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = HvacVaultError("sealed")
        with pytest.raises(VaultError):
            VaultClient().get_secret("database", "url")

    def test_missing_field(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = secret_response({"url": "x"})
        with pytest.raises(KeyError, match="admin_url"):
            VaultClient().get_secret("database", "admin_url")


class TestConvenienceFunctions:

    def test_database_url_cached(self, hvac_client, reset_vault_singleton):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = secret_response({"url": "postgres://x"})

        assert get_database_url() == "postgres://x"
        assert get_database_url() == "postgres://x"
        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1

    def test_stripe_config(self, hvac_client, reset_vault_singleton):
        hvac_client.secrets.kv.v2.read_secret_version.return_value = secret_response(
            {"secret_key": "sk_test", "webhook_secret": "whsec_test"}
        )

        assert get_stripe_config() == {"secret_key": "sk_test", "webhook_secret": "whsec_test"}
