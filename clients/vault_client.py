"""
Secrets for the invoicing worker, read from HashiCorp Vault (KV v2).

Layout under the invoicing/ mount path:

    invoicing/database  url, admin_url
    invoicing/valkey    url
    invoicing/email     gateway_url, api_key, hmac_secret

The worker logs in once with AppRole (VAULT_ADDR, VAULT_ROLE_ID,
VAULT_SECRET_ID, optional VAULT_NAMESPACE) and caches every field it reads
for the life of the process. Nothing here falls back to defaults: a missing
secret stops the worker at startup.
"""

import os
import logging
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "invoicing"

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


class VaultError(Exception):
    """Could not authenticate to Vault."""


class VaultClient:
    """AppRole-authenticated reader for secrets under invoicing/."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        if self.vault_namespace:
            self.client = hvac.Client(url=self.vault_addr, namespace=self.vault_namespace)
        else:
            self.client = hvac.Client(url=self.vault_addr)

        self._login(role_id, secret_id)
        if not self.client.is_authenticated():
            raise VaultError("Vault authentication failed")

        logger.info(f"Vault client ready for {self.vault_addr}")

    def _login(self, role_id: str, secret_id: str) -> None:
        try:
            response = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error(f"AppRole authentication failed: {e}")
            raise VaultError(f"AppRole authentication failed: {e}")
        self.client.token = response["auth"]["client_token"]

    def get_secret(self, path: str, field: str) -> str:
        """
        Read one field of invoicing/<path>.

        Raises:
            PermissionError: The path is missing or this role may not read it
            KeyError: The secret exists but has no such field
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error(f"No secret at {full_path}")
            raise PermissionError(f"Secret path '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Role may not read {full_path}: {e}")
            raise PermissionError(f"Access denied to secret '{full_path}': {e}")

        data = response["data"]["data"]
        if field not in data:
            raise KeyError(
                f"Field '{field}' not found in secret '{full_path}'. "
                f"Available: {', '.join(sorted(data))}"
            )
        return data[field]


def _cached_secret(path: str, field: str) -> str:
    global _vault_client_instance

    cache_key = f"{_SECRET_PREFIX}/{path}/{field}"
    if cache_key not in _secret_cache:
        if _vault_client_instance is None:
            _vault_client_instance = VaultClient()
        _secret_cache[cache_key] = _vault_client_instance.get_secret(path, field)
    return _secret_cache[cache_key]


def get_database_url() -> str:
    """Application role DSN. Every query through it is subject to RLS."""
    return _cached_secret("database", "url")


def get_admin_database_url() -> str:
    """BYPASSRLS role DSN, used only by jobs to find users with due work."""
    return _cached_secret("database", "admin_url")


def get_valkey_url() -> str:
    """Valkey URL for job locks."""
    return _cached_secret("valkey", "url")


def get_email_config() -> Dict[str, str]:
    """Keyword arguments for EmailGatewayClient."""
    return {
        field: _cached_secret("email", field)
        for field in ("gateway_url", "api_key", "hmac_secret")
    }
