"""
Vault Client Utility for Record Sync

Reads database credentials for the master/staging store from a HashiCorp
Vault KV v2 engine, so they need not sit in the config file or environment.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import hvac
from hvac.exceptions import InvalidPath, VaultError

logger = logging.getLogger(__name__)

# Secret key -> DatabaseConfig attribute
CREDENTIAL_KEYS = {
    "host": "host",
    "port": "port",
    "database": "database",
    "dbname": "database",
    "username": "user",
    "user": "user",
    "password": "password",
}


@dataclass
class HealthStatus:
    """
    Health of the Vault connection.

    Attributes:
        healthy: True when authenticated and unsealed
        authenticated: Whether the token is accepted
        sealed: Whether Vault is sealed
        error: Error message if the check failed
    """

    healthy: bool
    authenticated: bool
    sealed: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.healthy


class VaultClient:
    """
    Client for reading record sync secrets from HashiCorp Vault.
    """

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        """
        Initialize Vault client.

        Args:
            vault_url: Vault server URL (defaults to VAULT_ADDR env var)
            vault_token: Vault token (defaults to VAULT_TOKEN env var)
            verify_ssl: Whether to verify SSL certificates
            mount_point: KV secrets engine mount point

        Raises:
            ValueError: If URL or token is missing
            VaultError: If authentication fails
        """
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")

        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        try:
            self.client = hvac.Client(
                url=self.vault_url,
                token=self.vault_token,
                verify=verify_ssl
            )
            authenticated = self.client.is_authenticated()
        except Exception as e:
            logger.error(f"Failed to initialize Vault client: {e}")
            raise VaultError(f"Vault initialization failed: {e}") from e

        if not authenticated:
            raise VaultError("Failed to authenticate with Vault")

        logger.info(f"Connected to Vault at {self.vault_url}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Retrieve a secret from the KV v2 engine.

        Args:
            path: Secret path (e.g., "postgres-credentials")

        Returns:
            Secret data

        Raises:
            InvalidPath: If the path holds no secret
            VaultError: If retrieval fails
        """
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath:
            logger.error(f"Secret not found at path: {path}")
            raise
        except Exception as e:
            logger.error(f"Failed to retrieve secret from {path}: {e}")
            raise VaultError(f"Secret retrieval failed: {e}") from e

        if not response or "data" not in response:
            raise InvalidPath(f"No data found at path: {path}")

        logger.info(f"Retrieved secret from {path}")
        return response["data"].get("data", {})

    def get_database_credentials(self, database: str = "postgres") -> Dict[str, Any]:
        """
        Retrieve store credentials, keyed like DatabaseConfig attributes.

        Reads "<database>-credentials" and keeps only the connection keys
        (host, port, database/dbname, username/user, password).

        Args:
            database: Credential set name

        Returns:
            Dictionary with any of host, port, database, user, password
        """
        secret = self.get_secret(f"{database}-credentials")

        credentials = {}
        for key, attribute in CREDENTIAL_KEYS.items():
            if secret.get(key) not in (None, ""):
                credentials.setdefault(attribute, secret[key])

        logger.info(f"Retrieved {database} credentials ({sorted(credentials)})")
        return credentials

    def health_check(self) -> HealthStatus:
        """Check that Vault is reachable, authenticated and unsealed."""
        try:
            if not self.client.is_authenticated():
                logger.warning("Vault authentication check failed")
                return HealthStatus(healthy=False, authenticated=False, sealed=True, error="Not authenticated")

            sealed = self.client.sys.read_health_status(method="GET").get("sealed", True)
        except Exception as e:
            logger.error(f"Vault health check failed: {e}")
            return HealthStatus(healthy=False, authenticated=False, sealed=True, error=str(e))

        if sealed:
            logger.warning("Vault is sealed")

        return HealthStatus(
            healthy=not sealed,
            authenticated=True,
            sealed=sealed,
            error="Vault is sealed" if sealed else None
        )

    def close(self):
        """Drop the underlying client."""
        self.client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
